"""
Industry taxonomy: sector labels, sector keywords and the cross-industry
relevance matrix.

The matrix lives in data/taxonomy.json so coefficients can be tuned without
touching scoring code. A Taxonomy object is immutable once loaded; reloading
builds a new object and callers swap it in.
"""

import json
import logging
import re
from numbers import Real
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Optional, Union

from match_models import IndustrySector
from matching_errors import ConfigurationError

logger = logging.getLogger(__name__)


def normalize_keyword(text: str) -> str:
    """Strip all whitespace and upper-case (Korean text is unaffected by case)"""
    return re.sub(r"\s+", "", text).upper()


class Taxonomy:
    """Versioned, read-only sector metadata and relevance matrix."""

    def __init__(
        self,
        version: str,
        default_relevance: float,
        labels: Mapping[IndustrySector, str],
        keywords: Mapping[IndustrySector, FrozenSet[str]],
        relevance: Mapping[IndustrySector, Mapping[IndustrySector, float]],
    ):
        self._version = version
        self._default_relevance = float(default_relevance)
        self._labels = dict(labels)
        self._keywords = dict(keywords)
        self._relevance = {source: dict(row) for source, row in relevance.items()}
        self._normalized_keywords = {
            sector: [normalize_keyword(k) for k in sorted(words)] for sector, words in self._keywords.items()
        }

    @property
    def version(self) -> str:
        return self._version

    @property
    def default_relevance(self) -> float:
        return self._default_relevance

    def relevance(self, source: IndustrySector, target: IndustrySector) -> float:
        """
        Relevance of a program in `target` sector to an organization in `source` sector.

        Self-relevance is always 1.0; pairs missing from the matrix get the
        configured default.
        """
        if source == target:
            return 1.0
        return self._relevance.get(source, {}).get(target, self._default_relevance)

    def keywords_for(self, sector: IndustrySector) -> FrozenSet[str]:
        return self._keywords.get(sector, frozenset())

    def label_for(self, sector: IndustrySector) -> str:
        return self._labels.get(sector, sector.value)

    def find_sector(self, text: Optional[str]) -> Optional[IndustrySector]:
        """
        Resolve free text (program category or title) to a sector.

        Direct sector-code match wins; otherwise the first sector (in enum order)
        with a keyword contained in the text, or containing the text.
        """
        if not text or not isinstance(text, str):
            return None
        normalized = normalize_keyword(text)
        if not normalized:
            return None

        for sector in IndustrySector:
            if normalize_keyword(sector.value) == normalized:
                return sector

        for sector in IndustrySector:
            for keyword in self._normalized_keywords.get(sector, []):
                if keyword in normalized or normalized in keyword:
                    return sector
        return None

    def to_summary(self) -> Dict[str, Any]:
        return {
            "version": self._version,
            "default_relevance": self._default_relevance,
            "sectors": {sector.value: self.label_for(sector) for sector in IndustrySector},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: Optional[str] = None) -> "Taxonomy":
        """
        Validate raw taxonomy data and build a Taxonomy.

        Raises:
            ConfigurationError: on any structural or value problem
        """
        if not isinstance(data, dict):
            raise ConfigurationError("taxonomy must be a JSON object", source=source)

        version = data.get("version")
        if not version or not isinstance(version, str):
            raise ConfigurationError("missing 'version'", source=source)

        default_relevance = data.get("default_relevance", 0.2)
        if not _is_coefficient(default_relevance):
            raise ConfigurationError(
                f"'default_relevance' must be a number in [0, 1], got {default_relevance!r}", source=source
            )

        sectors = data.get("sectors")
        if not isinstance(sectors, dict):
            raise ConfigurationError("missing 'sectors' table", source=source)

        labels = {}
        keywords = {}
        for code, entry in sectors.items():
            sector = _sector_from_code(code, source)
            if not isinstance(entry, dict):
                raise ConfigurationError(f"sector {code} must be an object", source=source)
            words = entry.get("keywords")
            if not isinstance(words, list) or not [w for w in words if isinstance(w, str) and w.strip()]:
                raise ConfigurationError(f"sector {code} has no keywords", source=source)
            labels[sector] = str(entry.get("label") or code)
            keywords[sector] = frozenset(w.strip() for w in words if isinstance(w, str) and w.strip())

        missing = [sector.value for sector in IndustrySector if sector not in keywords]
        if missing:
            raise ConfigurationError(f"sectors missing from taxonomy: {', '.join(missing)}", source=source)

        table = data.get("relevance")
        if not isinstance(table, dict) or not table:
            raise ConfigurationError("relevance table is empty", source=source)

        relevance = {}
        for source_code, row in table.items():
            source_sector = _sector_from_code(source_code, source)
            if not isinstance(row, dict):
                raise ConfigurationError(f"relevance row {source_code} must be an object", source=source)
            parsed_row = {}
            for target_code, value in row.items():
                target_sector = _sector_from_code(target_code, source)
                if not _is_coefficient(value):
                    raise ConfigurationError(
                        f"relevance {source_code}->{target_code} must be a number in [0, 1], got {value!r}",
                        source=source,
                    )
                if source_sector == target_sector and float(value) != 1.0:
                    raise ConfigurationError(
                        f"self-relevance for {source_code} must be 1.0, got {value}", source=source
                    )
                parsed_row[target_sector] = float(value)
            relevance[source_sector] = parsed_row

        return cls(version, float(default_relevance), labels, keywords, relevance)


def _is_coefficient(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and 0.0 <= float(value) <= 1.0


def _sector_from_code(code: Any, source: Optional[str]) -> IndustrySector:
    try:
        return IndustrySector(code)
    except ValueError:
        raise ConfigurationError(f"unknown sector code {code!r}", source=source)


def load_taxonomy(path: Union[str, Path]) -> Taxonomy:
    """
    Load and validate the taxonomy file.

    Raises:
        ConfigurationError: file missing, unreadable, not JSON, or invalid
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError("taxonomy file not found", source=str(path))
    except OSError as e:
        raise ConfigurationError(f"cannot read taxonomy file: {e}", source=str(path))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"invalid JSON: {e}", source=str(path))

    taxonomy = Taxonomy.from_dict(data, source=str(path))
    logger.info(f"[TAXONOMY] Loaded taxonomy {taxonomy.version} from {path}")
    return taxonomy
