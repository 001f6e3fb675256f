"""
Error types for the matching engine.

ConfigurationError is fatal at startup (bad taxonomy file, bad thresholds).
InvalidInputError marks a single organization/program record as unusable;
the matching service logs it and moves on to the next record.
"""

from typing import Optional


class ConfigurationError(Exception):
    """Taxonomy data or matching settings are missing or malformed."""

    def __init__(self, message: str, source: Optional[str] = None):
        if source:
            message = f"{source}: {message}"
        super().__init__(message)
        self.source = source


class InvalidInputError(ValueError):
    """An organization or program record is missing a required field or has a bad value."""

    def __init__(self, message: str, record_id: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.record_id = record_id
        self.field = field
