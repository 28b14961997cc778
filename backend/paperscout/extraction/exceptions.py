"""
Exceptions raised by the selector extraction engine.

Only programming errors (unknown enum values, invalid settings) propagate to
callers. Extraction, validation and persistence problems are reported through
return values; the classes below mark them inside the engine.
"""


class SelectorConfigurationError(ValueError):
    """An extractor was configured with an unknown field name or mode."""


class ConfigurationValidationError(Exception):
    """Extraction settings failed validation."""


class PersistenceError(Exception):
    """A key-value store could not read, write or encode a record."""

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"{key}: {message}")
