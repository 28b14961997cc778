"""
Configuration management for the extraction engine.
Handles settings validation and construction of the configured store.
"""
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, List, Optional

from paperscout.configs.app_configs import CONTENT_FETCH_MAX_RETRIES
from paperscout.configs.app_configs import CONTENT_FETCH_TIMEOUT
from paperscout.configs.app_configs import ENABLE_EXTRACTION_TRACING
from paperscout.configs.app_configs import SEED_SELECTOR_SETS
from paperscout.configs.app_configs import SELECTOR_SEEDS_DIR
from paperscout.configs.app_configs import SELECTOR_STORE_DIR
from paperscout.extraction.content import HttpContentProvider
from paperscout.extraction.exceptions import ConfigurationValidationError
from paperscout.extraction.instrumentation import setup_tracing
from paperscout.extraction.repository import SelectorRepository
from paperscout.extraction.seed_loader import SeedLoader
from paperscout.extraction.store import InMemoryKeyValueStore
from paperscout.extraction.store import JsonFileKeyValueStore
from paperscout.extraction.store import KeyValueStore
from paperscout.utils.logger import setup_logger


logger = setup_logger()


@dataclass
class ExtractionSettings:
    """Settings for the extraction engine."""
    # Persistence
    store_dir: Optional[str] = SELECTOR_STORE_DIR or None
    seeds_dir: Optional[str] = SELECTOR_SEEDS_DIR or None
    seed_on_startup: bool = SEED_SELECTOR_SETS

    # Content fetching
    fetch_timeout: float = CONTENT_FETCH_TIMEOUT
    fetch_max_retries: int = CONTENT_FETCH_MAX_RETRIES

    # Observability
    enable_tracing: bool = ENABLE_EXTRACTION_TRACING


class ConfigurationManager:
    """Validates extraction settings and builds the objects they describe."""

    def __init__(self, settings: Optional[ExtractionSettings] = None):
        self.settings = settings or ExtractionSettings()
        self._validation_errors: List[str] = []

    def validate(self) -> List[str]:
        """
        Validate settings and return list of validation errors.

        Returns:
            List of validation error messages (empty if valid)
        """
        self._validation_errors = []

        self._validate_store_dir()
        self._validate_seeds_dir()
        self._validate_fetch_settings()

        return self._validation_errors

    def validate_or_raise(self) -> None:
        """
        Validate settings and raise exception if invalid.

        Raises:
            ConfigurationValidationError: If validation fails
        """
        errors = self.validate()
        if errors:
            raise ConfigurationValidationError(
                f"Configuration validation failed: {'; '.join(errors)}"
            )

    def _validate_store_dir(self) -> None:
        if not self.settings.store_dir:
            return
        path = Path(self.settings.store_dir)
        if path.exists() and not path.is_dir():
            self._validation_errors.append(
                f"Selector store path is not a directory: {self.settings.store_dir}"
            )

    def _validate_seeds_dir(self) -> None:
        if not self.settings.seeds_dir:
            return
        if not Path(self.settings.seeds_dir).is_dir():
            self._validation_errors.append(
                f"Seeds directory not found: {self.settings.seeds_dir}"
            )

    def _validate_fetch_settings(self) -> None:
        if self.settings.fetch_timeout <= 0:
            self._validation_errors.append("Fetch timeout must be positive")
        if self.settings.fetch_max_retries < 0:
            self._validation_errors.append("Fetch max retries must not be negative")
        elif self.settings.fetch_max_retries > 10:
            logger.warning(
                f"High fetch retry count ({self.settings.fetch_max_retries}) may stall page passes"
            )

    def create_store(self) -> KeyValueStore:
        """File store when a directory is configured, otherwise in-memory."""
        if self.settings.store_dir:
            logger.info(f"Using JSON file selector store at {self.settings.store_dir}")
            return JsonFileKeyValueStore(self.settings.store_dir)
        logger.info("Using in-memory selector store")
        return InMemoryKeyValueStore()

    def create_seed_loader(self) -> SeedLoader:
        return SeedLoader(self.settings.seeds_dir)

    async def create_repository(self) -> SelectorRepository:
        """Repository over the configured store, seeded when seed_on_startup is set."""
        repository = SelectorRepository(self.create_store())
        if self.settings.seed_on_startup:
            await self.create_seed_loader().seed_repository(repository)
        return repository

    def create_content_provider(self) -> HttpContentProvider:
        return HttpContentProvider(
            timeout=self.settings.fetch_timeout,
            max_retries=self.settings.fetch_max_retries,
        )

    def configure_tracing(self) -> bool:
        return setup_tracing(enable_tracing=self.settings.enable_tracing)

    @classmethod
    def from_dict(cls, settings: dict[str, Any]) -> "ConfigurationManager":
        """
        Create ConfigurationManager from dictionary settings.
        Unknown keys are ignored with a warning.
        """
        known = {f.name for f in fields(ExtractionSettings)}
        unknown = set(settings) - known
        if unknown:
            logger.warning(f"Ignoring unknown extraction settings: {sorted(unknown)}")
        return cls(ExtractionSettings(**{k: v for k, v in settings.items() if k in known}))
