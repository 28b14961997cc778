"""
Seed loader for bundled selector sets.
"""

from pathlib import Path
from typing import Dict, List, Optional, Union

from paperscout.extraction.repository import SelectorRepository
from paperscout.extraction.selectors.config import SelectorSet
from paperscout.utils.logger import setup_logger

logger = setup_logger()

SEED_FILE_PATTERNS = ("*.json", "*.yaml", "*.yml")


class SeedLoader:
    """Loads selector sets shipped as JSON or YAML files."""

    def __init__(self, seeds_dir: Optional[Union[str, Path]] = None):
        """Initialize the seed loader.

        Args:
            seeds_dir: Directory containing seed files.
                       Defaults to the seeds/ subdirectory.
        """
        if seeds_dir is None:
            seeds_dir = Path(__file__).parent / "seeds"

        self.seeds_dir = Path(seeds_dir)
        self._loaded_seeds: Dict[str, SelectorSet] = {}
        self._load_all_seeds()

    def _load_all_seeds(self) -> None:
        if not self.seeds_dir.exists():
            logger.warning(f"Seeds directory not found: {self.seeds_dir}")
            return

        seed_files = sorted(
            path for pattern in SEED_FILE_PATTERNS for path in self.seeds_dir.glob(pattern)
        )
        logger.info(f"Found {len(seed_files)} seed files in {self.seeds_dir}")

        for seed_file in seed_files:
            self._load_seed_file(seed_file)

    def _load_seed_file(self, file_path: Path) -> None:
        try:
            selector_set = SelectorSet.from_file(file_path)
        except Exception as e:
            logger.error(f"Error loading seed from {file_path}: {e}")
            return

        validation = selector_set.validate()
        if not validation.is_valid:
            logger.error(f"Seed {file_path.name} failed validation: {validation.errors}")
            return

        self._loaded_seeds[selector_set.get_key()] = selector_set
        logger.info(f"Loaded seed: {selector_set.get_key()} from {file_path.name}")

    def get_seed(self, key: str) -> Optional[SelectorSet]:
        seed = self._loaded_seeds.get(key)
        return seed.clone() if seed else None

    def list_seeds(self) -> List[str]:
        return sorted(self._loaded_seeds.keys())

    def reload_seeds(self) -> None:
        """Reload all seeds from disk."""
        self._loaded_seeds.clear()
        self._load_all_seeds()

    async def seed_repository(self, repository: SelectorRepository, overwrite: bool = False) -> int:
        """
        Save seeds into the repository.

        Args:
            repository: Target repository
            overwrite: Replace selector sets that are already persisted

        Returns:
            Number of seeds saved
        """
        existing = set() if overwrite else set(await repository.list_keys())
        saved = 0

        for key in self.list_seeds():
            if key in existing:
                logger.debug(f"Seed {key} already persisted, skipping")
                continue
            if await repository.save(self.get_seed(key)):
                saved += 1

        logger.info(f"Seeded {saved} selector sets")
        return saved
