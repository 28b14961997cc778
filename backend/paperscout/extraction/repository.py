"""
Write-through, in-memory cached repository of selector sets.
"""
import asyncio
from collections import defaultdict
from typing import Dict, List, Optional, Union

from paperscout.extraction.selectors.base import extract_domain
from paperscout.extraction.selectors.config import SelectorSet
from paperscout.extraction.store import InMemoryKeyValueStore
from paperscout.extraction.store import KeyValueStore
from paperscout.extraction.types import PageKind
from paperscout.utils.logger import setup_logger


logger = setup_logger()

STORAGE_PREFIX = "selectorSets."


class SelectorRepository:
    """
    Persists selector sets under their (domain, page kind) key and caches
    rehydrated sets for the lifetime of the process.

    Reads that miss the cache and writes both run under a per-key lock, so a
    read-through-and-populate or a write-then-cache is one unit of work.
    """

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store: KeyValueStore = store if store is not None else InMemoryKeyValueStore()
        self._cache: Dict[str, SelectorSet] = {}
        self._key_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @staticmethod
    def get_key(domain: str, page_kind: Union[PageKind, str]) -> str:
        return SelectorSet.make_key(domain, page_kind)

    @staticmethod
    def get_storage_key(key: str) -> str:
        return f"{STORAGE_PREFIX}{key}"

    @staticmethod
    def extract_domain(url: str) -> str:
        return extract_domain(url)

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        """Drop every cached set; the next get reads from the store again."""
        self._cache.clear()
        logger.info("Cleared selector set cache")

    async def save(self, selector_set: SelectorSet) -> bool:
        """
        Persist a selector set and update the cache.

        Returns:
            True on success, False if the set is unusable or the write failed
        """
        if selector_set is None or not selector_set.has_valid_key():
            logger.error(f"Refusing to save selector set with invalid key: {selector_set!r}")
            return False

        key = selector_set.get_key()
        async with self._key_locks[key]:
            try:
                record = selector_set.to_dict()
                await self.store.set(self.get_storage_key(key), record)
            except Exception as e:
                logger.error(f"Failed to save selector set {key}: {e}")
                return False

            self._cache[key] = selector_set

        logger.info(
            f"Saved selector set {key} with {len(selector_set.extractors)} extractors "
            f"(cache size: {self.cache_size})"
        )
        return True

    async def get(self, domain: str, page_kind: Union[PageKind, str]) -> Optional[SelectorSet]:
        """
        Return the selector set for a key, reading through to the store on a
        cache miss. Returns None when nothing usable is stored.
        """
        key = self.get_key(domain, page_kind)

        cached = self._cache.get(key)
        if cached is not None:
            return cached

        async with self._key_locks[key]:
            # Another task may have populated the cache while we waited
            cached = self._cache.get(key)
            if cached is not None:
                return cached

            try:
                record = await self.store.get(self.get_storage_key(key))
            except Exception as e:
                logger.error(f"Failed to read selector set {key}: {e}")
                return None

            if record is None:
                logger.debug(f"No selector set stored for {key}")
                return None

            try:
                selector_set = SelectorSet.from_dict(record)
            except Exception as e:
                logger.error(f"Stored selector set {key} could not be rebuilt: {e}")
                return None

            self._cache[key] = selector_set

        logger.debug(f"Loaded selector set {key} from store")
        return selector_set

    async def get_for_page(
        self, url: str, page_kind: Union[PageKind, str]
    ) -> Optional[SelectorSet]:
        domain = self.extract_domain(url)
        if not domain:
            logger.warning(f"Could not derive a domain from URL: {url!r}")
            return None
        return await self.get(domain, page_kind)

    async def list_keys(self) -> List[str]:
        """Keys (domain_pagekind) of every persisted selector set."""
        try:
            storage_keys = await self.store.keys(STORAGE_PREFIX)
        except Exception as e:
            logger.error(f"Failed to list selector sets: {e}")
            return []
        return [k[len(STORAGE_PREFIX):] for k in storage_keys]

    async def get_all(self) -> List[SelectorSet]:
        """Every persisted selector set; unreadable records are skipped."""
        selector_sets = []
        for key in await self.list_keys():
            cached = self._cache.get(key)
            if cached is not None:
                selector_sets.append(cached)
                continue

            try:
                record = await self.store.get(self.get_storage_key(key))
                if record is None:
                    continue
                selector_sets.append(SelectorSet.from_dict(record))
            except Exception as e:
                logger.warning(f"Skipping unreadable selector set {key}: {e}")

        return selector_sets
