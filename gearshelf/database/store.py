"""
Catalog and collection persistence contract
Plus an in-memory implementation used by tests and by the CLI when no
database is configured.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from datetime import datetime
from itertools import count
from typing import Dict, List, Optional, Tuple

from gearshelf.errors import UniqueViolation
from gearshelf.models import (
    CatalogEntry,
    CollectionEntry,
    EntryKind,
    ProductIdentifier,
    utc_now,
)


class CatalogStore(ABC):
    """
    Everything the pipeline reads from or writes to persistence.

    Implementations raise PersistenceError for infrastructure failures and
    UniqueViolation when create_collection_entry would give an actor a
    second entry for the same identifier.
    """

    @abstractmethod
    async def find_catalog_by_identifier(self, identifier: ProductIdentifier) -> Optional[CatalogEntry]:
        pass

    @abstractmethod
    async def find_collection_entry(self, actor_id: str, identifier: ProductIdentifier) -> Optional[CollectionEntry]:
        pass

    @abstractmethod
    async def count_other_entries(self, identifier: ProductIdentifier, excluding_actor: str) -> int:
        """Custom entries for the identifier owned by anyone but excluding_actor."""
        pass

    @abstractmethod
    async def sample_other_entries(self, identifier: ProductIdentifier, excluding_actor: str,
                                   limit: int = 5) -> List[CollectionEntry]:
        pass

    @abstractmethod
    async def create_collection_entry(self, entry: CollectionEntry) -> CollectionEntry:
        """
        Persist a new entry atomically.

        Returns:
            The stored entry with its id assigned

        Raises:
            UniqueViolation: The actor already has an entry for this identifier
        """
        pass

    @abstractmethod
    async def list_catalog_entries(self, updated_before: Optional[datetime] = None) -> List[CatalogEntry]:
        """Active catalog entries, optionally only those last updated before a cutoff."""
        pass

    @abstractmethod
    async def update_catalog_entry(self, entry: CatalogEntry) -> CatalogEntry:
        pass

    @abstractmethod
    async def list_custom_entries(self) -> List[CollectionEntry]:
        pass

    @abstractmethod
    async def update_collection_entry(self, entry: CollectionEntry) -> CollectionEntry:
        pass


class InMemoryStore(CatalogStore):
    """
    Dict-backed store.

    Records are copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self):
        self._catalog: Dict[str, CatalogEntry] = {}
        self._collection: Dict[Tuple[str, str], CollectionEntry] = {}
        self._catalog_ids = count(1)
        self._entry_ids = count(1)
        self._lock = asyncio.Lock()

    def add_catalog_entry(self, entry: CatalogEntry) -> CatalogEntry:
        """Administrative create path (outside the ingestion pipeline)."""
        stored = copy.deepcopy(entry)
        if stored.id is None:
            stored.id = next(self._catalog_ids)
        self._catalog[stored.identifier.asin] = stored
        return copy.deepcopy(stored)

    def collection_entries(self, actor_id: Optional[str] = None) -> List[CollectionEntry]:
        return [
            copy.deepcopy(entry)
            for (owner, _), entry in self._collection.items()
            if actor_id is None or owner == actor_id
        ]

    async def find_catalog_by_identifier(self, identifier: ProductIdentifier) -> Optional[CatalogEntry]:
        entry = self._catalog.get(identifier.asin)
        if entry is None or not entry.is_active:
            return None
        return copy.deepcopy(entry)

    async def find_collection_entry(self, actor_id: str, identifier: ProductIdentifier) -> Optional[CollectionEntry]:
        entry = self._collection.get((actor_id, identifier.asin))
        return copy.deepcopy(entry) if entry else None

    def _others(self, identifier: ProductIdentifier, excluding_actor: str) -> List[CollectionEntry]:
        others = [
            entry for (owner, asin), entry in self._collection.items()
            if asin == identifier.asin and owner != excluding_actor and entry.is_custom
        ]
        return sorted(others, key=lambda entry: entry.created_at, reverse=True)

    async def count_other_entries(self, identifier: ProductIdentifier, excluding_actor: str) -> int:
        return len(self._others(identifier, excluding_actor))

    async def sample_other_entries(self, identifier: ProductIdentifier, excluding_actor: str,
                                   limit: int = 5) -> List[CollectionEntry]:
        return [copy.deepcopy(entry) for entry in self._others(identifier, excluding_actor)[:limit]]

    async def create_collection_entry(self, entry: CollectionEntry) -> CollectionEntry:
        key = (entry.actor_id, entry.identifier.asin)
        async with self._lock:
            if key in self._collection:
                raise UniqueViolation(f"collection entry for {entry.actor_id}/{entry.identifier} already exists")
            stored = copy.deepcopy(entry)
            stored.id = next(self._entry_ids)
            self._collection[key] = stored
        return copy.deepcopy(stored)

    async def list_catalog_entries(self, updated_before: Optional[datetime] = None) -> List[CatalogEntry]:
        entries = [
            entry for entry in self._catalog.values()
            if entry.is_active and (updated_before is None or entry.updated_at < updated_before)
        ]
        return [copy.deepcopy(entry) for entry in sorted(entries, key=lambda e: e.id or 0)]

    async def update_catalog_entry(self, entry: CatalogEntry) -> CatalogEntry:
        stored = copy.deepcopy(entry)
        stored.updated_at = utc_now()
        self._catalog[stored.identifier.asin] = stored
        return copy.deepcopy(stored)

    async def list_custom_entries(self) -> List[CollectionEntry]:
        entries = [entry for entry in self._collection.values() if entry.kind is EntryKind.CUSTOM]
        return [copy.deepcopy(entry) for entry in sorted(entries, key=lambda e: e.id or 0)]

    async def update_collection_entry(self, entry: CollectionEntry) -> CollectionEntry:
        stored = copy.deepcopy(entry)
        stored.updated_at = utc_now()
        self._collection[(stored.actor_id, stored.identifier.asin)] = stored
        return copy.deepcopy(stored)
