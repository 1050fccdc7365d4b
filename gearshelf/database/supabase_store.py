"""
Supabase persistence backend
Stores catalog products and collection entries in two tables. The Supabase
client is synchronous, so every call runs in a worker thread.

Expected schema:
    catalog_products(id, asin unique, locale, name, category, image_url,
                     description, manufacturer, attributes jsonb,
                     is_active, updated_at)
    collection_entries(id, actor_id, asin, locale, kind, catalog_product_id,
                       snapshot jsonb, note, color_id, created_at, updated_at,
                       unique(actor_id, asin))
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from supabase import Client, create_client

from gearshelf.database.store import CatalogStore
from gearshelf.errors import PersistenceError, UniqueViolation
from gearshelf.models import (
    CatalogEntry,
    CollectionEntry,
    CustomSnapshot,
    EntryKind,
    ProductIdentifier,
)
from gearshelf.standardization.schemas import CategoryKind

logger = logging.getLogger(__name__)

CATALOG_TABLE = 'catalog_products'
COLLECTION_TABLE = 'collection_entries'

UNIQUE_VIOLATION_CODE = '23505'

# Storefront assumed for rows written before locale was recorded
DEFAULT_LOCALE = 'co.jp'


def _parse_time(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    return datetime.fromisoformat(str(value).replace('Z', '+00:00'))


def catalog_from_row(row: Dict, default_locale: str = DEFAULT_LOCALE) -> CatalogEntry:
    entry = CatalogEntry(
        identifier=ProductIdentifier(row['asin'], row.get('locale') or default_locale),
        name=row.get('name') or '',
        category=CategoryKind.parse(row['category']),
        image_url=row.get('image_url') or '',
        description=row.get('description'),
        manufacturer=row.get('manufacturer'),
        attributes=row.get('attributes') or {},
        id=row.get('id'),
        is_active=row.get('is_active', True),
    )
    updated_at = _parse_time(row.get('updated_at'))
    if updated_at:
        entry.updated_at = updated_at
    return entry


def catalog_to_row(entry: CatalogEntry) -> Dict:
    return {
        'asin': entry.identifier.asin,
        'locale': entry.identifier.locale,
        'name': entry.name,
        'category': entry.category.value,
        'image_url': entry.image_url,
        'description': entry.description,
        'manufacturer': entry.manufacturer,
        'attributes': entry.attributes,
        'is_active': entry.is_active,
        'updated_at': entry.updated_at.isoformat(),
    }


def snapshot_to_json(snapshot: Optional[CustomSnapshot]) -> Optional[Dict]:
    if snapshot is None:
        return None
    return {
        'title': snapshot.title,
        'image_url': snapshot.image_url,
        'canonical_url': snapshot.canonical_url,
        'category': snapshot.category.value,
        'description': snapshot.description,
        'attributes': snapshot.attributes,
        'provider_used': snapshot.provider_used,
        'affiliate_url': snapshot.affiliate_url,
        'potential_for_promotion': snapshot.potential_for_promotion,
    }


def snapshot_from_json(data: Optional[Dict]) -> Optional[CustomSnapshot]:
    if not data:
        return None
    return CustomSnapshot(
        title=data.get('title') or '',
        image_url=data.get('image_url') or '',
        canonical_url=data.get('canonical_url') or '',
        category=CategoryKind.parse(data['category']),
        description=data.get('description'),
        attributes=data.get('attributes') or {},
        provider_used=data.get('provider_used') or '',
        affiliate_url=data.get('affiliate_url'),
        potential_for_promotion=data.get('potential_for_promotion', True),
    )


def collection_from_row(row: Dict, default_locale: str = DEFAULT_LOCALE) -> CollectionEntry:
    entry = CollectionEntry(
        actor_id=row['actor_id'],
        identifier=ProductIdentifier(row['asin'], row.get('locale') or default_locale),
        kind=EntryKind(row.get('kind') or 'custom'),
        catalog_entry_id=row.get('catalog_product_id'),
        snapshot=snapshot_from_json(row.get('snapshot')),
        note=row.get('note'),
        color_id=row.get('color_id'),
        id=row.get('id'),
    )
    for name in ('created_at', 'updated_at'):
        value = _parse_time(row.get(name))
        if value:
            setattr(entry, name, value)
    return entry


def collection_to_row(entry: CollectionEntry) -> Dict:
    return {
        'actor_id': entry.actor_id,
        'asin': entry.identifier.asin,
        'locale': entry.identifier.locale,
        'kind': entry.kind.value,
        'catalog_product_id': entry.catalog_entry_id,
        'snapshot': snapshot_to_json(entry.snapshot),
        'note': entry.note,
        'color_id': entry.color_id,
        'created_at': entry.created_at.isoformat(),
        'updated_at': entry.updated_at.isoformat(),
    }


def _error_code(error: Exception) -> Optional[str]:
    code = getattr(error, 'code', None)
    if code is None and error.args and isinstance(error.args[0], dict):
        code = error.args[0].get('code')
    return str(code) if code is not None else None


class SupabaseStore(CatalogStore):
    """CatalogStore backed by a Supabase (PostgREST) client."""

    def __init__(self, client: Client, default_locale: str = DEFAULT_LOCALE):
        self.client = client
        self.default_locale = default_locale

    @classmethod
    def from_credentials(cls, url: Optional[str], key: Optional[str],
                         default_locale: str = DEFAULT_LOCALE) -> 'SupabaseStore':
        if not url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment")
        return cls(create_client(url, key), default_locale)

    async def _run(self, operation: str, query: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(query)
        except Exception as e:
            if _error_code(e) == UNIQUE_VIOLATION_CODE:
                raise UniqueViolation(f"{operation}: duplicate key") from e
            logger.error("Supabase %s failed: %s", operation, e)
            raise PersistenceError(f"{operation} failed: {e}") from e

    async def find_catalog_by_identifier(self, identifier: ProductIdentifier) -> Optional[CatalogEntry]:
        result = await self._run('find_catalog_by_identifier', lambda: (
            self.client.table(CATALOG_TABLE).select('*')
            .eq('asin', identifier.asin).eq('is_active', True).limit(1).execute()
        ))
        return catalog_from_row(result.data[0], self.default_locale) if result.data else None

    async def find_collection_entry(self, actor_id: str, identifier: ProductIdentifier) -> Optional[CollectionEntry]:
        result = await self._run('find_collection_entry', lambda: (
            self.client.table(COLLECTION_TABLE).select('*')
            .eq('actor_id', actor_id).eq('asin', identifier.asin).limit(1).execute()
        ))
        return collection_from_row(result.data[0], self.default_locale) if result.data else None

    async def count_other_entries(self, identifier: ProductIdentifier, excluding_actor: str) -> int:
        result = await self._run('count_other_entries', lambda: (
            self.client.table(COLLECTION_TABLE).select('id', count='exact')
            .eq('asin', identifier.asin).eq('kind', EntryKind.CUSTOM.value)
            .neq('actor_id', excluding_actor).execute()
        ))
        if result.count is not None:
            return result.count
        return len(result.data or [])

    async def sample_other_entries(self, identifier: ProductIdentifier, excluding_actor: str,
                                   limit: int = 5) -> List[CollectionEntry]:
        result = await self._run('sample_other_entries', lambda: (
            self.client.table(COLLECTION_TABLE).select('*')
            .eq('asin', identifier.asin).eq('kind', EntryKind.CUSTOM.value)
            .neq('actor_id', excluding_actor)
            .order('created_at', desc=True).limit(limit).execute()
        ))
        return [collection_from_row(row, self.default_locale) for row in result.data or []]

    async def create_collection_entry(self, entry: CollectionEntry) -> CollectionEntry:
        row = collection_to_row(entry)
        result = await self._run('create_collection_entry', lambda: (
            self.client.table(COLLECTION_TABLE).insert(row).execute()
        ))
        if not result.data:
            raise PersistenceError("create_collection_entry returned no row")
        return collection_from_row(result.data[0], self.default_locale)

    async def list_catalog_entries(self, updated_before: Optional[datetime] = None) -> List[CatalogEntry]:
        def query():
            builder = self.client.table(CATALOG_TABLE).select('*').eq('is_active', True)
            if updated_before is not None:
                builder = builder.lt('updated_at', updated_before.isoformat())
            return builder.order('id').execute()

        result = await self._run('list_catalog_entries', query)
        return [catalog_from_row(row, self.default_locale) for row in result.data or []]

    async def update_catalog_entry(self, entry: CatalogEntry) -> CatalogEntry:
        if entry.id is None:
            raise PersistenceError("cannot update a catalog entry without an id")
        row = catalog_to_row(entry)
        result = await self._run('update_catalog_entry', lambda: (
            self.client.table(CATALOG_TABLE).update(row).eq('id', entry.id).execute()
        ))
        return catalog_from_row(result.data[0], self.default_locale) if result.data else entry

    async def list_custom_entries(self) -> List[CollectionEntry]:
        result = await self._run('list_custom_entries', lambda: (
            self.client.table(COLLECTION_TABLE).select('*')
            .eq('kind', EntryKind.CUSTOM.value).order('id').execute()
        ))
        return [collection_from_row(row, self.default_locale) for row in result.data or []]

    async def update_collection_entry(self, entry: CollectionEntry) -> CollectionEntry:
        if entry.id is None:
            raise PersistenceError("cannot update a collection entry without an id")
        row = collection_to_row(entry)
        result = await self._run('update_collection_entry', lambda: (
            self.client.table(COLLECTION_TABLE).update(row).eq('id', entry.id).execute()
        ))
        return collection_from_row(result.data[0], self.default_locale) if result.data else entry
