"""Persistence backends for catalog products and collection entries."""

from gearshelf.database.store import CatalogStore, InMemoryStore

__all__ = ['CatalogStore', 'InMemoryStore']
