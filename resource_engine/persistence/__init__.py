"""Persistence Module - data store interface and implementations."""

from .sql_store import SqlAlchemyDataStore
from .store import InMemoryDataStore, ResourceDataStore

__all__ = ["InMemoryDataStore", "ResourceDataStore", "SqlAlchemyDataStore"]
