"""Storage components for ClearCurate."""

from clearcurate.store.cache import MemoryCache, NullCache
from clearcurate.store.curation_store import FileCurationStore, MemoryCurationStore
from clearcurate.store.definition_store import FileDefinitionStore, MemoryDefinitionStore
from clearcurate.store.harvest_store import FileHarvestStore, MemoryHarvestStore

__all__ = [
    "MemoryCache",
    "NullCache",
    "FileCurationStore",
    "MemoryCurationStore",
    "FileDefinitionStore",
    "MemoryDefinitionStore",
    "FileHarvestStore",
    "MemoryHarvestStore",
]
