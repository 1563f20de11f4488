"""
Definition Store - storage for computed definitions.

Definitions are derived data: they can always be recomputed from harvest and
curation inputs, so the store is a cache with durable backing, not a source of truth.
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from clearcurate.models.coordinates import EntityCoordinates


class DefinitionStore(Protocol):
    async def get(self, coordinates: EntityCoordinates) -> Optional[Dict[str, Any]]:
        ...

    async def store(self, definition: Dict[str, Any]) -> None:
        ...

    async def delete(self, coordinates: EntityCoordinates) -> None:
        ...

    async def list(self, coordinates: EntityCoordinates) -> List[EntityCoordinates]:
        ...


def _key(coordinates: EntityCoordinates) -> str:
    return coordinates.to_string().lower()


class MemoryDefinitionStore:
    """In-memory definition store."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._definitions: Dict[str, Dict[str, Any]] = {}

    async def get(self, coordinates: EntityCoordinates) -> Optional[Dict[str, Any]]:
        definition = self._definitions.get(_key(coordinates))
        return copy.deepcopy(definition) if definition is not None else None

    async def store(self, definition: Dict[str, Any]) -> None:
        coordinates = EntityCoordinates.from_object(definition["coordinates"])
        self._definitions[_key(coordinates)] = copy.deepcopy(definition)

    async def delete(self, coordinates: EntityCoordinates) -> None:
        self._definitions.pop(_key(coordinates), None)

    async def list(self, coordinates: EntityCoordinates) -> List[EntityCoordinates]:
        """List the revisioned coordinates stored for the family of ``coordinates``."""
        prefix = _key(coordinates.as_revisionless()) + "/"
        return [
            EntityCoordinates.from_object(definition["coordinates"])
            for key, definition in sorted(self._definitions.items())
            if key.startswith(prefix)
        ]


class FileDefinitionStore:
    """
    File-based definition store.

    Directory structure:
    definitions/
      npm/npmjs/-/redie/0.3.0.json
    """

    def __init__(self, base_dir: Path, logger: Optional[logging.Logger] = None):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logger or logging.getLogger(__name__)

    def _path(self, coordinates: EntityCoordinates) -> Path:
        return self.base_dir / f"{_key(coordinates)}.json"

    async def get(self, coordinates: EntityCoordinates) -> Optional[Dict[str, Any]]:
        path = self._path(coordinates)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    async def store(self, definition: Dict[str, Any]) -> None:
        coordinates = EntityCoordinates.from_object(definition["coordinates"])
        path = self._path(coordinates)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(definition, f, indent=2, ensure_ascii=False, default=str)

    async def delete(self, coordinates: EntityCoordinates) -> None:
        path = self._path(coordinates)
        if path.exists():
            path.unlink()

    async def list(self, coordinates: EntityCoordinates) -> List[EntityCoordinates]:
        family_dir = self.base_dir / _key(coordinates.as_revisionless())
        if not family_dir.exists():
            return []
        result = []
        for path in sorted(family_dir.glob("*.json")):
            with open(path, "r", encoding="utf-8") as f:
                result.append(EntityCoordinates.from_object(json.load(f)["coordinates"]))
        return result
