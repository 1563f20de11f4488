"""
Harvest Store - summarized tool output per component revision.

``get_all`` answers ``{tool: {tool_version: summary}}`` for one revision. Summaries
are produced elsewhere; this store only holds them.
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from clearcurate.models.coordinates import EntityCoordinates


class HarvestStore(Protocol):
    async def get_all(self, coordinates: EntityCoordinates) -> Dict[str, Dict[str, Any]]:
        ...

    async def add(self, coordinates: EntityCoordinates, tool: str, version: str, summary: Dict[str, Any]) -> None:
        ...


def _key(coordinates: EntityCoordinates) -> str:
    return coordinates.to_string().lower()


class MemoryHarvestStore:
    """In-memory harvest store."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._harvest: Dict[str, Dict[str, Dict[str, Any]]] = {}

    async def get_all(self, coordinates: EntityCoordinates) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self._harvest.get(_key(coordinates), {}))

    async def add(self, coordinates: EntityCoordinates, tool: str, version: str, summary: Dict[str, Any]) -> None:
        tools = self._harvest.setdefault(_key(coordinates), {})
        tools.setdefault(tool, {})[version] = copy.deepcopy(summary)


class FileHarvestStore:
    """
    File-based harvest store.

    Directory structure:
    harvest/
      npm/npmjs/-/redie/0.3.0/
        clearlydefined/1.5.0.json
        licensee/9.14.0.json
    """

    def __init__(self, base_dir: Path, logger: Optional[logging.Logger] = None):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logger or logging.getLogger(__name__)

    async def get_all(self, coordinates: EntityCoordinates) -> Dict[str, Dict[str, Any]]:
        revision_dir = self.base_dir / _key(coordinates)
        if not revision_dir.exists():
            return {}
        result: Dict[str, Dict[str, Any]] = {}
        for path in sorted(revision_dir.glob("*/*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    result.setdefault(path.parent.name, {})[path.stem] = json.load(f)
            except json.JSONDecodeError as e:
                self.logger.warning("Skipping unreadable harvest file", extra={"path": str(path), "error": str(e)})
        return result

    async def add(self, coordinates: EntityCoordinates, tool: str, version: str, summary: Dict[str, Any]) -> None:
        path = self.base_dir / _key(coordinates) / tool / f"{version}.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2, ensure_ascii=False, default=str)
