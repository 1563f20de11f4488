"""
Curation Store - durable storage for merged curations and in-flight contributions.

Merged curation documents are kept one per component family. Contributions are
kept with the curation documents they propose so previews can be computed before
a merge lands.
"""

import copy
import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import yaml

from clearcurate.engine.curation import Curation, dump_document
from clearcurate.models.contribution import Contribution
from clearcurate.models.coordinates import EntityCoordinates
from clearcurate.models.curation import CurationOrigin


class CurationStore(Protocol):
    """Curation store contract used by the contribution engine."""

    async def get(self, coordinates: EntityCoordinates, contribution: Optional[int] = None) -> Optional[Curation]:
        ...

    async def get_all(self, coordinates: EntityCoordinates) -> Dict[str, Dict[str, Any]]:
        ...

    async def list(self, coordinates: EntityCoordinates) -> List[Curation]:
        ...

    async def list_contributions(self, coordinates: EntityCoordinates) -> List[Dict[str, Any]]:
        ...

    async def get_contribution(self, number: int) -> Optional[Contribution]:
        ...

    async def get_contributions(self) -> List[Contribution]:
        ...

    async def update_curations(self, curations: List[Curation]) -> None:
        ...

    async def update_contribution(self, contribution: Contribution, curations: Optional[List[Curation]] = None) -> None:
        ...


def family_key(coordinates: EntityCoordinates) -> str:
    """Lower-cased ``type/provider/namespace/name`` key of the component family."""
    return coordinates.as_revisionless().to_string().lower()


def _matches(key: str, prefix: str) -> bool:
    return key == prefix or key.startswith(prefix + "/")


def contribution_view(contribution: Contribution, curations: List[Curation]) -> Dict[str, Any]:
    """Contribution record as returned by listings, with its curation documents."""
    view = contribution.model_dump(mode="json")
    view["curations"] = [dict(copy.deepcopy(c.data), path=c.path) for c in curations if isinstance(c.data, dict)]
    return view


class MemoryCurationStore:
    """In-memory curation store."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._contributions: Dict[int, Contribution] = {}
        self._contribution_curations: Dict[int, List[Curation]] = {}

    async def get(self, coordinates: EntityCoordinates, contribution: Optional[int] = None) -> Optional[Curation]:
        """
        Get the curation document for the family of ``coordinates``.

        Args:
            coordinates: Coordinates, with or without revision
            contribution: Read the document proposed by this contribution instead

        Returns:
            The Curation, or None if there is none
        """
        key = family_key(coordinates)
        if contribution is not None:
            for curation in self._contribution_curations.get(contribution, []):
                if curation.coordinates and family_key(curation.coordinates) == key:
                    return curation
            return None
        data = self._documents.get(key)
        if data is None:
            return None
        return Curation(copy.deepcopy(data), path=key, validate=False, origin=CurationOrigin(sha=_sha(data)))

    async def get_all(self, coordinates: EntityCoordinates) -> Dict[str, Dict[str, Any]]:
        curation = await self.get(coordinates)
        return curation.revisions if curation else {}

    async def list(self, coordinates: EntityCoordinates) -> List[Curation]:
        prefix = family_key(coordinates)
        return [
            Curation(copy.deepcopy(data), path=key, validate=False, origin=CurationOrigin(sha=_sha(data)))
            for key, data in sorted(self._documents.items())
            if _matches(key, prefix)
        ]

    async def list_contributions(self, coordinates: EntityCoordinates) -> List[Dict[str, Any]]:
        prefix = family_key(coordinates)
        result = []
        for number in sorted(self._contributions):
            curations = self._contribution_curations.get(number, [])
            if any(c.coordinates and _matches(family_key(c.coordinates), prefix) for c in curations):
                result.append(contribution_view(self._contributions[number], curations))
        return result

    async def get_contribution(self, number: int) -> Optional[Contribution]:
        return self._contributions.get(number)

    async def get_contributions(self) -> List[Contribution]:
        return [self._contributions[n] for n in sorted(self._contributions)]

    async def update_curations(self, curations: List[Curation]) -> None:
        for curation in curations:
            if curation.coordinates is None:
                self.logger.warning("Skipping curation without coordinates", extra={"path": curation.path})
                continue
            self._documents[family_key(curation.coordinates)] = copy.deepcopy(curation.data)

    async def update_contribution(self, contribution: Contribution, curations: Optional[List[Curation]] = None) -> None:
        self._contributions[contribution.number] = contribution
        if curations is not None:
            self._contribution_curations[contribution.number] = list(curations)


class FileCurationStore:
    """
    File-based curation store.

    Directory structure:
    curations/
      npm/npmjs/-/redie.yaml
    contributions/
      42.json
    """

    def __init__(self, base_dir: Path, logger: Optional[logging.Logger] = None):
        """
        Initialize the FileCurationStore.

        Args:
            base_dir: Base directory for curation documents and contributions
            logger: Injected logger
        """
        self.base_dir = Path(base_dir)
        self.documents_dir = self.base_dir / "curations"
        self.contributions_dir = self.base_dir / "contributions"
        self.documents_dir.mkdir(parents=True, exist_ok=True)
        self.contributions_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logger or logging.getLogger(__name__)

    def _document_path(self, coordinates: EntityCoordinates) -> Path:
        return self.documents_dir / f"{family_key(coordinates)}.yaml"

    def _read_document(self, path: Path) -> Curation:
        content = path.read_text(encoding="utf-8")
        relative = path.relative_to(self.documents_dir).with_suffix("").as_posix()
        origin = CurationOrigin(sha=hashlib.sha1(content.encode("utf-8")).hexdigest())
        return Curation(content, path=relative, validate=False, origin=origin)

    def _read_contribution(self, number: int) -> Optional[Dict[str, Any]]:
        path = self.contributions_dir / f"{number}.json"
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    async def get(self, coordinates: EntityCoordinates, contribution: Optional[int] = None) -> Optional[Curation]:
        key = family_key(coordinates)
        if contribution is not None:
            record = self._read_contribution(contribution)
            for document in (record or {}).get("curations", []):
                curation = Curation(document["data"], path=document.get("path", ""), validate=False)
                if curation.coordinates and family_key(curation.coordinates) == key:
                    return curation
            return None
        path = self._document_path(coordinates)
        if not path.exists():
            return None
        return self._read_document(path)

    async def get_all(self, coordinates: EntityCoordinates) -> Dict[str, Dict[str, Any]]:
        curation = await self.get(coordinates)
        return curation.revisions if curation else {}

    async def list(self, coordinates: EntityCoordinates) -> List[Curation]:
        prefix = family_key(coordinates)
        result = []
        for path in sorted(self.documents_dir.rglob("*.yaml")):
            key = path.relative_to(self.documents_dir).with_suffix("").as_posix()
            if _matches(key, prefix):
                result.append(self._read_document(path))
        return result

    async def list_contributions(self, coordinates: EntityCoordinates) -> List[Dict[str, Any]]:
        prefix = family_key(coordinates)
        result = []
        for contribution in await self.get_contributions():
            record = self._read_contribution(contribution.number) or {}
            curations = [
                Curation(d["data"], path=d.get("path", ""), validate=False) for d in record.get("curations", [])
            ]
            if any(c.coordinates and _matches(family_key(c.coordinates), prefix) for c in curations):
                result.append(contribution_view(contribution, curations))
        return result

    async def get_contribution(self, number: int) -> Optional[Contribution]:
        record = self._read_contribution(number)
        return Contribution.model_validate(record["contribution"]) if record else None

    async def get_contributions(self) -> List[Contribution]:
        numbers = sorted(int(p.stem) for p in self.contributions_dir.glob("*.json") if p.stem.isdigit())
        return [await self.get_contribution(n) for n in numbers]

    async def update_curations(self, curations: List[Curation]) -> None:
        for curation in curations:
            if curation.coordinates is None:
                self.logger.warning("Skipping curation without coordinates", extra={"path": curation.path})
                continue
            path = self._document_path(curation.coordinates)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(dump_document(curation.data), encoding="utf-8")

    async def update_contribution(self, contribution: Contribution, curations: Optional[List[Curation]] = None) -> None:
        record = self._read_contribution(contribution.number) or {"curations": []}
        record["contribution"] = contribution.model_dump(mode="json")
        if curations is not None:
            record["curations"] = [
                {"path": c.path, "data": c.data} for c in curations if isinstance(c.data, dict)
            ]
        path = self.contributions_dir / f"{contribution.number}.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2, ensure_ascii=False, default=str)


def _sha(data: Dict[str, Any]) -> str:
    return hashlib.sha1(yaml.safe_dump(data, sort_keys=True).encode("utf-8")).hexdigest()
