"""
Definition Service - synthesizes definitions from harvest data and curations.

compute = harvest summaries -> Aggregator -> curation apply -> cleanup.

The contribution engine needs to invalidate and recompute definitions, and this
service needs the contribution engine to apply curations. Each side depends only
on a narrow protocol; ``bind_applier`` connects them once both objects exist.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from clearcurate.engine.aggregator import AggregationService
from clearcurate.engine.tasks import gather_limited
from clearcurate.license.matcher import latest_version
from clearcurate.models.coordinates import EntityCoordinates
from clearcurate.store.cache import Cache
from clearcurate.store.definition_store import DefinitionStore
from clearcurate.store.harvest_store import HarvestStore

DEFINITION_CACHE_PREFIX = "def"


class Invalidator(Protocol):
    """Capability to drop and rebuild stored definitions."""

    async def invalidate(self, coordinates: Sequence[EntityCoordinates]) -> None:
        ...

    async def compute_and_store(self, coordinates: EntityCoordinates) -> Dict[str, Any]:
        ...


class DefinitionCatalog(Protocol):
    """Read access to stored definitions."""

    async def get_stored(self, coordinates: EntityCoordinates) -> Optional[Dict[str, Any]]:
        ...

    async def list_all(self, coordinates: Sequence[EntityCoordinates]) -> List[EntityCoordinates]:
        ...

    async def list(self, coordinates: EntityCoordinates) -> List[EntityCoordinates]:
        ...


class Applier(Protocol):
    """Capability to apply the curation for a revision onto a definition."""

    async def apply(
        self,
        coordinates: EntityCoordinates,
        contribution: Optional[int],
        definition: Dict[str, Any],
    ) -> Dict[str, Any]:
        ...


def _strip_nulls(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _strip_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_strip_nulls(v) for v in value if v is not None]
    return value


class DefinitionService:
    """
    Definition synthesis.

    Args:
        harvest_store: Source of tool summaries
        aggregator: Precedence merge of the summaries
        definition_store: Durable store for computed definitions
        cache: Shared cache
        logger: Injected logger
    """

    def __init__(
        self,
        harvest_store: HarvestStore,
        aggregator: AggregationService,
        definition_store: DefinitionStore,
        cache: Cache,
        logger: Optional[logging.Logger] = None,
    ):
        self.harvest_store = harvest_store
        self.aggregator = aggregator
        self.definition_store = definition_store
        self.cache = cache
        self.logger = logger or logging.getLogger(__name__)
        self.applier: Optional[Applier] = None

    def bind_applier(self, applier: Applier) -> None:
        self.applier = applier

    async def get(
        self,
        coordinates: EntityCoordinates,
        contribution: Optional[int] = None,
        force: bool = False,
    ) -> Dict[str, Any]:
        """
        Get the definition for a revision.

        Args:
            coordinates: Revisioned coordinates
            contribution: Preview the definition with this contribution's curations applied
            force: Recompute even when a stored definition exists

        Returns:
            The definition
        """
        if contribution is not None:
            return await self.compute(coordinates, contribution)
        key = coordinates.cache_key(DEFINITION_CACHE_PREFIX)
        if not force:
            cached = await self.cache.get(key)
            if cached:
                return cached
            stored = await self.definition_store.get(coordinates)
            if stored:
                await self.cache.set(key, stored)
                return stored
        return await self.compute_and_store(coordinates)

    async def get_stored(self, coordinates: EntityCoordinates) -> Optional[Dict[str, Any]]:
        return await self.definition_store.get(coordinates)

    async def compute(self, coordinates: EntityCoordinates, contribution: Optional[int] = None) -> Dict[str, Any]:
        """Compute a definition without storing it."""
        harvest = await self.harvest_store.get_all(coordinates)
        summaries: Dict[str, Dict[str, Any]] = {}
        versions: Dict[str, str] = {}
        for tool, by_version in harvest.items():
            version = latest_version(list(by_version))
            if version is not None:
                summaries[tool] = by_version[version]
                versions[tool] = version

        definition = self.aggregator.process(summaries)
        definition["described"]["tools"] = [f"{tool}/{versions[tool]}" for tool in definition["described"]["tools"]]
        definition["coordinates"] = coordinates.to_dict()
        if self.applier is not None:
            definition = await self.applier.apply(coordinates, contribution, definition)
        return _strip_nulls(definition)

    async def compute_and_store(self, coordinates: EntityCoordinates) -> Dict[str, Any]:
        """
        Compute a definition and store it.

        A definition no tool (curations included) participated in is returned but not stored.
        """
        definition = await self.compute(coordinates)
        if not (definition.get("described") or {}).get("tools"):
            self.logger.info("No tools participated, not storing definition", extra={"coordinates": str(coordinates)})
            return definition
        await self.definition_store.store(definition)
        await self.cache.set(coordinates.cache_key(DEFINITION_CACHE_PREFIX), definition)
        return definition

    async def list(self, coordinates: EntityCoordinates) -> List[EntityCoordinates]:
        """List every revision with a stored definition in the family of ``coordinates``."""
        return await self.definition_store.list(coordinates.as_revisionless())

    async def list_all(self, coordinates: Sequence[EntityCoordinates]) -> List[EntityCoordinates]:
        """Answer which of ``coordinates`` have stored definitions."""
        families = {}
        for item in coordinates:
            family = item.as_revisionless()
            families[str(family).lower()] = family

        async def list_family(family: EntityCoordinates) -> List[EntityCoordinates]:
            try:
                return await self.list(family)
            except Exception as e:
                self.logger.warning("Failed to list definitions", extra={"coordinates": str(family), "error": str(e)})
                return []

        found = set()
        for listed in await gather_limited(10, list(families.values()), list_family):
            found.update(str(c).lower() for c in listed)
        return [item for item in coordinates if str(item).lower() in found]

    async def invalidate(self, coordinates: Sequence[EntityCoordinates]) -> None:
        """Drop stored and cached definitions so they are recomputed on next use."""
        async def drop(item: EntityCoordinates) -> None:
            await self.definition_store.delete(item)
            await self.cache.delete(item.cache_key(DEFINITION_CACHE_PREFIX))

        await gather_limited(10, list(coordinates), drop)
