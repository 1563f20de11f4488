"""
Wiring - builds the object graph from a config value.

Providers are chosen through explicit registries resolved once at startup. The
definition service and the contribution engine depend on each other only through
the ``Invalidator`` and ``Applier`` protocols; they are connected here after both
exist.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from clearcurate.adapters.github import GitHubClient, RepositoryApi
from clearcurate.config import CurateConfig
from clearcurate.engine.aggregator import AggregationService
from clearcurate.engine.contribution import CurationContributionEngine
from clearcurate.engine.definition import DefinitionService
from clearcurate.engine.lifecycle import ContributionLifecycle
from clearcurate.license.matcher import LicenseMatcher
from clearcurate.logging_config import get_logger
from clearcurate.store.cache import Cache, MemoryCache, NullCache
from clearcurate.store.curation_store import CurationStore, FileCurationStore, MemoryCurationStore
from clearcurate.store.definition_store import DefinitionStore, FileDefinitionStore, MemoryDefinitionStore
from clearcurate.store.harvest_store import FileHarvestStore, HarvestStore, MemoryHarvestStore


class StoreProvider(str, Enum):
    MEMORY = "memory"
    FILE = "file"


class CacheProvider(str, Enum):
    MEMORY = "memory"
    NULL = "null"


CURATION_STORES: Dict[StoreProvider, Callable[[CurateConfig, logging.Logger], CurationStore]] = {
    StoreProvider.MEMORY: lambda config, logger: MemoryCurationStore(logger),
    StoreProvider.FILE: lambda config, logger: FileCurationStore(config.curations_dir, logger),
}

DEFINITION_STORES: Dict[StoreProvider, Callable[[CurateConfig, logging.Logger], DefinitionStore]] = {
    StoreProvider.MEMORY: lambda config, logger: MemoryDefinitionStore(logger),
    StoreProvider.FILE: lambda config, logger: FileDefinitionStore(config.definitions_dir, logger),
}

HARVEST_STORES: Dict[StoreProvider, Callable[[CurateConfig, logging.Logger], HarvestStore]] = {
    StoreProvider.MEMORY: lambda config, logger: MemoryHarvestStore(logger),
    StoreProvider.FILE: lambda config, logger: FileHarvestStore(config.harvest_dir, logger),
}

CACHES: Dict[CacheProvider, Callable[[CurateConfig], Cache]] = {
    CacheProvider.MEMORY: lambda config: MemoryCache(),
    CacheProvider.NULL: lambda config: NullCache(),
}


def _resolve(registry: Dict, enum_type: type, name: str, concern: str):
    try:
        return registry[enum_type(name.lower())]
    except ValueError:
        raise ValueError(
            f"Invalid {concern} provider: {name}. Expected one of: {', '.join(e.value for e in enum_type)}"
        ) from None


@dataclass
class Services:
    """Everything an entry point needs."""
    config: CurateConfig
    logger: logging.Logger
    cache: Cache
    curation_store: CurationStore
    definition_store: DefinitionStore
    harvest_store: HarvestStore
    repository: RepositoryApi
    definitions: DefinitionService
    contributions: CurationContributionEngine
    lifecycle: ContributionLifecycle


def build_services(
    config: CurateConfig,
    logger: Optional[logging.Logger] = None,
    repository: Optional[RepositoryApi] = None,
) -> Services:
    """
    Build and connect all components.

    Args:
        config: Configuration value
        logger: Parent logger. Defaults to the package logger.
        repository: Curation repository API. Defaults to a GitHub client built from config.

    Returns:
        The connected Services
    """
    logger = logger or logging.getLogger("clearcurate")
    cache = _resolve(CACHES, CacheProvider, config.cache_provider, "cache")(config)
    curation_store = _resolve(CURATION_STORES, StoreProvider, config.curation_store_provider, "curation store")(
        config, get_logger("curation_store", logger)
    )
    definition_store = _resolve(
        DEFINITION_STORES, StoreProvider, config.definition_store_provider, "definition store"
    )(config, get_logger("definition_store", logger))
    harvest_store = _resolve(HARVEST_STORES, StoreProvider, config.harvest_store_provider, "harvest store")(
        config, get_logger("harvest_store", logger)
    )
    if repository is None:
        repository = GitHubClient(
            config.github_owner,
            config.github_repo,
            token=config.github_token,
            base_url=config.github_api_url,
            logger=get_logger("github", logger),
        )

    definitions = DefinitionService(
        harvest_store,
        AggregationService(config.aggregator_precedence, get_logger("aggregator", logger)),
        definition_store,
        cache,
        get_logger("definitions", logger),
    )
    contributions = CurationContributionEngine(
        config,
        repository,
        curation_store,
        definitions=definitions,
        invalidator=definitions,
        cache=cache,
        harvest_store=harvest_store,
        license_matcher=LicenseMatcher(logger=get_logger("license_matcher", logger)),
        logger=get_logger("contributions", logger),
    )
    definitions.bind_applier(contributions)
    lifecycle = ContributionLifecycle(contributions, get_logger("lifecycle", logger))

    return Services(
        config=config,
        logger=logger,
        cache=cache,
        curation_store=curation_store,
        definition_store=definition_store,
        harvest_store=harvest_store,
        repository=repository,
        definitions=definitions,
        contributions=contributions,
        lifecycle=lifecycle,
    )
