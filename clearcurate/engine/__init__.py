"""Curation and definition engines."""

from clearcurate.engine.aggregator import AggregationService
from clearcurate.engine.curation import Curation
from clearcurate.engine.definition import Applier, DefinitionCatalog, DefinitionService, Invalidator

__all__ = [
    "AggregationService",
    "Curation",
    "Applier",
    "DefinitionCatalog",
    "DefinitionService",
    "Invalidator",
]
