"""License expression handling and license evidence matching."""

from clearcurate.license.expression import (
    LicenseLeaf,
    LicenseNode,
    expand,
    merge,
    normalize,
    parse,
    satisfies,
    stringify,
)
from clearcurate.license.identifiers import NOASSERTION, NONE, lookup_by_name, normalize_single
from clearcurate.license.matcher import LicenseMatcher, MatchInput, MatchResult

__all__ = [
    "LicenseLeaf",
    "LicenseNode",
    "expand",
    "merge",
    "normalize",
    "parse",
    "satisfies",
    "stringify",
    "NOASSERTION",
    "NONE",
    "lookup_by_name",
    "normalize_single",
    "LicenseMatcher",
    "MatchInput",
    "MatchResult",
]
