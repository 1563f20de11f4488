"""
License matcher.

Decides whether two revisions of the same component carry the same license by
comparing their license evidence: license file hashes from the definitions and
registry metadata license fields from the harvested tool output.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from clearcurate.models.coordinates import EntityCoordinates

_LICENSE_FILE = re.compile(r"^(licen[sc]e|copying)(\.(txt|md|html))?$", re.IGNORECASE)

_PACKAGE_PREFIXES = {
    "npm": ["package/"],
    "maven": ["meta-inf/"],
}


def is_license_file(path: Optional[str], coordinates: Optional[EntityCoordinates] = None) -> bool:
    """
    Check whether ``path`` is a root level license file.

    For some types the package root is nested, e.g. ``package/LICENSE`` for npm.
    """
    if not path:
        return False
    prefixes = [""]
    if coordinates is not None:
        prefixes.extend(_PACKAGE_PREFIXES.get(coordinates.type, []))
        if coordinates.type == "pypi" and coordinates.revision:
            prefixes.append(f"{coordinates.name}-{coordinates.revision}/".lower())
    lowered = path.lower()
    for prefix in prefixes:
        if lowered.startswith(prefix) and _LICENSE_FILE.match(path[len(prefix):]):
            return True
    return False


def _version_key(version: str) -> Optional[Tuple[int, int, int]]:
    if version == "1":
        return (1, 0, 0)
    match = re.match(r"^v?(\d+)\.(\d+)\.(\d+)$", version or "")
    if not match:
        return None
    return tuple(int(p) for p in match.groups())


def latest_version(versions: Sequence[str]) -> Optional[str]:
    """Pick the highest release version. Pre-release and non-semver entries are skipped."""
    if not versions:
        return None
    best = versions[0]
    for candidate in versions[1:]:
        key = _version_key(candidate)
        if key is None:
            continue
        best_key = _version_key(best)
        if best_key is None or key > best_key:
            best = candidate
    return best


def get_path(value: Any, path: str) -> Any:
    """Read a dotted property path out of nested dicts."""
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


@dataclass
class MatchInput:
    """License evidence for one revision."""
    definition: Dict[str, Any]
    harvest: Dict[str, Any] = field(default_factory=dict)

    @property
    def coordinates(self) -> EntityCoordinates:
        return EntityCoordinates.from_object(self.definition["coordinates"])


@dataclass
class CompareResult:
    match: List[Dict[str, Any]] = field(default_factory=list)
    mismatch: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class MatchResult:
    is_matching: bool
    match: List[Dict[str, Any]] = field(default_factory=list)
    mismatch: List[Dict[str, Any]] = field(default_factory=list)


class LicenseMatchPolicy(Protocol):
    name: str

    def compare(self, source: MatchInput, target: MatchInput) -> CompareResult:
        ...


class DefinitionLicenseMatchPolicy:
    """Compare license files present in both definitions by hash and token."""

    name = "definition"
    compare_props = ("hashes.sha1", "hashes.sha256", "token")

    def compare(self, source: MatchInput, target: MatchInput) -> CompareResult:
        file_map: Dict[str, Dict[str, Any]] = {}
        for side, evidence in (("source", source), ("target", target)):
            coordinates = evidence.coordinates
            for file in evidence.definition.get("files") or []:
                path = file.get("path")
                if path and is_license_file(path, coordinates):
                    file_map.setdefault(path, {})[side] = file

        result = CompareResult()
        for path, files in file_map.items():
            for prop_path in self.compare_props:
                source_value = get_path(files.get("source"), prop_path)
                target_value = get_path(files.get("target"), prop_path)
                if not source_value and not target_value:
                    continue
                if source_value == target_value:
                    result.match.append(
                        {"policy": self.name, "file": path, "propPath": prop_path, "value": source_value}
                    )
                else:
                    result.mismatch.append({
                        "policy": self.name,
                        "file": path,
                        "propPath": prop_path,
                        "source": source_value,
                        "target": target_value,
                    })
        return result


class HarvestLicenseMatchStrategy:
    """Compare registry metadata license fields from the latest ``clearlydefined`` tool output."""

    name = "harvest"
    tool = "clearlydefined"

    def __init__(self, type_: str, prop_paths: Sequence[str] = ()):
        self.type = type_
        self.prop_paths = list(prop_paths)

    def _latest(self, harvest: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        versions = harvest.get(self.tool)
        if not versions:
            return None
        return versions.get(latest_version(list(versions)))

    def compare(self, source: MatchInput, target: MatchInput) -> CompareResult:
        source_harvest = self._latest(source.harvest)
        target_harvest = self._latest(target.harvest)
        result = CompareResult()
        for prop_path in self.prop_paths:
            source_license = get_path(source_harvest, prop_path)
            target_license = get_path(target_harvest, prop_path)
            if not source_license and not target_license:
                continue
            if source_license == target_license:
                result.match.append({"policy": self.name, "propPath": prop_path, "value": source_license})
            else:
                result.mismatch.append(
                    {"policy": self.name, "propPath": prop_path, "source": source_license, "target": target_license}
                )
        return result


class NugetHarvestLicenseMatchStrategy(HarvestLicenseMatchStrategy):
    """
    NuGet strategy.

    License URLs pointing at github.com may change content behind a stable URL, and
    the deprecated license URL means the real license is a file in the package, so
    neither counts as a match.
    """

    excluded_license_urls = ("github.com", "aka.ms/deprecateLicenseUrl")

    def __init__(self, logger: Optional[logging.Logger] = None):
        super().__init__("nuget", ["manifest.licenseExpression", "manifest.licenseUrl"])
        self.logger = logger or logging.getLogger(__name__)

    def compare(self, source: MatchInput, target: MatchInput) -> CompareResult:
        result = super().compare(source, target)
        kept = []
        for entry in result.match:
            value = entry.get("value")
            if entry["propPath"] == "manifest.licenseUrl":
                self.logger.info("Comparing NuGet license URL", extra={"url": value})
            if isinstance(value, str) and any(url.lower() in value.lower() for url in self.excluded_license_urls):
                continue
            kept.append(entry)
        result.match = kept
        return result


_HARVEST_PROP_PATHS = {
    "maven": ["manifest.summary.licenses"],
    "conda": ["declaredLicenses"],
    "condasrc": ["declaredLicenses"],
    "crate": ["registryData.license"],
    "pod": ["registryData.license"],
    "npm": ["registryData.manifest.license"],
    "composer": ["registryData.manifest.license"],
    "gem": ["registryData.licenses"],
    "pypi": ["declaredLicense", "registryData.info.license"],
    "deb": ["declaredLicenses"],
    "debsrc": ["declaredLicenses"],
}


class HarvestLicenseMatchPolicy:
    """Pick the harvest strategy for the component type."""

    name = "harvest"

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def strategy_for(self, type_: str) -> HarvestLicenseMatchStrategy:
        if type_ == "nuget":
            return NugetHarvestLicenseMatchStrategy(self.logger)
        return HarvestLicenseMatchStrategy(type_, _HARVEST_PROP_PATHS.get(type_, []))

    def compare(self, source: MatchInput, target: MatchInput) -> CompareResult:
        return self.strategy_for(source.coordinates.type).compare(source, target)


class LicenseMatcher:
    """
    Combine match policies into a single verdict.

    Two revisions match only when at least one policy found matching evidence and
    no policy found conflicting evidence.
    """

    def __init__(self, policies: Optional[List[LicenseMatchPolicy]] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.policies = policies if policies is not None else [
            DefinitionLicenseMatchPolicy(),
            HarvestLicenseMatchPolicy(self.logger),
        ]

    def process(self, source: MatchInput, target: MatchInput) -> MatchResult:
        """
        Compare the license evidence of two revisions.

        Args:
            source: Evidence of the curated revision
            target: Evidence of the candidate revision

        Returns:
            MatchResult with the matching entries, or the mismatches when not matching
        """
        combined = CompareResult()
        for policy in self.policies:
            result = policy.compare(source, target)
            combined.match.extend(result.match)
            combined.mismatch.extend(result.mismatch)
        if combined.mismatch or not combined.match:
            return MatchResult(is_matching=False, mismatch=combined.mismatch)
        return MatchResult(is_matching=True, match=combined.match)
