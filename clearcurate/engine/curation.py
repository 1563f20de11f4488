"""
Curation patch model.

A ``Curation`` wraps one curation document (YAML text or an already parsed dict),
validates it against the document schema and the license rules, and applies its
revision patches onto definitions.
"""

import copy
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml
from pydantic import ValidationError as SchemaError

from clearcurate.license.expression import normalize
from clearcurate.license.identifiers import NOASSERTION
from clearcurate.models.coordinates import EntityCoordinates
from clearcurate.models.curation import CurationDocument, CurationIssue, CurationOrigin

INVALID_YAML = "Invalid yaml"
INVALID_CURATION = "Invalid curation"
INVALID_LICENSE = "Invalid license in curation"


class Curation:
    """
    A validated curation document.

    Attributes:
        data: The parsed document, or None when the text could not be loaded
        path: Where the document came from, used in error reports
        is_valid: Whether the document passed validation
        errors: Every problem found while loading or validating
        origin: Provenance (content hash) of the document
    """

    def __init__(
        self,
        content: Union[str, Dict[str, Any], None],
        path: str = "",
        validate: bool = True,
        origin: Optional[CurationOrigin] = None,
    ):
        self.errors: List[CurationIssue] = []
        self.is_valid = False
        self.path = path
        self.origin = origin
        self.data = self._load(content) if isinstance(content, str) else _stringify_revision_keys(content)
        if validate:
            self.validate()

    def _load(self, content: str) -> Optional[Dict[str, Any]]:
        try:
            return _stringify_revision_keys(yaml.safe_load(content))
        except yaml.YAMLError as e:
            self.errors.append(CurationIssue(message=INVALID_YAML, path=self.path, reason=str(e)))
            return None

    def validate(self) -> bool:
        """
        Validate the document schema, then the license expressions it declares.

        Returns:
            True if the curation is valid
        """
        self.is_valid = False
        if self.data is None:
            if not self.errors:
                self.errors.append(
                    CurationIssue(message=INVALID_CURATION, path=self.path, reason="Curation document is empty")
                )
            return False
        if not isinstance(self.data, dict):
            self.errors.append(
                CurationIssue(message=INVALID_CURATION, path=self.path, reason="Curation document must be a mapping")
            )
            return False

        # Schema
        try:
            CurationDocument.model_validate(self.data)
        except SchemaError as e:
            for error in e.errors():
                location = ".".join(str(part) for part in error["loc"])
                self.errors.append(CurationIssue(message=INVALID_CURATION, path=location, reason=error["msg"]))
            return False

        # License compliance
        license_errors = self._validate_spdx_compliance()
        self.errors.extend(license_errors)
        self.is_valid = not license_errors
        return self.is_valid

    def _validate_spdx_compliance(self) -> List[CurationIssue]:
        sources = []
        for revision, patch in self.revisions.items():
            declared = ((patch or {}).get("licensed") or {}).get("declared")
            if declared:
                sources.append((f"{revision} licensed.declared", declared))
            for file in (patch or {}).get("files") or []:
                if file.get("license"):
                    sources.append((f"{file['path']} in {revision} files", file["license"]))

        issues = []
        for source, license_expression in sources:
            normalized = normalize(license_expression)
            if not normalized or NOASSERTION in normalized:
                reason = f'{source} with value "{license_expression}" is not SPDX compliant'
            elif normalized != license_expression:
                reason = (
                    f'{source} with value "{license_expression}" is not normalized. '
                    f'Suggest using "{normalized}"'
                )
            else:
                continue
            issues.append(CurationIssue(message=INVALID_LICENSE, path=source, reason=reason))
        return issues

    @property
    def revisions(self) -> Dict[str, Dict[str, Any]]:
        if not isinstance(self.data, dict):
            return {}
        return self.data.get("revisions") or {}

    @property
    def coordinates(self) -> Optional[EntityCoordinates]:
        """Revisionless coordinates of the curated component family."""
        if not isinstance(self.data, dict) or not self.data.get("coordinates"):
            return None
        return EntityCoordinates.from_object(self.data["coordinates"]).as_revisionless()

    def get_coordinates(self) -> List[EntityCoordinates]:
        """Coordinates for every revision this curation touches."""
        base = self.coordinates
        if base is None:
            return []
        return [base.with_revision(revision) for revision in self.revisions]

    def apply_revision(self, definition: Dict[str, Any], revision: str) -> Dict[str, Any]:
        """Apply the patch for ``revision`` (if any) onto ``definition``."""
        return Curation.apply(definition, self.revisions.get(revision), self.origin)

    @staticmethod
    def apply(
        definition: Dict[str, Any],
        patch: Optional[Dict[str, Any]],
        origin: Optional[CurationOrigin] = None,
    ) -> Dict[str, Any]:
        """
        Deep merge a revision patch into a definition in place.

        Patch values overwrite target values, an explicit None deletes the target key,
        and files are merged by path. The patch itself is never modified.

        Args:
            definition: Definition to modify
            patch: Patch body for one revision
            origin: Provenance recorded in ``described.tools``

        Returns:
            The modified definition
        """
        if not patch:
            return definition
        _merge(definition, patch)
        described = definition.setdefault("described", {})
        tools = described.setdefault("tools", [])
        tools.append(f"curation/{origin.sha if origin and origin.sha else 'supplied'}")
        return definition

    @staticmethod
    def get_all_coordinates(curations: Iterable["Curation"]) -> List[EntityCoordinates]:
        result: List[EntityCoordinates] = []
        for curation in curations:
            result.extend(curation.get_coordinates())
        return result

    def error_summary(self) -> List[Dict[str, str]]:
        return [issue.model_dump() for issue in self.errors]


def _stringify_revision_keys(data: Any) -> Any:
    # YAML reads unquoted revisions such as 1.0 as numbers
    if isinstance(data, dict) and isinstance(data.get("revisions"), dict):
        data = dict(data)
        data["revisions"] = {str(key): value for key, value in data["revisions"].items()}
    return data


def _merge(target: Dict[str, Any], patch: Dict[str, Any]) -> None:
    for key, value in patch.items():
        if value is None:
            target.pop(key, None)
        elif key == "files" and isinstance(value, list):
            target["files"] = _merge_files(target.get("files") or [], value)
        elif isinstance(value, dict):
            if not isinstance(target.get(key), dict):
                target[key] = {}
            _merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


def _merge_files(target_files: List[Dict[str, Any]], patch_files: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    by_path = {file.get("path"): file for file in target_files if isinstance(file, dict)}
    for patch_file in patch_files:
        existing = by_path.get(patch_file.get("path"))
        if existing is None:
            existing = {}
            target_files.append(existing)
            by_path[patch_file.get("path")] = existing
        _merge(existing, patch_file)
    return target_files


def dump_document(data: Dict[str, Any]) -> str:
    """Serialize a curation document the way it is stored in the repository."""
    return yaml.safe_dump(data, sort_keys=True, default_flow_style=False, allow_unicode=True)
