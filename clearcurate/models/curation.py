"""
Curation document schema.

A curation document holds the corrections for every curated revision of one
component family:

    coordinates: {type, provider, namespace, name}
    revisions:
      "1.0.0":
        described: {...}
        licensed: {declared: MIT}
        files: [{path: LICENSE, license: MIT}]

An explicit ``null`` inside a revision patch means "delete this key".
"""

import re
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

KNOWN_TYPES = {
    "composer", "conda", "condasrc", "crate", "deb", "debsrc", "gem", "git", "go",
    "maven", "npm", "nuget", "pod", "pypi", "sourcearchive",
}

KNOWN_PROVIDERS = {
    "anaconda-main", "anaconda-r", "cocoapods", "conda-forge", "cratesio", "debian",
    "github", "gitlab", "golang", "gradleplugin", "mavencentral", "mavengoogle", "npmjs",
    "nuget", "packagist", "pypi", "rubygems",
}

REVISION_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+~:\-]*$")


class CurationCoordinates(BaseModel):
    """Revisionless coordinates of the curated component family."""
    model_config = ConfigDict(extra="forbid")

    type: str = Field(..., min_length=1, description="Component type, e.g. npm")
    provider: str = Field(..., min_length=1, description="Provider, e.g. npmjs")
    namespace: Optional[str] = Field(None, description="Namespace, '-' or absent when none")
    name: str = Field(..., min_length=1, description="Component name")

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v.lower() not in KNOWN_TYPES:
            raise ValueError(f"Invalid type: {v}. Expected one of: {', '.join(sorted(KNOWN_TYPES))}")
        return v

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        if v.lower() not in KNOWN_PROVIDERS:
            raise ValueError(f"Invalid provider: {v}")
        return v


class SourceLocation(BaseModel):
    """Where the source for a component lives."""
    model_config = ConfigDict(extra="forbid")

    type: str = Field(..., description="Coordinates type of the source")
    provider: str = Field(..., description="Coordinates provider of the source")
    namespace: Optional[str] = None
    name: str = Field(..., description="Source name")
    revision: str = Field(..., description="Source revision")
    url: Optional[str] = None


class DescribedPatch(BaseModel):
    """Corrections to the ``described`` neighborhood."""
    model_config = ConfigDict(extra="allow")

    releaseDate: Optional[str] = None
    sourceLocation: Optional[SourceLocation] = None
    projectWebsite: Optional[str] = None
    issueTracker: Optional[str] = None
    facets: Optional[Dict[str, Optional[List[str]]]] = None

    @field_validator("releaseDate")
    @classmethod
    def validate_release_date(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not re.match(r"^\d{4}-\d{2}-\d{2}", v):
            raise ValueError(f"Invalid releaseDate: {v}. Expected: YYYY-MM-DD")
        return v


class LicensedPatch(BaseModel):
    """Corrections to the ``licensed`` neighborhood."""
    model_config = ConfigDict(extra="allow")

    declared: Optional[str] = None


class FilePatch(BaseModel):
    """Correction for one file, keyed by path."""
    model_config = ConfigDict(extra="forbid")

    path: str = Field(..., min_length=1, description="File path inside the component")
    license: Optional[str] = None
    attributions: Optional[List[str]] = None


class RevisionPatch(BaseModel):
    """All corrections for a single revision."""
    model_config = ConfigDict(extra="forbid")

    described: Optional[DescribedPatch] = None
    licensed: Optional[LicensedPatch] = None
    files: Optional[List[FilePatch]] = None


class CurationDocument(BaseModel):
    """The full curation document for a component family."""
    model_config = ConfigDict(extra="forbid")

    coordinates: CurationCoordinates
    revisions: Dict[str, RevisionPatch] = Field(..., min_length=1)

    @field_validator("revisions")
    @classmethod
    def validate_revision_keys(cls, v: Dict[str, RevisionPatch]) -> Dict[str, RevisionPatch]:
        for key in v:
            if not REVISION_PATTERN.match(str(key)):
                raise ValueError(f"Invalid revision key: {key!r}")
        return v


class CurationIssue(BaseModel):
    """A single problem found while loading or validating a curation."""
    message: str = Field(..., description="Category, e.g. 'Invalid curation'")
    path: str = Field("", description="Location of the problem inside the document")
    reason: str = Field(..., description="Human readable explanation")


class CurationOrigin(BaseModel):
    """Provenance of a curation document."""
    sha: Optional[str] = Field(None, description="Content hash of the document it was read from")
