"""Data models for ClearCurate."""

from clearcurate.models.coordinates import EntityCoordinates
from clearcurate.models.curation import (
    CurationCoordinates,
    CurationDocument,
    CurationIssue,
    CurationOrigin,
    RevisionPatch,
)
from clearcurate.models.contribution import (
    CommitState,
    CommitStatus,
    ComponentPatch,
    Contribution,
    ContributionInfo,
    ContributionPatch,
    ContributionState,
    ContributionType,
    ContributorInfo,
    CurationListing,
    MatchingRevision,
    PullRequest,
    PullRequestEvent,
)

__all__ = [
    "EntityCoordinates",
    # Curation schema
    "CurationCoordinates",
    "CurationDocument",
    "CurationIssue",
    "CurationOrigin",
    "RevisionPatch",
    # Contributions
    "CommitState",
    "CommitStatus",
    "ComponentPatch",
    "Contribution",
    "ContributionInfo",
    "ContributionPatch",
    "ContributionState",
    "ContributionType",
    "ContributorInfo",
    "CurationListing",
    "MatchingRevision",
    "PullRequest",
    "PullRequestEvent",
]
