"""
Contribution data models.

A contribution is a pull request against the curation repository bundling one or
more curation patches. It is created by the contribution engine and advanced only
by inbound lifecycle events.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from clearcurate.models.coordinates import EntityCoordinates


class ContributionState(str, Enum):
    """Lifecycle state of a contribution."""
    OPEN = "open"
    VALIDATING = "validating"
    MERGED = "merged"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        return self in (ContributionState.MERGED, ContributionState.CLOSED)


TRANSITIONS = {
    ContributionState.OPEN: {ContributionState.VALIDATING, ContributionState.MERGED, ContributionState.CLOSED},
    ContributionState.VALIDATING: {ContributionState.OPEN, ContributionState.MERGED, ContributionState.CLOSED},
    ContributionState.MERGED: set(),
    ContributionState.CLOSED: set(),
}


def can_transition(current: Optional[ContributionState], target: ContributionState) -> bool:
    """Check whether ``current`` may move to ``target``. Unknown contributions may enter any state."""
    if current is None or current == target:
        return True
    return target in TRANSITIONS[current]


class ContributionType(str, Enum):
    """What kind of correction a contribution makes."""
    MISSING = "missing"
    INCORRECT = "incorrect"
    INCOMPLETE = "incomplete"
    AMBIGUOUS = "ambiguous"
    AUTO = "auto"
    OTHER = "other"
    NEW = "new"


class CommitState(str, Enum):
    """Commit status states understood by the repository host."""
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class CommitStatus(BaseModel):
    """Commit status payload posted against a contribution head."""
    state: CommitState
    description: str
    target_url: str


class ContributionInfo(BaseModel):
    """Human supplied description of a contribution."""
    type: ContributionType = Field(ContributionType.OTHER, description="Kind of correction")
    summary: str = Field(..., min_length=1, description="One line summary, used as the title")
    details: str = Field("", description="Details of the problem")
    resolution: str = Field("", description="How the patch resolves it")


class ComponentPatch(BaseModel):
    """Patch bodies for one component family, keyed by revision."""
    coordinates: Dict[str, Any] = Field(..., description="Revisionless coordinates")
    revisions: Dict[str, Dict[str, Any]] = Field(..., description="Revision -> patch body")

    @property
    def entity(self) -> EntityCoordinates:
        return EntityCoordinates.from_object(self.coordinates).as_revisionless()


class ContributionPatch(BaseModel):
    """A full contribution request."""
    model_config = ConfigDict(populate_by_name=True)

    contribution_info: ContributionInfo = Field(..., alias="contributionInfo")
    patches: List[ComponentPatch] = Field(..., min_length=1)
    skip_multiversion_search: bool = Field(False, alias="skipMultiversionSearch")


class ContributorInfo(BaseModel):
    """Identity of the contributor, used for branch names and commit authorship."""
    login: str = Field(..., min_length=1)
    name: Optional[str] = None
    email: Optional[str] = None


class Contribution(BaseModel):
    """A contribution as tracked by the curation store."""
    number: int
    branch: Optional[str] = None
    head_sha: Optional[str] = None
    base_sha: Optional[str] = None
    state: ContributionState = ContributionState.OPEN
    title: Optional[str] = None
    files: List[str] = Field(default_factory=list, description="Curation document paths")
    status: Optional[CommitState] = Field(None, description="Last posted validation state")
    login: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    merged_at: Optional[datetime] = None


class PullRequestHead(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ref: str
    sha: str


class PullRequestUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    login: str


class PullRequest(BaseModel):
    """The subset of a pull request payload the engine consumes."""
    model_config = ConfigDict(extra="ignore")

    number: int
    title: Optional[str] = None
    state: Optional[str] = None
    head: PullRequestHead
    base: Optional[PullRequestHead] = None
    merged: bool = False
    merged_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: Optional[PullRequestUser] = None

    @property
    def is_merged(self) -> bool:
        return self.merged or self.merged_at is not None


class PullRequestEvent(BaseModel):
    """A validated pull request webhook event."""
    model_config = ConfigDict(extra="ignore")

    action: str
    pull_request: PullRequest


class MatchingRevision(BaseModel):
    """A sibling revision whose license evidence matches a curated revision."""
    version: str
    matching_properties: List[Dict[str, Any]] = Field(default_factory=list)


class CurationListing(BaseModel):
    """Curations and contributions known for a coordinates prefix."""
    curations: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict, description="'type/provider/ns/name/revision' -> patch body"
    )
    contributions: List[Dict[str, Any]] = Field(
        default_factory=list, description="Contribution records touching the prefix, with their curation documents"
    )

    def curated_revisions(self) -> List[str]:
        return [key.rsplit("/", 1)[-1] for key in self.curations]

    def contributed_revisions(self) -> List[str]:
        revisions = []
        for contribution in self.contributions:
            if contribution.get("state") in (ContributionState.MERGED.value, ContributionState.CLOSED.value):
                continue
            for document in contribution.get("curations", []):
                revisions.extend(str(r) for r in (document.get("revisions") or {}))
        return revisions
