"""
Curation Contribution Engine - pull request based curation store.

Each component family has one curation document at
``curations/{type}/{provider}/{namespace|-}/{name}.yaml`` holding every curated
revision. A contribution is a uniquely named branch plus a pull request; it is
validated through commit statuses and, once merged, its curations are persisted
and the affected definitions invalidated and recomputed.
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml
from jinja2 import Template

from clearcurate.adapters.github import RepositoryApi
from clearcurate.config import CurateConfig
from clearcurate.engine.curation import Curation, dump_document
from clearcurate.engine.definition import DefinitionCatalog, Invalidator
from clearcurate.engine.tasks import gather_limited
from clearcurate.errors import (
    CurateError,
    InvalidTransitionError,
    PartialComputeError,
    PreconditionError,
    UpstreamError,
    ValidationError,
)
from clearcurate.license.matcher import LicenseMatcher, MatchInput
from clearcurate.models.contribution import (
    CommitState,
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
    can_transition,
)
from clearcurate.models.coordinates import EntityCoordinates
from clearcurate.store.cache import Cache
from clearcurate.store.curation_store import CurationStore
from clearcurate.store.harvest_store import HarvestStore

CURATION_CACHE_PREFIX = "cur"
CURATIONS_ROOT = "curations/"
MISSING_DEFINITIONS_MESSAGE = (
    "The contribution has failed because some of the supplied component definitions do not exist"
)
STATUS_DESCRIPTION_LIMIT = 140

DESCRIPTION_TEMPLATE = Template(
    """
**Type:** {{ type }}

**Summary:**
{{ summary }}

**Details:**
{{ details }}

**Resolution:**
{{ resolution }}

**Affected definitions**:
{% for definition in definitions -%}
{{ definition }}
{% endfor -%}
{% if multiversion %}
{{ multiversion }}
{% endif %}"""
)

ERRORS_COMMENT_TEMPLATE = Template(
    """We discovered some errors in this curation when validating it:
{% for curation in curations %}
**{{ curation.path }}**
{% for issue in curation.errors -%}
- {{ issue.message }}{% if issue.path %} at `{{ issue.path }}`{% endif %}: {{ issue.reason }}
{% endfor -%}
{% endfor %}"""
)


def _deep_merge(target: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


def _state_of(pr: PullRequest) -> ContributionState:
    if pr.is_merged:
        return ContributionState.MERGED
    if pr.state == "closed":
        return ContributionState.CLOSED
    return ContributionState.OPEN


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CurationContributionEngine:
    """
    Creates, validates and finalizes curation contributions.

    Args:
        config: Service configuration
        repository: Curation repository API
        store: Durable curation store
        definitions: Read access to stored definitions
        invalidator: Drops and recomputes definitions after a merge
        cache: Shared cache
        harvest_store: Harvested tool output, used as license evidence
        license_matcher: Compares license evidence of two revisions
        logger: Injected logger
    """

    def __init__(
        self,
        config: CurateConfig,
        repository: RepositoryApi,
        store: CurationStore,
        definitions: DefinitionCatalog,
        invalidator: Invalidator,
        cache: Cache,
        harvest_store: HarvestStore,
        license_matcher: Optional[LicenseMatcher] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.repository = repository
        self.store = store
        self.definitions = definitions
        self.invalidator = invalidator
        self.cache = cache
        self.harvest_store = harvest_store
        self.logger = logger or logging.getLogger(__name__)
        self.license_matcher = license_matcher or LicenseMatcher(logger=self.logger)

    # ------------------------------------------------------------------
    # Paths and names
    # ------------------------------------------------------------------

    @staticmethod
    def curation_path(coordinates: EntityCoordinates) -> str:
        return f"{CURATIONS_ROOT}{coordinates.as_revisionless().to_string()}.yaml"

    @staticmethod
    def is_curation_file(path: str) -> bool:
        return path.startswith(CURATIONS_ROOT) and path.endswith(".yaml")

    @staticmethod
    def branch_name(contributor: ContributorInfo, now: Optional[datetime] = None) -> str:
        """Contributor login plus a millisecond timestamp, e.g. ``alice_240131_093012.345``."""
        now = now or datetime.now(timezone.utc)
        return f"{contributor.login}_{now.strftime('%y%m%d_%H%M%S.%f')[:-3]}"

    def get_curation_url(self, number: int) -> str:
        return f"https://github.com/{self.config.github_owner}/{self.config.github_repo}/pull/{number}"

    def _review_url(self, number: int) -> str:
        return f"{self.config.website_url}/curations/{number}"

    # ------------------------------------------------------------------
    # Reading curations
    # ------------------------------------------------------------------

    async def _get_curation(
        self, coordinates: EntityCoordinates, contribution: Optional[int] = None
    ) -> Optional[Curation]:
        if contribution is not None:
            proposed = await self.store.get(coordinates, contribution)
            if proposed is not None:
                return proposed
        return await self.store.get(coordinates)

    async def get(self, coordinates: EntityCoordinates, contribution: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """
        Get the curation patch for one revision.

        Args:
            coordinates: Coordinates including the revision
            contribution: Read the patch proposed by this contribution

        Returns:
            The patch body, or None if the revision is not curated
        """
        if not coordinates.revision:
            raise ValueError("Coordinates must include a revision")
        curation = await self._get_curation(coordinates, contribution)
        if curation is None:
            return None
        patch = curation.revisions.get(coordinates.revision)
        return copy.deepcopy(patch) if patch else None

    async def apply(
        self,
        coordinates: EntityCoordinates,
        contribution: Optional[int],
        definition: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Apply the curation for ``coordinates`` onto ``definition``."""
        curation = await self._get_curation(coordinates, contribution)
        if curation is None:
            return definition
        return curation.apply_revision(definition, coordinates.revision)

    async def list(self, coordinates: EntityCoordinates) -> CurationListing:
        """
        List curations and contributions for a component family.

        Cached under ``cur_<coordinates>``. A failing store yields an empty listing.
        """
        key = coordinates.cache_key(CURATION_CACHE_PREFIX)
        cached = await self.cache.get(key)
        if cached:
            return CurationListing.model_validate(cached)
        try:
            curations = await self.store.list(coordinates)
            contributions = await self.store.list_contributions(coordinates)
        except (CurateError, OSError) as e:
            self.logger.warning("Failed to list curations", extra={"coordinates": str(coordinates), "error": str(e)})
            return CurationListing()
        listing = CurationListing(contributions=contributions)
        for curation in curations:
            family = curation.coordinates
            if family is None:
                continue
            for revision, patch in curation.revisions.items():
                listing.curations[f"{family}/{revision}"] = patch or {}
        await self.cache.set(key, listing.model_dump(), self.config.cache_ttl_seconds)
        return listing

    async def list_all(self, coordinates_list: Sequence[EntityCoordinates]) -> Dict[str, CurationListing]:
        async def list_one(coordinates: EntityCoordinates) -> Tuple[str, CurationListing]:
            return str(coordinates), await self.list(coordinates)

        return dict(await gather_limited(10, list(coordinates_list), list_one))

    async def _get_content(self, ref: str, path: str) -> Optional[str]:
        try:
            return await self.repository.get_content(path, ref)
        except UpstreamError as e:
            self.logger.info("Failed to get content", extra={"ref": ref, "path": path, "error": str(e)})
            return None

    async def get_contributed_curations(self, number: int, sha: str) -> List[Curation]:
        """Load every curation document changed by a contribution, at its head."""
        files = await self.repository.get_pull_request_files(number)
        paths = [
            f["filename"] for f in files
            if self.is_curation_file(f["filename"]) and f.get("status") != "removed"
        ]

        async def load(path: str) -> Curation:
            return Curation(await self._get_content(sha, path), path=path)

        return await gather_limited(10, paths, load)

    async def _load_revisions(self, path: str, ref: str) -> Dict[str, Any]:
        content = await self._get_content(ref, path)
        if not content:
            return {}
        curation = Curation(content, path=path, validate=False)
        return curation.revisions

    async def get_changed_definitions(self, number: int) -> List[str]:
        """List ``type/provider/namespace/name/revision`` for each revision a contribution changes."""
        files = await self.repository.get_pull_request_files(number)
        changed = []
        for file in files:
            path = file["filename"]
            if not self.is_curation_file(path):
                continue
            family = path[len(CURATIONS_ROOT):-len(".yaml")]
            proposed = await self._load_revisions(path, f"refs/pull/{number}/head")
            current = await self._load_revisions(path, self.config.github_branch)
            for revision in sorted(set(proposed) | set(current)):
                if proposed.get(revision) != current.get(revision):
                    changed.append(f"{family}/{revision}")
        return changed

    # ------------------------------------------------------------------
    # Creating contributions
    # ------------------------------------------------------------------

    def _validate_patches(self, patches: Sequence[ComponentPatch]) -> List[Dict[str, Any]]:
        issues = []
        for component in patches:
            document = {"coordinates": component.coordinates, "revisions": component.revisions}
            try:
                path = self.curation_path(component.entity)
            except ValueError:
                path = str(component.coordinates)
            curation = Curation(document, path=path)
            issues.extend(dict(issue.model_dump(), file=path) for issue in curation.errors)
        return issues

    async def _missing_definitions(self, patches: Sequence[ComponentPatch]) -> List[EntityCoordinates]:
        targets = [component.entity.with_revision(revision) for component in patches for revision in component.revisions]
        existing = {str(c).lower() for c in await self.definitions.list_all(targets)}
        return [target for target in targets if str(target).lower() not in existing]

    def _format_definitions(self, patches: Sequence[ComponentPatch]) -> List[str]:
        lines = []
        for component in patches:
            coordinates = component.entity
            for revision in component.revisions:
                url = f"{self.config.website_url}/definitions/{coordinates}/{revision}"
                lines.append(f"- [{coordinates.name} {revision}]({url})")
        return lines

    @staticmethod
    def _format_multiversion_curated_revisions(matches: Sequence[MatchingRevision]) -> str:
        files: List[str] = []
        metadata: List[str] = []
        for match in matches:
            for prop in match.matching_properties:
                if prop.get("file"):
                    if prop["file"] not in files:
                        files.append(prop["file"])
                elif prop.get("propPath"):
                    entry = f"{prop['propPath']}: '{prop.get('value')}'"
                    if entry not in metadata:
                        metadata.append(entry)
        text = "**Automatically added versions:**\n" + "".join(f"- {m.version}\n" for m in matches)
        if files:
            text += f"\nMatching license file(s): {', '.join(files)}"
        if metadata:
            text += f"\nMatching metadata: {', '.join(metadata)}"
        return text

    def render_description(
        self,
        info: ContributionInfo,
        definitions: List[str],
        multiversion: str = "",
    ) -> str:
        return DESCRIPTION_TEMPLATE.render(
            type=info.type.value.capitalize(),
            summary=info.summary,
            details=info.details,
            resolution=info.resolution,
            definitions=definitions,
            multiversion=multiversion,
        )

    async def _match_input(self, coordinates: EntityCoordinates) -> Optional[MatchInput]:
        definition = await self.definitions.get_stored(coordinates)
        if not definition:
            return None
        harvest = await self.harvest_store.get_all(coordinates)
        return MatchInput(definition=definition, harvest=harvest or {})

    async def _get_matching_license_versions(
        self, coordinates: EntityCoordinates, candidates: Sequence[EntityCoordinates]
    ) -> List[MatchingRevision]:
        source = await self._match_input(coordinates)
        if source is None:
            return []
        matches = []
        for candidate in candidates:
            target = await self._match_input(candidate)
            if target is None:
                continue
            result = self.license_matcher.process(source, target)
            if result.is_matching:
                matches.append(MatchingRevision(version=candidate.revision, matching_properties=result.match))
        return matches

    async def _calculate_multiversion_curations(self, component: ComponentPatch) -> List[MatchingRevision]:
        """
        Fold sibling revisions with matching license evidence into ``component``.

        Siblings already curated, in an open contribution or in this patch are not considered.

        Returns:
            The revisions that were added
        """
        curated = next(
            (
                (revision, body["licensed"])
                for revision, body in component.revisions.items()
                if ((body or {}).get("licensed") or {}).get("declared")
            ),
            None,
        )
        if curated is None:
            return []
        revision, licensed = curated
        coordinates = component.entity.with_revision(revision)

        listing = await self.list(coordinates.as_revisionless())
        excluded = set(listing.curated_revisions()) | set(listing.contributed_revisions()) | set(component.revisions)
        siblings = await self.definitions.list(coordinates.as_revisionless())
        candidates = [c for c in siblings if c.revision and c.revision not in excluded]

        matches = await self._get_matching_license_versions(coordinates, candidates)
        for match in matches:
            component.revisions[match.version] = {"licensed": copy.deepcopy(licensed)}
        return matches

    def _update_content(
        self,
        coordinates: EntityCoordinates,
        current: Optional[Dict[str, Any]],
        revisions: Dict[str, Dict[str, Any]],
    ) -> str:
        current_revisions = {str(k): v for k, v in ((current or {}).get("revisions") or {}).items()}
        result = {"coordinates": coordinates.as_revisionless().to_dict(), "revisions": current_revisions}
        for revision, body in revisions.items():
            result["revisions"][revision] = _deep_merge(current_revisions.get(revision) or {}, body or {})
        return dump_document(result)

    async def _write_patch(self, component: ComponentPatch, branch: str, contributor: ContributorInfo) -> str:
        coordinates = component.entity
        path = self.curation_path(coordinates)
        existing = await self.repository.get_file(path, branch)
        current = yaml.safe_load(existing["content"]) if existing else None
        content = self._update_content(coordinates, current, component.revisions)
        committer = None
        if (contributor.name or contributor.login) and contributor.email:
            committer = {"name": contributor.name or contributor.login, "email": contributor.email}
        await self.repository.create_or_update_file(
            path,
            f"Update {path}",
            content,
            branch,
            sha=existing["sha"] if existing else None,
            committer=committer,
        )
        return path

    async def add_or_update(self, patch: ContributionPatch, contributor: ContributorInfo) -> Contribution:
        """
        Open a contribution for a patch set.

        Args:
            patch: The curation patches and their description
            contributor: Who is contributing

        Returns:
            The opened Contribution

        Raises:
            ValidationError: If any patch is not a valid curation
            PreconditionError: If a curated revision has no definition (unless the type is ``new``)
            UpstreamError: If the branch, a commit or the pull request cannot be created
        """
        issues = self._validate_patches(patch.patches)
        if issues:
            raise ValidationError("The contribution contains invalid curations", issues)

        if patch.contribution_info.type != ContributionType.NEW:
            missing = await self._missing_definitions(patch.patches)
            if missing:
                raise PreconditionError(MISSING_DEFINITIONS_MESSAGE, [str(c) for c in missing])

        definitions = self._format_definitions(patch.patches)
        multiversion: List[MatchingRevision] = []
        if self.config.multiversion_curation_feature_flag and not patch.skip_multiversion_search:
            for component in patch.patches:
                multiversion.extend(await self._calculate_multiversion_curations(component))

        base = self.config.github_branch
        base_sha = await self.repository.get_branch_sha(base)
        branch = self.branch_name(contributor)
        await self.repository.create_reference(branch, base_sha)

        # One commit at a time: concurrent commits race on the branch head
        paths = []
        for component in patch.patches:
            paths.append(await self._write_patch(component, branch, contributor))

        info = patch.contribution_info
        description = self.render_description(
            info,
            definitions,
            self._format_multiversion_curated_revisions(multiversion) if multiversion else "",
        )
        result = await self.repository.create_pull_request(info.summary, description, branch, base)
        number = result["number"]
        self.logger.info("Opened contribution", extra={"number": number, "branch": branch})

        await self._post_comment(
            number,
            f"You can review the change introduced to the full definition at [ClearCurate]({self._review_url(number)}).",
        )
        return Contribution(
            number=number,
            branch=branch,
            head_sha=(result.get("head") or {}).get("sha"),
            base_sha=base_sha,
            state=ContributionState.OPEN,
            title=info.summary,
            files=paths,
            login=contributor.login,
        )

    async def auto_curate(self, definition: Dict[str, Any]) -> Optional[Contribution]:
        """
        Curate an uncurated revision from a curated sibling with matching license evidence.

        Returns:
            The opened Contribution, or None when nothing was curated
        """
        if not self.config.multiversion_curation_feature_flag:
            return None
        coordinates = EntityCoordinates.from_object(definition["coordinates"])
        listing = await self.list(coordinates.as_revisionless())
        if coordinates.revision in set(listing.curated_revisions()) | set(listing.contributed_revisions()):
            return None

        target = MatchInput(definition=definition, harvest=await self.harvest_store.get_all(coordinates) or {})
        for key, curated in listing.curations.items():
            declared = ((curated or {}).get("licensed") or {}).get("declared")
            source_coordinates = EntityCoordinates.from_string(key)
            if not declared or source_coordinates is None:
                continue
            source = await self._match_input(source_coordinates)
            if source is None:
                continue
            result = self.license_matcher.process(source, target)
            if not result.is_matching:
                continue
            matching = self._format_multiversion_curated_revisions(
                [MatchingRevision(version=coordinates.revision, matching_properties=result.match)]
            )
            patch = ContributionPatch(
                contribution_info=ContributionInfo(
                    type=ContributionType.AUTO,
                    summary=f"{coordinates.name} {coordinates.revision}",
                    details=f"Add {declared} license",
                    resolution=f"Automatically added versions based on {source_coordinates}\n{matching}",
                ),
                patches=[
                    ComponentPatch(
                        coordinates=coordinates.as_revisionless().to_dict(),
                        revisions={coordinates.revision: {"licensed": {"declared": declared}}},
                    )
                ],
                skip_multiversion_search=True,
            )
            contributor = ContributorInfo(
                login=self.config.service_login, name=self.config.service_login, email=self.config.service_email
            )
            try:
                return await self.add_or_update(patch, contributor)
            except CurateError as e:
                self.logger.warning("Automatic curation failed", extra={"coordinates": str(coordinates), "error": str(e)})
                return None
        return None

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def _post_commit_status(self, sha: str, number: int, state: CommitState, description: str) -> bool:
        try:
            await self.repository.create_commit_status(
                sha,
                state.value,
                description[:STATUS_DESCRIPTION_LIMIT],
                self._review_url(number),
                self.config.github_status_context,
            )
            return True
        except UpstreamError as e:
            self.logger.warning("Failed to create status", extra={"number": number, "error": str(e)})
            return False

    async def _post_comment(self, number: int, body: str) -> bool:
        try:
            await self.repository.create_issue_comment(number, body)
            return True
        except UpstreamError as e:
            self.logger.warning("Failed to create comment", extra={"number": number, "error": str(e)})
            return False

    async def _mark_validating(self, number: int) -> None:
        existing = await self.store.get_contribution(number)
        if existing is None or not can_transition(existing.state, ContributionState.VALIDATING):
            return
        await self.store.update_contribution(
            existing.model_copy(update={"state": ContributionState.VALIDATING, "status": CommitState.PENDING})
        )

    async def validate_contributions(self, number: int, sha: str, curations: Sequence[Curation]) -> CommitState:
        """
        Post the validation result of a contribution as commit statuses.

        A pending status is posted first, then success or error. On error a comment
        lists every problem found.

        Returns:
            The final state
        """
        await self._mark_validating(number)
        await self._post_commit_status(sha, number, CommitState.PENDING, "Validation in progress")
        invalid = [c for c in curations if not c.is_valid]
        if not invalid:
            state, description = CommitState.SUCCESS, "All curations are valid"
        else:
            state = CommitState.ERROR
            description = f"Invalid curations: {', '.join(c.path for c in invalid)}"
        await self._post_commit_status(sha, number, state, description)
        if invalid:
            await self._post_comment(number, ERRORS_COMMENT_TEMPLATE.render(curations=invalid))
        return state

    # ------------------------------------------------------------------
    # Lifecycle updates
    # ------------------------------------------------------------------

    async def _invalidate_curation_cache(self, curations: Sequence[Curation]) -> None:
        keys = []
        for coordinates in Curation.get_all_coordinates(curations):
            for key in (
                coordinates.cache_key(CURATION_CACHE_PREFIX),
                coordinates.as_revisionless().cache_key(CURATION_CACHE_PREFIX),
            ):
                if key not in keys:
                    keys.append(key)
        await gather_limited(10, keys, self.cache.delete)

    async def update_contribution(
        self,
        pr: PullRequest,
        curations: Optional[List[Curation]] = None,
        status: Optional[CommitState] = None,
        state: Optional[ContributionState] = None,
    ) -> Contribution:
        """
        Persist the state of a contribution and handle a merge.

        Args:
            pr: The pull request as reported by the lifecycle event
            curations: The contributed curations. Read from the repository when omitted.
            status: Validation state to record
            state: State implied by the lifecycle event. Derived from the pull request when omitted.

        Returns:
            The stored Contribution

        Raises:
            InvalidTransitionError: If the contribution already reached a different terminal state
        """
        if curations is None:
            curations = await self.get_contributed_curations(pr.number, pr.head.sha)
        if state is None:
            state = _state_of(pr)

        existing = await self.store.get_contribution(pr.number)
        if existing is not None and not can_transition(existing.state, state):
            raise InvalidTransitionError(
                f"Contribution #{pr.number} cannot move from {existing.state.value} to {state.value}"
            )
        contribution = Contribution(
            number=pr.number,
            branch=pr.head.ref,
            head_sha=pr.head.sha,
            base_sha=pr.base.sha if pr.base else None,
            state=state,
            title=pr.title,
            files=[c.path for c in curations],
            status=status or (existing.status if existing else None),
            login=pr.user.login if pr.user else None,
            updated_at=_aware(pr.updated_at) or datetime.now(timezone.utc),
            merged_at=pr.merged_at,
        )
        await self.store.update_contribution(contribution, curations)
        await self._invalidate_curation_cache(curations)
        if state == ContributionState.MERGED:
            await self._pr_merged(curations)
        return contribution

    async def _pr_merged(self, curations: List[Curation]) -> List[PartialComputeError]:
        """
        Persist merged curations, then invalidate and recompute every affected revision.

        Invalidation happens before any recompute so stale definitions are gone even
        when recomputing fails. Recompute failures are logged and returned.
        """
        await self.store.update_curations(curations)
        coordinates = Curation.get_all_coordinates(curations)
        await self.invalidator.invalidate(coordinates)
        results = await gather_limited(5, coordinates, self.invalidator.compute_and_store, return_exceptions=True)
        failures = []
        for item, result in zip(coordinates, results):
            if isinstance(result, Exception):
                failure = PartialComputeError(str(item), result)
                self.logger.warning(str(failure))
                failures.append(failure)
        return failures

    async def sync_all_contributions(self) -> int:
        """
        Re-apply every pull request whose stored contribution is out of date.

        Returns:
            Number of contributions updated
        """
        updated = 0
        for state in ("open", "closed"):
            for raw in await self.repository.list_pull_requests(state):
                pr = PullRequest.model_validate(raw)
                stored = await self.store.get_contribution(pr.number)
                stored_at = _aware(stored.updated_at) if stored else None
                pr_at = _aware(pr.updated_at)
                if stored_at is not None and (pr_at is None or stored_at >= pr_at):
                    continue
                self.logger.info("Backfilling contribution", extra={"number": pr.number})
                try:
                    await self.update_contribution(pr)
                    updated += 1
                except InvalidTransitionError as e:
                    self.logger.warning(str(e))
        return updated
