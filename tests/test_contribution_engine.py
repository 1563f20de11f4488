"""
Tests for the curation contribution engine
"""
import re
from datetime import datetime, timedelta, timezone

import pytest
import yaml

from clearcurate.config import CurateConfig
from clearcurate.engine.contribution import CurationContributionEngine
from clearcurate.engine.curation import Curation
from clearcurate.errors import PreconditionError, ValidationError
from clearcurate.models.contribution import (
    CommitState,
    Contribution,
    ContributionPatch,
    ContributionState,
    ContributorInfo,
    MatchingRevision,
    PullRequestEvent,
)
from clearcurate.models.coordinates import EntityCoordinates
from clearcurate.wiring import build_services

REDIE = EntityCoordinates.from_string("npm/npmjs/-/redie/0.3.0")
REDIE_PATH = "curations/npm/npmjs/-/redie.yaml"
ALICE = ContributorInfo(login="alice", name="Alice", email="alice@example.com")


def make_patch(revisions=None, name="redie", type_="incorrect", **extra):
    return ContributionPatch.model_validate({
        "contributionInfo": {
            "type": type_,
            "summary": f"Fix {name} license",
            "details": "Declared license is wrong",
            "resolution": "Use the license from the LICENSE file",
        },
        "patches": [{
            "coordinates": {"type": "npm", "provider": "npmjs", "name": name},
            "revisions": revisions or {"0.3.0": {"licensed": {"declared": "MIT"}}},
        }],
        **extra,
    })


def branch_document(repository, branch, path=REDIE_PATH):
    return yaml.safe_load(repository.branches[branch]["files"][path]["content"])


@pytest.mark.asyncio
async def test_contribution_end_to_end(services, repository, seed_definition):
    """Open a contribution, validate it through the opened event, then merge it"""
    await seed_definition("npm/npmjs/-/redie/0.3.0")

    contribution = await services.contributions.add_or_update(make_patch(), ALICE)

    assert contribution.number == 1
    assert contribution.state == ContributionState.OPEN
    assert re.match(r"^alice_\d{6}_\d{6}\.\d{3}$", contribution.branch)
    assert contribution.files == [REDIE_PATH]
    document = branch_document(repository, contribution.branch)
    assert document == {
        "coordinates": {"type": "npm", "provider": "npmjs", "name": "redie"},
        "revisions": {"0.3.0": {"licensed": {"declared": "MIT"}}},
    }
    assert repository.commits[0]["message"] == f"Update {REDIE_PATH}"
    assert repository.commits[0]["committer"] == {"name": "Alice", "email": "alice@example.com"}

    pull = repository.pulls[1]
    assert pull["title"] == "Fix redie license"
    assert pull["base"]["ref"] == "master"
    assert "**Type:** Incorrect" in pull["body"]
    assert "- [redie 0.3.0](https://curate.test/definitions/npm/npmjs/-/redie/0.3.0)" in pull["body"]
    assert "https://curate.test/curations/1" in repository.comments[0]["body"]
    assert await services.curation_store.get_contribution(1) is None

    # opened event validates the contributed curations
    opened = await services.lifecycle.handle(PullRequestEvent.model_validate(repository.event(1, "opened")))
    assert [s["state"] for s in repository.statuses] == ["pending", "success"]
    assert repository.statuses[0]["target_url"] == "https://curate.test/curations/1"
    assert repository.statuses[0]["context"] == "ClearCurate"
    assert opened.state == ContributionState.OPEN
    assert opened.status == CommitState.SUCCESS

    listing = await services.contributions.list(REDIE.as_revisionless())
    assert [c["number"] for c in listing.contributions] == [1]
    assert listing.contributed_revisions() == ["0.3.0"]
    assert listing.curations == {}

    # merge persists the curation and recomputes the definition
    merged = await services.lifecycle.handle(PullRequestEvent.model_validate(repository.merge(1)))
    assert merged.state == ContributionState.MERGED
    assert (await services.curation_store.get_all(REDIE)) == {"0.3.0": {"licensed": {"declared": "MIT"}}}
    definition = await services.definition_store.get(REDIE)
    assert definition["licensed"]["declared"] == "MIT"
    assert definition["described"]["tools"][-1].startswith("curation/")

    listing = await services.contributions.list(REDIE.as_revisionless())
    assert listing.curations == {"npm/npmjs/-/redie/0.3.0": {"licensed": {"declared": "MIT"}}}
    assert listing.contributed_revisions() == []


@pytest.mark.asyncio
async def test_source_location_and_license_correction(services, repository, seed_definition):
    await seed_definition("npm/npmjs/-/redie/0.3.0")
    patch = make_patch({"0.3.0": {
        "described": {"sourceLocation": {
            "type": "git",
            "provider": "github",
            "namespace": "tomprogers",
            "name": "redie",
            "revision": "1a2b3c4d",
            "url": "https://github.com/tomprogers/redie/tree/1a2b3c4d",
        }},
        "licensed": {"license": {"expression": "MIT"}},
    }})

    contribution = await services.contributions.add_or_update(patch, ALICE)
    await services.lifecycle.handle(PullRequestEvent.model_validate(repository.event(1, "opened")))

    assert re.match(r"^alice_\d{6}_\d{6}\.\d{3}$", contribution.branch)
    assert "redie 0.3.0" in repository.pulls[1]["body"]
    assert [s["state"] for s in repository.statuses] == ["pending", "success"]
    revision = branch_document(repository, contribution.branch)["revisions"]["0.3.0"]
    assert revision["described"]["sourceLocation"]["revision"] == "1a2b3c4d"


@pytest.mark.asyncio
async def test_missing_definition_is_a_precondition_failure(services, repository):
    with pytest.raises(PreconditionError) as exc_info:
        await services.contributions.add_or_update(make_patch(), ALICE)
    assert exc_info.value.missing == ["npm/npmjs/-/redie/0.3.0"]
    assert "do not exist" in str(exc_info.value)
    assert repository.calls == []


@pytest.mark.asyncio
async def test_new_component_skips_definition_check(services, repository):
    contribution = await services.contributions.add_or_update(make_patch(type_="new"), ALICE)
    assert contribution.number == 1
    assert "**Type:** New" in repository.pulls[1]["body"]


@pytest.mark.asyncio
async def test_invalid_patch_is_rejected_before_writing(services, repository, seed_definition):
    await seed_definition("npm/npmjs/-/redie/0.3.0")
    with pytest.raises(ValidationError) as exc_info:
        await services.contributions.add_or_update(
            make_patch({"0.3.0": {"licensed": {"declared": "FooBar"}}}), ALICE
        )
    issue = exc_info.value.issues[0]
    assert issue["file"] == REDIE_PATH
    assert "not SPDX compliant" in issue["reason"]
    assert repository.calls == []


@pytest.mark.asyncio
async def test_existing_document_is_extended(services, repository, seed_definition):
    await seed_definition("npm/npmjs/-/redie/0.3.0")
    repository.seed_file(REDIE_PATH, yaml.safe_dump({
        "coordinates": {"type": "npm", "provider": "npmjs", "name": "redie"},
        "revisions": {"0.2.0": {"licensed": {"declared": "ISC"}}},
    }))

    contribution = await services.contributions.add_or_update(make_patch(), ALICE)

    document = branch_document(repository, contribution.branch)
    assert document["revisions"] == {
        "0.2.0": {"licensed": {"declared": "ISC"}},
        "0.3.0": {"licensed": {"declared": "MIT"}},
    }
    assert await services.contributions.get_changed_definitions(1) == ["npm/npmjs/-/redie/0.3.0"]


@pytest.mark.asyncio
async def test_patches_are_committed_in_order(services, repository, seed_definition):
    await seed_definition("npm/npmjs/-/redie/0.3.0")
    await seed_definition("npm/npmjs/-/left-pad/1.0.0")
    patch = make_patch()
    patch.patches.append(make_patch({"1.0.0": {"licensed": {"declared": "WTFPL"}}}, name="left-pad").patches[0])

    contribution = await services.contributions.add_or_update(patch, ALICE)

    assert [c["path"] for c in repository.commits] == [REDIE_PATH, "curations/npm/npmjs/-/left-pad.yaml"]
    assert contribution.files == [REDIE_PATH, "curations/npm/npmjs/-/left-pad.yaml"]
    assert "- [left-pad 1.0.0]" in repository.pulls[1]["body"]


@pytest.mark.asyncio
async def test_comment_failure_does_not_fail_contribution(services, repository, seed_definition):
    await seed_definition("npm/npmjs/-/redie/0.3.0")
    repository.fail = {"create_issue_comment"}
    contribution = await services.contributions.add_or_update(make_patch(), ALICE)
    assert contribution.number == 1
    assert repository.comments == []


@pytest.mark.asyncio
async def test_status_failures_degrade(services, repository):
    repository.fail = {"create_commit_status"}
    curation = Curation({
        "coordinates": {"type": "npm", "provider": "npmjs", "name": "redie"},
        "revisions": {"0.3.0": {"licensed": {"declared": "MIT"}}},
    }, path=REDIE_PATH)
    state = await services.contributions.validate_contributions(1, "abc", [curation])
    assert state == CommitState.SUCCESS
    assert repository.statuses == []


@pytest.mark.asyncio
async def test_invalid_contribution_posts_error_and_comment(services, repository, seed_definition):
    await seed_definition("npm/npmjs/-/redie/0.3.0")
    contribution = await services.contributions.add_or_update(make_patch(), ALICE)
    repository.seed_file(REDIE_PATH, "coordinates: [unclosed", branch=contribution.branch)

    result = await services.lifecycle.handle(PullRequestEvent.model_validate(repository.event(1, "synchronize")))

    assert [s["state"] for s in repository.statuses] == ["pending", "error"]
    assert repository.statuses[1]["description"] == f"Invalid curations: {REDIE_PATH}"
    body = repository.comments[-1]["body"]
    assert body.startswith("We discovered some errors in this curation when validating it:")
    assert "Invalid yaml" in body
    assert result.status == CommitState.ERROR


@pytest.mark.asyncio
async def test_update_contribution_invalidates_both_cache_granularities(services, repository, seed_definition):
    await seed_definition("npm/npmjs/-/redie/0.3.0")
    await services.contributions.add_or_update(make_patch(), ALICE)
    await services.cache.set("cur_npm/npmjs/-/redie/0.3.0", {"curations": {}})
    await services.cache.set("cur_npm/npmjs/-/redie", {"curations": {}})

    await services.lifecycle.handle(PullRequestEvent.model_validate(repository.event(1, "opened")))

    assert "cur_npm/npmjs/-/redie/0.3.0" not in services.cache
    assert "cur_npm/npmjs/-/redie" not in services.cache


@pytest.mark.asyncio
async def test_merge_tolerates_partial_compute_failure(services, repository, seed_definition, monkeypatch):
    await seed_definition("npm/npmjs/-/redie/0.3.0")
    await seed_definition("npm/npmjs/-/left-pad/1.0.0")
    patch = make_patch()
    patch.patches.append(make_patch({"1.0.0": {"licensed": {"declared": "WTFPL"}}}, name="left-pad").patches[0])
    await services.contributions.add_or_update(patch, ALICE)

    compute_and_store = services.definitions.compute_and_store

    async def failing(coordinates):
        if coordinates.name == "left-pad":
            raise RuntimeError("harvest unavailable")
        return await compute_and_store(coordinates)

    monkeypatch.setattr(services.definitions, "compute_and_store", failing)
    merged = await services.lifecycle.handle(PullRequestEvent.model_validate(repository.merge(1)))

    assert merged.state == ContributionState.MERGED
    assert (await services.definition_store.get(REDIE))["licensed"]["declared"] == "MIT"
    # invalidated even though recomputing failed
    assert await services.definition_store.get(EntityCoordinates.from_string("npm/npmjs/-/left-pad/1.0.0")) is None


@pytest.mark.asyncio
async def test_pr_merged_reports_failures(services, monkeypatch):
    async def failing(coordinates):
        raise RuntimeError("boom")

    monkeypatch.setattr(services.definitions, "compute_and_store", failing)
    curation = Curation({
        "coordinates": {"type": "npm", "provider": "npmjs", "name": "redie"},
        "revisions": {"0.3.0": {"licensed": {"declared": "MIT"}}, "0.4.0": {"licensed": {"declared": "MIT"}}},
    }, path=REDIE_PATH)
    failures = await services.contributions._pr_merged([curation])
    assert [f.coordinates for f in failures] == ["npm/npmjs/-/redie/0.3.0", "npm/npmjs/-/redie/0.4.0"]
    assert all(isinstance(f.cause, RuntimeError) for f in failures)


@pytest.mark.asyncio
async def test_get_curation_patch(services):
    await services.curation_store.update_curations([Curation({
        "coordinates": {"type": "npm", "provider": "npmjs", "name": "redie"},
        "revisions": {"0.3.0": {"licensed": {"declared": "MIT"}}},
    })])
    await services.curation_store.update_contribution(Contribution(number=4), [Curation({
        "coordinates": {"type": "npm", "provider": "npmjs", "name": "redie"},
        "revisions": {"0.3.0": {"licensed": {"declared": "ISC"}}},
    })])
    assert await services.contributions.get(REDIE) == {"licensed": {"declared": "MIT"}}
    assert await services.contributions.get(REDIE, 4) == {"licensed": {"declared": "ISC"}}
    assert await services.contributions.get(REDIE.with_revision("9.9.9")) is None
    with pytest.raises(ValueError):
        await services.contributions.get(REDIE.as_revisionless())


@pytest.mark.asyncio
async def test_sync_backfills_out_of_date_contributions(services, repository, seed_definition):
    await seed_definition("npm/npmjs/-/redie/0.3.0")
    await services.contributions.add_or_update(make_patch(), ALICE)

    assert await services.contributions.sync_all_contributions() == 1
    stored = await services.curation_store.get_contribution(1)
    assert stored.state == ContributionState.OPEN
    assert stored.files == [REDIE_PATH]
    assert await services.contributions.sync_all_contributions() == 0


def test_branch_name_and_urls(services):
    name = CurationContributionEngine.branch_name(ALICE, datetime(2024, 1, 31, 9, 30, 12, 345000))
    assert name == "alice_240131_093012.345"
    assert CurationContributionEngine.curation_path(REDIE) == REDIE_PATH
    assert services.contributions.get_curation_url(7) == "https://github.com/clearlydefined/curated-data/pull/7"


def test_branch_name_uses_utc():
    before = datetime.now(timezone.utc).replace(microsecond=0)
    name = CurationContributionEngine.branch_name(ALICE)
    stamp = datetime.strptime(name.split("_", 1)[1], "%y%m%d_%H%M%S.%f").replace(tzinfo=timezone.utc)
    assert before <= stamp <= datetime.now(timezone.utc) + timedelta(seconds=1)


def test_format_multiversion_curated_revisions():
    text = CurationContributionEngine._format_multiversion_curated_revisions([
        MatchingRevision(version="1.1", matching_properties=[
            {"policy": "definition", "file": "LICENSE", "propPath": "hashes.sha1", "value": "abc"},
            {"policy": "harvest", "propPath": "registryData.manifest.license", "value": "MIT"},
        ]),
        MatchingRevision(version="1.2", matching_properties=[
            {"policy": "definition", "file": "LICENSE", "propPath": "hashes.sha1", "value": "abc"},
        ]),
    ])
    assert text == (
        "**Automatically added versions:**\n- 1.1\n- 1.2\n"
        "\nMatching license file(s): LICENSE"
        "\nMatching metadata: registryData.manifest.license: 'MIT'"
    )


class TestMultiversion:
    """Sibling revisions with matching license evidence are folded into a contribution"""

    @pytest.fixture
    def services(self, tmp_path, repository):
        config = CurateConfig(
            data_dir=tmp_path / "data",
            website_url="https://curate.test",
            multiversion_curation_feature_flag=True,
        )
        return build_services(config, repository=repository)

    @pytest.fixture
    def siblings(self, seed_definition):
        async def seed():
            for revision, sha1 in (("1.0.0", "abc"), ("1.1.0", "abc"), ("1.2.0", "xyz")):
                await seed_definition(
                    f"npm/npmjs/-/redie/{revision}", files=[{"path": "package/LICENSE", "hashes": {"sha1": sha1}}]
                )

        return seed

    @pytest.mark.asyncio
    async def test_matching_sibling_is_added(self, services, repository, siblings):
        await siblings()
        contribution = await services.contributions.add_or_update(
            make_patch({"1.0.0": {"licensed": {"declared": "MIT"}}}), ALICE
        )

        revisions = branch_document(repository, contribution.branch)["revisions"]
        assert revisions == {
            "1.0.0": {"licensed": {"declared": "MIT"}},
            "1.1.0": {"licensed": {"declared": "MIT"}},
        }
        body = repository.pulls[1]["body"]
        assert "**Automatically added versions:**\n- 1.1.0" in body
        assert "Matching license file(s): package/LICENSE" in body
        assert "- [redie 1.0.0]" in body
        assert "- [redie 1.1.0]" not in body

    @pytest.mark.asyncio
    async def test_skip_flag_disables_search(self, services, repository, siblings):
        await siblings()
        contribution = await services.contributions.add_or_update(
            make_patch({"1.0.0": {"licensed": {"declared": "MIT"}}}, skipMultiversionSearch=True), ALICE
        )
        assert list(branch_document(repository, contribution.branch)["revisions"]) == ["1.0.0"]
        assert "Automatically added versions" not in repository.pulls[1]["body"]

    @pytest.mark.asyncio
    async def test_revision_in_open_contribution_is_not_added(self, services, repository, siblings):
        await siblings()
        await services.curation_store.update_contribution(Contribution(number=9), [Curation({
            "coordinates": {"type": "npm", "provider": "npmjs", "name": "redie"},
            "revisions": {"1.1.0": {"licensed": {"declared": "MIT"}}},
        })])
        contribution = await services.contributions.add_or_update(
            make_patch({"1.0.0": {"licensed": {"declared": "MIT"}}}), ALICE
        )
        assert list(branch_document(repository, contribution.branch)["revisions"]) == ["1.0.0"]

    @pytest.mark.asyncio
    async def test_auto_curate_from_curated_sibling(self, services, repository, siblings):
        await siblings()
        await services.curation_store.update_curations([Curation({
            "coordinates": {"type": "npm", "provider": "npmjs", "name": "redie"},
            "revisions": {"1.0.0": {"licensed": {"declared": "MIT"}}},
        })])
        target = await services.definition_store.get(REDIE.with_revision("1.1.0"))

        contribution = await services.contributions.auto_curate(target)

        assert contribution is not None
        assert contribution.branch.startswith("clearcurate-bot_")
        assert repository.pulls[1]["title"] == "redie 1.1.0"
        assert "**Type:** Auto" in repository.pulls[1]["body"]
        revisions = branch_document(repository, contribution.branch)["revisions"]
        assert revisions == {"1.1.0": {"licensed": {"declared": "MIT"}}}

    @pytest.mark.asyncio
    async def test_auto_curate_skips_mismatched_evidence(self, services, repository, siblings):
        await siblings()
        await services.curation_store.update_curations([Curation({
            "coordinates": {"type": "npm", "provider": "npmjs", "name": "redie"},
            "revisions": {"1.0.0": {"licensed": {"declared": "MIT"}}},
        })])
        target = await services.definition_store.get(REDIE.with_revision("1.2.0"))
        assert await services.contributions.auto_curate(target) is None
        assert repository.pulls == {}
