"""
Pytest configuration and fixtures
"""
import copy
import itertools
from typing import Any, Dict, List, Optional

import pytest

from clearcurate.config import CurateConfig
from clearcurate.errors import UpstreamError
from clearcurate.models.coordinates import EntityCoordinates
from clearcurate.wiring import build_services


class FakeRepository:
    """In-memory stand-in for the curation repository API."""

    def __init__(self, default_branch: str = "master"):
        self.default_branch = default_branch
        self.branches: Dict[str, Dict[str, Any]] = {default_branch: {"sha": "base-sha", "files": {}}}
        self.pulls: Dict[int, Dict[str, Any]] = {}
        self.pull_bases: Dict[int, Dict[str, Any]] = {}
        self.comments: List[Dict[str, Any]] = []
        self.statuses: List[Dict[str, Any]] = []
        self.commits: List[Dict[str, Any]] = []
        self.calls: List[str] = []
        self.fail: set = set()
        self._numbers = itertools.count(1)
        self._shas = itertools.count(1)

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail:
            raise UpstreamError(f"{operation} failed", status_code=500, operation=operation)

    def _branch_for(self, ref: str) -> Dict[str, Any]:
        if ref in self.branches:
            return self.branches[ref]
        if ref.startswith("refs/pull/"):
            number = int(ref.split("/")[2])
            return self.branches[self.pulls[number]["head"]["ref"]]
        for branch in self.branches.values():
            if branch["sha"] == ref:
                return branch
        raise UpstreamError(f"No such ref {ref}", status_code=404, operation="resolve_ref")

    def seed_file(self, path: str, content: str, branch: Optional[str] = None) -> None:
        files = self.branches[branch or self.default_branch]["files"]
        files[path] = {"sha": f"blob-{next(self._shas)}", "content": content}

    async def get_branch_sha(self, branch: str) -> str:
        self._record("get_branch_sha")
        return self.branches[branch]["sha"]

    async def create_reference(self, branch: str, sha: str) -> None:
        self._record("create_reference")
        source = self._branch_for(sha)
        self.branches[branch] = {"sha": sha, "files": copy.deepcopy(source["files"])}

    async def get_file(self, path: str, ref: str) -> Optional[Dict[str, Any]]:
        self._record("get_file")
        file = self._branch_for(ref)["files"].get(path)
        return dict(file, path=path) if file else None

    async def get_content(self, path: str, ref: str) -> Optional[str]:
        file = await self.get_file(path, ref)
        return file["content"] if file else None

    async def create_or_update_file(self, path, message, content, branch, sha=None, committer=None):
        self._record("create_or_update_file")
        target = self.branches[branch]
        existing = target["files"].get(path)
        if existing and existing["sha"] != sha:
            raise UpstreamError("sha mismatch", status_code=409, operation="create_or_update_file")
        target["files"][path] = {"sha": f"blob-{next(self._shas)}", "content": content}
        target["sha"] = f"commit-{next(self._shas)}"
        self.commits.append({"path": path, "branch": branch, "message": message, "committer": committer})
        return {"commit": {"sha": target["sha"]}}

    async def create_pull_request(self, title, body, head, base):
        self._record("create_pull_request")
        number = next(self._numbers)
        self.pulls[number] = {
            "number": number,
            "title": title,
            "body": body,
            "state": "open",
            "merged": False,
            "head": {"ref": head, "sha": self.branches[head]["sha"]},
            "base": {"ref": base, "sha": self.branches[base]["sha"]},
            "user": {"login": head.split("_")[0]},
            "updated_at": "2024-01-01T00:00:00Z",
        }
        self.pull_bases[number] = copy.deepcopy(self.branches[base]["files"])
        return copy.deepcopy(self.pulls[number])

    async def create_issue_comment(self, number, body):
        self._record("create_issue_comment")
        self.comments.append({"number": number, "body": body})
        return {"id": len(self.comments)}

    async def create_commit_status(self, sha, state, description, target_url, context):
        self._record("create_commit_status")
        status = {"sha": sha, "state": state, "description": description, "target_url": target_url, "context": context}
        self.statuses.append(status)
        return status

    async def get_pull_request_files(self, number):
        self._record("get_pull_request_files")
        pull = self.pulls[number]
        head = self.branches[pull["head"]["ref"]]["files"]
        base = self.pull_bases[number]
        return [
            {"filename": path, "status": "modified" if path in base else "added"}
            for path, file in sorted(head.items())
            if base.get(path, {}).get("content") != file["content"]
        ]

    async def list_pull_requests(self, state="all"):
        self._record("list_pull_requests")
        return [copy.deepcopy(p) for p in self.pulls.values() if state == "all" or p["state"] == state]

    def merge(self, number: int) -> Dict[str, Any]:
        """Merge a pull request into its base branch and answer the closed event payload."""
        pull = self.pulls[number]
        base = self.branches[pull["base"]["ref"]]
        base["files"].update(copy.deepcopy(self.branches[pull["head"]["ref"]]["files"]))
        base["sha"] = f"commit-{next(self._shas)}"
        pull.update(state="closed", merged=True, merged_at="2024-01-02T00:00:00Z", updated_at="2024-01-02T00:00:00Z")
        return {"action": "closed", "pull_request": copy.deepcopy(pull)}

    def close(self, number: int) -> Dict[str, Any]:
        pull = self.pulls[number]
        pull.update(state="closed", merged=False, updated_at="2024-01-02T00:00:00Z")
        return {"action": "closed", "pull_request": copy.deepcopy(pull)}

    def event(self, number: int, action: str = "opened") -> Dict[str, Any]:
        return {"action": action, "pull_request": copy.deepcopy(self.pulls[number])}

    def intake(self, number: int, action: str, merged: bool = False) -> Dict[str, Any]:
        """The minimal lifecycle payload a webhook relay sends: no state, base or timestamps."""
        pull = self.pulls[number]
        return {
            "action": action,
            "pull_request": {
                "number": number,
                "head": {"ref": pull["head"]["ref"], "sha": pull["head"]["sha"]},
                "merged": merged,
                "title": pull["title"],
            },
        }


@pytest.fixture
def config(tmp_path) -> CurateConfig:
    """Configuration with memory providers and a temporary data directory"""
    return CurateConfig(
        data_dir=tmp_path / "data",
        website_url="https://curate.test",
        multiversion_curation_feature_flag=False,
        aggregator_precedence=["clearlydefined", "licensee", "scancode"],
    )


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def services(config, repository):
    """Connected services backed by memory stores and the fake repository"""
    return build_services(config, repository=repository)


@pytest.fixture
def seed_definition(services):
    """Store a definition so the engine treats the revision as existing"""
    async def seed(path: str, files: Optional[List[Dict[str, Any]]] = None, declared: Optional[str] = None):
        coordinates = EntityCoordinates.from_string(path)
        definition: Dict[str, Any] = {
            "coordinates": coordinates.to_dict(),
            "described": {"tools": ["clearlydefined/1.5.0"]},
            "files": files or [],
        }
        if declared:
            definition["licensed"] = {"declared": declared}
        await services.definition_store.store(definition)
        return definition

    return seed


@pytest.fixture
def seed_harvest(services):
    """Store a tool summary for a revision"""
    async def seed(path: str, tool: str, version: str, summary: Dict[str, Any]):
        await services.harvest_store.add(EntityCoordinates.from_string(path), tool, version, summary)

    return seed
