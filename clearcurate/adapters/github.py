"""
GitHub Adapter - async client for the curation repository.

The curation repository is the durable backing store for curations: every
contribution is a branch plus a pull request, and merged curations live on the
default branch. Only the REST calls the contribution engine needs are covered.
"""

import base64
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from clearcurate.errors import UpstreamError


class RepositoryApi(Protocol):
    """Version-controlled repository operations used by the contribution engine."""

    async def get_branch_sha(self, branch: str) -> str:
        ...

    async def create_reference(self, branch: str, sha: str) -> None:
        ...

    async def get_file(self, path: str, ref: str) -> Optional[Dict[str, Any]]:
        ...

    async def create_or_update_file(
        self,
        path: str,
        message: str,
        content: str,
        branch: str,
        sha: Optional[str] = None,
        committer: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        ...

    async def create_pull_request(self, title: str, body: str, head: str, base: str) -> Dict[str, Any]:
        ...

    async def create_issue_comment(self, number: int, body: str) -> Dict[str, Any]:
        ...

    async def create_commit_status(
        self, sha: str, state: str, description: str, target_url: str, context: str
    ) -> Dict[str, Any]:
        ...

    async def get_pull_request_files(self, number: int) -> List[Dict[str, Any]]:
        ...

    async def list_pull_requests(self, state: str = "all") -> List[Dict[str, Any]]:
        ...


class GitHubClient:
    """
    GitHub REST client bound to one repository.

    No retries are attempted. A failed call raises UpstreamError, except reads of
    missing files which answer None.
    """

    PAGE_SIZE = 100

    def __init__(
        self,
        owner: str,
        repo: str,
        token: Optional[str] = None,
        base_url: str = "https://api.github.com",
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the GitHub client.

        Args:
            owner: Repository owner
            repo: Repository name
            token: Token of the service identity
            base_url: REST API base URL
            client: Preconfigured httpx client, mainly for tests
            logger: Injected logger
        """
        self.owner = owner
        self.repo = repo
        self.logger = logger or logging.getLogger(__name__)
        headers = {"Accept": "application/vnd.github+json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=30.0)

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, operation: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, f"{self._repo_path}{path}", **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamError(f"{operation} failed: {e}", operation=operation) from e
        if response.status_code >= 400:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            raise UpstreamError(
                f"{operation} failed: HTTP {response.status_code} {message}",
                status_code=response.status_code,
                operation=operation,
            )
        return response

    async def get_branch_sha(self, branch: str) -> str:
        response = await self._request("GET", f"/git/ref/heads/{branch}", "get_branch_sha")
        return response.json()["object"]["sha"]

    async def create_reference(self, branch: str, sha: str) -> None:
        await self._request(
            "POST", "/git/refs", "create_reference", json={"ref": f"refs/heads/{branch}", "sha": sha}
        )

    async def get_file(self, path: str, ref: str) -> Optional[Dict[str, Any]]:
        """
        Read a file at a ref.

        Args:
            path: Repository path
            ref: Branch name or commit sha

        Returns:
            Dict with ``sha`` (blob sha) and decoded ``content``, or None if the file does not exist
        """
        try:
            response = await self._request("GET", f"/contents/{path}", "get_file", params={"ref": ref})
        except UpstreamError as e:
            if e.status_code == 404:
                return None
            raise
        data = response.json()
        content = base64.b64decode(data.get("content") or "").decode("utf-8")
        return {"sha": data.get("sha"), "content": content, "path": data.get("path", path)}

    async def get_content(self, path: str, ref: str) -> Optional[str]:
        file = await self.get_file(path, ref)
        return file["content"] if file else None

    async def create_or_update_file(
        self,
        path: str,
        message: str,
        content: str,
        branch: str,
        sha: Optional[str] = None,
        committer: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            body["sha"] = sha
        if committer:
            body["committer"] = committer
        response = await self._request("PUT", f"/contents/{path}", "create_or_update_file", json=body)
        return response.json()

    async def create_pull_request(self, title: str, body: str, head: str, base: str) -> Dict[str, Any]:
        response = await self._request(
            "POST", "/pulls", "create_pull_request", json={"title": title, "body": body, "head": head, "base": base}
        )
        return response.json()

    async def create_issue_comment(self, number: int, body: str) -> Dict[str, Any]:
        response = await self._request("POST", f"/issues/{number}/comments", "create_issue_comment", json={"body": body})
        return response.json()

    async def create_commit_status(
        self, sha: str, state: str, description: str, target_url: str, context: str
    ) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            f"/statuses/{sha}",
            "create_commit_status",
            json={"state": state, "description": description, "target_url": target_url, "context": context},
        )
        return response.json()

    async def _paginate(self, path: str, operation: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            query = dict(params or {}, per_page=self.PAGE_SIZE, page=page)
            batch = (await self._request("GET", path, operation, params=query)).json()
            items.extend(batch)
            if len(batch) < self.PAGE_SIZE:
                return items
            page += 1

    async def get_pull_request_files(self, number: int) -> List[Dict[str, Any]]:
        return await self._paginate(f"/pulls/{number}/files", "get_pull_request_files")

    async def list_pull_requests(self, state: str = "all") -> List[Dict[str, Any]]:
        return await self._paginate("/pulls", "list_pull_requests", {"state": state})
