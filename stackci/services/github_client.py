"""GitHub REST API client: raw file content at a ref and commit statuses.

``GitHubRepository`` binds the module-level functions to one repository and
token so the builder can treat the source host as a ``SourceRepository``.
``InMemoryRepository`` is the test double.
"""

from __future__ import annotations

from typing import Protocol

import httpx
import structlog

from stackci.schemas.status import CommitStatus

logger = structlog.get_logger()

GITHUB_API_URL = "https://api.github.com"

_GITHUB_HEADERS_BASE = {
    "Accept": "application/vnd.github+json",
    "X-GitHub-Api-Version": "2022-11-28",
}


class RepoNotFoundError(Exception):
    """The requested path does not exist at the given ref."""

    def __init__(self, path: str, ref: str) -> None:
        super().__init__(f"{path} not found at {ref}")
        self.path = path
        self.ref = ref


class SourceRepository(Protocol):
    """Protocol for reading files from, and reporting status to, a repository."""

    async def get(self, ref: str, path: str) -> bytes:
        """Return the raw content of *path* at *ref*.

        Raises ``RepoNotFoundError`` when the file does not exist.
        """
        ...

    async def status(self, sha: str, status: CommitStatus) -> None:
        """Attach a commit status to *sha*."""
        ...


def _auth_headers(token: str) -> dict[str, str]:
    """Build GitHub API headers with token auth."""
    return {**_GITHUB_HEADERS_BASE, "Authorization": f"Bearer {token}"}


async def fetch_file_content(
    client: httpx.AsyncClient,
    owner: str,
    repo: str,
    path: str,
    ref: str,
    token: str,
    *,
    base_url: str = GITHUB_API_URL,
) -> bytes:
    """Fetch raw file content from GitHub at the given ref.

    Args:
        client: Shared httpx async client (for connection pooling).
        owner: Repository owner (user or organisation).
        repo: Repository name.
        path: File path within the repository.
        ref: Git ref -- a full ref such as ``refs/heads/main`` or a commit SHA.
        token: GitHub personal access token or installation token.
        base_url: API root, overridable for GitHub Enterprise.

    Returns:
        The raw file content.

    Raises:
        RepoNotFoundError: On 404.
        httpx.HTTPStatusError: On any other non-2xx response.
    """
    url = f"{base_url}/repos/{owner}/{repo}/contents/{path}"
    headers = {**_auth_headers(token), "Accept": "application/vnd.github.raw+json"}
    resp = await client.get(url, params={"ref": ref}, headers=headers)
    if resp.status_code == 404:
        raise RepoNotFoundError(path, ref)
    resp.raise_for_status()
    return resp.content


async def post_commit_status(
    client: httpx.AsyncClient,
    owner: str,
    repo: str,
    sha: str,
    status: CommitStatus,
    token: str,
    *,
    base_url: str = GITHUB_API_URL,
) -> None:
    """Create a commit status for *sha*.

    Raises:
        httpx.HTTPStatusError: On non-2xx responses.
    """
    url = f"{base_url}/repos/{owner}/{repo}/statuses/{sha}"
    resp = await client.post(
        url,
        json=status.model_dump(mode="json", exclude_none=True),
        headers=_auth_headers(token),
    )
    resp.raise_for_status()


class GitHubRepository:
    """A single GitHub repository accessed with one token."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        owner: str,
        name: str,
        token: str,
        base_url: str = GITHUB_API_URL,
    ) -> None:
        self._client = client
        self.owner = owner
        self.name = name
        self._token = token
        self._base_url = base_url

    async def get(self, ref: str, path: str) -> bytes:
        logger.info("repo_file_requested", repo=self.name, path=path, ref=ref)
        return await fetch_file_content(
            self._client, self.owner, self.name, path, ref, self._token,
            base_url=self._base_url,
        )

    async def status(self, sha: str, status: CommitStatus) -> None:
        logger.info(
            "commit_status_posted",
            repo=self.name,
            context=status.context,
            state=status.state.value,
        )
        await post_commit_status(
            self._client, self.owner, self.name, sha, status, self._token,
            base_url=self._base_url,
        )


class InMemoryRepository:
    """Test double serving files from a dict and recording posted statuses."""

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files: dict[str, bytes] = dict(files or {})
        self.errors: dict[str, Exception] = {}
        self.statuses: list[tuple[str, CommitStatus]] = []
        self.requests: list[tuple[str, str]] = []

    async def get(self, ref: str, path: str) -> bytes:
        """Return the stored file, raise a configured error, or 404."""
        self.requests.append((ref, path))
        if path in self.errors:
            raise self.errors[path]
        if path not in self.files:
            raise RepoNotFoundError(path, ref)
        return self.files[path]

    async def status(self, sha: str, status: CommitStatus) -> None:
        """Append the status to the in-memory list."""
        self.statuses.append((sha, status))

    @property
    def states(self) -> list[str]:
        """Posted commit states in order, e.g. ``["pending", "success"]``."""
        return [status.state.value for _, status in self.statuses]
