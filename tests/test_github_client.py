"""Tests for the GitHub API client functions."""

import json

import httpx
import pytest

from stackci.schemas.status import CommitState, CommitStatus
from stackci.services.github_client import (
    GitHubRepository,
    RepoNotFoundError,
    fetch_file_content,
    post_commit_status,
)


@pytest.mark.asyncio
async def test_fetch_file_content_success() -> None:
    """A 200 response returns the raw file bytes."""
    expected = b'{"Resources": {}}'

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=expected)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await fetch_file_content(
            client, "acme", "widgets", "pipeline.json", "refs/heads/dev-1", "ghp_token"
        )

    assert result == expected


@pytest.mark.asyncio
async def test_fetch_file_content_not_found() -> None:
    """A 404 response raises RepoNotFoundError."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not Found"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(RepoNotFoundError) as exc_info:
            await fetch_file_content(
                client, "acme", "widgets", "deploy.json", "refs/heads/dev-1", "ghp_token"
            )

    assert exc_info.value.path == "deploy.json"
    assert exc_info.value.ref == "refs/heads/dev-1"


@pytest.mark.asyncio
async def test_fetch_file_content_sends_correct_headers() -> None:
    """The request includes Authorization, Accept, API version, and ref query param."""
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, content=b"{}")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        await fetch_file_content(
            client, "myorg", "myrepo", "parameters.json", "refs/tags/v2.0.0", "ghp_secret"
        )

    assert len(captured) == 1
    req = captured[0]

    assert req.headers["authorization"] == "Bearer ghp_secret"
    assert req.headers["accept"] == "application/vnd.github.raw+json"
    assert req.headers["x-github-api-version"] == "2022-11-28"
    assert req.url.params["ref"] == "refs/tags/v2.0.0"
    assert req.url.path == "/repos/myorg/myrepo/contents/parameters.json"


@pytest.mark.asyncio
async def test_fetch_file_content_raises_on_server_error() -> None:
    """A 500 response raises httpx.HTTPStatusError."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="Internal Server Error")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await fetch_file_content(client, "acme", "widgets", "pipeline.json", "main", "tok")

    assert exc_info.value.response.status_code == 500


@pytest.mark.asyncio
async def test_post_commit_status_body() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(201, json={"id": 1})

    status = CommitStatus(
        state=CommitState.PENDING,
        context="build/prep",
        description="Reconciling widgets-dev-1",
        target_url="https://example.com/logs",
    )
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        await post_commit_status(client, "acme", "widgets", "abc123", status, "tok")

    req = captured[0]
    assert req.method == "POST"
    assert req.url.path == "/repos/acme/widgets/statuses/abc123"
    assert json.loads(req.content) == {
        "state": "pending",
        "context": "build/prep",
        "description": "Reconciling widgets-dev-1",
        "target_url": "https://example.com/logs",
    }


@pytest.mark.asyncio
async def test_post_commit_status_omits_empty_fields() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(201)

    status = CommitStatus(state=CommitState.SUCCESS, context="build/prep")
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        await post_commit_status(client, "acme", "widgets", "abc123", status, "tok")

    assert json.loads(captured[0].content) == {"state": "success", "context": "build/prep"}


@pytest.mark.asyncio
async def test_post_commit_status_raises_on_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"message": "Validation Failed"})

    status = CommitStatus(state=CommitState.SUCCESS, context="build/prep")
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await post_commit_status(client, "acme", "widgets", "abc123", status, "tok")


@pytest.mark.asyncio
async def test_github_repository_uses_base_url() -> None:
    """GitHub Enterprise installs are reached through the configured API root."""
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, content=b"{}")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        repo = GitHubRepository(
            client, "acme", "widgets", "tok", base_url="https://github.example.com/api/v3",
        )
        await repo.get("refs/heads/dev-1", "pipeline.json")

    assert str(captured[0].url).startswith(
        "https://github.example.com/api/v3/repos/acme/widgets/contents/pipeline.json"
    )
