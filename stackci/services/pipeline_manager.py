"""CodePipeline lookups used to map pipeline executions back to commits."""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import boto3

SOURCE_STAGE = "Source"


class PipelineLookupError(Exception):
    """The pipeline or execution lacks the expected source information."""


class PipelineManager(Protocol):
    """Protocol for reading pipeline metadata."""

    async def get_repo_info(self, pipeline: str) -> tuple[str, str]:
        """Return ``(owner, repo)`` configured on the pipeline's source action."""
        ...

    async def get_revision(self, pipeline: str, execution_id: str) -> str:
        """Return the source revision (commit SHA) built by an execution."""
        ...


class CodePipelineManager:
    """Production implementation backed by the CodePipeline API."""

    def __init__(self, region: str | None = None, client: Any = None) -> None:
        self._client = client or boto3.client("codepipeline", region_name=region)

    async def get_repo_info(self, pipeline: str) -> tuple[str, str]:
        response = await asyncio.to_thread(self._client.get_pipeline, name=pipeline)
        for stage in response["pipeline"].get("stages", []):
            if stage.get("name") != SOURCE_STAGE:
                continue
            actions = stage.get("actions", [])
            if not actions:
                raise PipelineLookupError(f"{pipeline}: no source stage actions")
            configuration = actions[0].get("configuration", {})
            return configuration["Owner"], configuration["Repo"]
        raise PipelineLookupError(f"{pipeline}: source stage not found")

    async def get_revision(self, pipeline: str, execution_id: str) -> str:
        response = await asyncio.to_thread(
            self._client.get_pipeline_execution,
            pipelineName=pipeline,
            pipelineExecutionId=execution_id,
        )
        revisions = response["pipelineExecution"].get("artifactRevisions", [])
        if not revisions:
            raise PipelineLookupError(f"{pipeline}: revision not found for {execution_id}")
        return revisions[0]["revisionId"]


class InMemoryPipelineManager:
    """Test double keyed by pipeline name and execution id."""

    def __init__(self) -> None:
        self.repos: dict[str, tuple[str, str]] = {}
        self.revisions: dict[tuple[str, str], str] = {}

    async def get_repo_info(self, pipeline: str) -> tuple[str, str]:
        if pipeline not in self.repos:
            raise PipelineLookupError(f"{pipeline}: source stage not found")
        return self.repos[pipeline]

    async def get_revision(self, pipeline: str, execution_id: str) -> str:
        if (pipeline, execution_id) not in self.revisions:
            raise PipelineLookupError(f"{pipeline}: revision not found for {execution_id}")
        return self.revisions[(pipeline, execution_id)]
