"""Provisioning service abstraction for pipeline stacks.

Production code uses ``CloudFormationStackManager``, which wraps the
synchronous boto3 CloudFormation and CodePipeline clients in
``asyncio.to_thread``.  Tests use ``InMemoryStackManager``, which replays
scripted status sequences and records every mutation.

Only two CloudFormation failures are translated: describing a missing stack
(reported as ``exists=False``) and an update with nothing to change
(``NoChangesError``).  Every other ``ClientError`` propagates unmodified.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any, Protocol

import boto3
import structlog
from botocore.exceptions import ClientError

from stackci.schemas.parameters import Parameter

logger = structlog.get_logger()

DOES_NOT_EXIST = "DOES_NOT_EXIST"

_CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM"]
_PIPELINE_RESOURCE_TYPE = "AWS::CodePipeline::Pipeline"


class StackManagerError(Exception):
    """A stack operation could not be carried out."""


class NoChangesError(StackManagerError):
    """An update was rejected because template and parameters are unchanged."""


class StackManager(Protocol):
    """Protocol for the provisioning service that owns pipeline stacks."""

    async def create(self, name: str, parameters: Sequence[Parameter], template: bytes) -> None:
        """Start creating a stack; the stack's pipeline starts on its own."""
        ...

    async def update(self, name: str, parameters: Sequence[Parameter], template: bytes) -> None:
        """Start updating a stack.

        Raises ``NoChangesError`` when there is nothing to update.
        """
        ...

    async def delete(self, name: str) -> None:
        """Start deleting a stack."""
        ...

    async def status(self, name: str) -> tuple[bool, str]:
        """Return ``(exists, raw_status)`` for a stack."""
        ...

    async def last_updated(self, name: str) -> datetime | None:
        """Return when the stack was last updated, or None if never."""
        ...

    async def start_build(self, name: str) -> None:
        """Start an execution of the pipeline defined by the stack."""
        ...

    async def latest_revision(self, name: str) -> str | None:
        """Return the source revision of the stack pipeline's latest execution.

        None when the pipeline has never run or the revision is not known yet.
        """
        ...


def _is_missing_stack(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    return error.get("Code") == "ValidationError" and "does not exist" in error.get("Message", "")


def _is_no_changes(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    return error.get("Code") == "ValidationError" and "No updates are to be performed" in error.get(
        "Message", ""
    )


class CloudFormationStackManager:
    """Production implementation backed by CloudFormation and CodePipeline."""

    def __init__(
        self,
        region: str | None = None,
        cloudformation: Any = None,
        codepipeline: Any = None,
    ) -> None:
        self._cfn = cloudformation or boto3.client("cloudformation", region_name=region)
        self._pipelines = codepipeline or boto3.client("codepipeline", region_name=region)

    async def create(self, name: str, parameters: Sequence[Parameter], template: bytes) -> None:
        response = await asyncio.to_thread(
            self._cfn.create_stack,
            StackName=name,
            TemplateBody=template.decode("utf-8"),
            Parameters=[p.to_cloudformation() for p in parameters],
            Capabilities=_CAPABILITIES,
        )
        logger.info("stack_create_started", stack=name, stack_id=response.get("StackId"))

    async def update(self, name: str, parameters: Sequence[Parameter], template: bytes) -> None:
        try:
            response = await asyncio.to_thread(
                self._cfn.update_stack,
                StackName=name,
                TemplateBody=template.decode("utf-8"),
                Parameters=[p.to_cloudformation() for p in parameters],
                Capabilities=_CAPABILITIES,
            )
        except ClientError as exc:
            if _is_no_changes(exc):
                raise NoChangesError(f"no updates to perform on {name}") from exc
            raise
        logger.info("stack_update_started", stack=name, stack_id=response.get("StackId"))

    async def delete(self, name: str) -> None:
        await asyncio.to_thread(self._cfn.delete_stack, StackName=name)
        logger.info("stack_delete_started", stack=name)

    async def _describe(self, name: str) -> dict | None:
        try:
            response = await asyncio.to_thread(self._cfn.describe_stacks, StackName=name)
        except ClientError as exc:
            if _is_missing_stack(exc):
                return None
            raise
        stacks = response.get("Stacks", [])
        return stacks[0] if stacks else None

    async def status(self, name: str) -> tuple[bool, str]:
        stack = await self._describe(name)
        if stack is None:
            return False, DOES_NOT_EXIST
        return True, stack["StackStatus"]

    async def last_updated(self, name: str) -> datetime | None:
        stack = await self._describe(name)
        if stack is None:
            return None
        return stack.get("LastUpdatedTime")

    async def _pipeline_names(self, name: str) -> list[str]:
        response = await asyncio.to_thread(self._cfn.describe_stack_resources, StackName=name)
        pipelines = [
            resource["PhysicalResourceId"]
            for resource in response.get("StackResources", [])
            if resource.get("ResourceType") == _PIPELINE_RESOURCE_TYPE
        ]
        if not pipelines:
            raise StackManagerError(f"stack {name} defines no {_PIPELINE_RESOURCE_TYPE}")
        return pipelines

    async def start_build(self, name: str) -> None:
        for pipeline in await self._pipeline_names(name):
            execution = await asyncio.to_thread(
                self._pipelines.start_pipeline_execution, name=pipeline,
            )
            logger.info(
                "pipeline_execution_started",
                stack=name,
                pipeline=pipeline,
                execution_id=execution.get("pipelineExecutionId"),
            )

    async def latest_revision(self, name: str) -> str | None:
        pipeline = (await self._pipeline_names(name))[0]
        response = await asyncio.to_thread(
            self._pipelines.list_pipeline_executions, pipelineName=pipeline, maxResults=1,
        )
        summaries = response.get("pipelineExecutionSummaries", [])
        if not summaries:
            return None
        revisions = summaries[0].get("sourceRevisions", [])
        if not revisions:
            return None
        return revisions[0].get("revisionId")


class InMemoryStackManager:
    """Test double replaying scripted status sequences.

    Each stack holds a queue of raw statuses.  ``status()`` pops from the
    front until one entry is left, which then repeats forever.  ``create``
    and ``update`` install ``create_statuses`` / ``update_statuses`` as the
    new queue; ``delete`` removes the stack.  ``revisions`` holds each
    pipeline's latest built revision.  Every call is appended to
    ``calls`` as ``(operation, name)``.
    """

    def __init__(self) -> None:
        self.stacks: dict[str, list[str]] = {}
        self.updated_at: dict[str, datetime | None] = {}
        self.parameters: dict[str, list[Parameter]] = {}
        self.templates: dict[str, bytes] = {}
        self.revisions: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []
        self.errors: dict[str, Exception] = {}
        self.create_statuses: list[str] = ["CREATE_IN_PROGRESS", "CREATE_COMPLETE"]
        self.update_statuses: list[str] = ["UPDATE_IN_PROGRESS", "UPDATE_COMPLETE"]
        self.delete_removes = True

    def seed(self, name: str, *statuses: str, last_updated: datetime | None = None) -> None:
        """Make *name* exist with the given status sequence."""
        self.stacks[name] = list(statuses)
        self.updated_at[name] = last_updated

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    def _record(self, operation: str, name: str) -> None:
        self.calls.append((operation, name))
        if operation in self.errors:
            raise self.errors[operation]

    async def create(self, name: str, parameters: Sequence[Parameter], template: bytes) -> None:
        self._record("create", name)
        self.stacks[name] = list(self.create_statuses)
        self.updated_at[name] = None
        self.parameters[name] = list(parameters)
        self.templates[name] = template

    async def update(self, name: str, parameters: Sequence[Parameter], template: bytes) -> None:
        self._record("update", name)
        self.stacks[name] = list(self.update_statuses)
        self.updated_at[name] = datetime.now(timezone.utc)
        self.parameters[name] = list(parameters)
        self.templates[name] = template

    async def delete(self, name: str) -> None:
        self._record("delete", name)
        if self.delete_removes:
            self.stacks.pop(name, None)

    async def status(self, name: str) -> tuple[bool, str]:
        self._record("status", name)
        queue = self.stacks.get(name)
        if queue is None:
            return False, DOES_NOT_EXIST
        if len(queue) > 1:
            return True, queue.pop(0)
        return True, queue[0]

    async def last_updated(self, name: str) -> datetime | None:
        self._record("last_updated", name)
        return self.updated_at.get(name)

    async def start_build(self, name: str) -> None:
        self._record("start_build", name)

    async def latest_revision(self, name: str) -> str | None:
        self._record("latest_revision", name)
        return self.revisions.get(name)
