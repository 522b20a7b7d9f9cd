"""Builder orchestration: event-table stream records -> reconciled pipeline stacks.

For each push delivery the builder resolves the pipeline stack for the ref,
assembles its templates and parameters from the repository, reconciles the
stack, and reports the outcome as a commit status.  All of it runs under a
deadline.  When the Lambda budget is nearly spent, the builder stops
watching and re-dispatches the untouched stream records to new invocations
of itself, split so that each payload fits Lambda's asynchronous limit.

Commit statuses for one push are ``pending`` followed by ``success`` or
``failure``.  A push whose work is handed to a continuation only gets
``pending`` from this invocation.  Branch deletions report nothing: their
``after`` revision is the all-zero SHA.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import ValidationError

from stackci.config import settings
from stackci.schemas.status import CommitState, CommitStatus
from stackci.schemas.webhooks import PushEvent
from stackci.services.artifacts import ArtifactStore
from stackci.services.context import assemble, publish_deploy_template
from stackci.services.continuation import (
    Outcome,
    deadline_for,
    remaining_budget,
    run_with_deadline,
)
from stackci.services.event_store import EVENT_TYPE_PUSH, read_stream_record
from stackci.services.github_client import SourceRepository
from stackci.services.invoker import SelfInvoker
from stackci.services.parameters import enrich
from stackci.services.reconciler import ReconcileResult, reconcile
from stackci.services.refs import branch_label, short_hash, stack_name
from stackci.services.secrets import SecretStore
from stackci.services.stack_manager import StackManager

logger = structlog.get_logger()

RepositoryFactory = Callable[[str, str, str], SourceRepository]
"""Builds a repository client from ``(owner, name, token)``."""

_DESCRIPTION_LIMIT = 140
_EMPTY_BATCH_SIZE = len(json.dumps({"Records": []}))


def status_url(region: str, log_group: str, log_stream: str, commit: str) -> str:
    """CloudWatch console link to this invocation's log lines for *commit*."""
    return (
        f"https://{region}.console.aws.amazon.com/cloudwatch/home?region={region}"
        f"#logEventViewer:group={log_group};stream={log_stream};filter={commit}"
    )


def continuation_batches(
    records: Sequence[Mapping[str, Any]], limit: int,
) -> list[list[Mapping[str, Any]]]:
    """Split *records*, in order, into ``{"Records": [...]}`` payloads of at most *limit* bytes.

    A record that is too large on its own still gets a batch to itself.
    """
    batches: list[list[Mapping[str, Any]]] = []
    current: list[Mapping[str, Any]] = []
    size = _EMPTY_BATCH_SIZE
    for record in records:
        # record plus its ", " separator
        record_size = len(json.dumps(record).encode("utf-8")) + 2
        if current and size + record_size > limit:
            batches.append(current)
            current, size = [], _EMPTY_BATCH_SIZE
        current.append(record)
        size += record_size
    if current:
        batches.append(current)
    return batches


@dataclass
class BatchResult:
    """Summary of one stream batch, for logging and tests."""

    processed: int = 0
    skipped: int = 0
    errored: int = 0
    continued: int = 0


class Builder:
    """Reconciles pipeline stacks for push events, one record at a time."""

    def __init__(
        self,
        *,
        stack_manager: StackManager,
        secrets: SecretStore,
        invoker: SelfInvoker,
        artifacts: ArtifactStore,
        repository_factory: RepositoryFactory,
        function_name: str = settings.app_name,
        token_key: str = settings.github_token_key,
        status_context: str = settings.status_context,
        region: str = settings.aws_region,
        execution_timeout: float = settings.execution_timeout,
        deadline_ratio: float = settings.deadline_ratio,
        poll_interval: float = settings.poll_interval,
        cancel_grace: float = settings.cancel_grace,
        continuation_payload_limit: int = settings.continuation_payload_limit,
    ) -> None:
        self.stack_manager = stack_manager
        self.secrets = secrets
        self.invoker = invoker
        self.artifacts = artifacts
        self.repository_factory = repository_factory
        self.function_name = function_name
        self.token_key = token_key
        self.status_context = status_context
        self.region = region
        self.execution_timeout = execution_timeout
        self.deadline_ratio = deadline_ratio
        self.poll_interval = poll_interval
        self.cancel_grace = cancel_grace
        self.continuation_payload_limit = continuation_payload_limit

    async def handle(self, event: Mapping[str, Any], lambda_context: Any = None) -> BatchResult:
        """Process a stream batch sequentially; never raises for a bad record."""
        loop = asyncio.get_running_loop()
        budget = remaining_budget(lambda_context, self.execution_timeout)
        deadline_at = loop.time() + deadline_for(budget, self.deadline_ratio)
        function_name = getattr(lambda_context, "function_name", None) or self.function_name
        log_group = getattr(lambda_context, "log_group_name", "")
        log_stream = getattr(lambda_context, "log_stream_name", "")

        records: Sequence[Mapping[str, Any]] = event.get("Records", [])
        result = BatchResult()
        for index, record in enumerate(records):
            try:
                outcome = await self.process_record(
                    record,
                    deadline=deadline_at - loop.time(),
                    log_group=log_group,
                    log_stream=log_stream,
                )
            except Exception:
                logger.exception("record_processing_failed", event_id=record.get("eventID"))
                result.errored += 1
                continue

            if outcome is None:
                result.skipped += 1
            elif outcome is Outcome.TIMED_OUT:
                remaining = list(records[index:])
                result.continued = len(remaining)
                await self._continue(function_name, remaining)
                break
            else:
                result.processed += 1

        logger.info("batch_processed", **dataclasses.asdict(result))
        return result

    async def _continue(self, function_name: str, records: list[Mapping[str, Any]]) -> None:
        batches = continuation_batches(records, self.continuation_payload_limit)
        logger.info(
            "continuation_dispatch",
            function_name=function_name,
            records=len(records),
            invocations=len(batches),
        )
        for batch in batches:
            try:
                await self.invoker.invoke(function_name, {"Records": batch})
            except Exception:
                logger.exception(
                    "continuation_dispatch_failed", function_name=function_name, records=len(batch),
                )

    async def process_record(
        self,
        record: Mapping[str, Any],
        *,
        deadline: float,
        log_group: str = "",
        log_stream: str = "",
    ) -> Outcome | None:
        """Run one stream record; None when the record is not a push insert."""
        stored = read_stream_record(record)
        if stored is None:
            logger.warning("stream_record_ignored", event_name=record.get("eventName"))
            return None
        if stored.type != EVENT_TYPE_PUSH:
            logger.warning("non_push_event_ignored", event_type=stored.type)
            return None

        try:
            push = PushEvent.model_validate_json(stored.payload)
        except ValidationError:
            logger.exception("push_event_invalid", delivery=stored.id)
            return None

        return await self.run(push, deadline=deadline, log_group=log_group, log_stream=log_stream)

    async def run(
        self,
        push: PushEvent,
        *,
        deadline: float,
        log_group: str = "",
        log_stream: str = "",
    ) -> Outcome:
        """Reconcile the stack for *push* under *deadline* and report the result.

        Fatal and terminal-remote errors are reported as a ``failure`` commit
        status and do not propagate.
        """
        commit = short_hash(push.after)
        log = logger.bind(ref=branch_label(push.ref), commit=commit, repo=push.repo_name)
        stack = stack_name(push.repo_name, push.ref)

        token = await self.secrets.get(self.token_key)
        repository = self.repository_factory(push.owner, push.repo_name, token)
        target_url = status_url(self.region, log_group, log_stream, commit)
        report = not push.branch_deleted

        if report:
            await self._report(
                repository, push, CommitState.PENDING, f"Reconciling {stack}", target_url,
            )

        async def work(cancel: asyncio.Event) -> ReconcileResult:
            return await self.process(push, repository, token, cancel)

        try:
            outcome = await run_with_deadline(work, deadline, self.cancel_grace)
        except Exception as exc:
            log.error("build_failed", stack=stack, error=str(exc), error_type=type(exc).__name__)
            if report:
                await self._report(repository, push, CommitState.FAILURE, str(exc), target_url)
            return Outcome.COMPLETED

        if outcome is Outcome.TIMED_OUT:
            log.info("build_continuing", stack=stack)
            return outcome

        log.info("build_succeeded", stack=stack)
        if report:
            await self._report(
                repository, push, CommitState.SUCCESS, f"{stack} is up to date", target_url,
            )
        return outcome

    async def process(
        self,
        push: PushEvent,
        repository: SourceRepository,
        token: str,
        cancel: asyncio.Event,
    ) -> ReconcileResult:
        """Assemble the build context and reconcile the pipeline stack."""
        stack = stack_name(push.repo_name, push.ref)
        context = None
        if not push.branch_deleted:
            context = await assemble(push, repository)
            context = await publish_deploy_template(context, push, self.artifacts)
            context = dataclasses.replace(
                context,
                parameters=enrich(context.parameters, push, token, self.artifacts.location),
            )

        result = await reconcile(
            stack, push, context, self.stack_manager, cancel, self.poll_interval,
        )
        logger.info(
            "stack_reconciled",
            stack=stack,
            action=result.action.value,
            build_started=result.build_started,
        )
        return result

    async def _report(
        self,
        repository: SourceRepository,
        push: PushEvent,
        state: CommitState,
        description: str,
        target_url: str,
    ) -> None:
        status = CommitStatus(
            state=state,
            context=self.status_context,
            description=description[:_DESCRIPTION_LIMIT],
            target_url=target_url,
        )
        try:
            await repository.status(push.after, status)
        except Exception:
            logger.exception("commit_status_failed", state=state.value, commit=short_hash(push.after))
