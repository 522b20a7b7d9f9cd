"""Lambda entry point for the event-table stream: reconciles pipeline stacks."""

import asyncio
import dataclasses
from collections.abc import Mapping
from typing import Any

import httpx
import structlog

from stackci.config import settings
from stackci.dependencies import (
    get_artifact_store,
    get_invoker,
    get_secret_store,
    get_stack_manager,
)
from stackci.handlers.runtime import bootstrap
from stackci.logging_config import bind_invocation
from stackci.services.builder import Builder
from stackci.services.github_client import GitHubRepository

logger = structlog.get_logger()


async def _handle(event: Mapping[str, Any], context: Any) -> dict:
    async with httpx.AsyncClient(timeout=30.0) as client:

        def repository_factory(owner: str, name: str, token: str) -> GitHubRepository:
            return GitHubRepository(client, owner, name, token, base_url=settings.github_api_url)

        builder = Builder(
            stack_manager=get_stack_manager(),
            secrets=get_secret_store(),
            invoker=get_invoker(),
            artifacts=get_artifact_store(),
            repository_factory=repository_factory,
        )
        result = await builder.handle(event, context)
    return dataclasses.asdict(result)


def handler(event: Mapping[str, Any], context: Any = None) -> dict | None:
    """Process one stream batch.

    Always returns normally: a failure here is logged rather than raised so
    the stream does not redeliver a batch that already reported its
    commit statuses.
    """
    bootstrap()
    bind_invocation(context, handler="builder")
    try:
        return asyncio.run(_handle(event, context))
    except Exception:
        logger.exception("builder_handler_failed")
        return None
