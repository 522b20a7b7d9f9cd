"""Lambda entry point for the ``Custom::StackCleaner`` custom resource."""

import asyncio
from collections.abc import Mapping
from typing import Any

import httpx
import structlog

from stackci.dependencies import get_invoker, get_stack_manager
from stackci.handlers.runtime import bootstrap
from stackci.logging_config import bind_invocation
from stackci.services.cleaner import StackCleaner

logger = structlog.get_logger()


async def _handle(event: Mapping[str, Any], context: Any) -> None:
    async with httpx.AsyncClient(timeout=30.0) as client:
        cleaner = StackCleaner(
            stack_manager=get_stack_manager(),
            invoker=get_invoker(),
            http_client=client,
        )
        await cleaner.handle(event, context)


def handler(event: Mapping[str, Any], context: Any = None) -> None:
    """Answer one custom resource request; errors are logged, not raised."""
    bootstrap()
    bind_invocation(context, handler="stack_cleaner")
    try:
        asyncio.run(_handle(event, context))
    except Exception:
        logger.exception("stack_cleaner_handler_failed", stack_id=event.get("StackId"))
