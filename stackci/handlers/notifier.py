"""Lambda entry point for CodePipeline stage state-change events."""

import asyncio
from collections.abc import Mapping
from typing import Any

import httpx
import structlog

from stackci.config import settings
from stackci.dependencies import get_pipeline_manager, get_secret_store
from stackci.handlers.runtime import bootstrap
from stackci.logging_config import bind_invocation
from stackci.schemas.pipeline import PipelineStageDetail
from stackci.services.github_client import GitHubRepository
from stackci.services.notifier import notify

logger = structlog.get_logger()


async def _handle(event: Mapping[str, Any]) -> None:
    detail = PipelineStageDetail.model_validate(event.get("detail", {}))
    manager = get_pipeline_manager()
    token = await get_secret_store().get(settings.github_token_key)
    owner, repo = await manager.get_repo_info(detail.pipeline)

    async with httpx.AsyncClient(timeout=30.0) as client:
        repository = GitHubRepository(client, owner, repo, token, base_url=settings.github_api_url)
        await notify(detail, manager, repository, settings.aws_region)


def handler(event: Mapping[str, Any], context: Any = None) -> None:
    """Post a commit status for one stage transition; errors are logged, not raised."""
    bootstrap()
    bind_invocation(context, handler="notifier")
    try:
        asyncio.run(_handle(event))
    except Exception:
        logger.exception("notifier_handler_failed", pipeline=event.get("detail", {}).get("pipeline"))
