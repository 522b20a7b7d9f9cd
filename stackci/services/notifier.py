"""Pipeline stage notifications mirrored as GitHub commit statuses.

Each stage of a pipeline stack gets its own status context
(``pipeline/Build``, ``pipeline/Deploy`` ...), so a commit shows how far its
pipeline has progressed.
"""

from __future__ import annotations

import structlog

from stackci.schemas.pipeline import PipelineStageDetail, StageState
from stackci.schemas.status import CommitState, CommitStatus
from stackci.services.github_client import SourceRepository
from stackci.services.pipeline_manager import PipelineManager

logger = structlog.get_logger()


def map_state(state: str) -> CommitState:
    """STARTED -> pending, SUCCEEDED -> success, everything else -> failure."""
    if state == StageState.STARTED.value:
        return CommitState.PENDING
    if state == StageState.SUCCEEDED.value:
        return CommitState.SUCCESS
    return CommitState.FAILURE


def pipeline_url(region: str, pipeline: str) -> str:
    return f"https://{region}.console.aws.amazon.com/codepipeline/home#/view/{pipeline}"


def stage_status(detail: PipelineStageDetail, region: str) -> CommitStatus:
    return CommitStatus(
        state=map_state(detail.state),
        context=f"pipeline/{detail.stage}",
        description=f"{detail.stage} {detail.state.lower()}",
        target_url=pipeline_url(region, detail.pipeline),
    )


async def notify(
    detail: PipelineStageDetail,
    manager: PipelineManager,
    repository: SourceRepository,
    region: str,
) -> CommitStatus:
    """Post the commit status for one stage transition and return it."""
    revision = await manager.get_revision(detail.pipeline, detail.execution_id)
    status = stage_status(detail, region)
    logger.info(
        "stage_status",
        pipeline=detail.pipeline,
        stage=detail.stage,
        state=detail.state,
        revision=revision,
    )
    await repository.status(revision, status)
    return status
