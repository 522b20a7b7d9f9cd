"""Pydantic models for CodePipeline stage state-change events."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class StageState(str, Enum):
    """Stage execution states emitted by CodePipeline."""

    STARTED = "STARTED"
    SUCCEEDED = "SUCCEEDED"
    RESUMED = "RESUMED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"
    STOPPED = "STOPPED"
    STOPPING = "STOPPING"


class PipelineStageDetail(BaseModel):
    """``detail`` block of a "CodePipeline Stage Execution State Change" event."""

    model_config = ConfigDict(populate_by_name=True)

    pipeline: str
    stage: str
    state: str
    execution_id: str = Field(alias="execution-id")
    version: float | None = None
