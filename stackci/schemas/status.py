"""Pydantic models for GitHub commit statuses."""

from enum import Enum

from pydantic import BaseModel


class CommitState(str, Enum):
    """States accepted by the GitHub commit status API."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


class CommitStatus(BaseModel):
    """Body of ``POST /repos/{owner}/{repo}/statuses/{sha}``."""

    state: CommitState
    context: str
    description: str | None = None
    target_url: str | None = None
