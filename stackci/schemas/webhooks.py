"""Pydantic models for GitHub push events.

Only the fields the builder acts on are modelled; GitHub sends many more and
they are ignored.  Models are frozen: a push event is constructed once per
inbound message and identifies one unit of work.
"""

from pydantic import BaseModel, ConfigDict

ZERO_SHA = "0" * 40


class RepositoryOwner(BaseModel):
    """Owner of the repository (user or organization)."""

    model_config = ConfigDict(frozen=True)

    login: str | None = None
    name: str | None = None

    @property
    def handle(self) -> str:
        """The owner's account name, whichever field GitHub populated."""
        return self.name or self.login or ""


class Repository(BaseModel):
    """Repository identity from the webhook payload."""

    model_config = ConfigDict(frozen=True)

    name: str
    owner: RepositoryOwner
    full_name: str | None = None


class PushEvent(BaseModel):
    """GitHub push webhook event payload.

    Reference: https://docs.github.com/en/webhooks/webhook-events-and-payloads#push
    """

    model_config = ConfigDict(frozen=True)

    ref: str
    before: str
    after: str
    repository: Repository
    deleted: bool = False

    @property
    def owner(self) -> str:
        return self.repository.owner.handle

    @property
    def repo_name(self) -> str:
        return self.repository.name

    @property
    def branch_deleted(self) -> bool:
        """True for a ref deletion; GitHub sends the all-zero SHA as ``after``."""
        return self.deleted or self.after == ZERO_SHA
