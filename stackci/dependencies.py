"""Centralized collaborator wiring for the web app (via Depends()) and Lambda handlers."""

from stackci.services.artifacts import ArtifactStore, InMemoryArtifactStore
from stackci.services.event_store import EventStore, InMemoryEventStore
from stackci.services.invoker import InMemoryInvoker, SelfInvoker
from stackci.services.pipeline_manager import InMemoryPipelineManager, PipelineManager
from stackci.services.secrets import InMemorySecretStore, SecretStore
from stackci.services.stack_manager import InMemoryStackManager, StackManager

_event_store: EventStore = InMemoryEventStore()
_secret_store: SecretStore = InMemorySecretStore()
_stack_manager: StackManager = InMemoryStackManager()
_invoker: SelfInvoker = InMemoryInvoker()
_artifact_store: ArtifactStore = InMemoryArtifactStore()
_pipeline_manager: PipelineManager = InMemoryPipelineManager()


def init_production_deps(
    aws_region: str,
    event_table: str,
    artifact_store: str,
) -> None:
    """Swap InMemory test doubles for real AWS-backed implementations."""
    global _event_store, _secret_store, _stack_manager  # noqa: PLW0603
    global _invoker, _artifact_store, _pipeline_manager  # noqa: PLW0603

    from stackci.services.artifacts import S3ArtifactStore
    from stackci.services.event_store import DynamoEventStore
    from stackci.services.invoker import LambdaInvoker
    from stackci.services.pipeline_manager import CodePipelineManager
    from stackci.services.secrets import SSMSecretStore
    from stackci.services.stack_manager import CloudFormationStackManager

    _event_store = DynamoEventStore(event_table, aws_region)
    _secret_store = SSMSecretStore(aws_region)
    _stack_manager = CloudFormationStackManager(aws_region)
    _invoker = LambdaInvoker(aws_region)
    _artifact_store = S3ArtifactStore(artifact_store, aws_region)
    _pipeline_manager = CodePipelineManager(aws_region)


def get_event_store() -> EventStore:
    """Return the webhook event store.

    Defaults to InMemoryEventStore for development and testing.
    Swapped to production implementations by ``init_production_deps()``.
    """
    return _event_store


def get_secret_store() -> SecretStore:
    return _secret_store


def get_stack_manager() -> StackManager:
    return _stack_manager


def get_invoker() -> SelfInvoker:
    return _invoker


def get_artifact_store() -> ArtifactStore:
    return _artifact_store


def get_pipeline_manager() -> PipelineManager:
    return _pipeline_manager


__all__ = [
    "get_artifact_store",
    "get_event_store",
    "get_invoker",
    "get_pipeline_manager",
    "get_secret_store",
    "get_stack_manager",
    "init_production_deps",
]
