"""Required stack parameters appended to every pipeline stack.

Pipeline templates can rely on these keys always being present.  They are
reserved: a repository's ``parameters.json`` should not define them, but no
collision check is made.
"""

from collections.abc import Sequence

from stackci.schemas.parameters import Parameter
from stackci.schemas.webhooks import PushEvent
from stackci.services.refs import classify

RESERVED_KEYS = (
    "ArtifactStore",
    "RepoOwner",
    "RepoName",
    "RepoBranch",
    "RepoToken",
    "Stage",
)


def required_parameters(event: PushEvent, token: str, artifact_store: str) -> list[Parameter]:
    """Build the always-present parameters for *event*."""
    deployment_class, label = classify(event.ref)
    values = (
        artifact_store,
        event.owner,
        event.repo_name,
        label,
        token,
        deployment_class.value,
    )
    return [Parameter(key=key, value=value) for key, value in zip(RESERVED_KEYS, values)]


def enrich(
    parameters: Sequence[Parameter],
    event: PushEvent,
    token: str,
    artifact_store: str,
) -> list[Parameter]:
    """Return a new list: *parameters* followed by the required parameters."""
    return [*parameters, *required_parameters(event, token, artifact_store)]
