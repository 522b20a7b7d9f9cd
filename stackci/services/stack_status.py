"""Classification of raw CloudFormation stack status strings.

CloudFormation reports dozens of concrete statuses (``CREATE_COMPLETE``,
``UPDATE_ROLLBACK_IN_PROGRESS``, ``DELETE_FAILED`` ...).  The builder only
cares which of four states a status falls into, decided by suffix and
substring rather than an exhaustive table.
"""

from enum import Enum


class StackState(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self is not StackState.IN_PROGRESS

    @property
    def is_error(self) -> bool:
        return self in (StackState.FAILED, StackState.ROLLED_BACK)


def classify_status(raw: str) -> StackState:
    """Map a raw stack status onto a :class:`StackState`.

    ``ROLLBACK`` anywhere wins over the suffix checks, so
    ``UPDATE_ROLLBACK_COMPLETE`` is a rollback, not a success.
    """
    if "ROLLBACK" in raw:
        return StackState.ROLLED_BACK
    if raw.endswith("_FAILED"):
        return StackState.FAILED
    if raw.endswith("_COMPLETE"):
        return StackState.COMPLETE
    return StackState.IN_PROGRESS


def is_busy(raw: str) -> bool:
    """True while CloudFormation is still working on the stack.

    A busy stack rejects mutations, including stacks that are mid-rollback.
    """
    return raw.endswith("_IN_PROGRESS")


def is_mutable(raw: str) -> bool:
    """True when the stack has settled and may receive an update."""
    return classify_status(raw).is_terminal and not is_busy(raw)
