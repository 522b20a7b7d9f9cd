"""Git ref classification and pipeline stack naming.

Every push is mapped to one of three deployment classes, which selects both
the parameter subset applied to the pipeline stack and the stack's name:

==============  ======================  =========================
ref             deployment class        stack name
==============  ======================  =========================
``.../master``  ``master``              ``{repo}-master``
``.../v1.2.3``  ``release``             ``{repo}-release``
anything else   ``dev``                 ``{repo}-{branch label}``
==============  ======================  =========================

Classification only looks at the last ``/`` segment of the ref, so a tag
named ``master`` is indistinguishable from the ``master`` branch.
"""

import re
from enum import Enum

_RELEASE_LABEL = re.compile(r"^v\d+\.\d+\.\d+$")


class DeploymentClass(str, Enum):
    """Deployment class of a push; values match the parameter manifest keys."""

    DEVELOPMENT = "dev"
    MASTER = "master"
    RELEASE = "release"


def branch_label(ref: str) -> str:
    """Return the last ``/``-delimited segment of *ref*."""
    return ref.rsplit("/", 1)[-1]


def classify(ref: str) -> tuple[DeploymentClass, str]:
    """Classify a ref into its deployment class and branch label.

    Total over all strings: anything that is not ``master`` or a
    ``vMAJOR.MINOR.PATCH`` label is a development push.
    """
    label = branch_label(ref)
    if label == DeploymentClass.MASTER.value:
        return DeploymentClass.MASTER, label
    if _RELEASE_LABEL.match(label):
        return DeploymentClass.RELEASE, label
    return DeploymentClass.DEVELOPMENT, label


def stack_name(repo: str, ref: str) -> str:
    """Canonical pipeline stack name for a push to *ref* in *repo*."""
    deployment_class, label = classify(ref)
    if deployment_class is DeploymentClass.DEVELOPMENT:
        return f"{repo}-{label}"
    return f"{repo}-{deployment_class.value}"


def short_hash(sha: str) -> str:
    """Abbreviate a commit SHA to six characters for logs and log filters."""
    return sha[:6]
