"""Pydantic models for CloudFormation stack parameters and the parameter manifest."""

from pydantic import BaseModel, ConfigDict, Field


class Parameter(BaseModel):
    """A single CloudFormation stack parameter.

    Serialises with the CloudFormation field names (``ParameterKey`` /
    ``ParameterValue``), which is also the shape used in ``parameters.json``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    key: str = Field(alias="ParameterKey")
    value: str = Field(alias="ParameterValue")

    def to_cloudformation(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)


class ParameterManifest(BaseModel):
    """Contents of a repository's ``parameters.json``.

    Each list is keyed by deployment class.  ``master`` and ``release`` are
    optional: a manifest without them falls back to the ``dev`` list.
    """

    development: list[Parameter] = Field(default_factory=list, alias="dev")
    master: list[Parameter] | None = None
    release: list[Parameter] | None = None
