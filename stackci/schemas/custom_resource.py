"""Pydantic models for CloudFormation custom resource requests and responses.

Reference:
https://docs.aws.amazon.com/AWSCloudFormation/latest/UserGuide/crpg-ref.html
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class CustomResourceEvent(BaseModel):
    """Request sent by CloudFormation to a custom resource provider."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    request_type: Literal["Create", "Update", "Delete"] = Field(alias="RequestType")
    response_url: str = Field(alias="ResponseURL")
    stack_id: str = Field(alias="StackId")
    request_id: str = Field(alias="RequestId")
    logical_resource_id: str = Field(alias="LogicalResourceId")
    physical_resource_id: str | None = Field(default=None, alias="PhysicalResourceId")
    resource_type: str | None = Field(default=None, alias="ResourceType")
    resource_properties: dict[str, Any] = Field(default_factory=dict, alias="ResourceProperties")


class CustomResourceResponse(BaseModel):
    """Body PUT to the pre-signed ``ResponseURL``."""

    model_config = ConfigDict(populate_by_name=True)

    status: Literal["SUCCESS", "FAILED"] = Field(alias="Status")
    stack_id: str = Field(alias="StackId")
    request_id: str = Field(alias="RequestId")
    logical_resource_id: str = Field(alias="LogicalResourceId")
    physical_resource_id: str = Field(alias="PhysicalResourceId")
    reason: str | None = Field(default=None, alias="Reason")
