"""Tests for the boto3-backed collaborators, against moto or a mocked client."""

import io
import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from stackci.schemas.parameters import Parameter
from stackci.services.artifacts import S3ArtifactStore
from stackci.services.event_store import DynamoEventStore
from stackci.services.invoker import InvocationError, LambdaInvoker
from stackci.services.pipeline_manager import CodePipelineManager, PipelineLookupError
from stackci.services.secrets import SSMSecretStore
from stackci.services.stack_manager import (
    DOES_NOT_EXIST,
    CloudFormationStackManager,
    NoChangesError,
    StackManagerError,
)

REGION = "us-east-1"

BUCKET_TEMPLATE = json.dumps(
    {
        "Parameters": {"Env": {"Type": "String"}},
        "Resources": {"Bucket": {"Type": "AWS::S3::Bucket"}},
    }
).encode()


def _client_error(code: str, message: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


@pytest.fixture
def aws():
    """Activate moto for the duration of a test."""
    with mock_aws():
        yield


# ---------------------------------------------------------------------------
# SSM / S3 / DynamoDB (moto)
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_ssm_secret_store_decrypts(aws) -> None:
    ssm = boto3.client("ssm", region_name=REGION)
    ssm.put_parameter(Name="stackci-github-token", Value="ghp_secret", Type="SecureString")

    store = SSMSecretStore(REGION)

    assert await store.get("stackci-github-token") == "ghp_secret"


@pytest.mark.asyncio
async def test_ssm_secret_store_missing_key(aws) -> None:
    store = SSMSecretStore(REGION)
    with pytest.raises(ClientError):
        await store.get("missing")


@pytest.mark.asyncio
async def test_s3_artifact_store_put(aws) -> None:
    s3 = boto3.client("s3", region_name=REGION)
    s3.create_bucket(Bucket="artifacts")
    store = S3ArtifactStore("artifacts", REGION)

    location = await store.put("deploy/acme/widgets/abc/deploy.json", b"{}")

    assert location == "artifacts/deploy/acme/widgets/abc/deploy.json"
    assert store.location == "artifacts"
    body = s3.get_object(Bucket="artifacts", Key="deploy/acme/widgets/abc/deploy.json")["Body"]
    assert body.read() == b"{}"


@pytest.mark.asyncio
async def test_dynamo_event_store_put(aws) -> None:
    dynamodb = boto3.client("dynamodb", region_name=REGION)
    dynamodb.create_table(
        TableName="events",
        KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )
    store = DynamoEventStore("events", REGION)

    await store.put("delivery-1", "push", '{"ref": "refs/heads/dev-1",\n  "after": "abc"}')

    item = dynamodb.get_item(TableName="events", Key={"id": {"S": "delivery-1"}})["Item"]
    assert item["type"] == {"S": "push"}
    assert item["payload"] == {"S": '{"ref":"refs/heads/dev-1","after":"abc"}'}
    assert "timestamp" in item


# ---------------------------------------------------------------------------
# CloudFormation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cloudformation_create_and_status(aws) -> None:
    manager = CloudFormationStackManager(REGION)

    await manager.create("widgets-dev-1", [Parameter(key="Env", value="dev")], BUCKET_TEMPLATE)
    exists, raw = await manager.status("widgets-dev-1")

    assert exists
    assert raw == "CREATE_COMPLETE"


@pytest.mark.asyncio
async def test_cloudformation_missing_stack(aws) -> None:
    manager = CloudFormationStackManager(REGION)

    assert await manager.status("nope") == (False, DOES_NOT_EXIST)
    assert await manager.last_updated("nope") is None


@pytest.mark.asyncio
async def test_cloudformation_passes_capabilities_and_parameters() -> None:
    cfn = MagicMock()
    cfn.create_stack.return_value = {"StackId": "arn:stack"}
    manager = CloudFormationStackManager(REGION, cloudformation=cfn, codepipeline=MagicMock())

    await manager.create("widgets-dev-1", [Parameter(key="Env", value="dev")], b"{}")

    cfn.create_stack.assert_called_once_with(
        StackName="widgets-dev-1",
        TemplateBody="{}",
        Parameters=[{"ParameterKey": "Env", "ParameterValue": "dev"}],
        Capabilities=["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM"],
    )


@pytest.mark.asyncio
async def test_cloudformation_update_without_changes() -> None:
    cfn = MagicMock()
    cfn.update_stack.side_effect = _client_error(
        "ValidationError", "No updates are to be performed.", "UpdateStack",
    )
    manager = CloudFormationStackManager(REGION, cloudformation=cfn, codepipeline=MagicMock())

    with pytest.raises(NoChangesError):
        await manager.update("widgets-dev-1", [], b"{}")


@pytest.mark.asyncio
async def test_cloudformation_update_other_errors_propagate() -> None:
    cfn = MagicMock()
    cfn.update_stack.side_effect = _client_error("AccessDenied", "denied", "UpdateStack")
    manager = CloudFormationStackManager(REGION, cloudformation=cfn, codepipeline=MagicMock())

    with pytest.raises(ClientError):
        await manager.update("widgets-dev-1", [], b"{}")


@pytest.mark.asyncio
async def test_cloudformation_last_updated() -> None:
    when = datetime(2026, 10, 18, tzinfo=timezone.utc)
    cfn = MagicMock()
    cfn.describe_stacks.return_value = {
        "Stacks": [{"StackStatus": "UPDATE_COMPLETE", "LastUpdatedTime": when}],
    }
    manager = CloudFormationStackManager(REGION, cloudformation=cfn, codepipeline=MagicMock())

    assert await manager.last_updated("widgets-dev-1") == when


@pytest.mark.asyncio
async def test_start_build_starts_every_stack_pipeline() -> None:
    cfn = MagicMock()
    cfn.describe_stack_resources.return_value = {
        "StackResources": [
            {"ResourceType": "AWS::S3::Bucket", "PhysicalResourceId": "bucket"},
            {"ResourceType": "AWS::CodePipeline::Pipeline", "PhysicalResourceId": "widgets-pipeline"},
        ]
    }
    pipelines = MagicMock()
    pipelines.start_pipeline_execution.return_value = {"pipelineExecutionId": "exec-1"}
    manager = CloudFormationStackManager(REGION, cloudformation=cfn, codepipeline=pipelines)

    await manager.start_build("widgets-dev-1")

    pipelines.start_pipeline_execution.assert_called_once_with(name="widgets-pipeline")


@pytest.mark.asyncio
async def test_start_build_without_pipeline() -> None:
    cfn = MagicMock()
    cfn.describe_stack_resources.return_value = {"StackResources": []}
    manager = CloudFormationStackManager(REGION, cloudformation=cfn, codepipeline=MagicMock())

    with pytest.raises(StackManagerError):
        await manager.start_build("widgets-dev-1")


@pytest.mark.asyncio
async def test_latest_revision_reads_newest_execution() -> None:
    cfn = MagicMock()
    cfn.describe_stack_resources.return_value = {
        "StackResources": [
            {"ResourceType": "AWS::CodePipeline::Pipeline", "PhysicalResourceId": "widgets-pipeline"},
        ]
    }
    pipelines = MagicMock()
    pipelines.list_pipeline_executions.return_value = {
        "pipelineExecutionSummaries": [
            {
                "pipelineExecutionId": "exec-2",
                "sourceRevisions": [{"actionName": "Source", "revisionId": "abc123"}],
            }
        ]
    }
    manager = CloudFormationStackManager(REGION, cloudformation=cfn, codepipeline=pipelines)

    assert await manager.latest_revision("widgets-dev-1") == "abc123"
    pipelines.list_pipeline_executions.assert_called_once_with(
        pipelineName="widgets-pipeline", maxResults=1,
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "summaries",
    [[], [{"pipelineExecutionId": "exec-1", "sourceRevisions": []}]],
)
async def test_latest_revision_unknown(summaries: list) -> None:
    cfn = MagicMock()
    cfn.describe_stack_resources.return_value = {
        "StackResources": [
            {"ResourceType": "AWS::CodePipeline::Pipeline", "PhysicalResourceId": "widgets-pipeline"},
        ]
    }
    pipelines = MagicMock()
    pipelines.list_pipeline_executions.return_value = {"pipelineExecutionSummaries": summaries}
    manager = CloudFormationStackManager(REGION, cloudformation=cfn, codepipeline=pipelines)

    assert await manager.latest_revision("widgets-dev-1") is None


# ---------------------------------------------------------------------------
# Lambda / CodePipeline (mocked clients)
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_lambda_invoker_sends_async_event() -> None:
    client = MagicMock()
    client.invoke.return_value = {"StatusCode": 202, "Payload": io.BytesIO(b"")}
    invoker = LambdaInvoker(REGION, client=client)

    await invoker.invoke("stackci-builder", {"Records": []})

    client.invoke.assert_called_once_with(
        FunctionName="stackci-builder",
        InvocationType="Event",
        Payload=b'{"Records": []}',
    )


@pytest.mark.asyncio
async def test_lambda_invoker_rejects_non_202() -> None:
    client = MagicMock()
    client.invoke.return_value = {"StatusCode": 200}
    invoker = LambdaInvoker(REGION, client=client)

    with pytest.raises(InvocationError, match="200"):
        await invoker.invoke("stackci-builder", {})


@pytest.mark.asyncio
async def test_lambda_invoker_reports_function_error() -> None:
    client = MagicMock()
    client.invoke.return_value = {"StatusCode": 200, "FunctionError": "Unhandled"}
    invoker = LambdaInvoker(REGION, client=client)

    with pytest.raises(InvocationError, match="Unhandled"):
        await invoker.invoke("stackci-builder", {})


@pytest.mark.asyncio
async def test_codepipeline_repo_info_and_revision() -> None:
    client = MagicMock()
    client.get_pipeline.return_value = {
        "pipeline": {
            "stages": [
                {
                    "name": "Source",
                    "actions": [{"configuration": {"Owner": "acme", "Repo": "widgets"}}],
                },
                {"name": "Build", "actions": []},
            ]
        }
    }
    client.get_pipeline_execution.return_value = {
        "pipelineExecution": {"artifactRevisions": [{"revisionId": "abc123"}]},
    }
    manager = CodePipelineManager(REGION, client=client)

    assert await manager.get_repo_info("widgets-pipeline") == ("acme", "widgets")
    assert await manager.get_revision("widgets-pipeline", "exec-1") == "abc123"
    client.get_pipeline_execution.assert_called_once_with(
        pipelineName="widgets-pipeline", pipelineExecutionId="exec-1",
    )


@pytest.mark.asyncio
async def test_codepipeline_missing_source_stage() -> None:
    client = MagicMock()
    client.get_pipeline.return_value = {"pipeline": {"stages": [{"name": "Build"}]}}
    manager = CodePipelineManager(REGION, client=client)

    with pytest.raises(PipelineLookupError):
        await manager.get_repo_info("widgets-pipeline")
