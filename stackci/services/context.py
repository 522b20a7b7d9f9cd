"""Build context assembly: templates and parameters for one push.

A repository opts into the builder by committing, at its root:

- ``pipeline.json`` -- the CloudFormation template of the CI/CD pipeline
  stack (required)
- ``parameters.json`` -- stack parameters keyed by ``dev``, ``master`` and
  ``release`` (required)
- ``deploy.json`` -- a deployment stack template that the pipeline itself
  deploys (optional; published to the artifact store)

The context is assembled fresh for every attempt; templates may change from
one push to the next.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog
from pydantic import ValidationError

from stackci.schemas.parameters import Parameter, ParameterManifest
from stackci.schemas.webhooks import PushEvent
from stackci.services.artifacts import ArtifactStore
from stackci.services.github_client import RepoNotFoundError, SourceRepository
from stackci.services.refs import DeploymentClass, classify

logger = structlog.get_logger()

PIPELINE_TEMPLATE = "pipeline.json"
PARAMETER_MANIFEST = "parameters.json"
DEPLOY_TEMPLATE = "deploy.json"


class TemplateFetchError(Exception):
    """A required file could not be read from the repository."""


class ParameterParseError(Exception):
    """``parameters.json`` is not a valid parameter manifest."""


@dataclass
class BuildContext:
    """Everything needed to create or update one pipeline stack."""

    pipeline_template: bytes
    parameters: list[Parameter] = field(default_factory=list)
    deploy_template: bytes | None = None


def select_parameters(manifest: ParameterManifest, deployment_class: DeploymentClass) -> list[Parameter]:
    """Pick the parameter list for *deployment_class*, defaulting to ``dev``."""
    if deployment_class is DeploymentClass.MASTER and manifest.master is not None:
        return list(manifest.master)
    if deployment_class is DeploymentClass.RELEASE and manifest.release is not None:
        return list(manifest.release)
    return list(manifest.development)


def parse_manifest(raw: bytes) -> ParameterManifest:
    """Parse ``parameters.json``.

    Raises:
        ParameterParseError: If the content is not JSON of the expected shape.
    """
    try:
        return ParameterManifest.model_validate_json(raw)
    except ValidationError as exc:
        raise ParameterParseError(f"invalid {PARAMETER_MANIFEST}: {exc}") from exc


async def _fetch_required(repository: SourceRepository, ref: str, path: str) -> bytes:
    try:
        return await repository.get(ref, path)
    except Exception as exc:
        raise TemplateFetchError(f"unable to read {path} at {ref}: {exc}") from exc


async def assemble(event: PushEvent, repository: SourceRepository) -> BuildContext:
    """Fetch templates and select parameters for *event*.

    Raises:
        TemplateFetchError: A required file is missing or unreadable, or the
            optional deploy template failed with anything other than 404.
        ParameterParseError: ``parameters.json`` is malformed.
    """
    pipeline_template = await _fetch_required(repository, event.ref, PIPELINE_TEMPLATE)
    manifest_raw = await _fetch_required(repository, event.ref, PARAMETER_MANIFEST)

    try:
        deploy_template: bytes | None = await repository.get(event.ref, DEPLOY_TEMPLATE)
    except RepoNotFoundError:
        deploy_template = None
    except Exception as exc:
        raise TemplateFetchError(f"unable to read {DEPLOY_TEMPLATE} at {event.ref}: {exc}") from exc

    deployment_class, _ = classify(event.ref)
    parameters = select_parameters(parse_manifest(manifest_raw), deployment_class)

    logger.debug(
        "build_context_assembled",
        deployment_class=deployment_class.value,
        parameters=len(parameters),
        has_deploy_template=deploy_template is not None,
    )
    return BuildContext(
        pipeline_template=pipeline_template,
        parameters=parameters,
        deploy_template=deploy_template,
    )


def deploy_template_key(event: PushEvent) -> str:
    return f"deploy/{event.owner}/{event.repo_name}/{event.after}/{DEPLOY_TEMPLATE}"


async def publish_deploy_template(
    context: BuildContext,
    event: PushEvent,
    artifacts: ArtifactStore,
) -> BuildContext:
    """Upload the deploy template, if any, and point the stack at it.

    Returns a new context with ``DeployStackLocation`` appended; the input
    context is returned unchanged when there is no deploy template.
    """
    if context.deploy_template is None:
        return context

    logger.info("deploy_template_upload", key=deploy_template_key(event))
    location = await artifacts.put(deploy_template_key(event), context.deploy_template)
    return BuildContext(
        pipeline_template=context.pipeline_template,
        parameters=[*context.parameters, Parameter(key="DeployStackLocation", value=location)],
        deploy_template=context.deploy_template,
    )
