"""Cold-start setup shared by the Lambda entry points."""

from stackci.config import settings
from stackci.dependencies import init_production_deps
from stackci.logging_config import configure_logging

_initialized = False


def bootstrap() -> None:
    """Configure logging and AWS collaborators once per execution environment."""
    global _initialized  # noqa: PLW0603
    if _initialized:
        return

    configure_logging(json_logs=not settings.debug, log_level=settings.log_level)
    if settings.aws_region:
        init_production_deps(
            aws_region=settings.aws_region,
            event_table=settings.event_table,
            artifact_store=settings.artifact_store,
        )
    _initialized = True
