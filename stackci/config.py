"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable loading and sensible defaults."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = "stackci"
    debug: bool = False
    log_level: str = "INFO"

    # Webhook listener
    github_webhook_secret: str = "dev-secret"

    # Source host
    github_token_key: str = "stackci-github-token"
    github_api_url: str = "https://api.github.com"
    status_context: str = "build/prep"

    # AWS wiring (empty region keeps the in-memory doubles in place)
    aws_region: str = ""
    event_table: str = ""
    artifact_store: str = ""

    # Timeout-continuation
    execution_timeout: int = 300
    deadline_ratio: float = 0.9
    poll_interval: float = 1.0
    cancel_grace: float = 2.0
    # Lambda rejects asynchronous event payloads over 256 KiB
    continuation_payload_limit: int = 240_000


settings = Settings()
