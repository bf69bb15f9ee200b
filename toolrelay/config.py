"""
Configuration
=============

Settings read from environment variables and an optional ``.env`` file in
the working directory. Variables set in the environment win over ``.env``;
empty values fall back to the defaults.

Usage:
    from toolrelay.config import load_settings

    settings = load_settings()
    print(settings.ai_provider, settings.max_recursions)
"""

from __future__ import annotations

from typing import Literal, Mapping, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from toolrelay.errors import ConfigurationError


class Settings(BaseSettings):
    """Runtime settings of the engine and its HTTP server."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
        populate_by_name=True,
    )

    ai_provider: Literal["anthropic", "openai", "bedrock"] = Field(
        default="bedrock", validation_alias="AI_PROVIDER"
    )
    ai_model: Optional[str] = Field(default=None, validation_alias="AI_MODEL")
    aws_region: Optional[str] = Field(default=None, validation_alias="AWS_REGION")

    max_recursions: int = Field(default=10, ge=1, validation_alias="TOOLRELAY_MAX_RECURSIONS")
    model_timeout: float = Field(default=60.0, gt=0, validation_alias="TOOLRELAY_MODEL_TIMEOUT")
    tool_timeout: float = Field(default=30.0, gt=0, validation_alias="TOOLRELAY_TOOL_TIMEOUT")
    credential_ttl: float = Field(
        default=3600.0, gt=0, validation_alias="TOOLRELAY_CREDENTIAL_TTL"
    )
    max_tokens: int = Field(default=4096, ge=1, validation_alias="TOOLRELAY_MAX_TOKENS")

    log_level: str = Field(default="INFO", validation_alias="TOOLRELAY_LOG_LEVEL")
    log_requests: bool = Field(default=False, validation_alias="TOOLRELAY_LOG_REQUESTS")

    integrations_dir: Optional[str] = Field(default=None, validation_alias="INTEGRATIONS_DIR")

    oauth_generator: Optional[str] = Field(default=None, validation_alias="OAUTH_GENERATOR")
    oauth_handler: Optional[str] = Field(default=None, validation_alias="OAUTH_HANDLER")
    stage: Optional[str] = Field(default=None, validation_alias="STAGE")


def load_settings(environ: Mapping[str, str] = None, dotenv: bool = True) -> Settings:
    """
    Build Settings from the environment.

    Args:
        environ: Variables to read instead of the process environment. When
            given, neither ``os.environ`` nor ``.env`` is consulted.
        dotenv: Also read ``.env`` from the working directory.

    Raises:
        ConfigurationError: A variable has an invalid value.
    """
    try:
        if environ is None:
            return Settings(_env_file=".env" if dotenv else None)
        # model_validate skips the settings sources and reads only ``values``.
        values = {name: value for name, value in environ.items() if value != ""}
        return Settings.model_validate(values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e
