"""
Engine configuration, read from ``STACKDEPLOY_*`` variables and an optional .env file.
"""
import os
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from ..exceptions import ValidationError

ENV_PREFIX = "STACKDEPLOY_"


class EngineConfig(BaseModel):
    """
    Settings shared by the platform client, the orchestrator and the CLI.
    """
    docker_host: Optional[str] = None
    timeout: float = Field(default=60.0, gt=0)
    retries: int = Field(default=3, ge=1)
    retry_wait: float = Field(default=0.5, ge=0)
    teardown_workers: int = Field(default=8, ge=1)
    lock_timeout: float = Field(default=30.0, gt=0)
    pull_images: bool = True
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level '{value}'")
        return level


def load_engine_config(env_file: Optional[str] = None,
                       environ: Optional[Mapping[str, str]] = None) -> EngineConfig:
    """
    Builds the engine configuration.

    Values from ``env_file`` are read first; the process environment overrides
    them. Only ``STACKDEPLOY_``-prefixed variables are considered, plus
    ``DOCKER_SOCKET`` as a fallback for the daemon address.

    :param env_file: Optional path to a .env file.
    :param environ: Environment to read instead of ``os.environ``.
    :return: Validated configuration.
    :raises ValidationError: If a value cannot be converted.
    """
    merged: Dict[str, Optional[str]] = {}
    if env_file:
        if not os.path.exists(env_file):
            raise ValidationError(f"Environment file not found: {env_file}")
        merged.update(dotenv_values(env_file))
    merged.update(os.environ if environ is None else environ)

    values = {
        key[len(ENV_PREFIX):].lower(): value
        for key, value in merged.items()
        if key.startswith(ENV_PREFIX) and value not in (None, "")
    }
    if "docker_host" not in values and merged.get("DOCKER_SOCKET"):
        values["docker_host"] = f"unix://{merged['DOCKER_SOCKET']}"

    try:
        return EngineConfig(**values)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid engine configuration",
            details={"errors": [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]},
            suggestions=[f"Check the {ENV_PREFIX}* variables"],
        ) from e
