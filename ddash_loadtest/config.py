"""Harness configuration via environment variables.

Every value has a default so the harness runs unconfigured against a local
ddash instance. Variable names match the ones the load-test scripts have
always read (``BASE_URL``, ``INGEST_RPS_1``, ``MIXED_DURATION``, ...).
"""

from typing import Any

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings

from ddash_loadtest.errors import ConfigurationError


class Settings(BaseSettings):
    base_url: str = "http://localhost:19090"
    auth_token: str = "loadtest-token-01"
    webhook_secret: str = "loadtest-secret-01"

    log_level: str = "INFO"
    log_format: str = "console"
    request_timeout_seconds: float = 60.0
    seed: int | None = None

    # ingest: ramping arrival rate
    ingest_start_rps: int = 10
    pre_vus: int = 20
    max_vus: int = 200
    ingest_rps_1: int = 50
    ingest_stage_1: str = "2m"
    ingest_rps_2: int = 100
    ingest_stage_2: str = "3m"
    ingest_rps_3: int = 200
    ingest_stage_3: str = "3m"
    ingest_include_custom_types: bool = False

    # read: ramping VUs
    read_start_vus: int = 5
    read_vus_1: int = 40
    read_stage_1: str = "2m"
    read_vus_2: int = 100
    read_stage_2: str = "3m"
    read_stage_3: str = "2m"

    # mixed: constant arrival rate + constant VUs
    mixed_ingest_rps: int = 40
    mixed_duration: str = "8m"
    mixed_ingest_pre_vus: int = 20
    mixed_ingest_max_vus: int = 200
    mixed_read_vus: int = 80

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @field_validator("base_url", "auth_token", "webhook_secret")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        if value not in ("console", "json"):
            raise ValueError("must be 'console' or 'json'")
        return value


def load_settings(**overrides: Any) -> Settings:
    """Build settings from the environment plus explicit overrides.

    Raises:
        ConfigurationError: If any value fails validation.
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
