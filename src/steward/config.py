from __future__ import annotations

import os
from uuid import uuid4

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_instance_id() -> str:
    hostname = os.environ.get("HOSTNAME", os.environ.get("POD_NAME", "unknown"))
    return f"{hostname}-{uuid4().hex[:8]}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STEWARD_", env_file=".env", extra="ignore")

    # Identity used as the campaign value; must be unique across the fleet
    instance_id: str = Field(default_factory=_default_instance_id)

    # Coordination service
    coordination_backend: str = "redis"
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")

    # Duty keys (the only names shared with the coordination service)
    owner_key: str = "/steward/ddl/owner"
    background_owner_key: str = "/steward/ddl/bg/owner"

    # Sessions
    session_ttl: int = 10  # Seconds
    session_retry_interval: float = 0.2  # Seconds between session attempts
    startup_session_retries: int = 3

    # Redis watch polling
    watch_poll_interval: float = 0.5

    # Observability
    log_level: str = "INFO"
    log_json: bool = False
    enable_metrics: bool = True


settings = Settings()
