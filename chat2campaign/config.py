"""Application configuration loaded from environment variables."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "chat2campaign"
    debug: bool = False
    log_level: str = "INFO"

    # Connection hub
    heartbeat_interval_ms: int = 10_000
    connection_timeout_ms: int = 30_000
    default_simulation_interval_ms: int = 3_000
    default_simulation_duration_ms: int = 60_000
    global_stream_interval_ms: int = 5_000
    stream_mode: Literal["global", "per_client"] = "global"
    shutdown_grace_ms: int = 5_000
    close_timeout_ms: int = 1_000

    # Upstream API gateway
    api_max_failures: int = 3
    api_failure_reset_ms: int = 300_000
    api_retry_attempts: int = 2
    api_retry_delay_ms: int = 1_000
    api_timeout_ms: int = 30_000

    # Decision engine
    engine_version: str = "v1.0-decision-engine"
    generation_timeout_ms: int = 10_000
    ai_enhancement_enabled: bool = True
    mock_seed: Optional[int] = None

    model_config = {"env_prefix": "C2C_"}


settings = Settings()
