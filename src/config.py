from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Target list (YAML, absolute or relative to CWD)
    targets_file: str = "targets.yaml"

    # Check cadence — one interval for every target.
    # check_interval_seconds / timeout_seconds in targets.yaml win when present.
    check_interval_seconds: int = 30
    timeout_seconds: float = 5.0

    # System ping utility (must accept -c/-W or -n/-w)
    ping_command: str = "ping"

    # How long remove/shutdown waits for a supervisor thread to exit
    shutdown_grace_seconds: float = 2.0

    # API
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"


settings = Settings()
