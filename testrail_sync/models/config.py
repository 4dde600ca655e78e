"""Configuration model for the TestRail bridge."""

from __future__ import annotations

import json
import os
from pathlib import Path

from pydantic import BaseModel, field_validator


class BridgeConfig(BaseModel):
    # Connection
    base_url: str
    username: str
    api_key: str
    timeout_seconds: float = 30.0

    # Case resolution
    default_section_id: int = 1
    case_page_limit: int = 1000
    max_parallel_resolutions: int = 5

    # Result submission
    batch_size: int = 50
    max_parallel_batches: int = 3

    # Runs and history
    run_name_prefix: str = "Automated"
    run_history_limit: int = 50

    log_level: str = "INFO"

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("api_key", mode="before")
    @classmethod
    def resolve_env_api_key(cls, v: str) -> str:
        if isinstance(v, str) and v.startswith("env:"):
            env_var = v[4:]
            resolved = os.environ.get(env_var)
            if resolved is None:
                raise ValueError(f"Environment variable '{env_var}' not set")
            return resolved
        return v

    @field_validator("batch_size", "max_parallel_batches", "max_parallel_resolutions")
    @classmethod
    def positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @classmethod
    def load(cls, path: str | Path) -> "BridgeConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        """Build a config from TESTRAIL_URL, TESTRAIL_USERNAME and TESTRAIL_API_KEY."""
        missing = [
            name for name in ("TESTRAIL_URL", "TESTRAIL_USERNAME", "TESTRAIL_API_KEY")
            if not os.environ.get(name)
        ]
        if missing:
            raise EnvironmentError(
                f"Missing environment variables: {', '.join(missing)}"
            )
        return cls(
            base_url=os.environ["TESTRAIL_URL"],
            username=os.environ["TESTRAIL_USERNAME"],
            api_key=os.environ["TESTRAIL_API_KEY"],
        )
