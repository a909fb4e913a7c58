"""Worker process settings loaded from the environment."""

import os
from typing import Optional

from pydantic import BaseModel, Field

from .pool import DEFAULT_POOL_SIZE


class Settings(BaseModel):
    """Server-level settings; keyword arguments take precedence over the environment."""

    host: str = Field(default="[::]")
    port: int = Field(default=50052)
    rpc_threads: int = Field(default=10)

    pool_size: int = Field(default=DEFAULT_POOL_SIZE, ge=1)
    # 0 keeps the executor's unbounded backlog
    max_pending: int = Field(default=0, ge=0)

    health_port: Optional[int] = Field(default=None)
    talkback_timeout: float = Field(default=10.0)
    bluesky_refresh_on_expiry: bool = Field(default=False)

    log_level: str = Field(default="INFO")

    def __init__(self, **kwargs):
        env_mapping = {
            "WORKER_HOST": "host",
            "WORKER_PORT": "port",
            "WORKER_RPC_THREADS": "rpc_threads",
            "WORKER_POOL_SIZE": "pool_size",
            "WORKER_MAX_PENDING": "max_pending",
            "HEALTH_PORT": "health_port",
            "TALKBACK_TIMEOUT": "talkback_timeout",
            "BLUESKY_REFRESH_ON_EXPIRY": "bluesky_refresh_on_expiry",
            "LOG_LEVEL": "log_level",
        }

        env_values = {}
        for env_var, field_name in env_mapping.items():
            value = os.environ.get(env_var)
            if value is None or value == "":
                continue
            if field_name == "bluesky_refresh_on_expiry":
                env_values[field_name] = value.lower() in ("true", "1", "yes", "on")
            else:
                # pydantic coerces numeric strings for the int/float fields
                env_values[field_name] = value

        super().__init__(**{**env_values, **kwargs})

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"
