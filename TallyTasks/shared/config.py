"""
Configuration settings for the TallyTasks API and command line tools
"""

import os
from dataclasses import dataclass, field
from typing import List


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass
class AppConfig:
    """Overall application configuration"""

    redis_url: str = "redis://localhost:6379/0"
    store_backend: str = "redis"  # "redis" or "memory"
    log_level: str = "INFO"
    trash_retention_days: int = 30
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    host: str = "0.0.0.0"
    port: int = 8000


def load_config() -> AppConfig:
    """Build configuration from environment variables"""
    defaults = AppConfig()
    return AppConfig(
        redis_url=os.getenv("REDIS_URL", defaults.redis_url),
        store_backend=os.getenv("TALLY_STORE", defaults.store_backend).strip().lower(),
        log_level=os.getenv("TALLY_LOG_LEVEL", defaults.log_level).strip().upper(),
        trash_retention_days=_env_int("TALLY_TRASH_RETENTION_DAYS", defaults.trash_retention_days),
        cors_origins=_env_list("TALLY_CORS_ORIGINS", defaults.cors_origins),
        host=os.getenv("TALLY_HOST", defaults.host),
        port=_env_int("TALLY_PORT", defaults.port),
    )
