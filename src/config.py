import os
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL = "redis://localhost:6379"
DEFAULT_RESULTS_DIR = "results"


@dataclass(frozen=True)
class Settings:
    github_token: Optional[str]
    redis_url: str = DEFAULT_REDIS_URL
    results_dir: str = DEFAULT_RESULTS_DIR
    rate_limit_floor: int = 10
    rate_limit_backoff_seconds: int = 60
    rate_limit_max_retries: int = 5

    def require_github_token(self) -> str:
        if not self.github_token:
            raise ConfigurationError(
                "GitHub token not provided. Set the GITHUB_TOKEN environment variable."
            )
        return self.github_token


def _get_env(*names: str, default: Optional[str] = None) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


def _get_int(name: str, default: int) -> int:
    """Reads an integer env variable, falling back to the default on bad input"""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {name} env var {raw!r}, using default {default}")
        return default


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Loads settings from the environment, after reading a .env file if present"""

    load_dotenv(env_file)

    return Settings(
        github_token=_get_env("GITHUB_TOKEN", "githubtoken"),
        redis_url=_get_env("REDIS_URL", "redisurl", default=DEFAULT_REDIS_URL),
        results_dir=_get_env("RESULTS_DIR", default=DEFAULT_RESULTS_DIR),
        rate_limit_floor=_get_int("RATE_LIMIT_FLOOR", 10),
        rate_limit_backoff_seconds=_get_int("RATE_LIMIT_BACKOFF_SECONDS", 60),
        rate_limit_max_retries=_get_int("RATE_LIMIT_MAX_RETRIES", 5),
    )
