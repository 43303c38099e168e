"""Runtime configuration for the Prayer Companion backend.

All settings come from environment variables (optionally via a ``.env``
file). Settings are read once and cached for the life of the process.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:3001",
    "http://localhost:5173",
)


def _env_int(name: str, default: int, minimum: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"[CONFIG] Ignoring non-integer {name}={raw!r}, using {default}")
        return default
    if minimum is not None and value < minimum:
        logger.warning(f"[CONFIG] {name}={value} is below {minimum}, using {default}")
        return default
    return value


def _env_float(name: str, default: float, minimum: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"[CONFIG] Ignoring non-numeric {name}={raw!r}, using {default}")
        return default
    if minimum is not None and value < minimum:
        logger.warning(f"[CONFIG] {name}={value} is below {minimum}, using {default}")
        return default
    return value


@dataclass(frozen=True)
class Settings:
    """Central configuration loaded from the environment."""

    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    groq_api_key: Optional[str] = None
    groq_model: str = "llama-3.3-70b-versatile"
    generation_timeout_seconds: float = 45.0

    cache_backend: str = "file"
    cache_path: str = os.path.join(tempfile.gettempdir(), "prayer_cache")
    redis_url: str = "redis://localhost:6379"
    cache_max_entries: int = 50
    cache_ttl_seconds: int = 24 * 60 * 60

    fetch_max_attempts: int = 3
    fetch_base_delay: float = 1.0
    fetch_max_delay: float = 10.0

    community_data_dir: str = tempfile.gettempdir()
    cors_allow_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("CORS_ALLOW_ORIGINS")
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            gemini_model=os.getenv("GEMINI_MODEL", cls.gemini_model),
            groq_api_key=os.getenv("GROQ_API_KEY") or None,
            groq_model=os.getenv("GROQ_MODEL", cls.groq_model),
            generation_timeout_seconds=_env_float(
                "GENERATION_TIMEOUT_SECONDS", cls.generation_timeout_seconds, minimum=1.0
            ),
            cache_backend=os.getenv("PRAYER_CACHE_BACKEND", cls.cache_backend).lower(),
            cache_path=os.getenv("PRAYER_CACHE_PATH", cls.cache_path),
            redis_url=os.getenv("REDIS_URL", cls.redis_url),
            cache_max_entries=_env_int("PRAYER_CACHE_MAX_ENTRIES", cls.cache_max_entries, minimum=1),
            cache_ttl_seconds=_env_int("PRAYER_CACHE_TTL_SECONDS", cls.cache_ttl_seconds, minimum=1),
            fetch_max_attempts=_env_int("FETCH_MAX_ATTEMPTS", cls.fetch_max_attempts, minimum=1),
            fetch_base_delay=_env_float("FETCH_BASE_DELAY", cls.fetch_base_delay, minimum=0.0),
            fetch_max_delay=_env_float("FETCH_MAX_DELAY", cls.fetch_max_delay, minimum=0.0),
            community_data_dir=os.getenv("COMMUNITY_DATA_DIR", cls.community_data_dir),
            cors_allow_origins=(
                tuple(o.strip() for o in origins.split(",") if o.strip())
                if origins
                else DEFAULT_CORS_ORIGINS
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    try:
        load_dotenv()
    except Exception:
        pass  # Python 3.14+ compat
    return Settings.from_env()
