"""
OMR Worker Configuration

Environment-based configuration for the OMR worker service. Settings are
built once at process start; the HTTP layer hands the values to the pipeline
explicitly and no stage reads the environment on its own.
"""
import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _app_version_from_package() -> str:
    """Read version from pyproject.toml — the single source of truth."""
    try:
        from importlib.metadata import version
        return version("omr-worker")
    except Exception:
        pass
    # Fallback: parse pyproject.toml directly (dev / non-installed mode)
    try:
        import re
        pyproject = Path(__file__).resolve().parent.parent / "pyproject.toml"
        match = re.search(r'^version\s*=\s*"([^"]+)"', pyproject.read_text(), re.MULTILINE)
        if match:
            return match.group(1)
    except Exception:
        pass
    return "0.0.0-unknown"


# Used when metadata extraction fails outright and the score length is unknown.
DEFAULT_MEASURE_COUNT: int = 8

# Default tempo (BPM) reported when the notation document carries none.
DEFAULT_TEMPO: int = 120


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service Info
    app_name: str = "OMR Worker"
    app_version: str = _app_version_from_package()
    debug: bool = False

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 3001

    # Shared secret expected as "Authorization: Bearer <api_key>"
    api_key: str = "development-key"

    # External engines
    audiveris_path: str = "/usr/local/bin/audiveris"
    musescore_path: str = "mscore"
    omr_timeout_seconds: float = 120.0
    render_timeout_seconds: float = 30.0
    render_max_concurrent: int = 2  # per-session parallel MuseScore invocations

    # Scratch storage: one directory per session under scratch_root
    scratch_root: Path = Path("temp")
    cleanup_grace_seconds: float = 60.0

    # Pipeline behaviour
    default_measure_count: int = DEFAULT_MEASURE_COUNT
    slice_measure_groups: bool = True

    # Admission control and request limits
    max_concurrent_sessions: int = 0  # 0 = unlimited
    max_upload_bytes: int = 50 * 1024 * 1024
    process_rate_limit: str = "20/minute"
    rate_limit_enabled: bool = True

    # CORS Settings (fail closed: no default origins)
    cors_origins: list[str] = []

    @model_validator(mode="after")
    def _warn_cors_wildcard_in_production(self) -> "Settings":
        """Warn when CORS allows all origins in non-debug (production) mode."""
        if not self.debug and self.cors_origins and "*" in self.cors_origins:
            logging.getLogger(__name__).warning(
                "CORS allows all origins (*) with OMR_WORKER_DEBUG=false. "
                "Set OMR_WORKER_CORS_ORIGINS to exact origins in production."
            )
        return self

    model_config = SettingsConfigDict(
        env_prefix="OMR_WORKER_",
        env_file=".env",
        env_file_encoding="utf-8",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience access
settings = get_settings()
