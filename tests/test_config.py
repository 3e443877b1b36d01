"""
Tests for application config (Settings).

Ensures settings load from the environment and defaults are sane.
"""
from __future__ import annotations

from pathlib import Path

import pytest

from omr_worker.config import DEFAULT_MEASURE_COUNT, Settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """Defaults match the documented deployment."""
    monkeypatch.chdir(Path(__file__).parent)
    s = Settings()
    assert s.port == 3001
    assert s.audiveris_path == "/usr/local/bin/audiveris"
    assert s.musescore_path == "mscore"
    assert s.cleanup_grace_seconds == 60
    assert s.default_measure_count == DEFAULT_MEASURE_COUNT == 8
    assert s.max_concurrent_sessions == 0
    assert s.cors_origins == []


def test_env_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    """OMR_WORKER_* variables override defaults."""
    monkeypatch.setenv("OMR_WORKER_API_KEY", "secret")
    monkeypatch.setenv("OMR_WORKER_PORT", "8080")
    monkeypatch.setenv("OMR_WORKER_SCRATCH_ROOT", "/var/tmp/omr")
    monkeypatch.setenv("OMR_WORKER_CORS_ORIGINS", '["https://app.example"]')
    s = Settings()
    assert s.api_key == "secret"
    assert s.port == 8080
    assert s.scratch_root == Path("/var/tmp/omr")
    assert s.cors_origins == ["https://app.example"]


def test_app_version_is_set() -> None:
    assert Settings().app_version


def test_cors_wildcard_warns(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("WARNING", logger="omr_worker.config"):
        Settings(cors_origins=["*"])
    assert "CORS allows all origins" in caplog.text
