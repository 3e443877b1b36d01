"""Tests for the external engine runner."""
from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from omr_worker.core.stage_result import DegradationReason
from omr_worker.services.engines import (
    EngineError,
    EngineFailedError,
    EngineOutputMissingError,
    EngineTimeoutError,
    EngineUnavailableError,
    ExternalEngine,
    audiveris_argv,
    build_omr_engine,
    build_render_engine,
    degradation_reason,
    musescore_argv,
)


def _engine(executable: str, timeout: float = 5.0, **kwargs) -> ExternalEngine:
    return ExternalEngine(
        name="fake",
        executable=executable,
        build_argv=lambda i, o: [str(i), str(o)],
        timeout=timeout,
        **kwargs,
    )


class TestAvailability:
    def test_missing_absolute_path(self, tmp_path: Path) -> None:
        assert not _engine(str(tmp_path / "nope")).is_available()

    def test_non_executable_file(self, tmp_path: Path) -> None:
        path = tmp_path / "plain"
        path.write_text("#!/bin/sh\n")
        assert not _engine(str(path)).is_available()

    def test_executable_script(self, make_script) -> None:
        assert _engine(str(make_script("ok", "exit 0\n"))).is_available()

    def test_bare_name_resolved_on_path(self) -> None:
        assert _engine("sh").is_available()
        assert not _engine("definitely-not-a-real-engine-xyz").is_available()

    def test_empty_executable(self) -> None:
        assert not _engine("").is_available()


class TestRun:
    async def test_success_returns_output(self, make_script, tmp_path: Path) -> None:
        script = make_script("writer", 'printf done > "$2"\n')
        out = tmp_path / "out.txt"
        produced = await _engine(str(script)).run(tmp_path / "in", out)
        assert produced == out
        assert out.read_text() == "done"

    async def test_unavailable(self, tmp_path: Path) -> None:
        with pytest.raises(EngineUnavailableError):
            await _engine(str(tmp_path / "nope")).run(tmp_path / "in", tmp_path / "out")

    async def test_non_zero_exit(self, make_script, tmp_path: Path) -> None:
        script = make_script("fails", "echo boom >&2\nexit 3\n")
        with pytest.raises(EngineFailedError) as exc:
            await _engine(str(script)).run(tmp_path / "in", tmp_path / "out")
        assert exc.value.returncode == 3

    async def test_timeout(self, make_script, tmp_path: Path) -> None:
        script = make_script("slow", "exec sleep 10\n")
        with pytest.raises(EngineTimeoutError):
            await _engine(str(script), timeout=0.3).run(tmp_path / "in", tmp_path / "out")

    async def test_cancellation_kills_process(self, make_script, tmp_path: Path) -> None:
        pid_file = tmp_path / "engine.pid"
        script = make_script("slow", f'echo $$ > "{pid_file}"\nexec sleep 30\n')
        task = asyncio.create_task(
            _engine(str(script), timeout=60).run(tmp_path / "in", tmp_path / "out")
        )
        for _ in range(100):
            if pid_file.exists() and pid_file.read_text().strip():
                break
            await asyncio.sleep(0.05)
        pid = int(pid_file.read_text())

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)

    async def test_clean_exit_without_output(self, make_script, tmp_path: Path) -> None:
        script = make_script("lazy", "exit 0\n")
        with pytest.raises(EngineOutputMissingError):
            await _engine(str(script)).run(tmp_path / "in", tmp_path / "out")

    async def test_alternate_output_accepted(self, make_script, tmp_path: Path) -> None:
        script = make_script("paged", 'printf page > "${3%.png}-1.png"\n')
        engine = build_render_engine(str(script), timeout=5)
        produced = await engine.run(tmp_path / "in.musicxml", tmp_path / "out.png")
        assert produced == tmp_path / "out-1.png"

    async def test_runs_in_cwd(self, make_script, tmp_path: Path) -> None:
        script = make_script("pwd", 'pwd > "$2"\n')
        workdir = tmp_path / "work"
        workdir.mkdir()
        out = tmp_path / "cwd.txt"
        await _engine(str(script)).run(tmp_path / "in", out, cwd=workdir)
        assert Path(out.read_text().strip()).resolve() == workdir.resolve()


def test_command_lines() -> None:
    i, o = Path("/w/original.pdf"), Path("/w/score.musicxml")
    assert audiveris_argv(i, o) == ["-batch", "-export", "/w/score.musicxml", "/w/original.pdf"]
    assert musescore_argv(o, Path("/w/m.png")) == ["/w/score.musicxml", "-o", "/w/m.png"]


def test_factories_carry_timeouts() -> None:
    assert build_omr_engine("/x/audiveris", 120).timeout == 120
    render = build_render_engine("mscore", 30)
    assert render.name == "musescore"
    assert render.alternate_outputs is not None


@pytest.mark.parametrize(
    ("exc", "reason"),
    [
        (EngineUnavailableError("x", "missing"), DegradationReason.ENGINE_UNAVAILABLE),
        (EngineTimeoutError("x", "slow"), DegradationReason.ENGINE_TIMEOUT),
        (EngineOutputMissingError("x", "nothing"), DegradationReason.OUTPUT_MISSING),
        (EngineFailedError("x", "exit 2", 2), DegradationReason.ENGINE_FAILED),
        (EngineError("x", "other"), DegradationReason.ENGINE_FAILED),
    ],
)
def test_degradation_reason(exc: EngineError, reason: DegradationReason) -> None:
    assert degradation_reason(exc) is reason
