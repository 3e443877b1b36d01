"""External engine runner — Audiveris (OMR) and MuseScore (rendering).

Both engines are opaque command-line tools with the same contract:
``(input_path, output_path) -> exit code``, where success means a zero exit
*and* the expected output file on disk. This module wraps that contract in
one async call that either returns the output path or raises an
``EngineError`` subclass describing what went wrong. Callers treat every
subclass the same way (fall back to a placeholder); the distinction only
feeds logs and degradation reasons.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from omr_worker.core.stage_result import DegradationReason

logger = logging.getLogger(__name__)

# Builds argv (without the executable) from (input_path, output_path).
ArgvBuilder = Callable[[Path, Path], Sequence[str]]


class EngineError(Exception):
    """Base class for external engine failures."""

    def __init__(self, engine: str, message: str):
        self.engine = engine
        super().__init__(f"{engine}: {message}")


class EngineUnavailableError(EngineError):
    """The engine executable is missing or not executable."""


class EngineTimeoutError(EngineError):
    """The engine did not finish within its time budget."""


class EngineFailedError(EngineError):
    """The engine exited non-zero or could not be started."""

    def __init__(self, engine: str, message: str, returncode: int | None = None):
        self.returncode = returncode
        super().__init__(engine, message)


class EngineOutputMissingError(EngineError):
    """The engine exited cleanly but did not write its output file."""


def degradation_reason(exc: EngineError) -> DegradationReason:
    """Map an engine failure to the degradation reason a stage reports."""
    if isinstance(exc, EngineUnavailableError):
        return DegradationReason.ENGINE_UNAVAILABLE
    if isinstance(exc, EngineTimeoutError):
        return DegradationReason.ENGINE_TIMEOUT
    if isinstance(exc, EngineOutputMissingError):
        return DegradationReason.OUTPUT_MISSING
    return DegradationReason.ENGINE_FAILED


async def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill ``proc`` if it is still running, then reap it."""
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass  # exited between the check and the signal
    await proc.wait()


def audiveris_argv(input_path: Path, output_path: Path) -> list[str]:
    """``audiveris -batch -export <output> <input>``."""
    return ["-batch", "-export", str(output_path), str(input_path)]


def musescore_argv(input_path: Path, output_path: Path) -> list[str]:
    """``mscore <input> -o <output.png>``."""
    return [str(input_path), "-o", str(output_path)]


def musescore_page_outputs(output_path: Path) -> list[Path]:
    """MuseScore suffixes PNG exports with a page number (``out-1.png``)."""
    return [output_path.with_name(f"{output_path.stem}-1{output_path.suffix}")]


@dataclass(frozen=True)
class ExternalEngine:
    """One external command-line engine.

    Attributes:
        name: Label used in logs and errors.
        executable: Absolute path or bare command name (resolved on ``PATH``).
        build_argv: Maps ``(input, output)`` to the argument list.
        timeout: Upper bound in seconds for a single invocation.
        alternate_outputs: Optional function listing other file names the
            engine may have written instead of ``output_path``.
    """

    name: str
    executable: str
    build_argv: ArgvBuilder
    timeout: float
    alternate_outputs: Callable[[Path], list[Path]] | None = None

    def resolve(self) -> str | None:
        """Return the runnable executable path, or None when unavailable."""
        if not self.executable:
            return None
        if os.sep in self.executable:
            path = Path(self.executable)
            if path.is_file() and os.access(path, os.X_OK):
                return str(path)
            return None
        return shutil.which(self.executable)

    def is_available(self) -> bool:
        return self.resolve() is not None

    async def run(
        self, input_path: Path, output_path: Path, cwd: Path | None = None
    ) -> Path:
        """Run the engine on ``input_path`` and return the produced output file.

        Raises:
            EngineUnavailableError: Executable missing.
            EngineTimeoutError: Process exceeded ``timeout`` (it is killed).
            EngineFailedError: Non-zero exit or the process could not start.
            EngineOutputMissingError: Clean exit but no output file.
        """
        exe = self.resolve()
        if exe is None:
            raise EngineUnavailableError(self.name, f"not found at {self.executable}")

        argv = [exe, *self.build_argv(input_path, output_path)]
        logger.debug("Executing %s: %s", self.name, " ".join(argv))
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd else None,
            )
        except OSError as exc:
            raise EngineFailedError(self.name, f"could not start: {exc}") from exc

        try:
            _stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError as exc:
            await _kill(proc)
            raise EngineTimeoutError(
                self.name, f"timed out after {self.timeout:g}s"
            ) from exc
        except BaseException:
            # Cancelled: the process must not outlive the caller's workspace.
            await _kill(proc)
            raise

        if stderr:
            logger.debug("%s stderr: %s", self.name, stderr.decode(errors="replace").strip())

        if proc.returncode != 0:
            raise EngineFailedError(
                self.name, f"exited with code {proc.returncode}", proc.returncode
            )

        if output_path.exists():
            return output_path
        for candidate in self.alternate_outputs(output_path) if self.alternate_outputs else []:
            if candidate.exists():
                return candidate
        raise EngineOutputMissingError(self.name, f"did not produce {output_path.name}")


def build_omr_engine(executable: str, timeout: float) -> ExternalEngine:
    """Audiveris, run in batch mode with MusicXML export."""
    return ExternalEngine(
        name="audiveris",
        executable=executable,
        build_argv=audiveris_argv,
        timeout=timeout,
    )


def build_render_engine(executable: str, timeout: float) -> ExternalEngine:
    """MuseScore CLI exporting PNG."""
    return ExternalEngine(
        name="musescore",
        executable=executable,
        build_argv=musescore_argv,
        timeout=timeout,
        alternate_outputs=musescore_page_outputs,
    )
