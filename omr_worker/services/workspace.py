"""Session workspace manager.

Each processing session gets a private scratch directory under the
configured root. The manager owns the directory from creation to removal:

- ``acquire()`` creates ``<root>/<session_id>`` with a random UUID token.
- ``release()`` removes it; calling it twice is a no-op.
- ``schedule_release()`` removes it after a grace delay on a tracked
  ``asyncio`` task, so pending removals can be cancelled (and performed
  immediately) when the process shuts down.
- ``sweep_expired()`` deletes orphaned directories left by a previous
  process that died before its timers fired.
"""
from __future__ import annotations

import asyncio
import logging
import shutil
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


class WorkspaceError(Exception):
    """Raised when scratch storage cannot be created or written."""


@dataclass(frozen=True)
class Workspace:
    """Handle to one session's scratch directory.

    Attributes:
        session_id: Unique token naming the directory.
        path: Absolute directory path.
        created_at: Wall-clock creation time (``time.time()``).
    """

    session_id: str
    path: Path
    created_at: float = field(default_factory=time.time)

    def file(self, name: str) -> Path:
        """Return the path of ``name`` inside this workspace."""
        return self.path / name


def new_session_id() -> str:
    """Return a fresh random session token."""
    return str(uuid.uuid4())


def _is_session_id(name: str) -> bool:
    try:
        return str(uuid.UUID(name)) == name
    except ValueError:
        return False


class WorkspaceManager:
    """Creates, tracks and removes per-session scratch directories."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        self._pending: dict[str, asyncio.Task[None]] = {}
        self._pending_workspaces: dict[str, Workspace] = {}
        self._active: set[str] = set()

    def acquire(self, session_id: str | None = None) -> Workspace:
        """Create a fresh, uniquely named directory under the scratch root.

        Raises:
            WorkspaceError: If the root or the session directory cannot be created.
        """
        sid = session_id or new_session_id()
        path = self.root / sid
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            # exist_ok=False: a collision must never hand out a shared directory
            path.mkdir(exist_ok=False)
        except OSError as exc:
            raise WorkspaceError(
                f"Cannot create workspace {path}: {exc}"
            ) from exc
        self._active.add(sid)
        logger.debug("📁 Workspace created: %s", path)
        return Workspace(session_id=sid, path=path)

    def release(self, workspace: Workspace) -> bool:
        """Recursively remove the workspace directory.

        Returns:
            True if a directory was removed, False if it was already gone.
        """
        self._forget(workspace)
        return self._remove(workspace)

    async def release_async(self, workspace: Workspace) -> bool:
        """``release()`` with the directory removal run in a worker thread."""
        self._forget(workspace)
        return await asyncio.to_thread(self._remove, workspace)

    def _forget(self, workspace: Workspace) -> None:
        task = self._pending.pop(workspace.session_id, None)
        self._pending_workspaces.pop(workspace.session_id, None)
        self._active.discard(workspace.session_id)
        if task is not None and not task.done():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            if task is not current:
                task.cancel()

    def _remove(self, workspace: Workspace) -> bool:
        if not workspace.path.exists():
            return False
        try:
            shutil.rmtree(workspace.path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.error(
                "❌ Failed to clean up session %s: %s", workspace.session_id[:8], exc
            )
            return False
        logger.info("🧹 Cleaned up session directory: %s", workspace.session_id[:8])
        return True

    def schedule_release(self, workspace: Workspace, delay: float) -> asyncio.Task[None]:
        """Remove ``workspace`` after ``delay`` seconds on a tracked task.

        Scheduling the same workspace twice returns the already-pending task.
        """
        existing = self._pending.get(workspace.session_id)
        if existing is not None and not existing.done():
            return existing

        async def _release_later() -> None:
            try:
                if delay > 0:
                    await asyncio.sleep(delay)
            except asyncio.CancelledError:
                logger.debug(
                    "Deferred release cancelled for session %s", workspace.session_id[:8]
                )
                raise
            await self.release_async(workspace)

        task = asyncio.create_task(
            _release_later(), name=f"release-{workspace.session_id[:8]}"
        )
        self._pending[workspace.session_id] = task
        self._pending_workspaces[workspace.session_id] = workspace
        return task

    @property
    def pending_count(self) -> int:
        """Number of workspaces waiting for their deferred release."""
        return sum(1 for t in self._pending.values() if not t.done())

    async def drain(self) -> None:
        """Wait for every scheduled release to finish."""
        tasks = [t for t in self._pending.values() if not t.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel pending timers and release their workspaces immediately."""
        tasks = list(self._pending.values())
        workspaces = list(self._pending_workspaces.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for workspace in workspaces:
            await self.release_async(workspace)
        self._pending.clear()
        self._pending_workspaces.clear()
        if workspaces:
            logger.info("🛑 Released %d pending workspaces on shutdown", len(workspaces))

    def sweep_expired(self, max_age: float) -> int:
        """Delete session directories under the root older than ``max_age`` seconds.

        Only directories named like a session token are touched, so a root
        shared with other data is left alone.

        Returns:
            Number of directories removed.
        """
        if not self.root.is_dir():
            return 0
        now = time.time()
        removed = 0
        for child in self.root.iterdir():
            if not child.is_dir() or child.name in self._active:
                continue
            if not _is_session_id(child.name):
                continue
            try:
                age = now - child.stat().st_mtime
            except FileNotFoundError:
                continue
            if age < max_age:
                continue
            shutil.rmtree(child, ignore_errors=True)
            removed += 1
        if removed:
            logger.info("🧹 Swept %d expired workspaces from %s", removed, self.root)
        return removed
