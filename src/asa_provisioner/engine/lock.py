"""Local state locking.

Reconciliation passes for one state file are serialized through an exclusive
``flock`` on ``<state>.lock``. The holder's PID is written into the lock file
so a blocked caller can report who holds it.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING

from asa_provisioner.engine.errors import StateLockError

if TYPE_CHECKING:
    from types import TracebackType

try:
    import fcntl  # type: ignore[attr-defined]
except ImportError:  # pragma: no cover
    fcntl = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.2


class StateLock:
    """Exclusive lock for a local state file.

    ``timeout=None`` blocks until the lock is free; otherwise acquisition gives
    up after *timeout* seconds with ``StateLockError``.
    """

    def __init__(self, state_path: Path, *, timeout: float | None = None) -> None:
        self._lock_path = Path(str(state_path) + ".lock")
        self._timeout = timeout
        self._file = None

    @property
    def lock_path(self) -> Path:
        return self._lock_path

    def __enter__(self) -> StateLock:
        if fcntl is None:  # pragma: no cover
            raise StateLockError("State locking is not supported on this platform")

        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        # Keep fd open for lifetime of the lock.
        self._file = self._lock_path.open("a+", encoding="utf-8")
        try:
            self._acquire()
        except BaseException:
            self._file.close()
            self._file = None
            raise
        self._file.seek(0)
        self._file.truncate()
        self._file.write(f"{os.getpid()}\n")
        self._file.flush()
        logger.debug("Acquired state lock %s", self._lock_path)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._file is None:
            return
        try:
            self._file.seek(0)
            self._file.truncate()
            fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
        finally:
            self._file.close()
            self._file = None
        logger.debug("Released state lock %s", self._lock_path)

    def _holder(self) -> str:
        try:
            return self._lock_path.read_text(encoding="utf-8").strip() or "unknown"
        except OSError:
            return "unknown"

    def _acquire(self) -> None:
        assert self._file is not None
        if self._timeout is None:
            try:
                fcntl.flock(self._file.fileno(), fcntl.LOCK_EX)
            except OSError as e:
                raise StateLockError(str(e)) from e
            return

        deadline = time.monotonic() + self._timeout
        while True:
            try:
                fcntl.flock(self._file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise StateLockError(
                        f"State is locked by pid {self._holder()} ({self._lock_path})"
                    ) from None
                time.sleep(_POLL_INTERVAL)
            except OSError as e:
                raise StateLockError(str(e)) from e
