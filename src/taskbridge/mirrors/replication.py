# src/taskbridge/mirrors/replication.py

from __future__ import annotations

"""
Fire-and-forget replication to external record stores.

Stores call submit_*() right after a successful write; the call only enqueues
and returns. A single daemon worker thread drains the queue and calls every
configured mirror. Mirror errors are logged here and dropped: no retry from
this side (a mirror that wants retries owns them).
"""

import logging
import queue
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from ..core.ports import RecordMirror
from ..tasks.task_models import Task
from ..team.user_models import User

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class _Job:
    kind: str
    run: Callable[[RecordMirror], None]


_STOP = object()


class MirrorReplicator:
    def __init__(self, mirrors: Iterable[RecordMirror] = (), *, max_queue: int = 1000) -> None:
        self._mirrors = list(mirrors)
        self._queue: queue.Queue[object] = queue.Queue(maxsize=max(1, int(max_queue)))
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def enabled(self) -> bool:
        return bool(self._mirrors)

    # ---- producer side ----

    def submit_task(self, task: Task) -> None:
        self._submit(_Job(kind=f"task:{task.id}", run=lambda m: m.sync_task(task)))

    def submit_user(self, user: User) -> None:
        self._submit(_Job(kind=f"user:{user.id}", run=lambda m: m.sync_user(user)))

    def submit_checkin(self, *, user: User, question: str, answer: str, timestamp: float | None = None) -> None:
        ts = time.time() if timestamp is None else float(timestamp)
        self._submit(
            _Job(
                kind=f"checkin:{user.id}",
                run=lambda m: m.save_checkin(user=user, question=question, answer=answer, timestamp=ts),
            )
        )

    def _submit(self, job: _Job) -> None:
        if not self._mirrors or self._closed:
            return
        self._ensure_worker()
        try:
            self._queue.put_nowait(job)
        except queue.Full:
            logger.warning("Replication queue full; dropping %s", job.kind)

    # ---- worker side ----

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._worker, name="mirror-replicator", daemon=True)
            self._thread.start()

    def _worker(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                if isinstance(item, _Job):
                    self._run(item)
            finally:
                self._queue.task_done()

    def _run(self, job: _Job) -> None:
        for mirror in self._mirrors:
            try:
                job.run(mirror)
                logger.debug("Replicated %s to %s", job.kind, type(mirror).__name__)
            except Exception:
                logger.exception("Replication of %s to %s failed", job.kind, type(mirror).__name__)

    # ---- lifecycle ----

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every queued job has run. Returns False on timeout."""
        if self._thread is None:
            return True
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._queue.unfinished_tasks:
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(0.01)
        return True

    def close(self, timeout: float | None = 5.0) -> None:
        """Stop the worker, then release mirrors that hold resources (HTTP clients)."""
        self._closed = True
        thread = self._thread
        if thread is not None and thread.is_alive():
            try:
                self._queue.put(_STOP, timeout=timeout)
            except queue.Full:
                logger.warning("Replication queue full on shutdown; worker left running")
                return
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Replication worker still busy on shutdown; mirrors left open")
                return
        self._close_mirrors()

    def _close_mirrors(self) -> None:
        for mirror in self._mirrors:
            close = getattr(mirror, "close", None)
            if close is None:
                continue
            try:
                close()
            except Exception:
                logger.exception("Failed to close mirror %s", type(mirror).__name__)
