from __future__ import annotations

import logging
import multiprocessing
import queue as queue_mod
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

from services.run_ledger import finish_run
from solver.errors import SolveTimeoutError
from workers.schedule_worker import worker_main


logger = logging.getLogger(__name__)

_JOIN_TIMEOUT_SECONDS = 5.0

# Failures detected by the registry rather than reported by the worker itself.
_REGISTRY_FAILURES = {SolveTimeoutError.code: "TIMEOUT", "WORKER_CRASHED": "ERROR"}

@dataclass
class WorkerHandle:
    worker_id: str
    run_id: uuid.UUID
    semester: str
    scope: str
    process: Any
    queue: Any
    started_at: float
    status: str = "running"
    progress: int = 0
    result: dict[str, Any] | None = None
    error: str | None = None
    error_type: str | None = None
    messages: int = field(default=0, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed")

    def apply(self, message: dict[str, Any]) -> None:
        self.messages += 1
        status = message.get("status")
        if status == "running":
            self.progress = max(self.progress, int(message.get("progress") or 0))
        elif status == "completed":
            self.status = "completed"
            self.progress = 100
            self.result = message.get("result") or {}
        elif status == "failed":
            self.status = "failed"
            self.error = message.get("error") or "Unknown error occurred"
            self.error_type = message.get("error_type") or "ERROR"

    def fail(self, error: str, error_type: str) -> None:
        self.status = "failed"
        self.error = error
        self.error_type = error_type

    def snapshot(self) -> dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "run_id": self.run_id,
            "status": self.status,
            "progress": self.progress,
            "result": self.result,
            "error": self.error,
            "error_type": self.error_type,
        }


def record_registry_failure(db: Any, handle: WorkerHandle) -> None:
    """Write a timeout or crash the worker could not report itself to the run ledger."""
    status = _REGISTRY_FAILURES.get(handle.error_type or "")
    if status is None:
        return
    finish_run(
        db,
        run_id=handle.run_id,
        status=status,
        notes=handle.error,
        semester=handle.semester,
        scope=handle.scope,
    )


class WorkerRegistry:
    """Schedule workers started by this API process, keyed by worker id.

    Owned by the application object; nothing here is module-global. Workers are
    OS processes so a stuck search can be killed without touching the API process.
    Request handlers and the watchdog thread share the registry, so every access to
    the handle map goes through one lock.
    """

    def __init__(
        self,
        database_url: str,
        *,
        max_runtime_seconds: float,
        target: Callable[..., None] = worker_main,
        mp_context: Any = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.database_url = database_url
        self.max_runtime_seconds = max_runtime_seconds
        self._target = target
        self._ctx = mp_context or multiprocessing.get_context()
        self._clock = clock
        self._handles: dict[str, WorkerHandle] = {}
        self._lock = threading.RLock()
        self._watchdog: threading.Thread | None = None
        self._watchdog_stop = threading.Event()

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, worker_id: str) -> bool:
        return worker_id in self._handles

    def start(self, message: dict[str, Any]) -> WorkerHandle:
        worker_id = str(uuid.uuid4())
        # The worker arms its own timer as well, so it stops even if this process is gone.
        message = {**message, "max_runtime_seconds": self.max_runtime_seconds}
        q = self._ctx.Queue()
        process = self._ctx.Process(
            target=self._target,
            args=(self.database_url, message, q),
            name=f"schedule-worker-{worker_id[:8]}",
            daemon=True,
        )
        process.start()
        handle = WorkerHandle(
            worker_id=worker_id,
            run_id=uuid.UUID(str(message["run_id"])),
            semester=message["semester"],
            scope=message.get("scope") or "FULL",
            process=process,
            queue=q,
            started_at=self._clock(),
        )
        self.register(handle)
        logger.info("Started schedule worker %s (pid %s) for %s", worker_id, process.pid, handle.semester)
        return handle

    def register(self, handle: WorkerHandle) -> None:
        with self._lock:
            if handle.worker_id in self._handles:
                raise ValueError(f"Worker {handle.worker_id} is already registered")
            self._handles[handle.worker_id] = handle

    def _drain(self, handle: WorkerHandle) -> None:
        while not handle.is_terminal:
            try:
                message = handle.queue.get_nowait()
            except queue_mod.Empty:
                return
            except (EOFError, OSError, ValueError):
                return
            handle.apply(message)

    def _terminate(self, handle: WorkerHandle) -> None:
        process = handle.process
        if process.is_alive():
            process.terminate()
            process.join(_JOIN_TIMEOUT_SECONDS)
            if process.is_alive():
                logger.warning("Worker %s ignored SIGTERM; killing", handle.worker_id)
                process.kill()
                process.join(_JOIN_TIMEOUT_SECONDS)

    def poll(self, worker_id: str) -> WorkerHandle | None:
        """Refresh a worker from its queue and enforce the runtime limit.

        Returns None for unknown ids.
        """
        with self._lock:
            handle = self._handles.get(worker_id)
            if handle is None:
                return None
            if handle.is_terminal:
                return handle

            # Checked before draining so messages flushed just before exit are not missed.
            alive = handle.process.is_alive()
            self._drain(handle)
            if handle.is_terminal:
                return handle

            if not alive:
                logger.error(
                    "Worker %s exited (code %s) without a result",
                    worker_id,
                    handle.process.exitcode,
                )
                handle.fail(f"Worker exited unexpectedly with code {handle.process.exitcode}", "WORKER_CRASHED")
            elif self._clock() - handle.started_at > self.max_runtime_seconds:
                logger.warning("Worker %s exceeded %.0f seconds; terminating", worker_id, self.max_runtime_seconds)
                self._terminate(handle)
                handle.fail(
                    f"Worker exceeded maximum runtime of {self.max_runtime_seconds:g} seconds",
                    SolveTimeoutError.code,
                )
            return handle

    def reap_expired(self) -> list[WorkerHandle]:
        """Poll every running worker; return those this call moved to a terminal state."""
        finished: list[WorkerHandle] = []
        with self._lock:
            for worker_id, handle in list(self._handles.items()):
                if handle.is_terminal:
                    continue
                self.poll(worker_id)
                if handle.is_terminal:
                    finished.append(handle)
        return finished

    def start_watchdog(
        self,
        interval_seconds: float,
        on_finished: Callable[[list[WorkerHandle]], None] | None = None,
    ) -> None:
        """Reap expired and dead workers every `interval_seconds` on a daemon thread.

        `on_finished` receives the handles each sweep moved to a terminal state, so
        timeouts are recorded even when no client polls for them.
        """
        if self._watchdog is not None:
            return
        self._watchdog_stop.clear()

        def _loop() -> None:
            while not self._watchdog_stop.wait(interval_seconds):
                try:
                    finished = self.reap_expired()
                    if finished and on_finished is not None:
                        on_finished(finished)
                except Exception:
                    logger.exception("Worker watchdog sweep failed")

        self._watchdog = threading.Thread(target=_loop, name="schedule-worker-watchdog", daemon=True)
        self._watchdog.start()

    def stop_watchdog(self) -> None:
        thread = self._watchdog
        if thread is None:
            return
        self._watchdog_stop.set()
        thread.join(_JOIN_TIMEOUT_SECONDS * 3)
        self._watchdog = None

    def remove(self, worker_id: str) -> WorkerHandle | None:
        with self._lock:
            handle = self._handles.pop(worker_id, None)
        if handle is None:
            return None
        if handle.is_terminal:
            # Let a finished worker dispose its engine before falling back to SIGTERM.
            handle.process.join(_JOIN_TIMEOUT_SECONDS)
        self._terminate(handle)
        handle.queue.close()
        return handle

    def shutdown(self) -> None:
        self.stop_watchdog()
        with self._lock:
            worker_ids = list(self._handles)
        for worker_id in worker_ids:
            self.remove(worker_id)
