"""Orchestrator - Background task coordination.

Runs registered tasks at fixed intervals, for example:
    - Step processing (every SCOUTFLOW_PROCESS_INTERVAL_MINUTES)
    - Bulk rescore (hourly)

Runs as a daemon thread alongside another process, or headless on the
main thread (cron / systemd / Task Scheduler). A task never overlaps
itself: if the previous invocation is still running, that tick is
skipped.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from scoutflow.core.logging import get_logger

logger = get_logger(__name__)

# How often the orchestrator checks for tasks ready to run (seconds)
_CHECK_INTERVAL_SECONDS = 30


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Task:
    func: Callable[[], object]
    interval: timedelta
    last_run: Optional[datetime] = None
    runs: int = 0
    failures: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)


class Orchestrator:
    """Background task coordinator."""

    def __init__(self, check_interval: float = _CHECK_INTERVAL_SECONDS) -> None:
        self._running: bool = False
        self._tasks: dict[str, _Task] = {}
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._check_interval = check_interval

    def start(self) -> None:
        """Start the task loop in a background daemon thread."""
        if self._running:
            logger.warning("Orchestrator already running")
            return

        self._running = True
        self._stop_event.clear()

        self._thread = threading.Thread(
            target=self._run_loop,
            name="scoutflow-orchestrator",
            daemon=True,
        )
        self._thread.start()

        logger.info(
            "Orchestrator started (background)",
            extra={"context": {"tasks": list(self._tasks.keys())}},
        )

    def stop(self) -> None:
        """Stop gracefully, waiting up to 10 seconds for the thread."""
        if not self._running:
            return

        logger.info("Orchestrator stopping...")
        self._running = False
        self._stop_event.set()

        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=10)
            if self._thread.is_alive():
                logger.warning("Orchestrator thread did not stop within timeout")

        self._thread = None
        logger.info("Orchestrator stopped")

    def register_task(self, name: str, func: Callable[[], object], interval: timedelta) -> None:
        """Register a recurring task.

        Args:
            name: Unique task name (e.g. 'process_steps')
            func: Zero-argument callable
            interval: How often to run the task
        """
        self._tasks[name] = _Task(func=func, interval=interval)
        logger.info(
            "Task registered",
            extra={"context": {"name": name, "interval_seconds": interval.total_seconds()}},
        )

    def run_task(self, name: str) -> bool:
        """Run a task now unless it is already running.

        Task exceptions are logged, never raised.

        Returns:
            False if the task was skipped because it is still running

        Raises:
            KeyError: Unknown task name
        """
        task = self._tasks[name]
        if not task.lock.acquire(blocking=False):
            logger.warning(
                f"Task still running, skipping: {name}",
                extra={"context": {"task": name}},
            )
            return False

        try:
            logger.info(f"Running task: {name}", extra={"context": {"task": name}})
            task.func()
            task.runs += 1
            logger.info(f"Task completed: {name}", extra={"context": {"task": name}})
        except Exception as exc:
            task.failures += 1
            logger.error(
                f"Task failed: {name}",
                extra={"context": {"task": name, "error": str(exc)}},
                exc_info=True,
            )
        finally:
            task.last_run = _now()
            task.lock.release()
        return True

    def run_headless(self) -> None:
        """Run the task loop on the calling thread until stopped."""
        if self._running:
            logger.warning("Orchestrator already running")
            return

        self._running = True
        self._stop_event.clear()

        logger.info(
            "Orchestrator started (headless)",
            extra={"context": {"tasks": list(self._tasks.keys())}},
        )

        try:
            self._run_loop()
        except KeyboardInterrupt:
            logger.info("Orchestrator interrupted by keyboard")
        finally:
            self._running = False
            logger.info("Orchestrator headless mode stopped")

    def is_running(self) -> bool:
        """Check if orchestrator is running."""
        return self._running

    def _due_tasks(self) -> list[str]:
        now = _now()
        return [
            name
            for name, task in self._tasks.items()
            if task.last_run is None or (now - task.last_run) >= task.interval
        ]

    def _run_loop(self) -> None:
        logger.debug("Orchestrator loop started")

        while self._running:
            for name in self._due_tasks():
                if not self._running:
                    break
                self.run_task(name)

            if self._stop_event.wait(timeout=self._check_interval):
                break

        logger.debug("Orchestrator loop ended")
