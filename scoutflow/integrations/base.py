"""Shared plumbing for outbound integrations.

IntegrationBase gives every client the same shape: a configuration
check, a health check and ``with_retry`` for transient network failures.
RateLimiter keeps a client under a per-minute call budget; it is safe to
share between the orchestrator's task threads.
"""

import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Optional, TypeVar

from scoutflow.core.exceptions import IntegrationError
from scoutflow.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

WINDOW_SECONDS = 60.0


class IntegrationBase(ABC):
    """Abstract base class for external integrations."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def health_check(self) -> bool:
        """Whether the remote service is reachable right now."""
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether the settings needed to talk to the service are present."""
        pass

    def with_retry(
        self,
        func: Callable[[], T],
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exceptions: tuple = (Exception,),
    ) -> T:
        """Call ``func``, retrying listed exceptions with doubling delays.

        Exceptions not in ``exceptions`` propagate on the first occurrence.

        Args:
            func: Zero-argument callable
            max_retries: Retries after the first attempt
            base_delay: Delay before the first retry (seconds)
            max_delay: Cap on any single delay
            exceptions: Exception types treated as transient

        Raises:
            IntegrationError: If every attempt failed
        """
        attempts = max_retries + 1
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            try:
                return func()
            except exceptions as e:
                last_error = e
                if attempt == attempts:
                    break
                delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
                logger.warning(
                    f"{self.name}: transient failure, retrying in {delay}s",
                    extra={"context": {"attempt": attempt, "max_attempts": attempts, "error": str(e)}},
                )
                time.sleep(delay)

        raise IntegrationError(
            f"{self.name} failed after {attempts} attempts: {last_error}"
        ) from last_error


class RateLimiter:
    """Sliding one-minute window limiter.

    Attributes:
        calls_per_minute: Maximum calls allowed per window
    """

    def __init__(self, calls_per_minute: int = 60):
        self.calls_per_minute = calls_per_minute
        self._calls: deque[float] = deque()
        self._lock = threading.Lock()

    def wait_if_needed(self) -> None:
        """Block until another call fits in the window, then record it."""
        with self._lock:
            now = time.time()
            while self._calls and now - self._calls[0] >= WINDOW_SECONDS:
                self._calls.popleft()

            if len(self._calls) >= self.calls_per_minute:
                wait = WINDOW_SECONDS - (now - self._calls[0])
                if wait > 0:
                    logger.debug(f"Rate limit reached, sleeping {wait:.1f}s")
                    time.sleep(wait)
                self._calls.popleft()

            self._calls.append(time.time())
