"""Per-client fixed-window request limiter for the /api routes."""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass
class WindowState:
    started_at: float
    count: int


class FixedWindowRateLimiter:
    """Allow ``max_requests`` per client in each ``window_seconds`` window."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        time_source: Callable[[], float] = time.time,
    ) -> None:
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = float(window_seconds)
        self.time_source = time_source
        self._windows: Dict[str, WindowState] = {}
        self._lock = threading.Lock()
        self._last_prune = time_source()

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
            self._last_prune = self.time_source()

    def _prune(self, now: float) -> None:
        """Drop windows that have rolled over. Caller holds the lock."""
        expired = [
            identifier for identifier, state in self._windows.items()
            if now - state.started_at >= self.window_seconds
        ]
        for identifier in expired:
            del self._windows[identifier]
        self._last_prune = now

    def allow(self, identifier: str) -> bool:
        now = self.time_source()
        with self._lock:
            if now - self._last_prune >= self.window_seconds:
                self._prune(now)
            state = self._windows.get(identifier)
            if state is None or now - state.started_at >= self.window_seconds:
                state = WindowState(started_at=now, count=0)
                self._windows[identifier] = state
            if state.count >= self.max_requests:
                return False
            state.count += 1
            return True
