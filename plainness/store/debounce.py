"""Per-key debounced writes.

Each logical stream (content, chat, preferences) holds at most one pending
write and a deadline. Scheduling a new write for a key replaces the pending
one and resets its deadline, so a burst of changes collapses into a single
write once the stream goes quiet.

Writes run either when :meth:`DebouncedWriter.flush_due` is called (the
ticker thread started by :meth:`DebouncedWriter.start` does this on an
interval) or on an explicit :meth:`DebouncedWriter.flush`.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

log = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 0.1  # seconds


@dataclass
class _Pending:
    deadline: float
    write: Callable[[], Any]


class DebouncedWriter:
    """Single-slot delayed task per key.

    Parameters
    ----------
    clock:
        Monotonic time source in seconds. Injected by tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._pending: dict[str, _Pending] = {}
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()

    def schedule(self, key: str, delay: float, write: Callable[[], Any]) -> None:
        """Replace the pending write for *key*; it runs *delay* seconds from now."""
        with self._lock:
            self._pending[key] = _Pending(deadline=self._clock() + delay, write=write)

    def pending_keys(self) -> list[str]:
        with self._lock:
            return sorted(self._pending)

    def flush_due(self, now: float | None = None) -> list[str]:
        """Run every pending write whose deadline has passed.

        Returns the keys that were flushed.
        """
        if now is None:
            now = self._clock()
        with self._lock:
            due = [k for k, p in self._pending.items() if p.deadline <= now]
            writes = [(k, self._pending.pop(k).write) for k in due]
        for key, write in writes:
            self._run(key, write)
        return [k for k, _ in writes]

    def flush(self, key: str | None = None) -> list[str]:
        """Run pending writes immediately (all keys, or just *key*)."""
        with self._lock:
            keys = [key] if key is not None else list(self._pending)
            writes = [(k, self._pending.pop(k).write) for k in keys if k in self._pending]
        for k, write in writes:
            self._run(k, write)
        return [k for k, _ in writes]

    def cancel(self, key: str) -> bool:
        with self._lock:
            return self._pending.pop(key, None) is not None

    @staticmethod
    def _run(key: str, write: Callable[[], Any]) -> None:
        result = write()
        if result is False:
            log.warning("Debounced write for %s reported failure", key)
        else:
            log.debug("Flushed %s", key)

    # ------------------------------------------------------------------
    # Background ticker
    # ------------------------------------------------------------------

    def start(self, interval: float = DEFAULT_TICK_INTERVAL) -> None:
        """Start a daemon thread that calls :meth:`flush_due` every *interval*."""
        if self._thread is not None:
            return
        self._stop.clear()

        def _loop() -> None:
            while not self._stop.wait(interval):
                self.flush_due()

        self._thread = threading.Thread(target=_loop, name="debounced-writer", daemon=True)
        self._thread.start()

    def stop(self, flush: bool = True) -> None:
        """Stop the ticker thread; by default flush whatever is still pending."""
        if self._thread is not None:
            self._stop.set()
            self._thread.join(timeout=5)
            self._thread = None
        if flush:
            self.flush()
