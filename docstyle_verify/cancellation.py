from __future__ import annotations

from threading import Event
from time import monotonic

from .errors import ProcessingCancelled, ProcessingTimeout


class CancellationToken:
    def __init__(self, timeout_sec: float | None = None) -> None:
        self._event = Event()
        self.timeout_sec = timeout_sec
        self._deadline = None if timeout_sec is None else monotonic() + timeout_sec

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and monotonic() >= self._deadline

    def cancel(self) -> None:
        self._event.set()

    def check(self) -> None:
        if self._event.is_set():
            raise ProcessingCancelled("processing cancelled")
        if self.expired:
            self._event.set()
            raise ProcessingTimeout(f"processing exceeded {self.timeout_sec:.1f}s")
