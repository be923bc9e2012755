"""Repeating one-second timer that drives exam countdowns."""

from __future__ import annotations

from typing import Callable, Protocol

from PySide6.QtCore import QObject, QTimer, Signal, Slot

from scholar_quiz.constants.quiz_constants import TICK_INTERVAL_MS


class SessionTimer(Protocol):
    """A cancellable repeating task. ``start`` replaces any previous callback."""

    def start(self, callback: Callable[[], None]) -> None: ...

    def stop(self) -> None: ...

    def is_active(self) -> bool: ...


class QtSessionTimer(QObject):
    """QTimer-backed session timer.

    The QTimer lives in the thread that created this object, normally the Qt
    main thread. ``start``/``stop`` emit signals instead of touching the timer
    directly, so calls coming from the bridge's server thread are queued onto
    the owning thread.
    """

    _start_requested = Signal()
    _stop_requested = Signal()

    def __init__(self, interval_ms: int = TICK_INTERVAL_MS, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._callback: Callable[[], None] | None = None
        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self._fire)
        self._start_requested.connect(self._start_on_owner_thread)
        self._stop_requested.connect(self._stop_on_owner_thread)

    def start(self, callback: Callable[[], None]) -> None:
        self._callback = callback
        self._start_requested.emit()

    def stop(self) -> None:
        self._callback = None
        self._stop_requested.emit()

    def is_active(self) -> bool:
        return self._timer.isActive()

    @Slot()
    def _start_on_owner_thread(self) -> None:
        self._timer.start()

    @Slot()
    def _stop_on_owner_thread(self) -> None:
        self._timer.stop()

    @Slot()
    def _fire(self) -> None:
        callback = self._callback
        if callback is not None:
            callback()
