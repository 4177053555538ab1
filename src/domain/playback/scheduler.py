import logging
import threading
from typing import Callable, Optional

from flask import Flask, current_app, has_app_context

logger = logging.getLogger(__name__)


class ScheduledCall:
    def cancel(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class Scheduler:
    """Runs a callback once after a delay."""

    def call_later(self, seconds: float, callback: Callable[[], None]) -> ScheduledCall:  # pragma: no cover - interface
        raise NotImplementedError


class _TimerCall(ScheduledCall):
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()


class ThreadingScheduler(Scheduler):
    """``threading.Timer`` backed scheduler; timers are daemon threads.

    Callbacks run inside ``app``'s application context so that timer-driven
    transitions can reach the database. When no app is given the one active
    at construction time is used.
    """

    def __init__(self, app: Optional[Flask] = None):
        if app is None and has_app_context():
            app = current_app._get_current_object()
        self.app = app

    def _invoke(self, callback: Callable[[], None]) -> None:
        if self.app is None:
            callback()
            return
        with self.app.app_context():
            callback()

    def call_later(self, seconds: float, callback: Callable[[], None]) -> ScheduledCall:
        def _run():
            try:
                self._invoke(callback)
            except Exception:
                logger.exception("Scheduled callback %r failed", callback)

        timer = threading.Timer(max(0.0, seconds), _run)
        timer.daemon = True
        timer.start()
        return _TimerCall(timer)


__all__ = ["Scheduler", "ScheduledCall", "ThreadingScheduler"]
