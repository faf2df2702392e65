"""
Caffeine Controller

Polling state machine that turns ledger contents into a single
"prevent sleep" decision.

States are Normal (not suppressing) and Suppressing. A tick moves to
Suppressing when at least one session is active and back to Normal when none
are; in every other case it does nothing, so repeated identical polls never
call the capability twice. Capability calls are made outside any file lock.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any

from .capability import SuppressionCapability
from .config import DEFAULT_POLL_INTERVAL_SECONDS
from .errors import CaffeineError
from .instance_coordinator import InstanceCoordinator
from .session_ledger import SessionLedger

logger = logging.getLogger(__name__)

SUPPRESSION_REASON = "cc-caffeine: active sessions"


@dataclass
class CaffeineState:
    """Daemon-local suppression state.

    ``suppression_handle`` is set if and only if ``is_suppressing`` is True.
    """

    is_suppressing: bool = False
    suppression_handle: Any = None


class PollHandle:
    """Cancellation handle for a running poll loop."""

    def __init__(self, cancel_event: threading.Event, thread: threading.Thread) -> None:
        self._cancel_event = cancel_event
        self._thread = thread

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stop scheduling ticks. A tick already running still completes.

        The poll thread releases suppression on its way out.
        """
        self._cancel_event.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread.is_alive()


class CaffeineController:
    """Drives the suppression capability from ledger state."""

    def __init__(
        self,
        ledger: SessionLedger,
        capability: SuppressionCapability,
        coordinator: InstanceCoordinator | None = None,
        reason: str = SUPPRESSION_REASON,
    ) -> None:
        self._ledger = ledger
        self._capability = capability
        self._coordinator = coordinator
        self._reason = reason
        self._state = CaffeineState()
        self._poll: PollHandle | None = None
        # Serializes ticks against shutdown when they run on different threads
        self._lock = threading.RLock()

    @property
    def state(self) -> CaffeineState:
        return self._state

    @property
    def is_suppressing(self) -> bool:
        return self._state.is_suppressing

    # Transitions
    def _enable(self) -> None:
        handle = self._capability.start_suppression(self._reason)
        self._state.suppression_handle = handle
        self._state.is_suppressing = True
        logger.info("Caffeinated: preventing sleep")

    def _disable(self) -> None:
        self._capability.stop_suppression(self._state.suppression_handle)
        self._state.suppression_handle = None
        self._state.is_suppressing = False
        logger.info("Decaffeinated: sleep allowed")

    def tick(self) -> bool:
        """Sweep the ledger, list active sessions and apply the transition.

        Ledger errors abandon the tick and capability errors leave the state
        unchanged; both are logged and retried on the next tick.

        Returns:
            Whether suppression is active after the tick.
        """
        with self._lock:
            try:
                self._ledger.sweep_expired()
                active = self._ledger.list_active()
            except (CaffeineError, OSError) as exc:
                logger.error("Skipping tick, ledger unavailable: %s", exc)
                return self._state.is_suppressing

            should_suppress = bool(active)
            try:
                if should_suppress and not self._state.is_suppressing:
                    self._enable()
                elif not should_suppress and self._state.is_suppressing:
                    self._disable()
            except CaffeineError as exc:
                logger.error("Suppression capability failed: %s", exc)
            return self._state.is_suppressing

    def _release(self) -> None:
        """Stop suppression if active; the state is cleared even if stopping fails."""
        with self._lock:
            if self._state.is_suppressing:
                try:
                    self._capability.stop_suppression(self._state.suppression_handle)
                except Exception:
                    logger.exception("Failed to release sleep suppression")
                logger.info("Decaffeinated: sleep allowed")
            self._state.suppression_handle = None
            self._state.is_suppressing = False

    def _safe_tick(self) -> None:
        try:
            self.tick()
        except Exception:
            logger.exception("Unexpected error during tick")

    # Polling
    def start_polling(
        self,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        cancel_event: threading.Event | None = None,
    ) -> PollHandle:
        """Tick once now, then every ``interval_seconds``.

        Every tick and the final release run on the poll thread, so suppression
        is stopped by the thread that started it. Returns once the first tick
        has finished.

        Args:
            interval_seconds: Delay between the end of one tick and the next
            cancel_event: Optional token; setting it stops the loop

        Returns:
            PollHandle used to cancel the loop
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if self._poll is not None and self._poll.is_alive():
            raise RuntimeError("polling already started")

        event = cancel_event or threading.Event()
        first_tick = threading.Event()

        def _loop() -> None:
            try:
                self._safe_tick()
            finally:
                first_tick.set()
            while not event.wait(interval_seconds):
                self._safe_tick()
            self._release()

        thread = threading.Thread(target=_loop, daemon=True, name="caffeine-poll")
        self._poll = PollHandle(event, thread)
        thread.start()
        first_tick.wait()
        return self._poll

    def shutdown(self, join_timeout: float | None = 5.0) -> None:
        """Stop polling, always release suppression, then drop the PID record."""
        logger.info("Shutting down caffeine controller")
        if self._poll is not None:
            self._poll.cancel()
            self._poll.join(join_timeout)

        # No-op unless the poll thread failed to exit in time or never ran
        self._release()

        if self._coordinator is not None:
            try:
                self._coordinator.release_if_owner()
            except (CaffeineError, OSError) as exc:
                logger.error("Failed to remove PID file: %s", exc)
