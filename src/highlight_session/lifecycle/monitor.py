from __future__ import annotations

from typing import Callable

from loguru import logger

from highlight_session.errors import StorageUnavailable
from highlight_session.lifecycle.host import HostLifecycle
from highlight_session.lifecycle.machine import (
    Effect,
    LifecycleEvent,
    LifecycleState,
    Transition,
    Verdict,
    transition,
)
from highlight_session.models import utc_now
from highlight_session.storage.tier import StorageTier

CLOSING_FLAG_KEY = "isClosing"


class LifecycleMonitor:
    """Drives the lifecycle state machine from host signals and owns the closing flag."""

    def __init__(self, tier: StorageTier):
        self._tier = tier
        self._state = LifecycleState.IDLE
        self._verdict: Verdict | None = None
        self._cleanup_requested = False
        self._unsubscribers: list[Callable[[], None]] = []

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def verdict(self) -> Verdict | None:
        """Verdict of the last cold-start check, ``None`` before one ran."""
        return self._verdict

    @property
    def cleanup_requested(self) -> bool:
        """True when the last cold-start check asked for the previous session to be wiped."""
        return self._cleanup_requested

    def attach(self, host: HostLifecycle) -> None:
        self._unsubscribers = [
            host.on_cold_start(self.check_cold_start),
            host.on_about_to_terminate(self.handle_about_to_terminate),
            host.on_restarted(self.handle_restarted),
        ]

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def check_cold_start(self) -> Verdict:
        result = self._dispatch(LifecycleEvent.COLD_START, self.read_flag())
        self._verdict = result.verdict or Verdict.INDETERMINATE
        logger.info(f"Cold start verdict: {self._verdict.value}")
        return self._verdict

    def handle_about_to_terminate(self) -> None:
        self._dispatch(LifecycleEvent.ABOUT_TO_TERMINATE, None)

    def handle_restarted(self) -> None:
        self._dispatch(LifecycleEvent.RESTARTED, self.read_flag())

    def read_flag(self) -> bool | None:
        try:
            stored = self._tier.get_volatile(CLOSING_FLAG_KEY)
        except StorageUnavailable as ex:
            logger.warning(f"Closing flag unreadable: {ex}")
            return None
        if stored is None:
            return False
        if isinstance(stored, dict) and isinstance(stored.get("isClosing"), bool):
            return stored["isClosing"]
        logger.warning(f"Closing flag has unexpected shape: {stored!r}")
        return None

    def _dispatch(self, event: LifecycleEvent, flag: bool | None) -> Transition:
        result = transition(self._state, event, flag_set=flag)
        if result.state is not self._state:
            logger.debug(f"Lifecycle {self._state.value} -> {result.state.value} on {event.value}")
        self._state = result.state
        if result.effect is Effect.SET_FLAG:
            self._write_flag()
        elif result.effect is Effect.CLEAR_FLAG:
            self._clear_flag()
        if event is LifecycleEvent.COLD_START:
            self._cleanup_requested = result.effect is Effect.RUN_CLEANUP
        return result

    def _write_flag(self) -> None:
        try:
            self._tier.put_volatile(CLOSING_FLAG_KEY, {"isClosing": True, "recordedAt": utc_now()})
        except StorageUnavailable as ex:
            logger.warning(f"Could not record closing flag: {ex}")

    def _clear_flag(self) -> None:
        try:
            self._tier.remove_volatile(CLOSING_FLAG_KEY)
        except StorageUnavailable as ex:
            logger.warning(f"Could not clear closing flag: {ex}")
