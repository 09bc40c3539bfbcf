from __future__ import annotations

import atexit
import signal
import sys
from typing import Callable

from loguru import logger

from highlight_session.lifecycle.machine import LifecycleEvent

Handler = Callable[[], None]


class HostLifecycle:
    """Registry of host lifecycle handlers.

    The embedding application (or ``install_process_hooks`` for a plain Python
    process) calls the ``emit_*`` methods; this layer only subscribes. A failing
    handler is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._handlers: dict[LifecycleEvent, list[Handler]] = {event: [] for event in LifecycleEvent}

    def on_about_to_terminate(self, handler: Handler) -> Callable[[], None]:
        return self._subscribe(LifecycleEvent.ABOUT_TO_TERMINATE, handler)

    def on_restarted(self, handler: Handler) -> Callable[[], None]:
        return self._subscribe(LifecycleEvent.RESTARTED, handler)

    def on_cold_start(self, handler: Handler) -> Callable[[], None]:
        return self._subscribe(LifecycleEvent.COLD_START, handler)

    def emit_about_to_terminate(self) -> None:
        self._emit(LifecycleEvent.ABOUT_TO_TERMINATE)

    def emit_restarted(self) -> None:
        self._emit(LifecycleEvent.RESTARTED)

    def emit_cold_start(self) -> None:
        self._emit(LifecycleEvent.COLD_START)

    def _subscribe(self, event: LifecycleEvent, handler: Handler) -> Callable[[], None]:
        self._handlers[event].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

        return unsubscribe

    def _emit(self, event: LifecycleEvent) -> None:
        logger.debug(f"Host signal: {event.value}")
        for handler in list(self._handlers[event]):
            try:
                handler()
            except Exception as ex:
                logger.error(f"Lifecycle handler for {event.value} failed: {ex}")


def install_process_hooks(host: HostLifecycle) -> None:
    """Report interpreter shutdown and SIGTERM as "about to terminate".

    SIGTERM is turned into ``SystemExit`` so ``atexit`` handlers get to run.
    """
    atexit.register(host.emit_about_to_terminate)

    def _on_sigterm(signum, frame) -> None:
        sys.exit(128 + signum)

    try:
        signal.signal(signal.SIGTERM, _on_sigterm)
    except ValueError:
        # signal.signal only works from the main thread.
        logger.warning("SIGTERM hook not installed: not running in the main thread")
