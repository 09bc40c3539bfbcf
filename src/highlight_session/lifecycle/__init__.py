from highlight_session.lifecycle.host import HostLifecycle, install_process_hooks
from highlight_session.lifecycle.machine import (
    Effect,
    LifecycleEvent,
    LifecycleState,
    Transition,
    Verdict,
    transition,
    verdict_for,
)
from highlight_session.lifecycle.monitor import CLOSING_FLAG_KEY, LifecycleMonitor

__all__ = [
    "CLOSING_FLAG_KEY",
    "Effect",
    "HostLifecycle",
    "LifecycleEvent",
    "LifecycleMonitor",
    "LifecycleState",
    "Transition",
    "Verdict",
    "install_process_hooks",
    "transition",
    "verdict_for",
]
