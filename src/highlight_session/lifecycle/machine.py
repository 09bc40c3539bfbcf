"""Pure lifecycle state machine.

The host only tells us that termination *might* happen. A genuine termination is
confirmed at the next cold start by finding the closing flag still set; an
in-place restart clears the flag before that can happen.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class LifecycleState(str, Enum):
    IDLE = "idle"
    TERMINATION_PENDING = "termination_pending"
    ACKNOWLEDGED = "acknowledged"


class LifecycleEvent(str, Enum):
    COLD_START = "cold_start"
    ABOUT_TO_TERMINATE = "about_to_terminate"
    RESTARTED = "restarted"


class Effect(str, Enum):
    NONE = "none"
    SET_FLAG = "set_flag"
    CLEAR_FLAG = "clear_flag"
    RUN_CLEANUP = "run_cleanup"


class Verdict(str, Enum):
    CONTINUING = "continuing"
    TERMINATING = "terminating"
    INDETERMINATE = "indeterminate"


@dataclass(frozen=True)
class Transition:
    state: LifecycleState
    effect: Effect
    verdict: Verdict | None = None


def transition(
    state: LifecycleState,
    event: LifecycleEvent,
    *,
    flag_set: bool | None = None,
) -> Transition:
    """Return the next state and the side effect the adapter must perform.

    ``flag_set`` is the closing flag as last read from the volatile tier, or
    ``None`` when it could not be read. Only ``COLD_START`` yields a verdict;
    ``RUN_CLEANUP`` is returned exactly when that verdict is ``TERMINATING``.
    """
    if event is LifecycleEvent.ABOUT_TO_TERMINATE:
        return Transition(LifecycleState.TERMINATION_PENDING, Effect.SET_FLAG)

    if event is LifecycleEvent.RESTARTED:
        if state is LifecycleState.TERMINATION_PENDING:
            return Transition(LifecycleState.ACKNOWLEDGED, Effect.CLEAR_FLAG)
        if flag_set:
            # A restart signal proves the process survived, whoever set the flag.
            return Transition(state, Effect.CLEAR_FLAG)
        return Transition(state, Effect.NONE)

    if event is LifecycleEvent.COLD_START:
        if state is not LifecycleState.IDLE:
            # Any flag on disk was written by this process, not a previous one.
            return Transition(state, Effect.NONE, Verdict.CONTINUING)
        verdict = verdict_for(flag_set)
        if verdict is Verdict.TERMINATING:
            return Transition(LifecycleState.IDLE, Effect.RUN_CLEANUP, verdict)
        return Transition(LifecycleState.IDLE, Effect.NONE, verdict)

    raise ValueError(f"Unknown lifecycle event: {event!r}")


def verdict_for(flag_set: bool | None) -> Verdict:
    if flag_set is None:
        return Verdict.INDETERMINATE
    if flag_set:
        return Verdict.TERMINATING
    return Verdict.CONTINUING
