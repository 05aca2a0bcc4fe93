"""
Connection and playback state machines.

Each machine is a small enum of states plus a pure transition function:

    (state, event) -> (new_state, commands)

Transition functions do no IO and read no clocks. The managers in
``session``, ``voice`` and ``playback`` feed them events and carry out the
returned commands. Any (state, event) pair not listed is ignored and leaves
the state unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional


# ---------------------------------------------------------------------------
# Gateway session
# ---------------------------------------------------------------------------


class SessionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    ERRORED = "errored"


class SessionEvent(str, Enum):
    LOGIN_STARTED = "login_started"
    GATEWAY_READY = "gateway_ready"
    GATEWAY_DISCONNECTED = "gateway_disconnected"
    ATTEMPT_FAILED = "attempt_failed"
    GAVE_UP = "gave_up"
    CLOSED = "closed"


def reduce_session(status: SessionStatus, event: SessionEvent) -> SessionStatus:
    """Return the session status after *event*. ERRORED is terminal."""
    if status is SessionStatus.ERRORED:
        return status
    if event is SessionEvent.GAVE_UP:
        return SessionStatus.ERRORED
    if event is SessionEvent.LOGIN_STARTED and status is SessionStatus.DISCONNECTED:
        return SessionStatus.CONNECTING
    if event is SessionEvent.GATEWAY_READY:
        return SessionStatus.READY
    if event is SessionEvent.GATEWAY_DISCONNECTED and status is SessionStatus.READY:
        return SessionStatus.CONNECTING
    if event in (SessionEvent.ATTEMPT_FAILED, SessionEvent.CLOSED):
        return SessionStatus.DISCONNECTED
    return status


# ---------------------------------------------------------------------------
# Voice link
# ---------------------------------------------------------------------------


class LinkStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    READY = "ready"
    DISCONNECTED = "disconnected"
    DESTROYED = "destroyed"


class LinkEvent(str, Enum):
    JOIN_REQUESTED = "join_requested"
    CHANNEL_NOT_FOUND = "channel_not_found"
    CONNECT_FAILED = "connect_failed"
    TRANSPORT_READY = "transport_ready"
    TRANSPORT_DISCONNECTED = "transport_disconnected"
    RESUME_TIMEOUT = "resume_timeout"
    REJOIN_DUE = "rejoin_due"


class LinkCommand(str, Enum):
    CONNECT = "connect"
    START_RESUME_TIMER = "start_resume_timer"
    CANCEL_RESUME_TIMER = "cancel_resume_timer"
    DESTROY = "destroy"
    SCHEDULE_REJOIN = "schedule_rejoin"


@dataclass(frozen=True)
class LinkState:
    status: LinkStatus = LinkStatus.IDLE
    reconnect_attempt: int = 0


_NO_COMMANDS: tuple[LinkCommand, ...] = ()


def reduce_link(
    state: LinkState, event: LinkEvent
) -> tuple[LinkState, tuple[LinkCommand, ...]]:
    """Advance the voice link state machine by one event.

    At most one link exists at a time: a join request is only honoured from
    IDLE. A drop is given a bounded window to resume on its own; when the
    window expires the link is torn down and a rejoin is scheduled. Rejoins
    are unbounded, ``reconnect_attempt`` counts them.
    """
    status = state.status

    if event is LinkEvent.JOIN_REQUESTED:
        if status is LinkStatus.IDLE:
            return replace(state, status=LinkStatus.CONNECTING), (LinkCommand.CONNECT,)
        return state, _NO_COMMANDS

    if status is LinkStatus.CONNECTING:
        if event is LinkEvent.TRANSPORT_READY:
            return replace(state, status=LinkStatus.READY), _NO_COMMANDS
        if event is LinkEvent.CHANNEL_NOT_FOUND:
            return replace(state, status=LinkStatus.IDLE), _NO_COMMANDS
        if event is LinkEvent.CONNECT_FAILED:
            return (
                LinkState(LinkStatus.DESTROYED, state.reconnect_attempt + 1),
                (LinkCommand.SCHEDULE_REJOIN,),
            )

    elif status is LinkStatus.READY:
        if event is LinkEvent.TRANSPORT_DISCONNECTED:
            return (
                replace(state, status=LinkStatus.DISCONNECTED),
                (LinkCommand.START_RESUME_TIMER,),
            )

    elif status is LinkStatus.DISCONNECTED:
        if event is LinkEvent.TRANSPORT_READY:
            return (
                replace(state, status=LinkStatus.READY),
                (LinkCommand.CANCEL_RESUME_TIMER,),
            )
        if event is LinkEvent.RESUME_TIMEOUT:
            return (
                LinkState(LinkStatus.DESTROYED, state.reconnect_attempt + 1),
                (LinkCommand.DESTROY, LinkCommand.SCHEDULE_REJOIN),
            )

    elif status is LinkStatus.DESTROYED:
        if event is LinkEvent.REJOIN_DUE:
            return replace(state, status=LinkStatus.CONNECTING), (LinkCommand.CONNECT,)

    return state, _NO_COMMANDS


# ---------------------------------------------------------------------------
# Welcome playback
# ---------------------------------------------------------------------------


class PlaybackDecision(str, Enum):
    IGNORE_BOT = "ignore_bot"
    JOIN_THEN_RETRY = "join_then_retry"
    NOT_READY = "not_ready"
    BUSY = "busy"
    PLAY = "play"


def decide_playback(
    *,
    is_bot: bool,
    link_status: LinkStatus,
    in_progress: bool,
    allow_join: bool = True,
) -> PlaybackDecision:
    """Apply the welcome checks in order: bot account, link readiness, busy."""
    if is_bot:
        return PlaybackDecision.IGNORE_BOT
    if link_status is not LinkStatus.READY:
        return PlaybackDecision.JOIN_THEN_RETRY if allow_join else PlaybackDecision.NOT_READY
    if in_progress:
        return PlaybackDecision.BUSY
    return PlaybackDecision.PLAY


def is_target_join(
    before_channel_id: Optional[int],
    after_channel_id: Optional[int],
    target_channel_id: int,
) -> bool:
    """True only for a move into the target channel from another channel or none."""
    return after_channel_id == target_channel_id and before_channel_id != target_channel_id
