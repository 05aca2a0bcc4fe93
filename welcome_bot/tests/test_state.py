"""Tests for the pure state transition functions."""

from __future__ import annotations

import pytest

from welcome_bot.state import (
    LinkCommand,
    LinkEvent,
    LinkState,
    LinkStatus,
    PlaybackDecision,
    SessionEvent,
    SessionStatus,
    decide_playback,
    is_target_join,
    reduce_link,
    reduce_session,
)

# ---------------------------------------------------------------------------
# Voice link
# ---------------------------------------------------------------------------


class TestReduceLink:
    def test_join_from_idle_connects(self):
        state, commands = reduce_link(LinkState(), LinkEvent.JOIN_REQUESTED)
        assert state.status is LinkStatus.CONNECTING
        assert commands == (LinkCommand.CONNECT,)

    @pytest.mark.parametrize(
        "status",
        [LinkStatus.CONNECTING, LinkStatus.READY, LinkStatus.DISCONNECTED, LinkStatus.DESTROYED],
    )
    def test_join_while_link_exists_is_noop(self, status):
        before = LinkState(status)
        state, commands = reduce_link(before, LinkEvent.JOIN_REQUESTED)
        assert state == before
        assert commands == ()

    def test_drop_starts_resume_window(self):
        state, commands = reduce_link(LinkState(LinkStatus.READY), LinkEvent.TRANSPORT_DISCONNECTED)
        assert state.status is LinkStatus.DISCONNECTED
        assert commands == (LinkCommand.START_RESUME_TIMER,)

    def test_resume_within_window_cancels_timer(self):
        state, commands = reduce_link(
            LinkState(LinkStatus.DISCONNECTED), LinkEvent.TRANSPORT_READY
        )
        assert state.status is LinkStatus.READY
        assert commands == (LinkCommand.CANCEL_RESUME_TIMER,)

    def test_resume_timeout_tears_down_and_schedules_rejoin(self):
        state, commands = reduce_link(
            LinkState(LinkStatus.DISCONNECTED, reconnect_attempt=2), LinkEvent.RESUME_TIMEOUT
        )
        assert state == LinkState(LinkStatus.DESTROYED, reconnect_attempt=3)
        assert commands == (LinkCommand.DESTROY, LinkCommand.SCHEDULE_REJOIN)

    def test_rejoin_due_connects_again(self):
        state, commands = reduce_link(LinkState(LinkStatus.DESTROYED, 1), LinkEvent.REJOIN_DUE)
        assert state == LinkState(LinkStatus.CONNECTING, 1)
        assert commands == (LinkCommand.CONNECT,)

    def test_channel_not_found_returns_to_idle_without_retry(self):
        state, commands = reduce_link(LinkState(LinkStatus.CONNECTING), LinkEvent.CHANNEL_NOT_FOUND)
        assert state.status is LinkStatus.IDLE
        assert commands == ()

    def test_connect_failure_schedules_rejoin(self):
        state, commands = reduce_link(LinkState(LinkStatus.CONNECTING), LinkEvent.CONNECT_FAILED)
        assert state == LinkState(LinkStatus.DESTROYED, reconnect_attempt=1)
        assert commands == (LinkCommand.SCHEDULE_REJOIN,)

    @pytest.mark.parametrize(
        "status,event",
        [
            (LinkStatus.IDLE, LinkEvent.TRANSPORT_DISCONNECTED),
            (LinkStatus.READY, LinkEvent.RESUME_TIMEOUT),
            (LinkStatus.READY, LinkEvent.REJOIN_DUE),
            (LinkStatus.DESTROYED, LinkEvent.TRANSPORT_DISCONNECTED),
            (LinkStatus.CONNECTING, LinkEvent.TRANSPORT_DISCONNECTED),
        ],
    )
    def test_unlisted_pairs_are_ignored(self, status, event):
        before = LinkState(status)
        assert reduce_link(before, event) == (before, ())


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class TestReduceSession:
    def test_login_then_ready(self):
        status = reduce_session(SessionStatus.DISCONNECTED, SessionEvent.LOGIN_STARTED)
        assert status is SessionStatus.CONNECTING
        assert reduce_session(status, SessionEvent.GATEWAY_READY) is SessionStatus.READY

    def test_errored_is_terminal(self):
        for event in SessionEvent:
            assert reduce_session(SessionStatus.ERRORED, event) is SessionStatus.ERRORED

    def test_gave_up_from_anywhere(self):
        assert reduce_session(SessionStatus.CONNECTING, SessionEvent.GAVE_UP) is SessionStatus.ERRORED

    def test_gateway_drop_while_ready(self):
        assert (
            reduce_session(SessionStatus.READY, SessionEvent.GATEWAY_DISCONNECTED)
            is SessionStatus.CONNECTING
        )


# ---------------------------------------------------------------------------
# Playback decisions
# ---------------------------------------------------------------------------


class TestDecidePlayback:
    @pytest.mark.parametrize("status", list(LinkStatus))
    @pytest.mark.parametrize("in_progress", [True, False])
    def test_bots_never_play(self, status, in_progress):
        decision = decide_playback(is_bot=True, link_status=status, in_progress=in_progress)
        assert decision is PlaybackDecision.IGNORE_BOT

    def test_link_not_ready_triggers_join(self):
        decision = decide_playback(is_bot=False, link_status=LinkStatus.IDLE, in_progress=False)
        assert decision is PlaybackDecision.JOIN_THEN_RETRY

    def test_retry_path_does_not_join_again(self):
        decision = decide_playback(
            is_bot=False, link_status=LinkStatus.IDLE, in_progress=False, allow_join=False
        )
        assert decision is PlaybackDecision.NOT_READY

    def test_busy_drops(self):
        decision = decide_playback(is_bot=False, link_status=LinkStatus.READY, in_progress=True)
        assert decision is PlaybackDecision.BUSY

    def test_play(self):
        decision = decide_playback(is_bot=False, link_status=LinkStatus.READY, in_progress=False)
        assert decision is PlaybackDecision.PLAY


class TestIsTargetJoin:
    def test_join_from_other_channel(self):
        assert is_target_join(1, 42, 42)

    def test_join_from_no_channel(self):
        assert is_target_join(None, 42, 42)

    def test_move_between_other_channels(self):
        assert not is_target_join(1, 2, 42)

    def test_leave(self):
        assert not is_target_join(42, None, 42)

    def test_state_change_inside_target(self):
        # mute/deafen toggles fire with the same channel on both sides
        assert not is_target_join(42, 42, 42)
