"""
Tests for the lifecycle state machine: every (status, action) pair.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from vps_dashboard.core.exceptions import ActionConflictError, InvalidTransitionError
from vps_dashboard.models.server import STABLE_STATUSES, TRANSIENT_STATUSES, ServerStatus
from vps_dashboard.services.state_machine import (
    SUCCESS_STATUS,
    ServerAction,
    allowed_actions,
    transition,
)

S = ServerStatus
A = ServerAction

# Written out independently of TRANSITIONS so the table itself is under test
EXPECTED: dict[tuple[ServerStatus | None, ServerAction], ServerStatus] = {
    (None, A.CREATE): S.SETTING_UP,
    (S.STOPPED, A.START): S.STARTING,
    (S.FAILED, A.START): S.STARTING,
    (S.RUNNING, A.STOP): S.STOPPING,
    (S.FAILED, A.STOP): S.STOPPING,
    (S.RUNNING, A.REBOOT): S.REBOOTING,
    (S.RUNNING, A.SHUTDOWN): S.SHUTTING_DOWN,
    (S.STOPPED, A.DELETE): S.DELETING,
    (S.FAILED, A.DELETE): S.DELETING,
}

ALL_CURRENT: list[ServerStatus | None] = [None, *ServerStatus]
GRID = [(current, action) for current in ALL_CURRENT for action in ServerAction]


def _id(pair: tuple[ServerStatus | None, ServerAction]) -> str:
    current, action = pair
    return f"{current.value if current else 'new'}-{action.value}"


class TestTransitionGrid:
    @pytest.mark.parametrize("pair", GRID, ids=[_id(p) for p in GRID])
    def test_every_pair(self, pair: tuple[ServerStatus | None, ServerAction]):
        current, action = pair
        if current is not None and current in TRANSIENT_STATUSES:
            with pytest.raises(ActionConflictError):
                transition(current, action)
        elif pair in EXPECTED:
            assert transition(current, action) == EXPECTED[pair]
        else:
            with pytest.raises(InvalidTransitionError):
                transition(current, action)


class TestTransitionRules:
    def test_create_on_existing_server_is_invalid(self):
        for current in STABLE_STATUSES:
            with pytest.raises(InvalidTransitionError):
                transition(current, A.CREATE)

    def test_non_create_on_new_is_invalid(self):
        for action in (A.START, A.STOP, A.REBOOT, A.SHUTDOWN, A.DELETE):
            with pytest.raises(InvalidTransitionError):
                transition(None, action)

    def test_delete_running_is_invalid(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(S.RUNNING, A.DELETE)
        assert exc_info.value.error_code == "INVALID_TRANSITION"

    def test_conflict_carries_server_id(self):
        with pytest.raises(ActionConflictError) as exc_info:
            transition(S.STARTING, A.START, server_id="srv-1")
        assert exc_info.value.error_code == "ACTION_CONFLICT"
        assert exc_info.value.server_id == "srv-1"

    def test_success_targets(self):
        assert SUCCESS_STATUS == {
            A.CREATE: S.RUNNING,
            A.START: S.RUNNING,
            A.STOP: S.STOPPED,
            A.REBOOT: S.RUNNING,
            A.SHUTDOWN: S.STOPPED,
            A.DELETE: None,
        }


class TestAllowedActions:
    def test_running(self):
        assert set(allowed_actions(S.RUNNING)) == {A.STOP, A.REBOOT, A.SHUTDOWN}

    def test_failed(self):
        assert set(allowed_actions(S.FAILED)) == {A.START, A.STOP, A.DELETE}

    def test_transient_offers_nothing(self):
        for current in TRANSIENT_STATUSES:
            assert allowed_actions(current) == []


@given(
    current=st.sampled_from(ALL_CURRENT),
    action=st.sampled_from(list(ServerAction)),
)
def test_transition_agrees_with_allowed_actions(
    current: ServerStatus | None, action: ServerAction
):
    if action in allowed_actions(current):
        target = transition(current, action)
        assert target.is_transient
    else:
        with pytest.raises((ActionConflictError, InvalidTransitionError)):
            transition(current, action)


@given(current=st.sampled_from(sorted(TRANSIENT_STATUSES, key=lambda s: s.value)))
def test_transient_status_always_conflicts(current: ServerStatus):
    for action in ServerAction:
        with pytest.raises(ActionConflictError):
            transition(current, action)
