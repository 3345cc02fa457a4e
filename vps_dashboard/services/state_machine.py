"""
Server lifecycle state machine.

Pure decision logic: given the persisted status and a requested action, either
return the transient status the server must enter or raise. The dispatcher and
the reconciler both derive every status they write from the tables below.
"""

import enum

from vps_dashboard.core.exceptions import ActionConflictError, InvalidTransitionError
from vps_dashboard.models.server import ServerStatus


class ServerAction(str, enum.Enum):
    CREATE = "create"
    START = "start"
    STOP = "stop"
    REBOOT = "reboot"
    SHUTDOWN = "shutdown"
    DELETE = "delete"


# current status (None = not yet created) -> allowed action -> transient status
TRANSITIONS: dict[ServerStatus | None, dict[ServerAction, ServerStatus]] = {
    None: {
        ServerAction.CREATE: ServerStatus.SETTING_UP,
    },
    ServerStatus.RUNNING: {
        ServerAction.STOP: ServerStatus.STOPPING,
        ServerAction.REBOOT: ServerStatus.REBOOTING,
        ServerAction.SHUTDOWN: ServerStatus.SHUTTING_DOWN,
    },
    ServerStatus.STOPPED: {
        ServerAction.START: ServerStatus.STARTING,
        ServerAction.DELETE: ServerStatus.DELETING,
    },
    ServerStatus.FAILED: {
        ServerAction.START: ServerStatus.STARTING,
        ServerAction.STOP: ServerStatus.STOPPING,
        ServerAction.DELETE: ServerStatus.DELETING,
    },
}

# Status written by the reconciler once the job succeeds; None means the row is removed
SUCCESS_STATUS: dict[ServerAction, ServerStatus | None] = {
    ServerAction.CREATE: ServerStatus.RUNNING,
    ServerAction.START: ServerStatus.RUNNING,
    ServerAction.STOP: ServerStatus.STOPPED,
    ServerAction.REBOOT: ServerStatus.RUNNING,
    ServerAction.SHUTDOWN: ServerStatus.STOPPED,
    ServerAction.DELETE: None,
}

# Every failed job lands here, whatever the action
FAILURE_STATUS = ServerStatus.FAILED


def transition(
    current: ServerStatus | None, action: ServerAction, server_id: str | None = None
) -> ServerStatus:
    """Return the transient status ``action`` moves a server in ``current`` into.

    Raises:
        ActionConflictError: the server already has an operation in flight.
        InvalidTransitionError: ``action`` is not legal from ``current``.
    """
    if current is not None and current.is_transient:
        raise ActionConflictError(
            current_status=current.value, action=action.value, server_id=server_id
        )

    target = TRANSITIONS.get(current, {}).get(action)
    if target is None:
        raise InvalidTransitionError(
            current_status=current.value if current is not None else None,
            action=action.value,
        )
    return target


def allowed_actions(current: ServerStatus | None) -> list[ServerAction]:
    """Actions the client may offer for a server in ``current``."""
    if current is not None and current.is_transient:
        return []
    return list(TRANSITIONS.get(current, {}))
