"""Connection attempt state machine.

IDLE ──[open()]──→ CONNECTING ──[2xx + body]──→ STREAMING ──[clean EOF]──→ COMPLETED
                       │                            │
                 [non-2xx, refused]            [read error]
                       │                            │
                       v                            v
                     FAILED ←───────────────────────┘

ABORTED is reachable from IDLE, CONNECTING and STREAMING when the stream's
cancellation token fires. COMPLETED, FAILED and ABORTED are terminal for the
attempt; the stream decides whether a new attempt follows.
"""

from __future__ import annotations

import enum

import structlog

log = structlog.get_logger()


class ConnectionState(enum.Enum):
    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    STREAMING = "STREAMING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    ABORTED = "ABORTED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: frozenset[ConnectionState] = frozenset({
    ConnectionState.COMPLETED,
    ConnectionState.FAILED,
    ConnectionState.ABORTED,
})

# Valid transitions: (from_state, to_state)
VALID_TRANSITIONS: set[tuple[ConnectionState, ConnectionState]] = {
    (ConnectionState.IDLE, ConnectionState.CONNECTING),
    (ConnectionState.CONNECTING, ConnectionState.STREAMING),
    (ConnectionState.CONNECTING, ConnectionState.FAILED),
    (ConnectionState.STREAMING, ConnectionState.COMPLETED),
    (ConnectionState.STREAMING, ConnectionState.FAILED),
    # Cancellation from any live state
    (ConnectionState.IDLE, ConnectionState.ABORTED),
    (ConnectionState.CONNECTING, ConnectionState.ABORTED),
    (ConnectionState.STREAMING, ConnectionState.ABORTED),
}


class InvalidTransition(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_state: ConnectionState, to_state: ConnectionState) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} → {to_state.value}")


def validate_transition(from_state: ConnectionState, to_state: ConnectionState) -> None:
    """Validate a state transition, raising InvalidTransition if not allowed."""
    if (from_state, to_state) not in VALID_TRANSITIONS:
        raise InvalidTransition(from_state, to_state)


def transition(
    current: ConnectionState,
    target: ConnectionState,
    attempt: int,
    trigger: str = "",
) -> ConnectionState:
    """Execute a validated state transition, logging the change."""
    validate_transition(current, target)
    log.debug(
        "state_transition",
        attempt=attempt,
        from_state=current.value,
        to_state=target.value,
        trigger=trigger,
    )
    return target
