"""Supervised-process lifecycle state machine with strict transition validation.

A process starts ``running``, may be asked to stop (``stopping``), and always
ends ``exited`` -- either on its own or after a stop.  Any other move is rejected
with an ``InvalidTransitionError``.
"""

from devdash.models import ProcessState

# Explicit map of every legal transition.  If a (current, target) pair is not
# present here, the transition is forbidden.
ALLOWED_TRANSITIONS: dict[ProcessState, frozenset[ProcessState]] = {
    ProcessState.RUNNING: frozenset({ProcessState.STOPPING, ProcessState.EXITED}),
    ProcessState.STOPPING: frozenset({ProcessState.EXITED}),
    ProcessState.EXITED: frozenset(),
}


class InvalidTransitionError(Exception):
    """Raised when a caller attempts an illegal process-state transition.

    Attributes:
        current: The state the process is currently in.
        target: The state the caller attempted to transition to.
    """

    def __init__(self, current: ProcessState, target: ProcessState) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Transition from {current.value!r} to {target.value!r} is not allowed")


def validate_transition(current: ProcessState, target: ProcessState) -> bool:
    """Check whether transitioning from *current* to *target* is legal.

    Args:
        current: The state the process occupies right now.
        target: The desired next state.

    Returns:
        ``True`` when the transition is permitted.

    Raises:
        InvalidTransitionError: When the transition violates the state machine.
    """
    allowed = ALLOWED_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise InvalidTransitionError(current, target)
    return True
