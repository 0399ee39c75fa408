"""Song job lifecycle transition rules."""

from song_service.errors import JobTransitionError
from song_service.models.domain import SongJobStatus

_TERMINAL_STATES: set[SongJobStatus] = {
    SongJobStatus.COMPLETED,
    SongJobStatus.FAILED,
}

_ALLOWED_TRANSITIONS: dict[SongJobStatus, set[SongJobStatus]] = {
    SongJobStatus.PROCESSING: {SongJobStatus.COMPLETED, SongJobStatus.FAILED},
    SongJobStatus.COMPLETED: set(),
    SongJobStatus.FAILED: set(),
}


def is_terminal(status: SongJobStatus) -> bool:
    return status in _TERMINAL_STATES


def allowed_next_statuses(status: SongJobStatus) -> list[SongJobStatus]:
    """Return deterministically ordered allowed successors for a status."""
    return sorted(_ALLOWED_TRANSITIONS.get(status, set()), key=lambda s: s.value)


def ensure_transition(old_status: SongJobStatus, new_status: SongJobStatus) -> None:
    """Validate a status write; re-writing the current status is a no-op."""
    if old_status == new_status:
        return
    if old_status in _TERMINAL_STATES:
        raise JobTransitionError(
            f"song job is {old_status.value} and cannot move to {new_status.value}",
            allowed_next=[],
        )
    allowed_next = allowed_next_statuses(old_status)
    if new_status not in allowed_next:
        raise JobTransitionError(
            f"invalid status transition {old_status.value} -> {new_status.value}",
            allowed_next=allowed_next,
        )
