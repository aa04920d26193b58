from __future__ import annotations

from .models import SubmissionStatus


class SubmissionStateError(ValueError):
    pass


def can_transition(current: SubmissionStatus, new: SubmissionStatus) -> bool:
    allowed: dict[SubmissionStatus, set[SubmissionStatus]] = {
        SubmissionStatus.PENDING: {SubmissionStatus.CERTIFIED, SubmissionStatus.FAILED, SubmissionStatus.ERROR},
        # Retrying puts a failed submission back in flight.
        SubmissionStatus.FAILED: {SubmissionStatus.PENDING},
        SubmissionStatus.ERROR: {SubmissionStatus.PENDING},
        SubmissionStatus.CERTIFIED: set(),
    }
    return new in allowed.get(current, set())


def assert_transition(current: SubmissionStatus, new: SubmissionStatus) -> None:
    if current == new:
        return
    if not can_transition(current, new):
        raise SubmissionStateError(f"Invalid submission transition: {current.value} -> {new.value}")


def is_terminal(status: SubmissionStatus) -> bool:
    return status != SubmissionStatus.PENDING
