import pytest

from apps.api.invoices.models import SubmissionStatus
from apps.api.invoices.state import SubmissionStateError, assert_transition, can_transition, is_terminal


def test_pending_can_finish_any_way():
    for status in (SubmissionStatus.CERTIFIED, SubmissionStatus.FAILED, SubmissionStatus.ERROR):
        assert_transition(SubmissionStatus.PENDING, status)


def test_certified_is_final():
    for status in (SubmissionStatus.PENDING, SubmissionStatus.FAILED, SubmissionStatus.ERROR):
        with pytest.raises(SubmissionStateError):
            assert_transition(SubmissionStatus.CERTIFIED, status)


def test_failed_submissions_can_only_go_back_to_pending():
    assert can_transition(SubmissionStatus.FAILED, SubmissionStatus.PENDING)
    assert can_transition(SubmissionStatus.ERROR, SubmissionStatus.PENDING)
    assert not can_transition(SubmissionStatus.FAILED, SubmissionStatus.CERTIFIED)


def test_same_status_is_a_no_op():
    assert_transition(SubmissionStatus.CERTIFIED, SubmissionStatus.CERTIFIED)


def test_is_terminal():
    assert not is_terminal(SubmissionStatus.PENDING)
    assert is_terminal(SubmissionStatus.FAILED)
