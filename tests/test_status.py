import pytest

from grader_worker.core import status
from grader_worker.core.status import ScanStatus


def test_forward_stage_order_is_allowed():
    for current, following in zip(status.STAGE_ORDER, status.STAGE_ORDER[1:]):
        status.validate_transition(current, following)


@pytest.mark.parametrize(
    "current,target",
    [
        (ScanStatus.DONE, ScanStatus.RESOLVING),
        (ScanStatus.FAILED, ScanStatus.DONE),
        (ScanStatus.DUPLICATE, ScanStatus.DETAILS),
        (ScanStatus.QUEUED, ScanStatus.SCORING),
        (ScanStatus.COMPETITORS, ScanStatus.DETAILS),
        (ScanStatus.DETAILS, ScanStatus.DUPLICATE),
        (ScanStatus.COMPETITORS, ScanStatus.RESOLVING),
        (ScanStatus.SCORING, ScanStatus.RESOLVING),
    ],
)
def test_illegal_transitions_are_rejected(current, target):
    with pytest.raises(status.IllegalTransitionError):
        status.validate_transition(current, target)


def test_terminal_statuses_have_no_outgoing_transitions():
    for terminal in status.TERMINAL_STATUSES:
        assert terminal.is_terminal
        assert status.TRANSITIONS[terminal] == frozenset()


def test_stages_only_move_forward_or_fail():
    for index, stage in enumerate(status.STAGE_ORDER[:-1]):
        earlier = set(status.STAGE_ORDER[: index + 1])
        assert not (status.TRANSITIONS[stage] & earlier)
        assert status.can_transition(stage, ScanStatus.FAILED)


def test_accepted_from_allows_rewriting_the_current_stage():
    assert status.accepted_from(ScanStatus.RESOLVING) == frozenset({ScanStatus.QUEUED, ScanStatus.RESOLVING})
    assert status.accepted_from(ScanStatus.DETAILS) == frozenset({ScanStatus.RESOLVING, ScanStatus.DETAILS})
    assert status.accepted_from(ScanStatus.DONE) == frozenset({ScanStatus.SCORING})
    assert ScanStatus.FAILED not in status.accepted_from(ScanStatus.FAILED)


def test_has_passed():
    assert status.has_passed(ScanStatus.COMPETITORS, ScanStatus.RESOLVING)
    assert status.has_passed(ScanStatus.SCORING, ScanStatus.DETAILS)
    assert not status.has_passed(ScanStatus.DETAILS, ScanStatus.DETAILS)
    assert not status.has_passed(ScanStatus.QUEUED, ScanStatus.RESOLVING)
    assert not status.has_passed(ScanStatus.DONE, ScanStatus.RESOLVING)
    assert not status.has_passed(ScanStatus.FAILED, ScanStatus.DETAILS)


def test_predecessors():
    assert status.predecessors(ScanStatus.DONE) == frozenset({ScanStatus.SCORING})
    assert status.predecessors(ScanStatus.DUPLICATE) == frozenset({ScanStatus.RESOLVING})
    assert ScanStatus.DONE not in status.predecessors(ScanStatus.RESOLVING)
    assert ScanStatus.QUEUED in status.predecessors(ScanStatus.RESOLVING)


def test_table_check_rejects_terminal_edges():
    broken = dict(status.TRANSITIONS)
    broken[ScanStatus.DONE] = frozenset({ScanStatus.RESOLVING})
    with pytest.raises(status.IllegalTransitionError):
        status._check_table(broken)
