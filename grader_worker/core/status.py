"""Scan status values and the transitions allowed between them."""

from enum import Enum
from typing import Dict, FrozenSet


class ScanStatus(str, Enum):
    QUEUED = "queued"
    RESOLVING = "resolving"
    DETAILS = "details"
    COMPETITORS = "competitors"
    PERFORMANCE = "performance"
    SCORING = "scoring"
    DONE = "done"
    FAILED = "failed"
    DUPLICATE = "duplicate"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class IllegalTransitionError(ValueError):
    """Raised when a status change is not in the transition table."""


STAGE_ORDER = (
    ScanStatus.QUEUED,
    ScanStatus.RESOLVING,
    ScanStatus.DETAILS,
    ScanStatus.COMPETITORS,
    ScanStatus.PERFORMANCE,
    ScanStatus.SCORING,
    ScanStatus.DONE,
)

TERMINAL_STATUSES: FrozenSet[ScanStatus] = frozenset(
    {ScanStatus.DONE, ScanStatus.FAILED, ScanStatus.DUPLICATE}
)


def _build_transitions() -> Dict[ScanStatus, FrozenSet[ScanStatus]]:
    table: Dict[ScanStatus, set] = {status: set() for status in ScanStatus}
    for current, following in zip(STAGE_ORDER, STAGE_ORDER[1:]):
        table[current].add(following)
    for status in ScanStatus:
        if status not in TERMINAL_STATUSES:
            table[status].add(ScanStatus.FAILED)
    table[ScanStatus.RESOLVING].add(ScanStatus.DUPLICATE)
    return {status: frozenset(targets) for status, targets in table.items()}


def _check_table(table: Dict[ScanStatus, FrozenSet[ScanStatus]]) -> None:
    missing = set(ScanStatus) - set(table)
    if missing:
        raise IllegalTransitionError(f"transition table has no entry for {sorted(s.value for s in missing)}")
    for status in TERMINAL_STATUSES:
        if table[status]:
            raise IllegalTransitionError(f"terminal status {status.value} must not have outgoing transitions")
    reachable = {ScanStatus.QUEUED}
    frontier = [ScanStatus.QUEUED]
    while frontier:
        for target in table[frontier.pop()]:
            if target not in reachable:
                reachable.add(target)
                frontier.append(target)
    unreachable = set(ScanStatus) - reachable
    if unreachable:
        raise IllegalTransitionError(f"unreachable statuses: {sorted(s.value for s in unreachable)}")


TRANSITIONS = _build_transitions()
_check_table(TRANSITIONS)


def can_transition(current: ScanStatus, target: ScanStatus) -> bool:
    return target in TRANSITIONS[ScanStatus(current)]


def validate_transition(current: ScanStatus, target: ScanStatus) -> None:
    if not can_transition(current, target):
        raise IllegalTransitionError(f"illegal scan transition {ScanStatus(current).value} -> {ScanStatus(target).value}")


def predecessors(target: ScanStatus) -> FrozenSet[ScanStatus]:
    """Statuses from which ``target`` may be entered."""
    target = ScanStatus(target)
    return frozenset(status for status, targets in TRANSITIONS.items() if target in targets)


def accepted_from(target: ScanStatus) -> FrozenSet[ScanStatus]:
    """Stored statuses a write of ``target`` may land on.

    Stage writes are repeatable, so a redelivered job can rewrite the stage
    the row already shows. Terminal writes happen once.
    """
    target = ScanStatus(target)
    if target.is_terminal:
        return predecessors(target)
    return predecessors(target) | {target}


def has_passed(current: ScanStatus, target: ScanStatus) -> bool:
    """True when an in-progress ``current`` is already later in the stage order than ``target``."""
    current, target = ScanStatus(current), ScanStatus(target)
    if current.is_terminal or target not in STAGE_ORDER:
        return False
    return STAGE_ORDER.index(current) > STAGE_ORDER.index(target)
