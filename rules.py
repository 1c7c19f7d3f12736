from __future__ import annotations

from typing import Dict, FrozenSet, Tuple

from domain import PatientCategory, Token

# Higher score = seen first.
PRIORITY_SCORES: Dict[PatientCategory, int] = {
    PatientCategory.EMERGENCY: 100,
    PatientCategory.PAID_PRIORITY: 80,
    PatientCategory.FOLLOW_UP: 60,
    PatientCategory.ONLINE_BOOKING: 40,
    PatientCategory.WALK_IN: 20,
}

# Who may displace whom. Independent of PRIORITY_SCORES: a paid patient
# outranks a follow-up but cannot bump one.
BUMP_MATRIX: Dict[PatientCategory, FrozenSet[PatientCategory]] = {
    PatientCategory.EMERGENCY: frozenset(PatientCategory),
    PatientCategory.PAID_PRIORITY: frozenset({PatientCategory.WALK_IN}),
    PatientCategory.FOLLOW_UP: frozenset(),
    PatientCategory.ONLINE_BOOKING: frozenset(),
    PatientCategory.WALK_IN: frozenset(),
}

MAX_BUMP_COUNT = 2


def priority_score(category: PatientCategory) -> int:
    return PRIORITY_SCORES[category]


def can_bump(bumper: PatientCategory, bumped: PatientCategory) -> bool:
    return bumped in BUMP_MATRIX[bumper]


def can_be_bumped(bump_count: int) -> bool:
    """A token that has already been bumped twice is never displaced again."""
    return bump_count < MAX_BUMP_COUNT


def priority_key(token: Token) -> Tuple[int, float, int]:
    """Sort key: score descending, then earliest arrival."""
    return (-token.priority, token.created_at.timestamp(), token.sequence)


def compare_tokens(a: Token, b: Token) -> int:
    """
    Three-way comparison for waitlist ordering.

    Negative when ``a`` should be served before ``b``. The arrival sequence
    breaks ties between tokens created in the same instant, so two distinct
    tokens never compare equal.
    """
    key_a, key_b = priority_key(a), priority_key(b)
    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0
