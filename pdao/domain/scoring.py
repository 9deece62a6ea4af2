# SPDX-License-Identifier: Apache-2.0

"""
Priority scoring for benefit participation.

Pure functions that turn member attributes into a bounded priority
percentage. Every screen that ranks members goes through ``score`` so the
ordering is identical everywhere.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List, Sequence, Tuple, TypeVar

from ..models.base import coerce_age, coerce_count, coerce_flag, coerce_number

T = TypeVar("T")

SEVERITY_POINTS = {
    "mild": 1,
    "moderate": 3,
    "severe": 5,
    "profound": 7,
}

# (upper bound inclusive, points), checked in ascending order
INCOME_BRACKETS = (
    (3000, 8),
    (6000, 6),
    (10000, 4),
    (15000, 2),
)

SEVERITY_WEIGHT = 3
INCOME_WEIGHT = 2.5
DEPENDANTS_WEIGHT = 2
SENIOR_AGE = 60
SENIOR_BONUS = 2
SOLO_PARENT_BONUS = 2

MAX_POSSIBLE_SCORE = (
    max(SEVERITY_POINTS.values()) * SEVERITY_WEIGHT
    + 10 * INCOME_WEIGHT
    + 5 * DEPENDANTS_WEIGHT
    + SENIOR_BONUS
    + SOLO_PARENT_BONUS
)

# (minimum percentage, label), evaluated high to low
PRIORITY_LABELS = (
    (80, "Very High"),
    (60, "High"),
    (40, "Medium"),
)
DEFAULT_LABEL = "Standard"


@dataclass(frozen=True)
class PriorityScore:
    """Score breakdown for one member."""
    severity_score: int
    income_score: int
    dependants_score: int
    senior_bonus: int
    solo_parent_bonus: int
    total_score: float
    percentage_score: int

    @property
    def label(self) -> str:
        return priority_label(self.percentage_score)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["label"] = self.label
        return data


def _field(member: Any, name: str) -> Any:
    if isinstance(member, dict):
        return member.get(name)
    return getattr(member, name, None)


def severity_score(severity: Any) -> int:
    if not isinstance(severity, str):
        return 1
    return SEVERITY_POINTS.get(severity.strip().lower(), 1)


def income_score(monthly_income: Any) -> int:
    income = coerce_number(monthly_income)
    if income is None or income <= 0:
        return 10
    for upper_bound, points in INCOME_BRACKETS:
        if income <= upper_bound:
            return points
    return 1


def dependants_score(dependants: Any) -> int:
    count = coerce_count(dependants)
    if count is None:
        count = 0
    return min(count, 4) + 1


def score(member: Any) -> PriorityScore:
    """
    Compute the priority score of a member.

    Accepts a ``Member`` or a raw backend mapping. Malformed numeric fields
    fall back to their "no value" branch instead of raising.
    """
    severity = severity_score(_field(member, "severity"))
    income = income_score(_field(member, "monthly_income"))
    dependants = dependants_score(_field(member, "dependants"))

    age = coerce_age(_field(member, "age"))
    senior = SENIOR_BONUS if age is not None and age >= SENIOR_AGE else 0
    solo = SOLO_PARENT_BONUS if coerce_flag(_field(member, "is_solo_parent")) else 0

    total = (
        severity * SEVERITY_WEIGHT
        + income * INCOME_WEIGHT
        + dependants * DEPENDANTS_WEIGHT
        + senior
        + solo
    )

    return PriorityScore(
        severity_score=severity,
        income_score=income,
        dependants_score=dependants,
        senior_bonus=senior,
        solo_parent_bonus=solo,
        total_score=total,
        percentage_score=percentage_of(total),
    )


def percentage_of(total: float) -> int:
    """
    Round ``total`` as a percentage of the maximum, halves rounding up.

    Totals are multiples of 0.5, so the arithmetic is done on half points to
    stay exact.
    """
    half_points = int(round(total * 2))
    max_half_points = int(MAX_POSSIBLE_SCORE * 2)
    percentage = (half_points * 200 + max_half_points) // (2 * max_half_points)
    return max(0, min(100, percentage))


def priority_label(percentage: int) -> str:
    for threshold, label in PRIORITY_LABELS:
        if percentage >= threshold:
            return label
    return DEFAULT_LABEL


def with_scores(members: Iterable[T]) -> List[Tuple[T, PriorityScore]]:
    """Pair each member with its score, keeping input order."""
    return [(member, score(member)) for member in members]


def rank_by_priority(members: Sequence[T]) -> List[T]:
    """
    Sort members by priority percentage, highest first.

    The sort is stable: members with equal percentages keep their relative
    input order.
    """
    scored = with_scores(members)
    scored.sort(key=lambda pair: pair[1].percentage_score, reverse=True)
    return [member for member, _ in scored]
