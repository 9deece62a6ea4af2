# SPDX-License-Identifier: Apache-2.0

"""
Entitlement snapshot rules.

This module contains pure functions for validating a benefit snapshot,
deriving its totals, building the creation payload, and ordering the
candidate members on the selection screen.
"""

import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..models.entities import Member, Participant
from ..models.enums import BenefitType
from ..models.requests import BenefitDraft
from .scoring import SEVERITY_POINTS, rank_by_priority

SORT_KEYS = ("priority", "name", "barangay", "income", "dependants", "severity")


@dataclass
class ValidationResult:
    """Result of snapshot or participant validation."""
    is_valid: bool
    errors: List[str]
    warnings: List[str] = field(default_factory=list)


def unique_ids(member_ids: Iterable[Any]) -> List[str]:
    """Drop blanks and duplicates, keeping first-seen order."""
    seen = set()
    result = []
    for member_id in member_ids:
        if member_id is None or str(member_id).strip() == "":
            continue
        value = str(member_id).strip()
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def validate_draft(draft: BenefitDraft) -> List[str]:
    """Per-type checks on the benefit details."""
    errors = []
    if draft.type == BenefitType.CASH:
        if draft.per_participant_amount is None:
            errors.append("Amount per participant is required for cash benefits")
        elif draft.per_participant_amount < 0:
            errors.append("Amount per participant cannot be negative")
    elif draft.type == BenefitType.RELIEF:
        if draft.per_participant_quantity is None:
            errors.append("Quantity per participant is required for relief benefits")
        elif draft.per_participant_quantity < 0:
            errors.append("Quantity per participant cannot be negative")
        if not draft.unit:
            errors.append("Unit is required for relief benefits")
    return errors


def validate_selection(
    member_ids: Sequence[str],
    roster: Optional[Mapping[str, Member]] = None,
    existing_participant_ids: Iterable[str] = ()
) -> List[str]:
    """
    Check a member selection against the roster.

    When ``roster`` is given every id must belong to an approved member in
    it; ids already in ``existing_participant_ids`` are rejected.
    """
    errors = []
    if not member_ids:
        errors.append("Select at least one member")
        return errors

    existing = {str(i) for i in existing_participant_ids}
    for member_id in member_ids:
        if member_id in existing:
            errors.append(f"Member {member_id} is already a participant")
            continue
        if roster is None:
            continue
        member = roster.get(member_id)
        if member is None:
            errors.append(f"Member {member_id} was not found")
        elif not member.is_approved():
            errors.append(f"Member {member_id} is not approved (status: {member.status})")
    return errors


def validate_snapshot(
    draft: BenefitDraft,
    selected_member_ids: Sequence[Any],
    roster: Optional[Mapping[str, Member]] = None
) -> ValidationResult:
    """Validate a benefit draft and its participant selection before submission."""
    member_ids = unique_ids(selected_member_ids)
    errors = validate_draft(draft) + validate_selection(member_ids, roster)

    warnings = []
    if len(member_ids) != len(list(selected_member_ids)):
        warnings.append("Duplicate or blank member ids were ignored")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def compute_budget(draft: BenefitDraft, participant_count: int) -> Tuple[Optional[float], Optional[int]]:
    """
    Derive the benefit totals from the per-head values.

    Returns ``(budget_amount, budget_quantity)``; the field that does not
    apply to the benefit type is ``None``.
    """
    if participant_count < 0:
        raise ValueError("Participant count cannot be negative")
    if draft.type == BenefitType.CASH and draft.per_participant_amount is not None:
        return draft.per_participant_amount * participant_count, None
    if draft.type == BenefitType.RELIEF and draft.per_participant_quantity is not None:
        return None, draft.per_participant_quantity * participant_count
    return None, None


def build_snapshot_payload(draft: BenefitDraft, selected_member_ids: Sequence[Any]) -> Dict[str, Any]:
    """Payload for ``POST /benefits`` carrying per-head and total values."""
    member_ids = unique_ids(selected_member_ids)
    budget_amount, budget_quantity = compute_budget(draft, len(member_ids))

    payload = {
        "name": draft.name,
        "type": BenefitType(draft.type).value,
        "status": draft.status,
        "selected_members": member_ids,
    }
    if draft.type == BenefitType.CASH:
        payload["per_participant_amount"] = draft.per_participant_amount
        payload["budget_amount"] = budget_amount
    else:
        payload["per_participant_quantity"] = draft.per_participant_quantity
        payload["budget_quantity"] = budget_quantity
        payload["unit"] = draft.unit
    if draft.target_barangay:
        payload["target_barangay"] = draft.target_barangay
    return payload


def validate_removal(member_ids: Sequence[Any], participants: Iterable[Participant]) -> ValidationResult:
    """Participants who already claimed cannot be removed."""
    requested = unique_ids(member_ids)
    by_user = {p.user_id: p for p in participants}

    errors = []
    if not requested:
        errors.append("Select at least one participant to remove")
    for member_id in requested:
        participant = by_user.get(member_id)
        if participant is None:
            errors.append(f"Member {member_id} is not a participant of this benefit")
        elif participant.has_claimed:
            errors.append(f"Member {member_id} has already claimed this benefit and cannot be removed")

    return ValidationResult(is_valid=not errors, errors=errors)


def eligible_candidates(
    members: Iterable[Member],
    existing_participant_ids: Iterable[str] = (),
    barangay: Optional[str] = None
) -> List[Member]:
    """Approved members not yet in the benefit, optionally from one barangay."""
    existing = {str(i) for i in existing_participant_ids}
    wanted = collation_key(barangay) if barangay and barangay.lower() != "all" else None

    candidates = []
    for member in members:
        if not member.is_approved() or member.id in existing:
            continue
        if wanted is not None and collation_key(member.barangay) != wanted:
            continue
        candidates.append(member)
    return candidates


def collation_key(text: Optional[str]) -> str:
    """Case- and accent-insensitive key for locale-aware string ordering."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return " ".join(stripped.casefold().split())


def _sort_value(member: Member, sort_key: str) -> Tuple[int, Any]:
    # Missing values sort after present ones in either direction
    if sort_key == "name":
        value = collation_key(member.full_name)
        return (0 if value else 1, value)
    if sort_key == "barangay":
        value = collation_key(member.barangay)
        return (0 if value else 1, value)
    if sort_key == "income":
        return (0, member.monthly_income) if member.monthly_income is not None else (1, 0.0)
    if sort_key == "dependants":
        return (0, member.dependants) if member.dependants is not None else (1, 0)
    if sort_key == "severity":
        points = SEVERITY_POINTS.get(member.severity or "")
        return (0, points) if points is not None else (1, 0)
    raise ValueError(f"Unknown sort key: {sort_key}")


def sort_candidates(
    members: Sequence[Member],
    sort_key: Optional[str] = None,
    descending: bool = False
) -> List[Member]:
    """
    Order members for the selection screen.

    The default is priority order from the scoring engine. Override keys are
    stable sorts; members without a value for the key always come last.
    """
    if not sort_key or sort_key == "priority":
        return rank_by_priority(members)
    if sort_key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {sort_key}")

    present = [m for m in members if _sort_value(m, sort_key)[0] == 0]
    missing = [m for m in members if _sort_value(m, sort_key)[0] == 1]
    present.sort(key=lambda m: _sort_value(m, sort_key)[1], reverse=descending)
    return present + missing
