# SPDX-License-Identifier: Apache-2.0

"""
Entitlement snapshot service.

Creates benefits with a locked participant roster and edits that roster.
Every check that can be made locally runs before the first network call.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from opentelemetry import trace
from pydantic import ValidationError

from ..domain.entitlements import (
    build_snapshot_payload,
    eligible_candidates,
    sort_candidates,
    unique_ids,
    validate_removal,
    validate_selection,
    validate_snapshot,
)
from ..domain.scoring import score
from ..middleware.error_handler import ValidationException
from ..models.entities import Member, Participant
from ..models.requests import BenefitDraft
from .backend import BackendClient

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

RosterSource = Callable[[], Optional[List[Dict[str, Any]]]]


def parse_members(raw_members: Iterable[Dict[str, Any]]) -> List[Member]:
    """Parse backend member records, skipping ones without an id."""
    members = []
    for raw in raw_members or []:
        try:
            members.append(Member.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"Skipping malformed member record: {e.error_count()} errors")
    return members


def parse_participants(benefit_id: str, raw_participants: Iterable[Dict[str, Any]],
                       claimed_ids: Iterable[str] = ()) -> List[Participant]:
    """Participants of one benefit, marking those with an existing claim."""
    claimed = {str(i) for i in claimed_ids}
    participants = []
    for raw in raw_participants or []:
        user = raw.get("user") if isinstance(raw.get("user"), dict) else {}
        user_id = raw.get("user_id") or user.get("id")
        if user_id is None:
            continue
        record = {**raw, "benefit_id": benefit_id, "user_id": user_id}
        for key in ("user", "member"):
            if not (isinstance(record.get(key), dict) and record[key].get("id") is not None):
                record.pop(key, None)
        participant = Participant.model_validate(record)
        if participant.user_id in claimed:
            participant = participant.model_copy(update={"has_claimed": True})
        participants.append(participant)
    return participants


class EntitlementSnapshotService:
    """
    Benefit snapshot creation and participant roster edits.

    Args:
        backend: PDAO backend client
        roster_source: returns the cached member list, or ``None`` when it
            is not available; used to check approval locally
        on_change: called after a successful write so cached lists can be
            invalidated
    """

    def __init__(self, backend: BackendClient, roster_source: Optional[RosterSource] = None,
                 on_change: Optional[Callable[[], None]] = None):
        self.backend = backend
        self.roster_source = roster_source
        self.on_change = on_change

    def _roster(self) -> Optional[Dict[str, Member]]:
        if self.roster_source is None:
            return None
        raw = self.roster_source()
        if raw is None:
            return None
        return {member.id: member for member in parse_members(raw)}

    def _changed(self):
        if self.on_change is not None:
            self.on_change()

    def create_snapshot(self, draft: BenefitDraft, selected_member_ids: List[Any]) -> Dict[str, Any]:
        """
        Create a benefit and lock its participants in one call.

        Raises:
            ValidationException: the draft or selection is invalid; nothing
                was sent to the backend
        """
        with tracer.start_as_current_span("snapshot.create") as span:
            result = validate_snapshot(draft, selected_member_ids, self._roster())
            if not result.is_valid:
                span.set_attribute("snapshot.valid", False)
                raise ValidationException("Benefit snapshot is invalid", result.errors)

            payload = build_snapshot_payload(draft, selected_member_ids)
            span.set_attributes({
                "snapshot.valid": True,
                "benefit.type": payload["type"],
                "snapshot.participants": len(payload["selected_members"]),
            })

            benefit = self.backend.create_benefit(payload)
            logger.info(
                "Benefit snapshot created",
                extra={
                    "benefit_id": benefit.get("id"),
                    "benefit_type": payload["type"],
                    "participants": len(payload["selected_members"]),
                }
            )
            self._changed()

            # The locked values are what was sent; the backend may echo less
            created = dict(payload)
            created.pop("selected_members")
            created["locked_member_count"] = len(payload["selected_members"])
            created.update({k: v for k, v in benefit.items() if v is not None})
            return created

    def participants(self, benefit_id: str) -> List[Participant]:
        """Current roster with claim status."""
        raw = self.backend.list_benefit_participants(benefit_id)
        claimed = [claim.get("user_id") for claim in self.backend.list_benefit_claims(benefit_id)]
        return parse_participants(benefit_id, raw, [c for c in claimed if c is not None])

    def add_participants(self, benefit_id: str, user_ids: List[Any]) -> Dict[str, Any]:
        """Add approved members who are not yet participants."""
        with tracer.start_as_current_span("snapshot.add_participants") as span:
            span.set_attribute("benefit.id", benefit_id)
            member_ids = unique_ids(user_ids)
            if not member_ids:
                raise ValidationException("Select at least one member", ["Select at least one member"])

            existing = [p.user_id for p in self.participants(benefit_id)]
            errors = validate_selection(member_ids, self._roster(), existing)
            if errors:
                raise ValidationException("Cannot add participants", errors)

            result = self.backend.add_participants(benefit_id, member_ids)
            logger.info(f"Added {len(member_ids)} participants to benefit {benefit_id}")
            self._changed()
            return result

    def remove_participants(self, benefit_id: str, user_ids: List[Any]) -> Dict[str, Any]:
        """Remove participants; anyone who already claimed is refused."""
        with tracer.start_as_current_span("snapshot.remove_participants") as span:
            span.set_attribute("benefit.id", benefit_id)
            member_ids = unique_ids(user_ids)
            if not member_ids:
                raise ValidationException(
                    "Select at least one participant to remove",
                    ["Select at least one participant to remove"]
                )

            result = validate_removal(member_ids, self.participants(benefit_id))
            if not result.is_valid:
                raise ValidationException("Cannot remove participants", result.errors)

            response = self.backend.remove_participants(benefit_id, member_ids)
            logger.info(f"Removed {len(member_ids)} participants from benefit {benefit_id}")
            self._changed()
            return response

    def rank_candidates(
        self,
        raw_members: Iterable[Dict[str, Any]],
        benefit_id: Optional[str] = None,
        sort_key: Optional[str] = None,
        descending: bool = False,
        barangay: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Approved members ordered for the selection screen, with their scores."""
        existing = [p.user_id for p in self.participants(benefit_id)] if benefit_id else []
        candidates = eligible_candidates(parse_members(raw_members), existing, barangay)
        try:
            ordered = sort_candidates(candidates, sort_key, descending)
        except ValueError as e:
            raise ValidationException(str(e), [str(e)]) from e

        ranked = []
        for member in ordered:
            item = member.model_dump(mode="json")
            item["full_name"] = member.full_name
            item["priority"] = score(member).to_dict()
            ranked.append(item)
        return ranked
