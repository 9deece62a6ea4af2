# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Benefit snapshot endpoints: candidate ranking, creation and roster edits.
"""

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from ..middleware.error_handler import NetworkFailureException
from ..models.requests import BenefitMemberPath, BenefitPath, CandidateQuery, CreateBenefitRequest, ParticipantsRequest
from ..models.responses import ErrorResponse, ValidationErrorResponse

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

benefits_tag = Tag(name="Benefits", description="Benefit snapshots and participant rosters")
benefits_bp = APIBlueprint(
    'benefits',
    __name__,
    url_prefix='/api/benefits',
    abp_tags=[benefits_tag]
)


@benefits_bp.get('/candidates')
def list_candidates(query: CandidateQuery):
    """
    Rank approved members for the selection screen.

    Priority order is the default; ``sort`` switches to a stable name,
    barangay, income, dependants or severity ordering.
    """
    with tracer.start_as_current_span(
        "benefits.candidates",
        attributes={"candidates.sort": query.sort or "priority"}
    ):
        view = current_app.sync_registry.get("members")
        view.tick()
        members = view.read()
        if members is None:
            if view.last_failure is not None:
                raise view.last_failure
            raise NetworkFailureException("Member list is not available yet.")

        ranked = current_app.snapshot_service.rank_candidates(
            members,
            benefit_id=query.benefit_id,
            sort_key=query.sort,
            descending=query.descending,
            barangay=query.barangay
        )
        return jsonify(current_app.hal_formatter.format_collection(
            ranked, "/api/benefits/candidates", {"stale": view.stale}
        ))


@benefits_bp.post('', responses={400: ValidationErrorResponse, 503: ErrorResponse})
def create_benefit(body: CreateBenefitRequest):
    """Create a benefit and lock its participant roster."""
    with tracer.start_as_current_span(
        "benefits.create",
        attributes={"benefit.type": body.type.value, "snapshot.selected": len(body.selected_members)}
    ):
        benefit = current_app.snapshot_service.create_snapshot(body, body.selected_members)
        return jsonify(current_app.hal_formatter.format_benefit(benefit)), 201


@benefits_bp.post('/<benefit_id>/participants', responses={400: ValidationErrorResponse})
def add_participants(path: BenefitPath, body: ParticipantsRequest):
    """Add approved members to an existing benefit."""
    with tracer.start_as_current_span("benefits.participants.add", attributes={"benefit.id": path.benefit_id}):
        result = current_app.snapshot_service.add_participants(path.benefit_id, body.user_ids)
        response = {"benefit_id": path.benefit_id, "added": body.user_ids, "result": result}
        return jsonify(current_app.hal_formatter.format_benefit({"id": path.benefit_id, **response}))


@benefits_bp.delete('/<benefit_id>/participants', responses={400: ValidationErrorResponse})
def remove_participants(path: BenefitPath, body: ParticipantsRequest):
    """Remove participants who have not claimed yet."""
    with tracer.start_as_current_span("benefits.participants.remove", attributes={"benefit.id": path.benefit_id}):
        result = current_app.snapshot_service.remove_participants(path.benefit_id, body.user_ids)
        response = {"benefit_id": path.benefit_id, "removed": body.user_ids, "result": result}
        return jsonify(current_app.hal_formatter.format_benefit({"id": path.benefit_id, **response}))


@benefits_bp.get('/<benefit_id>/claims/<user_id>', responses={503: ErrorResponse})
def claim_status(path: BenefitMemberPath):
    """Whether a member has already claimed this benefit."""
    with tracer.start_as_current_span(
        "benefits.claim_status",
        attributes={"benefit.id": path.benefit_id, "member.id": path.user_id}
    ):
        claimed = current_app.backend_client.check_user_claim(path.benefit_id, path.user_id)
        body = {"benefit_id": path.benefit_id, "user_id": path.user_id, "claimed": claimed}
        return jsonify(current_app.hal_formatter.builder.build_resource_response(
            body, f"/api/benefits/{path.benefit_id}/claims/{path.user_id}"
        ))
