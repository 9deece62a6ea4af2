# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Cached list endpoints, plus the live attendance check.

Each list is served from its PollSync view: the view is ticked on every
request, a failed refresh falls back to the last good data, and
``?refresh=true`` forces a fetch that bypasses the cache TTL.
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, List

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from pydantic import ValidationError
import logging

from ..domain.events import (
    benefit_stats,
    count_events_by_barangay,
    filter_events_by_barangay,
    is_new,
    sort_benefits,
    sort_events,
)
from ..middleware.error_handler import NetworkFailureException, ValidationException
from ..models.entities import Attendance, Benefit, Claim, Event
from ..models.requests import EventListQuery, EventPath, ListQuery, ParticipantsRequest
from ..models.responses import CachedListResponse, ErrorResponse
from ..services.poll_sync import PollSync
from ..services.snapshot import parse_members

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

lists_tag = Tag(name="Lists", description="Cached backend lists")
lists_bp = APIBlueprint(
    'lists',
    __name__,
    url_prefix='/api',
    abp_tags=[lists_tag]
)

LIST_RESPONSES = {200: CachedListResponse, 503: ErrorResponse}


def _serve(view: PollSync, refresh: bool) -> Any:
    """Tick or force the view, then read whatever data it holds."""
    with tracer.start_as_current_span("lists.serve") as span:
        span.set_attributes({"cache.key": view.key, "sync.forced": refresh})
        if refresh:
            view.refresh(force=True)
        else:
            view.tick()
        data = view.read()
        if data is None:
            if view.last_failure is not None:
                raise view.last_failure
            raise NetworkFailureException("No data available yet. Try again.")
        return data


def _sync_fields(view: PollSync) -> Dict[str, Any]:
    last_updated = None
    if view.last_updated is not None:
        last_updated = datetime.fromtimestamp(view.last_updated / 1000, tz=timezone.utc).isoformat()
    return {
        "stale": view.stale,
        "last_updated": last_updated,
        "last_error": view.last_error,
    }


def _parse_all(model, raw_items: List[Dict[str, Any]]) -> List[Any]:
    parsed = []
    for raw in raw_items:
        try:
            parsed.append(model.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"Skipping malformed {model.__name__} record: {e.error_count()} errors")
    return parsed


def _respond(view: PollSync, items: List[Dict[str, Any]], path: str, extra: Dict[str, Any] = None):
    fields = _sync_fields(view)
    if extra:
        fields.update(extra)
    return jsonify(current_app.hal_formatter.format_collection(items, path, fields))


@lists_bp.get('/members', responses=LIST_RESPONSES)
def list_members(query: ListQuery):
    """List registered members from the cached roster."""
    view = current_app.sync_registry.get("members")
    members = parse_members(_serve(view, query.refresh))

    items = []
    for member in members:
        item = member.model_dump(mode="json")
        item["full_name"] = member.full_name
        items.append(item)
    return _respond(view, items, "/api/members")


@lists_bp.get('/events', responses=LIST_RESPONSES)
def list_events(query: EventListQuery):
    """List events with their derived status, filtered and sorted."""
    view = current_app.sync_registry.get("events")
    events = _parse_all(Event, _serve(view, query.refresh))

    try:
        ordered = sort_events(filter_events_by_barangay(events, query.barangay), query.sort)
    except ValueError as e:
        raise ValidationException(str(e), [str(e)]) from e

    today = date.today()
    now = datetime.now(timezone.utc)
    items = []
    for event in ordered:
        item = event.model_dump(mode="json")
        item["status"] = event.status_on(today).value
        item["is_new"] = is_new(event.created_at, now)
        items.append(item)
    return _respond(view, items, "/api/events", {"barangay_counts": count_events_by_barangay(events)})


@lists_bp.get('/benefits', responses=LIST_RESPONSES)
def list_benefits(query: ListQuery):
    """List benefits, active first, with summary counts."""
    view = current_app.sync_registry.get("benefits")
    benefits = _parse_all(Benefit, _serve(view, query.refresh))

    now = datetime.now(timezone.utc)
    items = []
    for benefit in sort_benefits(benefits):
        item = benefit.model_dump(mode="json")
        item["is_new"] = is_new(benefit.created_at, now)
        items.append(item)
    return _respond(view, items, "/api/benefits", {"stats": benefit_stats(benefits)})


@lists_bp.get('/events/<event_id>/attendances', responses=LIST_RESPONSES)
def list_event_attendances(path: EventPath, query: ListQuery):
    """Live attendance for one event, refreshed on the short interval."""
    view = current_app.sync_registry.attendance(path.event_id)
    records = _parse_all(Attendance, _serve(view, query.refresh))
    items = [record.model_dump(mode="json") for record in records]
    return _respond(view, items, f"/api/events/{path.event_id}/attendances")


@lists_bp.post('/events/<event_id>/attendances/check', responses={503: ErrorResponse})
def check_event_attendance(path: EventPath, body: ParticipantsRequest):
    """Which of the given members are already marked present. Always live."""
    with tracer.start_as_current_span(
        "lists.attendance_check",
        attributes={"event.id": path.event_id, "members.count": len(body.user_ids)}
    ):
        present = current_app.backend_client.bulk_check_attendance(path.event_id, body.user_ids)
        result = {
            "event_id": path.event_id,
            "present": {user_id: present.get(user_id, False) for user_id in body.user_ids},
        }
        return jsonify(current_app.hal_formatter.builder.build_resource_response(
            result, f"/api/events/{path.event_id}/attendances/check"
        ))


@lists_bp.get('/benefit-records', responses=LIST_RESPONSES)
def list_benefit_records(query: ListQuery):
    """List benefit claim records."""
    view = current_app.sync_registry.get("benefit-records")
    records = _parse_all(Claim, _serve(view, query.refresh))
    items = [record.model_dump(mode="json") for record in records]
    return _respond(view, items, "/api/benefit-records")


@lists_bp.get('/me')
def current_identity(query: ListQuery):
    """The staff identity the station is signed in as."""
    view = current_app.sync_registry.get("identity")
    identity = _serve(view, query.refresh)
    response = current_app.hal_formatter.builder.build_resource_response(dict(identity), "/api/me")
    response.update(_sync_fields(view))
    return jsonify(response)
