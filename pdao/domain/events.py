# SPDX-License-Identifier: Apache-2.0

"""
Derived state for event and benefit list views.

Event status is always recomputed from the event date; it is never stored
or cached.
"""

from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

from ..models.entities import (
    ACTIVE_BENEFIT_STATUSES, CLOSED_BENEFIT_STATUSES, Benefit, Event
)
from ..models.enums import BenefitType, EventStatus

NEW_ITEM_WINDOW = timedelta(days=7)
EVENT_SORTS = ("date-upcoming", "date-latest", "date-oldest")


def derive_event_status(event_date: date, today: date) -> EventStatus:
    """
    Compare dates only: before today is completed, today is ongoing,
    after today is upcoming.
    """
    if isinstance(event_date, datetime):
        event_date = event_date.date()
    if isinstance(today, datetime):
        today = today.date()

    if event_date < today:
        return EventStatus.COMPLETED
    if event_date == today:
        return EventStatus.ONGOING
    return EventStatus.UPCOMING


def is_new(created_at: Optional[datetime], now: datetime) -> bool:
    """Items created within the last seven days get the "new" badge."""
    if created_at is None:
        return False
    # Compare naive with naive when only one side carries a timezone
    if created_at.tzinfo is not None and now.tzinfo is None:
        created_at = created_at.replace(tzinfo=None)
    elif created_at.tzinfo is None and now.tzinfo is not None:
        now = now.replace(tzinfo=None)
    return created_at >= now - NEW_ITEM_WINDOW


def filter_events_by_barangay(events: Iterable[Event], barangay: Optional[str]) -> List[Event]:
    """Keep events targeting ``barangay``; "All" or empty keeps everything."""
    if not barangay or barangay.lower() == "all":
        return list(events)
    return [e for e in events if (e.target_barangay or "") == barangay]


def sort_events(events: Iterable[Event], sort_option: str = "date-upcoming") -> List[Event]:
    """Sort events the way the staff event list offers."""
    items = list(events)
    if sort_option == "date-upcoming":
        items.sort(key=lambda e: e.event_date)
    elif sort_option in ("date-latest", "date-oldest"):
        dated = [e for e in items if e.created_at is not None]
        undated = [e for e in items if e.created_at is None]
        dated.sort(key=lambda e: e.created_at, reverse=sort_option == "date-latest")
        items = dated + undated
    else:
        raise ValueError(f"Unknown event sort: {sort_option}")
    return items


def count_events_by_barangay(events: Iterable[Event]) -> Dict[str, int]:
    """Badge counts for the barangay filter."""
    counts: Dict[str, int] = {}
    for event in events:
        key = event.target_barangay or "Unspecified"
        counts[key] = counts.get(key, 0) + 1
    return counts


def _benefit_date(benefit: Benefit) -> datetime:
    if benefit.start_date is not None:
        return datetime.combine(benefit.start_date, datetime.min.time())
    if benefit.created_at is not None:
        return benefit.created_at.replace(tzinfo=None)
    return datetime.min


def sort_benefits(benefits: Iterable[Benefit]) -> List[Benefit]:
    """Active benefits first, then newest by start date or creation time."""
    items = list(benefits)
    items.sort(key=_benefit_date, reverse=True)
    items.sort(key=lambda b: 0 if b.is_active() else 1)
    return items


def benefit_stats(benefits: Iterable[Benefit]) -> Dict[str, int]:
    """Summary counts shown above the benefit list."""
    items = list(benefits)
    return {
        "total": len(items),
        "active": sum(1 for b in items if b.status in ACTIVE_BENEFIT_STATUSES),
        "completed": sum(1 for b in items if b.status in CLOSED_BENEFIT_STATUSES),
        "cash": sum(1 for b in items if b.type == BenefitType.CASH),
        "relief": sum(1 for b in items if b.type == BenefitType.RELIEF),
    }
