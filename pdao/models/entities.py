# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models mirrored from the PDAO backend.
"""

from datetime import date, datetime
from typing import Any, Optional
from pydantic import AliasChoices, Field, field_validator, model_validator

from .base import BaseRecord, coerce_age, coerce_count, coerce_flag, coerce_id, coerce_number
from .enums import BenefitType, EventStatus, MemberStatus

# Profile fields the backend nests under ``member_profile``
PROFILE_FIELDS = (
    "id_number", "first_name", "middle_name", "last_name", "barangay",
    "severity", "monthly_income", "dependants", "age", "birthdate",
    "is_solo_parent", "disability_type", "contact_number", "sex",
)

ACTIVE_BENEFIT_STATUSES = ("active", "available")
CLOSED_BENEFIT_STATUSES = ("completed", "expired")


def age_on(birthdate: date, today: date) -> int:
    """Whole years between ``birthdate`` and ``today``."""
    years = today.year - birthdate.year
    if (today.month, today.day) < (birthdate.month, birthdate.day):
        years -= 1
    return max(years, 0)


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            return None


class Member(BaseRecord):
    """A registered member with the profile attributes used for scoring."""

    id: str = Field(..., description="Opaque backend user id")
    username: Optional[str] = Field(None, description="Login name")
    id_number: Optional[str] = Field(None, description="PWD id number encoded in the member QR")
    first_name: Optional[str] = Field(None, description="First name")
    middle_name: Optional[str] = Field(None, description="Middle name")
    last_name: Optional[str] = Field(None, description="Last name")
    barangay: Optional[str] = Field(None, description="Barangay of residence")
    severity: Optional[str] = Field(None, description="mild, moderate, severe or profound")
    monthly_income: Optional[float] = Field(None, description="Monthly income, absent when unknown")
    dependants: Optional[int] = Field(None, description="Number of dependants")
    age: Optional[int] = Field(None, description="Age in years")
    birthdate: Optional[date] = Field(None, description="Date of birth")
    is_solo_parent: bool = Field(default=False, description="Solo parent flag")
    status: str = Field(default=MemberStatus.PENDING.value, description="Registration status")

    @model_validator(mode="before")
    @classmethod
    def flatten_profile(cls, data: Any) -> Any:
        """Lift ``member_profile`` fields onto the member and derive the age."""
        if not isinstance(data, dict):
            return data
        merged = dict(data)
        profile = merged.pop("member_profile", None) or {}
        for key in PROFILE_FIELDS:
            if merged.get(key) is None and profile.get(key) is not None:
                merged[key] = profile[key]
        if merged.get("age") in (None, "") and merged.get("birthdate"):
            born = _parse_date(merged["birthdate"])
            if born is not None:
                merged["age"] = age_on(born, date.today())
        return merged

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v):
        """Normalize the id to a string."""
        value = coerce_id(v)
        if value is None:
            raise ValueError("Member id is required")
        return value

    @field_validator("id_number", mode="before")
    @classmethod
    def validate_id_number(cls, v):
        """Keep id numbers as trimmed strings."""
        if v is None:
            return None
        value = str(v).strip()
        return value or None

    @field_validator("severity", mode="before")
    @classmethod
    def validate_severity(cls, v):
        """Severity is compared case-insensitively."""
        if v is None:
            return v
        return str(v).strip().lower() or None

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v):
        """A member without a status has not been reviewed yet."""
        if v is None or not str(v).strip():
            return MemberStatus.PENDING.value
        return str(v).strip().lower()

    @field_validator("monthly_income", mode="before")
    @classmethod
    def validate_income(cls, v):
        """Malformed or negative income is treated as absent."""
        number = coerce_number(v)
        if number is None or number < 0:
            return None
        return number

    @field_validator("dependants", mode="before")
    @classmethod
    def validate_dependants(cls, v):
        """Malformed counts are treated as absent."""
        return coerce_count(v)

    @field_validator("age", mode="before")
    @classmethod
    def validate_age(cls, v):
        return coerce_age(v)

    @field_validator("birthdate", mode="before")
    @classmethod
    def validate_birthdate(cls, v):
        """Unparseable birthdates are dropped."""
        return _parse_date(v)

    @field_validator("is_solo_parent", mode="before")
    @classmethod
    def validate_flag(cls, v):
        """Accept 0/1 and string flags."""
        return coerce_flag(v)

    @property
    def full_name(self) -> str:
        """Display name, falling back to the username."""
        parts = [self.first_name, self.middle_name, self.last_name]
        name = " ".join(p.strip() for p in parts if p and p.strip())
        return name or self.username or ""

    def is_approved(self) -> bool:
        """Only approved members can join snapshots or be resolved by a scan."""
        return self.status == MemberStatus.APPROVED.value


class Benefit(BaseRecord):
    """A benefit whose roster and per-head entitlement are fixed at creation."""

    id: Optional[str] = Field(None, description="Backend benefit id")
    name: str = Field(..., min_length=1, max_length=255, description="Benefit name")
    type: BenefitType = Field(..., description="cash or relief")
    status: str = Field(default="active", description="Benefit status")
    per_participant_amount: Optional[float] = Field(
        None,
        validation_alias=AliasChoices("per_participant_amount", "amount"),
        description="Cash per participant"
    )
    per_participant_quantity: Optional[int] = Field(
        None,
        validation_alias=AliasChoices("per_participant_quantity", "quantity"),
        description="Relief units per participant"
    )
    unit: Optional[str] = Field(None, max_length=50, description="Relief unit (kg, pcs, ...)")
    budget_amount: Optional[float] = Field(None, description="Total cash budget")
    budget_quantity: Optional[int] = Field(None, description="Total relief quantity")
    locked_member_count: int = Field(default=0, description="Participants locked at creation")
    target_barangay: Optional[str] = Field(None, description="Eligibility hint")
    start_date: Optional[date] = Field(None, description="Distribution start date")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v):
        """Normalize the id to a string."""
        return coerce_id(v)

    @field_validator("type", mode="before")
    @classmethod
    def validate_type(cls, v):
        """Benefit types are compared case-insensitively."""
        return str(v).strip().lower() if v is not None else v

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v):
        """Benefits without a status are active."""
        if v is None or not str(v).strip():
            return "active"
        return str(v).strip().lower()

    @field_validator("per_participant_amount", "budget_amount", mode="before")
    @classmethod
    def validate_amounts(cls, v):
        """Money fields arrive as decimal strings from the backend."""
        return coerce_number(v)

    @field_validator("per_participant_quantity", "budget_quantity", mode="before")
    @classmethod
    def validate_quantities(cls, v):
        """Quantities are whole units."""
        return coerce_count(v)

    @field_validator("locked_member_count", mode="before")
    @classmethod
    def validate_locked_count(cls, v):
        """Missing counts read as zero."""
        return coerce_count(v) or 0

    @field_validator("start_date", mode="before")
    @classmethod
    def validate_start_date(cls, v):
        """Unparseable dates are dropped."""
        return _parse_date(v)

    def is_active(self) -> bool:
        """Check if the benefit is still being distributed."""
        return self.status in ACTIVE_BENEFIT_STATUSES


class Participant(BaseRecord):
    """A member locked into a benefit's entitlement roster."""

    benefit_id: str = Field(..., description="Benefit id")
    user_id: str = Field(..., description="Member user id")
    has_claimed: bool = Field(
        default=False,
        validation_alias=AliasChoices("has_claimed", "hasClaimed", "claimed"),
        description="Whether a claim already exists for this pair"
    )
    member: Optional[Member] = Field(
        None,
        validation_alias=AliasChoices("member", "user"),
        description="Member details when embedded"
    )

    @field_validator("benefit_id", "user_id", mode="before")
    @classmethod
    def validate_ids(cls, v):
        """Normalize ids to strings."""
        return coerce_id(v)

    @field_validator("has_claimed", mode="before")
    @classmethod
    def validate_claimed(cls, v):
        """Accept 0/1 and string flags."""
        return coerce_flag(v)


class Claim(BaseRecord):
    """Benefit claim record; at most one per (benefit, member)."""

    id: Optional[str] = Field(None, description="Record id")
    benefit_id: Optional[str] = Field(None, description="Benefit id")
    user_id: str = Field(..., description="Member user id")
    claimed_at: Optional[datetime] = Field(None, description="Claim timestamp")
    amount: Optional[float] = Field(
        None,
        validation_alias=AliasChoices("amount", "amount_received"),
        description="Cash handed over"
    )
    scanned_by: Optional[str] = Field(None, description="Staff user id that scanned")

    @field_validator("id", "benefit_id", "user_id", "scanned_by", mode="before")
    @classmethod
    def validate_ids(cls, v):
        """Normalize ids to strings."""
        return coerce_id(v)

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v):
        """Money fields arrive as decimal strings from the backend."""
        return coerce_number(v)


class Attendance(BaseRecord):
    """Event attendance record; at most one per (event, member)."""

    id: Optional[str] = Field(None, description="Record id")
    event_id: Optional[str] = Field(None, description="Event id")
    user_id: str = Field(..., description="Member user id")
    scanned_at: Optional[datetime] = Field(None, description="Scan timestamp")
    status: Optional[str] = Field(None, description="Attendance status, normally present")
    scanned_by: Optional[str] = Field(None, description="Staff user id that scanned")

    @field_validator("id", "event_id", "user_id", "scanned_by", mode="before")
    @classmethod
    def validate_ids(cls, v):
        """Normalize ids to strings."""
        return coerce_id(v)


class Event(BaseRecord):
    """An event members attend; its status is derived, never stored."""

    id: str = Field(..., description="Event id")
    title: str = Field(default="", description="Event title")
    description: Optional[str] = Field(None, description="Event description")
    event_date: date = Field(..., description="Event date")
    event_time: Optional[str] = Field(None, description="Event time of day")
    location: Optional[str] = Field(None, description="Venue")
    target_barangay: Optional[str] = Field(None, description="Barangay the event targets")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v):
        """Normalize the id to a string."""
        return coerce_id(v)

    @field_validator("event_date", mode="before")
    @classmethod
    def validate_event_date(cls, v):
        """Accept dates, datetimes and ISO strings; time of day is dropped."""
        parsed = _parse_date(v)
        if parsed is None:
            raise ValueError("Invalid event date")
        return parsed

    def status_on(self, today: date) -> EventStatus:
        """Event status relative to ``today``."""
        from ..domain.events import derive_event_status
        return derive_event_status(self.event_date, today)

