# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for field station endpoints.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from .base import coerce_id
from .enums import BenefitType, ScanTargetType


class BenefitDraft(BaseModel):
    """Benefit details entered before the participant roster is locked."""

    name: str = Field(..., min_length=1, max_length=255, description="Benefit name")
    type: BenefitType = Field(..., description="cash or relief")
    per_participant_amount: Optional[float] = Field(None, ge=0, description="Cash per participant")
    per_participant_quantity: Optional[int] = Field(None, ge=0, description="Relief units per participant")
    unit: Optional[str] = Field(None, max_length=50, description="Relief unit")
    target_barangay: Optional[str] = Field(None, description="Eligibility hint")
    status: str = Field(default="active", description="Initial status")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        """Validate benefit name."""
        if not v.strip():
            raise ValueError("Benefit name cannot be empty")
        return v.strip()


class CreateBenefitRequest(BenefitDraft):
    """Request model for creating a benefit snapshot."""

    selected_members: List[str] = Field(default_factory=list, description="Member ids to lock in")

    @field_validator("selected_members", mode="before")
    @classmethod
    def validate_selected_members(cls, v):
        """Normalize ids to strings."""
        if v is None:
            return []
        return [coerce_id(item) for item in v if coerce_id(item) is not None]


class ParticipantsRequest(BaseModel):
    """Request model for adding or removing benefit participants."""

    user_ids: List[str] = Field(..., min_length=1, description="Member ids")

    @field_validator("user_ids", mode="before")
    @classmethod
    def validate_user_ids(cls, v):
        """Normalize ids to strings."""
        return [coerce_id(item) for item in (v or []) if coerce_id(item) is not None]


class BenefitPath(BaseModel):
    """Path parameters for benefit resources."""

    benefit_id: str = Field(..., description="Benefit id")


class BenefitMemberPath(BenefitPath):
    """Path parameters for one member's claim on a benefit."""

    user_id: str = Field(..., description="Member id")


class EventPath(BaseModel):
    """Path parameters for event resources."""

    event_id: str = Field(..., description="Event id")


class OpenScanSessionRequest(BaseModel):
    """Request model for opening the scanner on a benefit or event."""

    target_type: ScanTargetType = Field(..., description="benefit or event")
    target_id: str = Field(..., min_length=1, description="Benefit or event id")
    auto_claim: bool = Field(default=True, description="Submit as soon as the member is eligible")

    @field_validator("target_id", mode="before")
    @classmethod
    def validate_target_id(cls, v):
        """Normalize the id to a string."""
        return coerce_id(v) or ""


class DecodeRequest(BaseModel):
    """A payload decoded by the scanning device."""

    payload: str = Field(default="", description="Decoded QR/barcode text")


class CandidateQuery(BaseModel):
    """Query parameters for ranked benefit candidates."""

    sort: Optional[str] = Field(None, description="priority, name, barangay, income, dependants or severity")
    descending: bool = Field(default=False, description="Reverse the override sort")
    benefit_id: Optional[str] = Field(None, description="Exclude members already in this benefit")
    barangay: Optional[str] = Field(None, description="Only members from this barangay")


class ListQuery(BaseModel):
    """Query parameters shared by cached list endpoints."""

    refresh: bool = Field(default=False, description="Bypass the cache and fetch now")


class EventListQuery(ListQuery):
    """Query parameters for the event list."""

    barangay: Optional[str] = Field(None, description="Only events targeting this barangay")
    sort: str = Field(default="date-upcoming", description="date-upcoming, date-latest or date-oldest")
