# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the PDAO field station.
"""

# Base models
from .base import BaseRecord

# Enumerations
from .enums import (
    Severity,
    MemberStatus,
    BenefitType,
    EventStatus,
    ScanTargetType,
    ScanState,
    ClaimOutcome
)

# Core entities
from .entities import (
    Member,
    Benefit,
    Participant,
    Claim,
    Attendance,
    Event
)

# Request models
from .requests import (
    BenefitDraft,
    CreateBenefitRequest,
    ParticipantsRequest,
    OpenScanSessionRequest,
    DecodeRequest,
    CandidateQuery,
    ListQuery,
    EventListQuery
)

# Response models
from .responses import (
    HalLink,
    ErrorResponse,
    ValidationErrorResponse,
    ScanSessionResponse,
    CachedListResponse
)

__all__ = [
    "BaseRecord",
    "Severity",
    "MemberStatus",
    "BenefitType",
    "EventStatus",
    "ScanTargetType",
    "ScanState",
    "ClaimOutcome",
    "Member",
    "Benefit",
    "Participant",
    "Claim",
    "Attendance",
    "Event",
    "BenefitDraft",
    "CreateBenefitRequest",
    "ParticipantsRequest",
    "OpenScanSessionRequest",
    "DecodeRequest",
    "CandidateQuery",
    "ListQuery",
    "EventListQuery",
    "HalLink",
    "ErrorResponse",
    "ValidationErrorResponse",
    "ScanSessionResponse",
    "CachedListResponse"
]
