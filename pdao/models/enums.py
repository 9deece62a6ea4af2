# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the PDAO field station.
"""

from enum import Enum


class Severity(str, Enum):
    """Disability severity, ordered from least to most severe."""
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"
    PROFOUND = "profound"


class MemberStatus(str, Enum):
    """Member registration status enumeration."""
    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"
    INACTIVE = "inactive"
    DECEASED = "deceased"


class BenefitType(str, Enum):
    """Kinds of benefit a snapshot can distribute."""
    CASH = "cash"
    RELIEF = "relief"


class EventStatus(str, Enum):
    """Event status derived from the event date."""
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"


class ScanTargetType(str, Enum):
    """What a scan session redeems against."""
    BENEFIT = "benefit"
    EVENT = "event"


class ScanState(str, Enum):
    """Scan-resolve-claim machine states."""
    IDLE = "idle"
    RESOLVING = "resolving"
    ELIGIBLE = "eligible"
    INELIGIBLE = "ineligible"
    RESOLVE_ERROR = "resolve_error"
    CLAIMING = "claiming"
    SUCCESS = "success"
    CONFLICT = "conflict"
    CLAIM_ERROR = "claim_error"


class ClaimOutcome(str, Enum):
    """Backend answer to a claim or attendance submission."""
    CREATED = "created"
    ALREADY_RECORDED = "already_recorded"
    NOT_ELIGIBLE = "not_eligible"
