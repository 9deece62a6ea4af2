# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models for field station endpoints with HAL support.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class HalLink(BaseModel):
    """HAL link representation."""

    href: str = Field(..., description="Link URL")
    method: Optional[str] = Field(None, description="HTTP method")
    type: Optional[str] = Field(None, description="Content type")
    title: Optional[str] = Field(None, description="Link title")
    templated: Optional[bool] = Field(None, description="Whether URL is templated")


class ErrorResponse(BaseModel):
    """Error response model following RFC 7807."""

    type: str = Field(..., description="Error type URI")
    title: str = Field(..., description="Error title")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Error detail")
    instance: str = Field(..., description="Request instance")
    errors: Optional[List[Dict[str, Any]]] = Field(None, description="Validation errors")


class ValidationErrorResponse(ErrorResponse):
    """Validation error response with field details."""

    errors: List[Dict[str, Any]] = Field(..., description="Field validation errors")


class ScanSessionResponse(BaseModel):
    """What the scanner screen renders after every transition."""

    state: str = Field(..., description="Machine state")
    target_type: str = Field(..., description="benefit or event")
    target_id: str = Field(..., description="Benefit or event id")
    message: str = Field(..., description="Human-readable outcome")
    scanning_enabled: bool = Field(..., description="Whether the decoder accepts codes")
    payload: Optional[str] = Field(None, description="Last decoded payload")
    member: Optional[Dict[str, Any]] = Field(None, description="Resolved member")
    record: Optional[Dict[str, Any]] = Field(None, description="Claim or attendance echoed by the backend")
    retryable: bool = Field(default=False, description="Whether Retry is offered")


class CachedListResponse(BaseModel):
    """A list view served from the local cache."""

    total: int = Field(..., description="Number of items")
    stale: bool = Field(..., description="Last refresh failed; showing last good data")
    last_updated: Optional[str] = Field(None, description="When the data was last fetched")
    last_error: Optional[str] = Field(None, description="Last refresh error")
