"""Pydantic v2 request/response schemas for the trust endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Vouches
# ---------------------------------------------------------------------------


class VouchCreateRequest(BaseModel):
    vouchee_id: str = Field(..., min_length=1, max_length=255)
    strength: int = Field(default=50, ge=1, le=100)
    message: str | None = Field(default=None, max_length=1000)
    category: str | None = Field(default=None, max_length=100)
    expires_in_days: int | None = Field(default=None, gt=0, le=3650)


class VouchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    voucher_id: str
    vouchee_id: str
    strength: int
    message: str | None
    category: str | None
    created_at: datetime
    updated_at: datetime
    expires_at: datetime | None
    revoked_at: datetime | None


class CircularCheckResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    circular: bool
    type: str | None = None
    penalty: float = 1.0
    ring_size: int | None = None
    cycle: list[str] = Field(default_factory=list)


class VouchCreateResponse(BaseModel):
    vouch: VouchResponse
    created: bool
    circular: CircularCheckResponse


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


class ReviewCreateRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = Field(default=None, max_length=2000)


class ReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    task_id: str
    reviewer_id: str
    reviewee_id: str
    rating: int
    comment: str | None
    created_at: datetime


# ---------------------------------------------------------------------------
# Reputation
# ---------------------------------------------------------------------------


class ReputationComponentResponse(BaseModel):
    weight: float
    raw: int
    weighted: float
    details: dict[str, Any] = Field(default_factory=dict)


class ReputationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    agent_id: str
    score: int
    tier: str
    breakdown: dict[str, ReputationComponentResponse]
    last_calculated: datetime | None


class ReputationHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    score: int
    trigger_type: str
    components: dict[str, Any]
    calculated_at: datetime


# ---------------------------------------------------------------------------
# Isnad chains
# ---------------------------------------------------------------------------


class TrustPathResponse(BaseModel):
    from_agent: str
    to_agent: str
    path: list[str]
    length: int
    trust: float
    connected: bool
    cached: bool = False
