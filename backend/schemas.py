"""
Pydantic request/response schemas for the Exposure Ledger API.

Using explicit schemas instead of raw dicts prevents mass-assignment
vulnerabilities on ORM models and generates accurate OpenAPI docs.
"""

from __future__ import annotations

import re
from typing import Literal, Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

Side = Literal["A", "B"]
MatchStatus = Literal["upcoming", "live", "completed", "settled"]
CustomerStatus = Literal["active", "suspended", "inactive"]

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------

class MatchCreate(BaseModel):
    """Payload for POST /api/matches. New matches always start as 'upcoming'."""

    name: str = Field(..., min_length=1, max_length=200, description="Match name is required")
    team_a: str = Field(..., min_length=1, max_length=120, description="Side A display name")
    team_b: str = Field(..., min_length=1, max_length=120, description="Side B display name")
    start_time: Optional[datetime] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "Final",
                "team_a": "Mumbai",
                "team_b": "Chennai",
            }
        }
    }


class MatchUpdate(BaseModel):
    """
    Payload for PATCH /api/matches/{id}.

    Winning side and settlement time are not writable here; they are set
    once by POST /api/matches/{id}/settle.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    team_a: Optional[str] = Field(None, min_length=1, max_length=120)
    team_b: Optional[str] = Field(None, min_length=1, max_length=120)
    start_time: Optional[datetime] = None
    status: Optional[MatchStatus] = None


class MatchResponse(BaseModel):
    id: int
    name: str
    team_a: str
    team_b: str
    status: str
    start_time: Optional[datetime] = None
    winning_side: Optional[str] = None
    settled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120, description="Customer name is required")
    email: Optional[str] = Field(None, max_length=200)
    phone: Optional[str] = Field(None, max_length=40)
    credit_limit: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        # Empty string is accepted and stored as "no email"
        if v is None or v == "":
            return None
        if not _EMAIL_RE.match(v):
            raise ValueError(f"Invalid email {v!r}")
        return v


class CustomerUpdate(CustomerCreate):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    status: Optional[CustomerStatus] = None


class CustomerResponse(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    credit_limit: Optional[float] = None
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Ledger entries
# ---------------------------------------------------------------------------

class LedgerEntryCreate(BaseModel):
    """
    Payload for POST /api/entries.

    The entry's display name is copied from the customer; it is not
    accepted from the client.
    """

    match_id: int = Field(..., description="FK to matches.id")
    customer_id: int = Field(..., description="FK to customers.id")
    exposure_a: float = Field(..., description="Book position if side A wins (negative = liability)")
    exposure_b: float = Field(..., description="Book position if side B wins (negative = liability)")
    share_percent: float = Field(..., ge=0, le=100, description="Share must be between 0-100%")

    model_config = {
        "json_schema_extra": {
            "example": {
                "match_id": 1,
                "customer_id": 3,
                "exposure_a": -9500,
                "exposure_b": 10000,
                "share_percent": 20,
            }
        }
    }


class LedgerEntryUpdate(BaseModel):
    exposure_a: Optional[float] = None
    exposure_b: Optional[float] = None
    share_percent: Optional[float] = Field(None, ge=0, le=100)
    customer_id: Optional[int] = None


class LedgerEntryResponse(BaseModel):
    id: int
    match_id: int
    customer_id: int
    name: str
    exposure_a: float
    exposure_b: float
    share_percent: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Converter
# ---------------------------------------------------------------------------

class ConverterRequest(BaseModel):
    """Payload for POST /api/tools/convert."""

    stake: float = Field(..., ge=0.01, description="Stake must be greater than 0")
    odds: float = Field(..., ge=1.01, description="Decimal odds, must be greater than 1")
    side: Side


class ConverterResponse(BaseModel):
    exposure_a: float
    exposure_b: float


class OddsEntryCreate(ConverterRequest):
    """Payload for POST /api/matches/{id}/entries/from-odds."""

    name: str = Field(..., min_length=1, max_length=120, description="Customer name is required")
    share_percent: float = Field(..., ge=0, le=100)


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------

class SettleRequest(BaseModel):
    winning_side: Side


class SettlementResponse(BaseModel):
    id: int
    match_id: int
    winning_side: str
    total_payout: float
    net_profit: float
    settled_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

class CsvImportRequest(BaseModel):
    csv_text: str = Field(..., description="CSV content: Player, A Exposure, B Exposure, Share %")


class CsvImportResponse(BaseModel):
    message: str
    imported: int
    entries: list[LedgerEntryResponse]
