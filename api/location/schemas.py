"""
Location API schemas (request/response models).
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class LocationSubmission(BaseModel):
    # Strict: "40.7" or true is a malformed body, not a coordinate.
    # NaN / Infinity (and overflowing literals like 1e309) are rejected too.
    model_config = ConfigDict(strict=True, allow_inf_nan=False)

    # null is treated like a missing user_id (incomplete, not malformed).
    user_id: str | None = None
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    # Client clock; validated but never persisted (created_at is set by Postgres).
    timestamp: datetime | None = None


class LocationAccepted(BaseModel):
    message: str
    user_id: str
