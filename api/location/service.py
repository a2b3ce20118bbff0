"""
Location ingestion "service layer".

Independent of FastAPI routing:
- Decode the raw JSON body
- Validate the candidate record
- Persist it with a single INSERT
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime

from pydantic import ValidationError

from core.config import IngestSettings
from core.db import BACKEND_ERRORS, StoreConnection

from . import repository
from .schemas import LocationSubmission

logger = logging.getLogger(__name__)


class IngestErrorKind(str, enum.Enum):
    MALFORMED_INPUT = "malformed_input"
    INCOMPLETE_DATA = "incomplete_data"
    PERSISTENCE_FAILURE = "persistence_failure"


_STATUS_BY_KIND = {
    IngestErrorKind.MALFORMED_INPUT: 400,
    IngestErrorKind.INCOMPLETE_DATA: 400,
    IngestErrorKind.PERSISTENCE_FAILURE: 500,
}


class IngestError(RuntimeError):
    def __init__(self, kind: IngestErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind

    @property
    def status_code(self) -> int:
        return _STATUS_BY_KIND[self.kind]


@dataclass(frozen=True)
class Accepted:
    id: int
    user_id: str
    created_at: datetime | None = None


def decode(raw_body: bytes | str) -> LocationSubmission:
    try:
        return LocationSubmission.model_validate_json(raw_body)
    except ValidationError as exc:
        raise IngestError(
            IngestErrorKind.MALFORMED_INPUT,
            "Invalid JSON request body.",
        ) from exc


def _coordinate_missing(value: float | None, *, reject_zero: bool) -> bool:
    if value is None:
        return True
    return reject_zero and value == 0.0


def validate(candidate: LocationSubmission, *, reject_zero_coordinates: bool = True) -> None:
    """
    Require user_id, latitude and longitude.

    With `reject_zero_coordinates` a coordinate of exactly 0.0 counts as
    missing, so (0, y) and (x, 0) are rejected.
    """
    if (
        not (candidate.user_id or "").strip()
        or _coordinate_missing(candidate.latitude, reject_zero=reject_zero_coordinates)
        or _coordinate_missing(candidate.longitude, reject_zero=reject_zero_coordinates)
    ):
        raise IngestError(
            IngestErrorKind.INCOMPLETE_DATA,
            "Incomplete location data (requires user_id, latitude, longitude).",
        )


async def persist(
    candidate: LocationSubmission,
    store: StoreConnection,
    *,
    timeout_s: float,
) -> Accepted:
    """
    Single INSERT bounded by `timeout_s`.

    Cancellation of the calling task is not caught: the pending query is
    cancelled with it.
    """
    try:
        row = await asyncio.wait_for(
            repository.insert_location(
                store,
                user_id=candidate.user_id,
                latitude=float(candidate.latitude),
                longitude=float(candidate.longitude),
            ),
            timeout=timeout_s,
        )
    except BACKEND_ERRORS as exc:
        logger.error("location_insert_failed user_id=%s error=%r", candidate.user_id, exc)
        raise IngestError(
            IngestErrorKind.PERSISTENCE_FAILURE,
            "Internal server error while saving the location.",
        ) from exc

    if row is None or "id" not in row:
        logger.error("location_insert_failed user_id=%s error=no row returned", candidate.user_id)
        raise IngestError(
            IngestErrorKind.PERSISTENCE_FAILURE,
            "Internal server error while saving the location.",
        )

    return Accepted(id=int(row["id"]), user_id=candidate.user_id, created_at=row.get("created_at"))


async def handle_submit(
    raw_body: bytes | str,
    store: StoreConnection,
    *,
    settings: IngestSettings | None = None,
) -> Accepted:
    """
    Decode -> validate -> persist one location update.

    Raises `IngestError`; nothing is written unless every step succeeds.
    """
    settings = settings or IngestSettings.from_env()

    candidate = decode(raw_body)
    validate(candidate, reject_zero_coordinates=settings.reject_zero_coordinates)
    accepted = await persist(candidate, store, timeout_s=settings.insert_timeout_s)

    logger.info(
        "location_stored id=%s user_id=%s client_ts=%s",
        accepted.id,
        accepted.user_id,
        candidate.timestamp.isoformat() if candidate.timestamp else None,
    )
    return accepted
