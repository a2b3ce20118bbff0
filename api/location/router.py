"""
FastAPI router for location ingestion.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from core import db
from core.config import IngestSettings

from . import schemas, service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/v1/location",
    status_code=status.HTTP_201_CREATED,
    response_model=schemas.LocationAccepted,
)
async def submit_location(
    request: Request,
    store: db.StoreConnection = Depends(db.get_store),
    settings: IngestSettings = Depends(db.get_ingest_settings),
) -> schemas.LocationAccepted:
    """
    Store one device location update.

    Body: {"user_id": str, "latitude": number, "longitude": number, "timestamp"?: ISO-8601}
    """
    raw_body = await request.body()
    try:
        accepted = await service.handle_submit(raw_body, store, settings=settings)
    except service.IngestError as exc:
        logger.warning("location_rejected kind=%s status=%s", exc.kind.value, exc.status_code)
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    return schemas.LocationAccepted(
        message="Location received and stored.",
        user_id=accepted.user_id,
    )
