"""
Location persistence.
This module is where location-related SQL lives.
"""

from __future__ import annotations

from typing import Any

from core.db import StoreConnection


async def insert_location(
    store: StoreConnection,
    *,
    user_id: str,
    latitude: float,
    longitude: float,
) -> dict[str, Any] | None:
    """
    Append one row and return the store-assigned `id` and `created_at`.

    created_at comes from the column default, never from the client.
    """
    return await store.fetch_one(
        """
        INSERT INTO user_locations (user_id, latitude, longitude)
        VALUES ($1, $2, $3)
        RETURNING id, created_at
        """,
        user_id,
        latitude,
        longitude,
    )
