"""HTTP route definitions for the read API."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import HealthStatus, StoredReading
from datastore.readings_table import ReadingsTable, build_default_table

router = APIRouter()


def get_table() -> ReadingsTable:
    table = build_default_table()
    table.reload()
    return table


@router.get(
    "/api/sensor",
    response_model=List[StoredReading],
    summary="List stored sensor readings, newest first.",
)
async def list_readings(
    device_id: Optional[str] = Query(None, description="Only readings from this device."),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    table: ReadingsTable = Depends(get_table),
) -> List[StoredReading]:
    return table.query(device_id=device_id, limit=limit)


@router.get(
    "/api/sensor/{device_id}/latest",
    response_model=StoredReading,
    summary="Fetch the most recent reading for a device.",
)
async def latest_reading(
    device_id: str,
    table: ReadingsTable = Depends(get_table),
) -> StoredReading:
    readings = table.query(device_id=device_id, limit=1)
    if not readings:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No readings stored for device {device_id!r}.",
        )
    return readings[0]


@router.get(
    "/health",
    response_model=HealthStatus,
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> HealthStatus:
    return HealthStatus(status="ok")


@router.get(
    "/",
    response_model=HealthStatus,
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> HealthStatus:
    return HealthStatus(status="ok", detail="API server is running. See /api/sensor for readings.")
