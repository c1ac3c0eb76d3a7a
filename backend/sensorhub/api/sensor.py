"""Sensor ingestion, search, delete and update endpoints under /api/v1/sensor."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..schemas.sensor import (
    CreateSensorRequest,
    DeleteResponse,
    ErrorResponse,
    SensorResponse,
    UpdateByIdAndTimeRangeRequest,
    UpdateByIdRequest,
    UpdateByTimeRangeRequest,
    UpdateResponse,
    WebResponse,
)
from ..services.telemetry import TelemetryService
from .dependencies import get_telemetry_service

router = APIRouter(
    prefix="/v1/sensor",
    tags=["sensor"],
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)

# Query parameters arrive as raw strings; the service validates them so a
# bad id2 or timestamp yields the same 400 as any other invalid input.
_ID1 = Query(default=None, description="Upper-case primary identifier")
_ID2 = Query(default=None, description="Numeric secondary identifier")
_START = Query(default=None, description="Range start, RFC 3339 (inclusive)")
_END = Query(default=None, description="Range end, RFC 3339 (inclusive)")
_PAGE = Query(default=None, description="Page number, from 1")
_PAGE_SIZE = Query(default=None, description="Records per page, 1-100")


@router.post("/create", response_model=WebResponse[SensorResponse])
def create_sensor(
    request: CreateSensorRequest,
    service: TelemetryService = Depends(get_telemetry_service),
):
    """Store one reading, creating its sensor on first sight."""
    return WebResponse[SensorResponse](data=service.create(request))


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

@router.get("/search/by-id", response_model=WebResponse[Optional[SensorResponse]])
def search_by_id(
    id1: Optional[str] = _ID1,
    id2: Optional[str] = _ID2,
    page: Optional[str] = _PAGE,
    page_size: Optional[str] = _PAGE_SIZE,
    service: TelemetryService = Depends(get_telemetry_service),
):
    data, paging = service.search_by_id(
        {"id1": id1, "id2": id2, "page": page, "page_size": page_size}
    )
    return WebResponse[Optional[SensorResponse]](data=data, paging=paging)


@router.get("/search/by-time-range", response_model=WebResponse[list[SensorResponse]])
def search_by_time_range(
    start: Optional[str] = _START,
    end: Optional[str] = _END,
    page: Optional[str] = _PAGE,
    page_size: Optional[str] = _PAGE_SIZE,
    service: TelemetryService = Depends(get_telemetry_service),
):
    data, paging = service.search_by_time_range(
        {"start": start, "end": end, "page": page, "page_size": page_size}
    )
    return WebResponse[list[SensorResponse]](data=data, paging=paging)


@router.get("/search/by-id-time-range", response_model=WebResponse[Optional[SensorResponse]])
def search_by_id_and_time_range(
    id1: Optional[str] = _ID1,
    id2: Optional[str] = _ID2,
    start: Optional[str] = _START,
    end: Optional[str] = _END,
    page: Optional[str] = _PAGE,
    page_size: Optional[str] = _PAGE_SIZE,
    service: TelemetryService = Depends(get_telemetry_service),
):
    data, paging = service.search_by_id_and_time_range({
        "id1": id1, "id2": id2, "start": start, "end": end,
        "page": page, "page_size": page_size,
    })
    return WebResponse[Optional[SensorResponse]](data=data, paging=paging)


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

@router.delete("/delete/by-id", response_model=WebResponse[DeleteResponse])
def delete_by_id(
    id1: Optional[str] = _ID1,
    id2: Optional[str] = _ID2,
    service: TelemetryService = Depends(get_telemetry_service),
):
    return WebResponse[DeleteResponse](data=service.delete_by_id({"id1": id1, "id2": id2}))


@router.delete("/delete/by-time-range", response_model=WebResponse[DeleteResponse])
def delete_by_time_range(
    start: Optional[str] = _START,
    end: Optional[str] = _END,
    service: TelemetryService = Depends(get_telemetry_service),
):
    return WebResponse[DeleteResponse](
        data=service.delete_by_time_range({"start": start, "end": end})
    )


@router.delete("/delete/by-id-time-range", response_model=WebResponse[DeleteResponse])
def delete_by_id_and_time_range(
    id1: Optional[str] = _ID1,
    id2: Optional[str] = _ID2,
    start: Optional[str] = _START,
    end: Optional[str] = _END,
    service: TelemetryService = Depends(get_telemetry_service),
):
    return WebResponse[DeleteResponse](data=service.delete_by_id_and_time_range(
        {"id1": id1, "id2": id2, "start": start, "end": end}
    ))


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

@router.patch("/update/by-id", response_model=WebResponse[UpdateResponse])
def update_by_id(
    request: UpdateByIdRequest,
    service: TelemetryService = Depends(get_telemetry_service),
):
    return WebResponse[UpdateResponse](data=service.update_by_id(request))


@router.patch("/update/by-time-range", response_model=WebResponse[UpdateResponse])
def update_by_time_range(
    request: UpdateByTimeRangeRequest,
    service: TelemetryService = Depends(get_telemetry_service),
):
    return WebResponse[UpdateResponse](data=service.update_by_time_range(request))


@router.patch("/update/by-id-time-range", response_model=WebResponse[UpdateResponse])
def update_by_id_and_time_range(
    request: UpdateByIdAndTimeRangeRequest,
    service: TelemetryService = Depends(get_telemetry_service),
):
    return WebResponse[UpdateResponse](data=service.update_by_id_and_time_range(request))


# ---------------------------------------------------------------------------
# Dimension lookup (declared last so the literal paths above win)
# ---------------------------------------------------------------------------

@router.get("/{id1}/{id2}/{sensor_type}", response_model=WebResponse[SensorResponse])
def get_sensor(
    id1: str,
    id2: str,
    sensor_type: str,
    service: TelemetryService = Depends(get_telemetry_service),
):
    return WebResponse[SensorResponse](
        data=service.get_sensor({"id1": id1, "id2": id2, "sensor_type": sensor_type})
    )
