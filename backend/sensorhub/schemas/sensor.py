"""Pydantic schemas for sensor ingestion, query and bulk-edit payloads."""

import re
from datetime import datetime, timezone
from typing import Annotated, Generic, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, Field, field_validator, model_validator

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Keys and offsets are signed 64-bit in every supported database
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1
MAX_PAGE = INT64_MAX // MAX_PAGE_SIZE

# RFC 3339 date-time: full date, "T", full time, mandatory offset
_RFC3339 = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime.

    Only the RFC 3339 profile is accepted: a bare date, a missing offset or
    a space separator all raise ValueError.  Fractions beyond microseconds
    are truncated.
    """
    if not isinstance(value, str):
        raise ValueError("timestamp must be an RFC 3339 string")
    m = _RFC3339.match(value.strip())
    if m is None:
        raise ValueError(f"not an RFC 3339 timestamp: {value!r}")
    date_part, time_part, fraction, offset = m.groups()
    fraction = (fraction or "").ljust(6, "0")[:6]
    if offset in ("Z", "z"):
        offset = "+00:00"
    try:
        parsed = datetime.fromisoformat(f"{date_part}T{time_part}.{fraction}{offset}")
    except ValueError as e:
        raise ValueError(f"not an RFC 3339 timestamp: {value!r}") from e
    return parsed.astimezone(timezone.utc)


def _check_uppercase(value: str) -> str:
    if value != value.upper():
        raise ValueError("id1 must be upper-case")
    return value


Id1 = Annotated[str, Field(min_length=1, max_length=20), AfterValidator(_check_uppercase)]
Id2 = Annotated[int, Field(ge=INT64_MIN, le=INT64_MAX)]
SensorValue = Annotated[float, Field(allow_inf_nan=False)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class CreateSensorRequest(BaseModel):
    """Inbound reading, identical for the HTTP and MQTT entry points."""

    id1: Id1
    id2: Id2
    sensor_type: str = Field(..., min_length=1, max_length=50)
    sensor_value: SensorValue
    timestamp: str  # RFC 3339, parsed by the service


class PageRequest(BaseModel):
    page: int = Field(default=DEFAULT_PAGE, ge=1, le=MAX_PAGE)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)

    @field_validator("page", mode="before")
    @classmethod
    def _default_page(cls, v):
        # Omitted or zero falls back to the default
        return DEFAULT_PAGE if v in (None, "", 0, "0") else v

    @field_validator("page_size", mode="before")
    @classmethod
    def _default_page_size(cls, v):
        return DEFAULT_PAGE_SIZE if v in (None, "", 0, "0") else v


class ByIdRequest(BaseModel):
    id1: Id1
    id2: Id2


class SensorKeyRequest(ByIdRequest):
    sensor_type: str = Field(..., min_length=1, max_length=50)


class ByTimeRangeRequest(BaseModel):
    start: datetime
    end: datetime

    @field_validator("start", "end", mode="before")
    @classmethod
    def _parse_bound(cls, v):
        if isinstance(v, datetime):
            if v.tzinfo is None:
                raise ValueError("time bound must carry a UTC offset")
            return v.astimezone(timezone.utc)
        return parse_rfc3339(v)

    @model_validator(mode="after")
    def _check_order(self):
        if self.start > self.end:
            raise ValueError("start must not be after end")
        return self


class ByIdAndTimeRangeRequest(ByIdRequest, ByTimeRangeRequest):
    pass


class SearchByIdRequest(ByIdRequest, PageRequest):
    pass


class SearchByTimeRangeRequest(ByTimeRangeRequest, PageRequest):
    pass


class SearchByIdAndTimeRangeRequest(ByIdAndTimeRangeRequest, PageRequest):
    pass


class UpdateByIdRequest(ByIdRequest):
    sensor_value: SensorValue


class UpdateByTimeRangeRequest(ByTimeRangeRequest):
    sensor_value: SensorValue


class UpdateByIdAndTimeRangeRequest(ByIdAndTimeRangeRequest):
    sensor_value: SensorValue


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class SensorRecordResponse(BaseModel):
    sensor_value: float
    timestamp: datetime


class SensorResponse(BaseModel):
    id1: str
    id2: int
    sensor_type: str
    sensor_records: list[SensorRecordResponse] = Field(default_factory=list)


class PageMetadata(BaseModel):
    page: int
    size: int
    total_item: int
    total_page: int

    @classmethod
    def build(cls, page: int, size: int, total_item: int) -> "PageMetadata":
        """Metadata for a clamped page; total_page is 0 when nothing matched."""
        return cls(
            page=page,
            size=size,
            total_item=total_item,
            total_page=(total_item + size - 1) // size,
        )


class DeleteResponse(BaseModel):
    deleted: int


class UpdateResponse(BaseModel):
    updated: int


T = TypeVar("T")


class WebResponse(BaseModel, Generic[T]):
    """Envelope returned by every HTTP endpoint."""

    data: Optional[T] = None
    paging: Optional[PageMetadata] = None


class ErrorResponse(BaseModel):
    errors: str
