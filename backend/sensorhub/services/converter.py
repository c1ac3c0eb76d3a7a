"""Map sensor/record ORM rows onto the wire response shape. No I/O."""

from typing import Iterable, Optional

from ..models.sensor import SensorModel, SensorRecordModel
from ..repositories.base import from_db_time
from ..schemas.sensor import SensorRecordResponse, SensorResponse


def record_to_response(record: SensorRecordModel) -> SensorRecordResponse:
    return SensorRecordResponse(
        sensor_value=record.sensor_value,
        timestamp=from_db_time(record.timestamp),
    )


def sensor_to_response(
    sensor: Optional[SensorModel],
    records: Iterable[SensorRecordModel] = (),
) -> Optional[SensorResponse]:
    """Single-sensor shape, records kept in the order given."""
    if sensor is None:
        return None
    return SensorResponse(
        id1=sensor.id1,
        id2=sensor.id2,
        sensor_type=sensor.sensor_type,
        sensor_records=[record_to_response(r) for r in records],
    )


def record_rows_to_responses(
    rows: Iterable[tuple[SensorRecordModel, SensorModel]],
) -> list[SensorResponse]:
    """Group flat (record, sensor) rows under one entry per (id1, id2).

    Entries come out in the order their key is first seen, and each entry's
    records keep their encounter order.  sensor_type is taken from the first
    row of each group.
    """
    grouped: dict[tuple[str, int], SensorResponse] = {}
    for record, sensor in rows:
        key = (sensor.id1, sensor.id2)
        entry = grouped.get(key)
        if entry is None:
            entry = grouped[key] = SensorResponse(
                id1=sensor.id1,
                id2=sensor.id2,
                sensor_type=sensor.sensor_type,
            )
        entry.sensor_records.append(record_to_response(record))
    return list(grouped.values())
