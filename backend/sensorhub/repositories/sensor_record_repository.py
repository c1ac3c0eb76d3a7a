"""Sensor record (fact) repository.

Records carry only a sensor_id; every predicate on id1/id2 resolves through
the sensors table, as a join for reads and a sub-select for bulk writes.
Page fetch and COUNT(*) run as two statements and are not snapshot
consistent: under concurrent writes the total may drift from the page.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from ..deadline import Deadline
from ..models.sensor import SensorModel, SensorRecordModel
from ..schemas.sensor import PageMetadata
from .base import BaseRepository, clamp_page, to_db_time

logger = logging.getLogger(__name__)


@dataclass
class SensorPage:
    """One sensor's page of records (sensor is None when nothing matched)."""

    sensor: Optional[SensorModel]
    records: list[SensorRecordModel]
    paging: PageMetadata


@dataclass
class RecordPage:
    """Flat (record, sensor) pairs for queries that span many sensors."""

    rows: list[tuple[SensorRecordModel, SensorModel]] = field(default_factory=list)
    paging: Optional[PageMetadata] = None


def _by_id(id1: str, id2: int) -> list:
    return [SensorModel.id1 == id1.upper(), SensorModel.id2 == id2]


def _by_time(start: datetime, end: datetime) -> list:
    # Inclusive on both ends
    return [SensorRecordModel.timestamp.between(to_db_time(start), to_db_time(end))]


def _sensor_ids(id1: str, id2: int):
    return select(SensorModel.sensor_id).where(*_by_id(id1, id2))


class SensorRecordRepository(BaseRepository):

    def create_within_transaction(
        self,
        session: Session,
        record: SensorRecordModel,
        deadline: Optional[Deadline] = None,
    ) -> int:
        record.timestamp = to_db_time(record.timestamp)

        def _insert(s: Session) -> int:
            s.add(record)
            s.flush()
            return record.record_id

        return self._call(
            "sensor_record.create",
            {"sensor_id": record.sensor_id, "timestamp": record.timestamp.isoformat()},
            _insert,
            session=session,
            deadline=deadline,
        )

    # ---- reads ----

    def _find(
        self,
        operation: str,
        predicate: dict[str, Any],
        filters: list,
        page: int,
        size: int,
        session: Optional[Session],
        deadline: Optional[Deadline],
    ) -> RecordPage:
        page, size = clamp_page(page, size)
        join_on = SensorModel.sensor_id == SensorRecordModel.sensor_id
        rows_stmt = (
            select(SensorRecordModel, SensorModel)
            .join(SensorModel, join_on)
            .where(*filters)
            .order_by(SensorRecordModel.timestamp.asc(), SensorRecordModel.record_id.asc())
            .limit(size)
            .offset((page - 1) * size)
        )
        count_stmt = (
            select(func.count())
            .select_from(SensorRecordModel)
            .join(SensorModel, join_on)
            .where(*filters)
        )

        def _query(s: Session) -> RecordPage:
            rows = [(rec, sensor) for rec, sensor in s.execute(rows_stmt).all()]
            total = s.scalar(count_stmt) or 0
            return RecordPage(rows=rows, paging=PageMetadata.build(page, size, total))

        return self._call(operation, predicate, _query, session=session, deadline=deadline)

    @staticmethod
    def _as_sensor_page(result: RecordPage) -> SensorPage:
        sensor = result.rows[0][1] if result.rows else None
        return SensorPage(
            sensor=sensor,
            records=[rec for rec, _ in result.rows],
            paging=result.paging,
        )

    def find_by_sensor_natural_key(
        self,
        id1: str,
        id2: int,
        page: int,
        size: int,
        session: Optional[Session] = None,
        deadline: Optional[Deadline] = None,
    ) -> SensorPage:
        result = self._find(
            "sensor_record.find_by_id",
            {"id1": id1, "id2": id2, "page": page, "size": size},
            _by_id(id1, id2),
            page, size, session, deadline,
        )
        return self._as_sensor_page(result)

    def find_by_time_range(
        self,
        start: datetime,
        end: datetime,
        page: int,
        size: int,
        session: Optional[Session] = None,
        deadline: Optional[Deadline] = None,
    ) -> RecordPage:
        return self._find(
            "sensor_record.find_by_time_range",
            {"start": start.isoformat(), "end": end.isoformat(), "page": page, "size": size},
            _by_time(start, end),
            page, size, session, deadline,
        )

    def find_by_sensor_natural_key_and_time_range(
        self,
        id1: str,
        id2: int,
        start: datetime,
        end: datetime,
        page: int,
        size: int,
        session: Optional[Session] = None,
        deadline: Optional[Deadline] = None,
    ) -> SensorPage:
        result = self._find(
            "sensor_record.find_by_id_and_time_range",
            {
                "id1": id1, "id2": id2,
                "start": start.isoformat(), "end": end.isoformat(),
                "page": page, "size": size,
            },
            _by_id(id1, id2) + _by_time(start, end),
            page, size, session, deadline,
        )
        return self._as_sensor_page(result)

    # ---- bulk writes ----

    def _rowcount(
        self,
        operation: str,
        predicate: dict[str, Any],
        stmt,
        session: Optional[Session],
        deadline: Optional[Deadline],
    ) -> int:
        stmt = stmt.execution_options(synchronize_session=False)
        return self._call(
            operation,
            predicate,
            lambda s: s.execute(stmt).rowcount,
            session=session,
            deadline=deadline,
        )

    def delete_by_sensor_natural_key(
        self,
        id1: str,
        id2: int,
        session: Optional[Session] = None,
        deadline: Optional[Deadline] = None,
    ) -> int:
        stmt = delete(SensorRecordModel).where(SensorRecordModel.sensor_id.in_(_sensor_ids(id1, id2)))
        return self._rowcount(
            "sensor_record.delete_by_id", {"id1": id1, "id2": id2}, stmt, session, deadline,
        )

    def delete_by_time_range(
        self,
        start: datetime,
        end: datetime,
        session: Optional[Session] = None,
        deadline: Optional[Deadline] = None,
    ) -> int:
        stmt = delete(SensorRecordModel).where(*_by_time(start, end))
        return self._rowcount(
            "sensor_record.delete_by_time_range",
            {"start": start.isoformat(), "end": end.isoformat()},
            stmt, session, deadline,
        )

    def delete_by_sensor_natural_key_and_time_range(
        self,
        id1: str,
        id2: int,
        start: datetime,
        end: datetime,
        session: Optional[Session] = None,
        deadline: Optional[Deadline] = None,
    ) -> int:
        stmt = delete(SensorRecordModel).where(
            SensorRecordModel.sensor_id.in_(_sensor_ids(id1, id2)),
            *_by_time(start, end),
        )
        return self._rowcount(
            "sensor_record.delete_by_id_and_time_range",
            {"id1": id1, "id2": id2, "start": start.isoformat(), "end": end.isoformat()},
            stmt, session, deadline,
        )

    def update_value_by_sensor_natural_key(
        self,
        id1: str,
        id2: int,
        value: float,
        session: Optional[Session] = None,
        deadline: Optional[Deadline] = None,
    ) -> int:
        stmt = (
            update(SensorRecordModel)
            .where(SensorRecordModel.sensor_id.in_(_sensor_ids(id1, id2)))
            .values(sensor_value=value)
        )
        return self._rowcount(
            "sensor_record.update_by_id",
            {"id1": id1, "id2": id2, "sensor_value": value},
            stmt, session, deadline,
        )

    def update_value_by_time_range(
        self,
        start: datetime,
        end: datetime,
        value: float,
        session: Optional[Session] = None,
        deadline: Optional[Deadline] = None,
    ) -> int:
        stmt = update(SensorRecordModel).where(*_by_time(start, end)).values(sensor_value=value)
        return self._rowcount(
            "sensor_record.update_by_time_range",
            {"start": start.isoformat(), "end": end.isoformat(), "sensor_value": value},
            stmt, session, deadline,
        )

    def update_value_by_sensor_natural_key_and_time_range(
        self,
        id1: str,
        id2: int,
        start: datetime,
        end: datetime,
        value: float,
        session: Optional[Session] = None,
        deadline: Optional[Deadline] = None,
    ) -> int:
        stmt = (
            update(SensorRecordModel)
            .where(
                SensorRecordModel.sensor_id.in_(_sensor_ids(id1, id2)),
                *_by_time(start, end),
            )
            .values(sensor_value=value)
        )
        return self._rowcount(
            "sensor_record.update_by_id_and_time_range",
            {
                "id1": id1, "id2": id2,
                "start": start.isoformat(), "end": end.isoformat(),
                "sensor_value": value,
            },
            stmt, session, deadline,
        )
