"""Sensor dimension repository: natural-key lookup and inserts."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.orm import Session

from ..deadline import Deadline
from ..models.sensor import SensorModel
from .base import BaseRepository

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {"sqlite", "postgresql", "mysql", "mariadb"}


def _natural_key_filter(id1: str, id2: int, sensor_type: str):
    return (
        SensorModel.id1 == id1.upper(),
        SensorModel.id2 == id2,
        SensorModel.sensor_type == sensor_type,
    )


class SensorRepository(BaseRepository):

    def create_within_transaction(
        self,
        session: Session,
        sensor: SensorModel,
        deadline: Optional[Deadline] = None,
    ) -> int:
        """Insert ``sensor`` in the caller's transaction and return its sensor_id.

        A natural-key collision surfaces as RepositoryError chained to the
        IntegrityError raised on flush.
        """
        sensor.id1 = sensor.id1.upper()

        def _insert(s: Session) -> int:
            s.add(sensor)
            s.flush()
            return sensor.sensor_id

        return self._call(
            "sensor.create",
            {"id1": sensor.id1, "id2": sensor.id2, "sensor_type": sensor.sensor_type},
            _insert,
            session=session,
            deadline=deadline,
        )

    def find_by_natural_key(
        self,
        id1: str,
        id2: int,
        sensor_type: str,
        session: Optional[Session] = None,
        deadline: Optional[Deadline] = None,
    ) -> Optional[SensorModel]:
        """Return the sensor for (id1, id2, sensor_type), or None."""
        stmt = select(SensorModel).where(*_natural_key_filter(id1, id2, sensor_type)).limit(1)
        return self._call(
            "sensor.find_by_natural_key",
            {"id1": id1, "id2": id2, "sensor_type": sensor_type},
            lambda s: s.scalars(stmt).first(),
            session=session,
            deadline=deadline,
        )

    @staticmethod
    def supports_upsert(session: Session) -> bool:
        return session.get_bind().dialect.name in _UPSERT_DIALECTS

    def upsert_within_transaction(
        self,
        session: Session,
        id1: str,
        id2: int,
        sensor_type: str,
        deadline: Optional[Deadline] = None,
    ) -> SensorModel:
        """Insert-if-absent then select, closing the lookup/insert race.

        Only valid when supports_upsert() is true for the session's dialect.
        """
        values = {"id1": id1.upper(), "id2": id2, "sensor_type": sensor_type}
        dialect = session.get_bind().dialect.name
        if dialect == "sqlite":
            stmt = sqlite.insert(SensorModel).values(**values).on_conflict_do_nothing(
                index_elements=["id1", "id2", "sensor_type"],
            )
        elif dialect == "postgresql":
            stmt = postgresql.insert(SensorModel).values(**values).on_conflict_do_nothing(
                index_elements=["id1", "id2", "sensor_type"],
            )
        elif dialect in ("mysql", "mariadb"):
            # Self-assignment turns the duplicate into a no-op
            stmt = mysql.insert(SensorModel).values(**values)
            stmt = stmt.on_duplicate_key_update(sensor_type=stmt.inserted.sensor_type)
        else:
            raise NotImplementedError(f"no conditional insert for dialect {dialect!r}")

        lookup = select(SensorModel).where(*_natural_key_filter(id1, id2, sensor_type))

        def _upsert(s: Session) -> SensorModel:
            s.execute(stmt)
            return s.scalars(lookup).one()

        return self._call(
            "sensor.upsert",
            values,
            _upsert,
            session=session,
            deadline=deadline,
        )
