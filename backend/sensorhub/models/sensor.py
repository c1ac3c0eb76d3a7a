"""Sensor dimension and SensorRecord fact ORM models."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base

# SQLite only autoincrements INTEGER PRIMARY KEY columns
_SurrogateKey = BigInteger().with_variant(Integer(), "sqlite")


class SensorModel(Base):
    """One row per (id1, id2, sensor_type). Never updated once inserted."""

    __tablename__ = "sensors"

    sensor_id: Mapped[int] = mapped_column(_SurrogateKey, primary_key=True, autoincrement=True)
    id1: Mapped[str] = mapped_column(String(20), nullable=False)
    id2: Mapped[int] = mapped_column(BigInteger, nullable=False)
    sensor_type: Mapped[str] = mapped_column(String(50), nullable=False)

    records: Mapped[list["SensorRecordModel"]] = relationship(
        back_populates="sensor", passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("id1", "id2", "sensor_type", name="uq_sensors_natural_key"),
    )

    def __repr__(self) -> str:
        return (
            f"SensorModel(sensor_id={self.sensor_id!r}, id1={self.id1!r}, "
            f"id2={self.id2!r}, sensor_type={self.sensor_type!r})"
        )


class SensorRecordModel(Base):
    """A single time-stamped measurement owned by exactly one sensor."""

    __tablename__ = "sensor_records"

    record_id: Mapped[int] = mapped_column(_SurrogateKey, primary_key=True, autoincrement=True)
    sensor_id: Mapped[int] = mapped_column(
        _SurrogateKey, ForeignKey("sensors.sensor_id"), nullable=False,
    )
    sensor_value: Mapped[float] = mapped_column(Float, nullable=False)
    # Stored as naive UTC with microsecond precision
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    sensor: Mapped[SensorModel] = relationship(back_populates="records")

    __table_args__ = (
        Index("idx_sensor_records_sensor_id", "sensor_id"),
        Index("idx_sensor_records_timestamp", "timestamp"),
    )
