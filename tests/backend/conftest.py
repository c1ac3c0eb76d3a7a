"""Shared fixtures: a throwaway SQLite database per test."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from sensorhub.api.dependencies import get_telemetry_service
from sensorhub.main import create_app
from sensorhub.models.database import init_database, make_engine
from sensorhub.models.sensor import SensorModel, SensorRecordModel
from sensorhub.services.telemetry import TelemetryService


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'sensorhub.db'}")
    init_database(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def service(session_factory):
    return TelemetryService(session_factory, query_timeout=5.0, dimension_upsert=True)


@pytest.fixture
def lookup_service(session_factory):
    """Service using lookup-then-insert dimension resolution."""
    return TelemetryService(session_factory, query_timeout=5.0, dimension_upsert=False)


@pytest.fixture
def client(service):
    app = create_app()
    app.dependency_overrides[get_telemetry_service] = lambda: service
    return TestClient(app)


@pytest.fixture
def counts(session_factory):
    """Return (sensor rows, record rows) currently in the database."""
    def _counts() -> tuple[int, int]:
        with session_factory() as s:
            sensors = s.scalar(select(func.count()).select_from(SensorModel))
            records = s.scalar(select(func.count()).select_from(SensorRecordModel))
        return sensors, records
    return _counts


def reading(**overrides) -> dict:
    body = {
        "id1": "ABC",
        "id2": 1,
        "sensor_type": "temp",
        "sensor_value": 21.5,
        "timestamp": "2024-01-01T00:00:00.000Z",
    }
    body.update(overrides)
    return body
