"""Telemetry service: transactional ingestion plus sliced reads and bulk edits.

Ingestion walks VALIDATED -> DIMENSION_RESOLVED -> FACT_APPENDED -> COMMITTED
inside one transaction; the first failure rolls everything back.  Nothing
here retries: a Conflict (two first-writers racing on a new natural key) is
reported to the caller, who may resubmit and will then find the sensor.
"""

import logging
from enum import Enum
from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..config import settings
from ..deadline import Deadline
from ..errors import (
    Conflict,
    InternalFailure,
    InvalidInput,
    NotFound,
    OperationTimeout,
    RepositoryError,
    TelemetryError,
    describe_validation_errors,
)
from ..models.sensor import SensorModel, SensorRecordModel
from ..repositories.sensor_record_repository import SensorRecordRepository
from ..repositories.sensor_repository import SensorRepository
from ..schemas.sensor import (
    ByIdAndTimeRangeRequest,
    ByIdRequest,
    ByTimeRangeRequest,
    CreateSensorRequest,
    DeleteResponse,
    PageMetadata,
    SearchByIdAndTimeRangeRequest,
    SearchByIdRequest,
    SearchByTimeRangeRequest,
    SensorKeyRequest,
    SensorResponse,
    UpdateByIdAndTimeRangeRequest,
    UpdateByIdRequest,
    UpdateByTimeRangeRequest,
    UpdateResponse,
    parse_rfc3339,
)
from . import converter

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")


class IngestState(str, Enum):
    VALIDATED = "validated"
    DIMENSION_RESOLVED = "dimension_resolved"
    FACT_APPENDED = "fact_appended"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TelemetryService:
    """Orchestrates the sensor and record repositories."""

    def __init__(
        self,
        session_factory: sessionmaker,
        sensor_repository: Optional[SensorRepository] = None,
        record_repository: Optional[SensorRecordRepository] = None,
        query_timeout: float = settings.query_timeout_sec,
        dimension_upsert: bool = settings.dimension_upsert,
    ):
        self._session_factory = session_factory
        self.sensor_repository = sensor_repository or SensorRepository(session_factory, query_timeout)
        self.record_repository = record_repository or SensorRecordRepository(session_factory, query_timeout)
        self.query_timeout = query_timeout
        self.dimension_upsert = dimension_upsert

    # ---- helpers ----

    @staticmethod
    def _validate(model: type[M], payload: Any) -> M:
        if isinstance(payload, model):
            return payload
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            detail = describe_validation_errors(e.errors())
            logger.warning("Rejected %s: %s", model.__name__, detail)
            raise InvalidInput(detail) from e

    def _deadline(self, deadline: Optional[Deadline]) -> Deadline:
        return deadline or Deadline(self.query_timeout)

    def _run(self, action: str, fn: Callable[[Deadline], T], deadline: Optional[Deadline]) -> T:
        """Invoke a repository call and translate its failures."""
        try:
            return fn(self._deadline(deadline))
        except OperationTimeout:
            logger.error("Failed to %s: deadline exceeded", action)
            raise
        except RepositoryError as e:
            logger.error("Failed to %s: %s", action, e)
            raise InternalFailure(f"failed to {action}") from e

    # ---- ingestion ----

    def create(self, request: Any, deadline: Optional[Deadline] = None) -> SensorResponse:
        """Store one reading, creating its sensor on first sight."""
        req = self._validate(CreateSensorRequest, request)
        try:
            timestamp = parse_rfc3339(req.timestamp)
        except ValueError as e:
            logger.warning("Rejected reading for %s/%s: %s", req.id1, req.id2, e)
            raise InvalidInput("timestamp must be an RFC 3339 date-time") from e

        deadline = self._deadline(deadline)
        state = IngestState.VALIDATED
        session = self._session_factory(expire_on_commit=False)
        try:
            with session.begin():
                sensor = self._resolve_sensor(session, req, deadline)
                state = IngestState.DIMENSION_RESOLVED
                logger.debug("Sensor %s resolved for %s/%s/%s",
                             sensor.sensor_id, req.id1, req.id2, req.sensor_type)

                record = SensorRecordModel(
                    sensor_id=sensor.sensor_id,
                    sensor_value=req.sensor_value,
                    timestamp=timestamp,
                )
                self.record_repository.create_within_transaction(session, record, deadline)
                state = IngestState.FACT_APPENDED
                deadline.check("sensor_record.commit")
            state = IngestState.COMMITTED
        except (TelemetryError, RepositoryError, SQLAlchemyError) as e:
            err = self._classify(e, state, req)
            if err is e:
                raise
            raise err from e
        finally:
            session.close()

        logger.debug("Reading %s stored (%s)", record.record_id, state.value)
        return converter.sensor_to_response(sensor, [record])

    def _resolve_sensor(
        self, session: Session, req: CreateSensorRequest, deadline: Deadline,
    ) -> SensorModel:
        if self.dimension_upsert and self.sensor_repository.supports_upsert(session):
            return self.sensor_repository.upsert_within_transaction(
                session, req.id1, req.id2, req.sensor_type, deadline=deadline,
            )

        # Lookup then insert: a concurrent first-writer can slip in between,
        # in which case the unique constraint rejects our insert.
        sensor = self.sensor_repository.find_by_natural_key(
            req.id1, req.id2, req.sensor_type, session=session, deadline=deadline,
        )
        if sensor is None:
            sensor = SensorModel(id1=req.id1, id2=req.id2, sensor_type=req.sensor_type)
            self.sensor_repository.create_within_transaction(session, sensor, deadline=deadline)
        return sensor

    @staticmethod
    def _classify(
        exc: Exception, state: IngestState, req: CreateSensorRequest,
    ) -> TelemetryError:
        if isinstance(exc, TelemetryError):
            err = exc
        elif (
            isinstance(exc, RepositoryError)
            and exc.operation == "sensor.create"
            and isinstance(exc.__cause__, IntegrityError)
        ):
            err = Conflict("sensor was created concurrently, retry the request")
        else:
            err = InternalFailure("failed to store sensor reading")
        logger.error(
            "Ingestion for %s/%s/%s %s after %s: %s",
            req.id1, req.id2, req.sensor_type,
            IngestState.ROLLED_BACK.value, state.value, exc,
        )
        return err

    # ---- reads ----

    def get_sensor(self, request: Any, deadline: Optional[Deadline] = None) -> SensorResponse:
        """Return the sensor identified by its natural key, without records."""
        req = self._validate(SensorKeyRequest, request)
        sensor = self._run(
            "find sensor",
            lambda d: self.sensor_repository.find_by_natural_key(
                req.id1, req.id2, req.sensor_type, deadline=d,
            ),
            deadline,
        )
        if sensor is None:
            raise NotFound(f"sensor {req.id1}/{req.id2}/{req.sensor_type} not found")
        return converter.sensor_to_response(sensor)

    def search_by_id(
        self, request: Any, deadline: Optional[Deadline] = None,
    ) -> tuple[Optional[SensorResponse], PageMetadata]:
        req = self._validate(SearchByIdRequest, request)
        page = self._run(
            "search sensor records by id",
            lambda d: self.record_repository.find_by_sensor_natural_key(
                req.id1, req.id2, req.page, req.page_size, deadline=d,
            ),
            deadline,
        )
        return converter.sensor_to_response(page.sensor, page.records), page.paging

    def search_by_time_range(
        self, request: Any, deadline: Optional[Deadline] = None,
    ) -> tuple[list[SensorResponse], PageMetadata]:
        req = self._validate(SearchByTimeRangeRequest, request)
        page = self._run(
            "search sensor records by time range",
            lambda d: self.record_repository.find_by_time_range(
                req.start, req.end, req.page, req.page_size, deadline=d,
            ),
            deadline,
        )
        return converter.record_rows_to_responses(page.rows), page.paging

    def search_by_id_and_time_range(
        self, request: Any, deadline: Optional[Deadline] = None,
    ) -> tuple[Optional[SensorResponse], PageMetadata]:
        req = self._validate(SearchByIdAndTimeRangeRequest, request)
        page = self._run(
            "search sensor records by id and time range",
            lambda d: self.record_repository.find_by_sensor_natural_key_and_time_range(
                req.id1, req.id2, req.start, req.end, req.page, req.page_size, deadline=d,
            ),
            deadline,
        )
        return converter.sensor_to_response(page.sensor, page.records), page.paging

    # ---- bulk delete ----

    def delete_by_id(self, request: Any, deadline: Optional[Deadline] = None) -> DeleteResponse:
        req = self._validate(ByIdRequest, request)
        deleted = self._run(
            "delete sensor records by id",
            lambda d: self.record_repository.delete_by_sensor_natural_key(
                req.id1, req.id2, deadline=d,
            ),
            deadline,
        )
        logger.info("Deleted %d records for %s/%s", deleted, req.id1, req.id2)
        return DeleteResponse(deleted=deleted)

    def delete_by_time_range(self, request: Any, deadline: Optional[Deadline] = None) -> DeleteResponse:
        req = self._validate(ByTimeRangeRequest, request)
        deleted = self._run(
            "delete sensor records by time range",
            lambda d: self.record_repository.delete_by_time_range(req.start, req.end, deadline=d),
            deadline,
        )
        logger.info("Deleted %d records between %s and %s", deleted, req.start, req.end)
        return DeleteResponse(deleted=deleted)

    def delete_by_id_and_time_range(
        self, request: Any, deadline: Optional[Deadline] = None,
    ) -> DeleteResponse:
        req = self._validate(ByIdAndTimeRangeRequest, request)
        deleted = self._run(
            "delete sensor records by id and time range",
            lambda d: self.record_repository.delete_by_sensor_natural_key_and_time_range(
                req.id1, req.id2, req.start, req.end, deadline=d,
            ),
            deadline,
        )
        logger.info("Deleted %d records for %s/%s between %s and %s",
                    deleted, req.id1, req.id2, req.start, req.end)
        return DeleteResponse(deleted=deleted)

    # ---- bulk update ----

    def update_by_id(self, request: Any, deadline: Optional[Deadline] = None) -> UpdateResponse:
        req = self._validate(UpdateByIdRequest, request)
        updated = self._run(
            "update sensor records by id",
            lambda d: self.record_repository.update_value_by_sensor_natural_key(
                req.id1, req.id2, req.sensor_value, deadline=d,
            ),
            deadline,
        )
        logger.info("Updated %d records for %s/%s", updated, req.id1, req.id2)
        return UpdateResponse(updated=updated)

    def update_by_time_range(self, request: Any, deadline: Optional[Deadline] = None) -> UpdateResponse:
        req = self._validate(UpdateByTimeRangeRequest, request)
        updated = self._run(
            "update sensor records by time range",
            lambda d: self.record_repository.update_value_by_time_range(
                req.start, req.end, req.sensor_value, deadline=d,
            ),
            deadline,
        )
        logger.info("Updated %d records between %s and %s", updated, req.start, req.end)
        return UpdateResponse(updated=updated)

    def update_by_id_and_time_range(
        self, request: Any, deadline: Optional[Deadline] = None,
    ) -> UpdateResponse:
        req = self._validate(UpdateByIdAndTimeRangeRequest, request)
        updated = self._run(
            "update sensor records by id and time range",
            lambda d: self.record_repository.update_value_by_sensor_natural_key_and_time_range(
                req.id1, req.id2, req.start, req.end, req.sensor_value, deadline=d,
            ),
            deadline,
        )
        logger.info("Updated %d records for %s/%s between %s and %s",
                    updated, req.id1, req.id2, req.start, req.end)
        return UpdateResponse(updated=updated)
