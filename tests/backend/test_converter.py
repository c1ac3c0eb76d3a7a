"""Tests for grouping flat record rows into the response shape."""

from datetime import datetime, timezone

from sensorhub.models.sensor import SensorModel, SensorRecordModel
from sensorhub.services.converter import record_rows_to_responses, sensor_to_response


def _sensor(id1, id2, sensor_type="temp"):
    return SensorModel(id1=id1, id2=id2, sensor_type=sensor_type)


def _record(value, minute=0):
    return SensorRecordModel(sensor_value=value, timestamp=datetime(2024, 1, 1, 0, minute))


class TestSensorToResponse:
    def test_none_sensor(self):
        assert sensor_to_response(None) is None

    def test_records_in_given_order(self):
        resp = sensor_to_response(_sensor("A", 1), [_record(2.0, 5), _record(1.0, 1)])
        assert [r.sensor_value for r in resp.sensor_records] == [2.0, 1.0]

    def test_timestamps_come_back_utc(self):
        resp = sensor_to_response(_sensor("A", 1), [_record(1.0, 3)])
        ts = resp.sensor_records[0].timestamp
        assert ts == datetime(2024, 1, 1, 0, 3, tzinfo=timezone.utc)

    def test_no_records(self):
        resp = sensor_to_response(_sensor("A", 1))
        assert resp.sensor_records == []


class TestRecordRowsToResponses:
    def test_empty(self):
        assert record_rows_to_responses([]) == []

    def test_groups_in_first_encounter_order(self):
        a, b = _sensor("A", 1), _sensor("B", 2)
        rows = [
            (_record(1.0, 0), a),
            (_record(2.0, 1), b),
            (_record(3.0, 2), a),
            (_record(4.0, 3), b),
            (_record(5.0, 4), a),
        ]
        out = record_rows_to_responses(rows)
        assert [(g.id1, g.id2) for g in out] == [("A", 1), ("B", 2)]
        assert [r.sensor_value for r in out[0].sensor_records] == [1.0, 3.0, 5.0]
        assert [r.sensor_value for r in out[1].sensor_records] == [2.0, 4.0]

    def test_same_id_different_type_merged_under_first_type(self):
        temp, hum = _sensor("A", 1, "temp"), _sensor("A", 1, "humidity")
        out = record_rows_to_responses([(_record(1.0, 0), temp), (_record(50.0, 1), hum)])
        assert len(out) == 1
        assert out[0].sensor_type == "temp"
        assert len(out[0].sensor_records) == 2

    def test_records_not_dropped(self):
        sensors = [_sensor("S", i % 3) for i in range(9)]
        rows = [(_record(float(i), i), s) for i, s in enumerate(sensors)]
        out = record_rows_to_responses(rows)
        assert sum(len(g.sensor_records) for g in out) == 9
