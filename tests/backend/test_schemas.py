"""Tests for request parsing, timestamp handling and paging arithmetic."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from sensorhub.schemas.sensor import (
    INT64_MAX,
    MAX_PAGE,
    MAX_PAGE_SIZE,
    CreateSensorRequest,
    PageMetadata,
    SearchByIdRequest,
    SearchByTimeRangeRequest,
    UpdateByIdAndTimeRangeRequest,
    UpdateByIdRequest,
    parse_rfc3339,
)


class TestParseRfc3339:
    def test_zulu_with_millis(self):
        assert parse_rfc3339("2024-01-01T00:00:00.000Z") == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_offset_is_normalised_to_utc(self):
        result = parse_rfc3339("2024-01-01T02:30:00+02:00")
        assert result == datetime(2024, 1, 1, 0, 30, tzinfo=timezone.utc)
        assert result.utcoffset() == timedelta(0)

    def test_nanoseconds_truncated_to_micros(self):
        result = parse_rfc3339("2024-01-01T00:00:00.123456789Z")
        assert result.microsecond == 123456

    def test_single_fraction_digit(self):
        assert parse_rfc3339("2024-01-01T00:00:00.5Z").microsecond == 500000

    @pytest.mark.parametrize("value", [
        "not-a-date",
        "2024-01-01",
        "2024-01-01T00:00:00",       # no offset
        "2024-01-01 00:00:00Z",      # space separator
        "2024-13-01T00:00:00Z",      # month out of range
        "",
    ])
    def test_rejects_non_rfc3339(self, value):
        with pytest.raises(ValueError):
            parse_rfc3339(value)

    def test_rejects_non_string(self):
        with pytest.raises(ValueError):
            parse_rfc3339(1704067200)


class TestPageMetadata:
    def test_zero_items_zero_pages(self):
        meta = PageMetadata.build(1, 20, 0)
        assert meta.total_page == 0

    def test_partial_last_page(self):
        assert PageMetadata.build(1, 20, 45).total_page == 3

    def test_exact_multiple(self):
        assert PageMetadata.build(1, 20, 40).total_page == 2

    def test_ceil_identity(self):
        for total in range(0, 250):
            for size in (1, 7, 20, 100):
                meta = PageMetadata.build(1, size, total)
                assert meta.total_page == -(-total // size)


class TestCreateSensorRequest:
    def test_valid(self):
        req = CreateSensorRequest(
            id1="ABC", id2=1, sensor_type="temp", sensor_value=21.5,
            timestamp="2024-01-01T00:00:00Z",
        )
        assert req.id1 == "ABC"

    def test_lowercase_id1_rejected(self):
        with pytest.raises(ValidationError):
            CreateSensorRequest(
                id1="abc", id2=1, sensor_type="temp", sensor_value=1.0,
                timestamp="2024-01-01T00:00:00Z",
            )

    def test_missing_fields_rejected(self):
        with pytest.raises(ValidationError) as exc:
            CreateSensorRequest.model_validate({"id1": "ABC"})
        missing = {e["loc"][0] for e in exc.value.errors()}
        assert {"id2", "sensor_type", "sensor_value", "timestamp"} <= missing

    def test_digits_count_as_uppercase(self):
        req = CreateSensorRequest(
            id1="A1-2", id2=0, sensor_type="temp", sensor_value=0.0,
            timestamp="2024-01-01T00:00:00Z",
        )
        assert req.id2 == 0
        assert req.sensor_value == 0.0


class TestPagination:
    def test_defaults(self):
        req = SearchByIdRequest(id1="ABC", id2=1)
        assert (req.page, req.page_size) == (1, 20)

    def test_zero_means_default(self):
        req = SearchByIdRequest.model_validate({"id1": "ABC", "id2": 1, "page": 0, "page_size": "0"})
        assert (req.page, req.page_size) == (1, 20)

    def test_query_strings_coerced(self):
        req = SearchByIdRequest.model_validate({"id1": "ABC", "id2": "7", "page": "3", "page_size": "50"})
        assert (req.id2, req.page, req.page_size) == (7, 3, 50)

    @pytest.mark.parametrize("page,size", [(-1, 20), (1, 101), (1, -5)])
    def test_out_of_range_rejected(self, page, size):
        with pytest.raises(ValidationError):
            SearchByIdRequest(id1="ABC", id2=1, page=page, page_size=size)


class TestTimeRange:
    def test_bounds_parsed(self):
        req = SearchByTimeRangeRequest.model_validate({
            "start": "2024-01-01T00:00:00Z", "end": "2024-01-02T00:00:00+01:00",
        })
        assert req.start == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert req.end == datetime(2024, 1, 1, 23, tzinfo=timezone.utc)

    def test_start_after_end_rejected(self):
        with pytest.raises(ValidationError):
            SearchByTimeRangeRequest.model_validate({
                "start": "2024-01-02T00:00:00Z", "end": "2024-01-01T00:00:00Z",
            })

    def test_equal_bounds_allowed(self):
        req = SearchByTimeRangeRequest.model_validate({
            "start": "2024-01-01T00:00:00Z", "end": "2024-01-01T00:00:00Z",
        })
        assert req.start == req.end

    def test_naive_datetime_rejected(self):
        with pytest.raises(ValidationError):
            SearchByTimeRangeRequest(start=datetime(2024, 1, 1), end=datetime(2024, 1, 2))

    def test_update_combines_all_predicates(self):
        req = UpdateByIdAndTimeRangeRequest.model_validate({
            "id1": "ABC", "id2": 1,
            "start": "2024-01-01T00:00:00Z", "end": "2024-01-02T00:00:00Z",
            "sensor_value": 3.5,
        })
        assert req.sensor_value == 3.5
        assert req.id1 == "ABC"


class TestNumericBounds:
    def _create(self, **overrides):
        body = {
            "id1": "ABC", "id2": 1, "sensor_type": "temp", "sensor_value": 1.0,
            "timestamp": "2024-01-01T00:00:00Z",
        }
        body.update(overrides)
        return CreateSensorRequest.model_validate(body)

    def test_id2_fits_int64(self):
        assert self._create(id2=INT64_MAX).id2 == INT64_MAX
        assert self._create(id2=-(2 ** 63)).id2 == -(2 ** 63)

    @pytest.mark.parametrize("id2", [2 ** 63, 2 ** 64, -(2 ** 63) - 1])
    def test_id2_beyond_int64_rejected(self, id2):
        with pytest.raises(ValidationError):
            self._create(id2=id2)

    def test_search_id2_bounded(self):
        with pytest.raises(ValidationError):
            SearchByIdRequest.model_validate({"id1": "ABC", "id2": str(2 ** 64)})

    def test_largest_page_offset_fits_int64(self):
        req = SearchByIdRequest(id1="ABC", id2=1, page=MAX_PAGE, page_size=MAX_PAGE_SIZE)
        assert (req.page - 1) * req.page_size <= INT64_MAX

    def test_huge_page_rejected(self):
        with pytest.raises(ValidationError):
            SearchByIdRequest.model_validate({"id1": "ABC", "id2": 1, "page": str(10 ** 19)})

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf"), "NaN", "Infinity"])
    def test_non_finite_value_rejected(self, value):
        with pytest.raises(ValidationError):
            self._create(sensor_value=value)

    def test_non_finite_update_rejected(self):
        with pytest.raises(ValidationError):
            UpdateByIdRequest(id1="ABC", id2=1, sensor_value=float("nan"))
