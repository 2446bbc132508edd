"""Unit tests for the wire contracts and their parse functions."""

import json

import pytest
from pydantic import ValidationError

from models import (
    CheckRequest,
    CheckResult,
    Method,
    ProbeOptions,
    RegionCheck,
    RegionFailure,
    TimingRecord,
    parse_check_result,
    parse_session,
)


@pytest.fixture
def session_payload(check_payload):
    return {
        "url": "https://example.com",
        "time": 1_760_868_000_000,
        "method": "GET",
        "checks": [dict(check_payload, region="ams"), dict(check_payload, region="syd")],
    }


class TestTimingRecord:
    def test_accepts_wire_names(self, timing_payload):
        record = TimingRecord.model_validate(timing_payload)

        assert record.tls_handshake_done == 60
        assert record.model_dump(by_alias=True) == timing_payload

    def test_rejects_phase_ending_before_start(self, timing_payload):
        timing_payload["tlsHandshakeDone"] = 20

        with pytest.raises(ValidationError, match="tls phase ends before it starts"):
            TimingRecord.model_validate(timing_payload)

    def test_rejects_numeric_strings(self, timing_payload):
        timing_payload["dnsDone"] = "10"

        with pytest.raises(ValidationError):
            TimingRecord.model_validate(timing_payload)

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_rejects_non_finite_timestamps(self, timing_payload, value):
        timing_payload["tlsHandshakeDone"] = value

        with pytest.raises(ValidationError):
            TimingRecord.model_validate(timing_payload)


class TestParseCheckResult:
    def test_valid_payload(self, check_payload):
        result = parse_check_result(check_payload)

        assert result.success
        assert isinstance(result.data, CheckResult)
        assert result.data.status == 200
        assert result.error is None

    def test_body_is_optional(self, check_payload):
        del check_payload["body"]

        assert parse_check_result(check_payload).data.body is None

    def test_missing_timing_fails_without_raising(self, check_payload):
        del check_payload["timing"]

        result = parse_check_result(check_payload)

        assert not result.success
        assert result.data is None
        assert "timing" in result.error

    def test_string_status_fails(self, check_payload):
        check_payload["status"] = "200"

        assert not parse_check_result(check_payload).success

    @pytest.mark.parametrize("field", ["latency", "time"])
    def test_non_finite_number_fails(self, check_payload, field):
        check_payload[field] = float("nan")

        result = parse_check_result(check_payload)

        assert not result.success
        assert field in result.error

    def test_non_finite_number_from_json_text_fails(self, check_payload):
        payload = json.loads(json.dumps(dict(check_payload, latency=float("inf"))))

        assert not parse_check_result(payload).success

    def test_non_string_header_value_fails(self, check_payload):
        check_payload["headers"] = {"content-length": 42}

        assert not parse_check_result(check_payload).success

    def test_non_mapping_payload_fails(self):
        assert not parse_check_result(["not", "an", "object"]).success
        assert not parse_check_result(None).success


class TestParseSession:
    def test_valid_session(self, session_payload, regions):
        result = parse_session(session_payload, regions)

        assert result.success
        assert [check.region for check in result.data.checks] == ["ams", "syd"]
        assert result.data.failures == []

    def test_json_text_input(self, session_payload, regions):
        result = parse_session(json.dumps(session_payload), regions)

        assert result.success
        assert result.data.url == "https://example.com"

    def test_invalid_json_text_fails(self, regions):
        assert not parse_session("{not json", regions).success

    def test_method_defaults_to_get(self, session_payload, regions):
        del session_payload["method"]

        assert parse_session(session_payload, regions).data.method == Method.GET

    def test_method_outside_closed_set_fails(self, session_payload, regions):
        session_payload["method"] = "PATCH"

        assert not parse_session(session_payload, regions).success

    def test_empty_url_fails(self, session_payload, regions):
        session_payload["url"] = ""

        assert not parse_session(session_payload, regions).success

    def test_unsupported_region_fails(self, session_payload, regions):
        session_payload["checks"][0]["region"] = "xyz"

        result = parse_session(session_payload, regions)

        assert not result.success
        assert "unsupported region" in result.error

    def test_regions_follow_configuration(self, session_payload):
        assert parse_session(session_payload, ["ams", "syd", "fra"]).success
        assert not parse_session(session_payload, ["fra"]).success

    def test_invalid_check_fails_session(self, session_payload, regions):
        session_payload["checks"][1]["latency"] = None

        assert not parse_session(session_payload, regions).success

    def test_failures_round_trip(self, session_payload, regions):
        session_payload["failures"] = [
            {"region": "gru", "error": "probe_timeout", "detail": "Probe from gru exceeded 45.0s"}
        ]

        result = parse_session(session_payload, regions)

        assert result.data.failures[0].region == "gru"


class TestRegionModels:
    def test_region_check_is_immutable(self, check_payload):
        check = RegionCheck.model_validate(dict(check_payload, region="ams"))

        with pytest.raises(ValidationError):
            check.status = 500

    def test_region_failure_from_exception(self):
        from errors import ProbeTimeout

        failure = RegionFailure.from_exception("gru", ProbeTimeout("gru", 1.5))

        assert failure.error == "probe_timeout"
        assert "1.5" in failure.detail

    def test_region_failure_from_plain_exception(self):
        failure = RegionFailure.from_exception("ams", RuntimeError())

        assert failure.error == "RuntimeError"
        assert failure.detail == "RuntimeError"


class TestRequestModels:
    def test_header_map_drops_empty_keys(self):
        options = ProbeOptions(headers=[{"key": "", "value": "x"}, {"key": "X-Test", "value": "1"}])

        assert options.header_map() == {"X-Test": "1"}

    def test_check_request_strips_url(self):
        request = CheckRequest(url="  https://example.com  ", method="POST", body="{}")

        assert request.url == "https://example.com"
        assert request.options().method == Method.POST
        assert request.options().body == "{}"

    def test_check_request_rejects_blank_url(self):
        with pytest.raises(ValidationError):
            CheckRequest(url="   ")
