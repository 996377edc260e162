"""Tests for autoclave log parsing and the HTTP client."""

import json
from datetime import date, datetime

import httpx
import pytest

from orthodesk.sterilization.autoclave import (
    AutoclaveClient,
    AutoclaveCycleData,
    AutoclaveCycleInfo,
    build_scilog_path,
    calculate_cycle_duration,
    kpa_to_psi,
    map_runmode_to_type,
    parse_cycle_log,
    parse_profile,
    parse_scilog_filename,
)
from orthodesk.sterilization.exceptions import AutoclaveError
from orthodesk.sterilization.models import CycleType

CYCLE_LOG = """
STATCLAVE G4
SN 710125H00004
Unit #: 1
12.4 uS 8 ppm
CYCLE NUMBER 00391
13:15:02 12/12/2025
Solid/Wrapped
132 C/4min
Min. steri. Values:
132.5C 290kPa
Max. steri. Values:
134.1C 305kPa
STERILIZING 10:05
DRYING START 14:05
DRYING END 34:05
CYCLE COMPLETE 35:10
Digital Signature #
A1B2C3D4E5
"""

STARTED = datetime(2025, 12, 12, 13, 15)
CYCLE_RECORD = {
    "records_id": 7,
    "cycle_start_time": int(STARTED.timestamp()),
    "file_name": "S20251212_00391_710125H00004",
    "cycle_number": 391,
    "cycle_id": "STATCLAVE_120V_solid_wrapped_132_4min",
}
OLDER_RECORD = {
    "records_id": 6,
    "cycle_start_time": int(datetime(2025, 11, 30, 9, 0).timestamp()),
    "file_name": "S20251130_00390_710125H00004",
    "cycle_number": 390,
    "cycle_id": "STATCLAVE_120V_unwrapped_121_15min",
}
ARCHIVES_HTML = (
    "<html><script>var cyclesInfo = "
    + json.dumps([CYCLE_RECORD, OLDER_RECORD, {"file_name": "broken"}])
    + ";</script></html>"
)
CYCLE_DATA = {
    "number": 391,
    "log": CYCLE_LOG,
    "status": "",
    "temp": "20,95,132.5,134.1",
    "pressure": "101 250 305",
    "succeeded": True,
}


def mock_unit(routes):
    """MockTransport answering from {path: httpx.Response or callable}."""
    calls = []

    def handler(request):
        calls.append(request)
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404)
        return route(request) if callable(route) else route

    transport = httpx.MockTransport(handler)
    transport.calls = calls
    return transport


def healthy_unit():
    return mock_unit({
        "/data/cycles.cgi": httpx.Response(200, json=[{"year": 2025, "months": [11, 12]}]),
        "/us/archives.php": httpx.Response(200, text=ARCHIVES_HTML),
        "/data/cycleData.php": httpx.Response(200, json=CYCLE_DATA),
        "/data/file_reader.php": httpx.Response(200, text=CYCLE_LOG),
    })


class TestScilogPaths:
    def test_parse_filename(self):
        parsed = parse_scilog_filename("/opt/data/scilog/2025/12/12/S20251212_00391_710125H00004.txt")
        assert parsed.cycle_number == "00391"
        assert parsed.serial_number == "710125H00004"
        assert parsed.extension == "txt"
        assert parsed.cycle_date == date(2025, 12, 12)

    def test_parse_filename_rejects_other_files(self):
        assert parse_scilog_filename("/opt/data/scilog/notes.txt") is None

    def test_build_path_pads_cycle_number(self):
        path = build_scilog_path(date(2025, 12, 12), 391, "710125H00004", ext="cpt")
        assert path == "/opt/data/scilog/2025/12/12/S20251212_00391_710125H00004.cpt"
        assert parse_scilog_filename(path).cycle_number == "00391"


class TestCycleLog:
    """Printed log parsing."""

    def test_parse_full_log(self):
        parsed = parse_cycle_log(CYCLE_LOG)
        assert parsed.model == "STATCLAVE G4"
        assert parsed.cycle_number == 391
        assert parsed.serial_number == "710125H00004"
        assert parsed.unit_number == "1"
        assert parsed.water_quality == "12.4 uS 8 ppm"
        assert parsed.cycle_datetime == datetime(2025, 12, 12, 13, 15, 2)
        assert parsed.cycle_program == "Solid/Wrapped"
        assert (parsed.target_temp, parsed.target_time) == (132, 4)
        assert (parsed.min_temp, parsed.min_pressure) == (132.5, 290)
        assert (parsed.max_temp, parsed.max_pressure) == (134.1, 305)
        assert parsed.sterilizing_start == 10
        assert (parsed.drying_start, parsed.drying_end) == (14, 34)
        assert parsed.cycle_complete == 35
        assert parsed.digital_signature == "A1B2C3D4E5"

    @pytest.mark.parametrize("text", ["", "   \n  ", "STATCLAVE G4\nSN 1234\n"])
    def test_log_without_cycle_number(self, text):
        assert parse_cycle_log(text) is None


class TestMetrics:
    @pytest.mark.parametrize("status, cycle_id, expected", [
        ("Flash cycle", None, CycleType.STEAM_FLASH),
        ("PreVac", None, CycleType.STEAM_PREVACUUM),
        ("", "STATCLAVE_120V_solid_wrapped_132_4min", CycleType.STEAM_PREVACUUM),
        ("", "STATCLAVE_120V_hollow_134_3min", CycleType.STEAM_PREVACUUM),
        ("", "STATCLAVE_120V_unwrapped_121_15min", CycleType.STEAM_GRAVITY),
        (None, None, CycleType.STEAM_GRAVITY),
    ])
    def test_map_runmode(self, status, cycle_id, expected):
        assert map_runmode_to_type(status, cycle_id) == expected

    def test_parse_profile(self):
        assert parse_profile("20, 95.5,x,134") == [20.0, 95.5, 134.0]
        assert parse_profile("101 250") == [101.0, 250.0]
        assert parse_profile(None) == []

    def test_parse_profile_drops_non_finite_readings(self):
        assert parse_profile("20,nan,134,inf,-inf,121") == [20.0, 134.0, 121.0]
        assert parse_profile("NaN Infinity") == []

    def test_cycle_duration(self):
        assert calculate_cycle_duration(parse_cycle_log(CYCLE_LOG)) == 35
        assert calculate_cycle_duration(None, [1.0] * 240) == 20
        assert calculate_cycle_duration(None, []) == 30

    def test_kpa_to_psi(self):
        assert kpa_to_psi(100) == pytest.approx(14.5038)


class TestCycleInfo:
    def test_from_dict_and_paths(self):
        info = AutoclaveCycleInfo.from_dict(CYCLE_RECORD)
        assert info.started_at == STARTED
        assert info.file_cycle_number == "00391"
        assert info.external_number == 391
        assert info.cpt_path() == "/opt/data/scilog/2025/12/12/S20251212_00391_710125H00004.cpt"
        assert info.program_description() == "solid wrapped 132 4min"

    def test_external_number_falls_back_to_file_name(self):
        info = AutoclaveCycleInfo.from_dict({**CYCLE_RECORD, "cycle_number": 0})
        assert info.external_number == 391

    def test_cycle_data_defaults(self):
        data = AutoclaveCycleData.from_dict({"number": "5"})
        assert data.number == 5
        assert data.succeeded is False
        assert data.display_units == "metric"


class TestAutoclaveClient:
    """HTTP client against a mocked unit."""

    def test_fetch_all_cycles_skips_malformed_records(self):
        with AutoclaveClient("10.0.0.5", transport=healthy_unit()) as client:
            cycles = client.fetch_all_cycles()
        assert [c.cycle_number for c in cycles] == [391, 390]

    def test_fetch_cycles_filters_and_sorts(self):
        with AutoclaveClient("10.0.0.5", transport=healthy_unit()) as client:
            assert [c.cycle_number for c in client.fetch_cycles()] == [390, 391]
            assert [c.cycle_number for c in client.fetch_cycles(2025, 12)] == [391]
            assert client.fetch_cycles(2024) == []

    def test_archives_without_cycles_info(self):
        transport = mock_unit({"/us/archives.php": httpx.Response(200, text="<html></html>")})
        with AutoclaveClient("10.0.0.5", transport=transport) as client:
            assert client.fetch_all_cycles() == []

    def test_fetch_cycle_data_sends_cpt_path(self):
        transport = healthy_unit()
        with AutoclaveClient("10.0.0.5", transport=transport) as client:
            data = client.fetch_cycle_data(AutoclaveCycleInfo.from_dict(CYCLE_RECORD))
        assert data.number == 391
        assert data.succeeded is True
        request = transport.calls[-1]
        assert request.url.params["filename"].endswith("S20251212_00391_710125H00004.cpt")
        assert request.headers["X-Requested-With"] == "XMLHttpRequest"

    def test_fetch_raw_log(self):
        with AutoclaveClient("10.0.0.5", transport=healthy_unit()) as client:
            assert "CYCLE NUMBER" in client.fetch_raw_log("/opt/data/scilog/x.txt")

    def test_http_error_becomes_autoclave_error(self):
        transport = mock_unit({"/data/cycles.cgi": httpx.Response(500)})
        with AutoclaveClient("10.0.0.5", transport=transport) as client:
            with pytest.raises(AutoclaveError, match="HTTP 500"):
                client.fetch_index()

    def test_unreachable_unit(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = mock_unit({"/us/archives.php": refuse})
        with AutoclaveClient("10.0.0.5", transport=transport) as client:
            with pytest.raises(AutoclaveError, match="Cannot reach"):
                client.fetch_all_cycles()

    def test_timeout(self):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        transport = mock_unit({"/data/cycles.cgi": slow})
        with AutoclaveClient("10.0.0.5", transport=transport) as client:
            with pytest.raises(AutoclaveError, match="timed out"):
                client.fetch_index()

    def test_connection_reads_model(self):
        with AutoclaveClient("10.0.0.5", transport=healthy_unit()) as client:
            assert client.test_connection() == {"success": True, "model": "STATCLAVE G4"}

    def test_connection_bad_index(self):
        transport = mock_unit({"/data/cycles.cgi": httpx.Response(200, json={"error": "x"})})
        with AutoclaveClient("10.0.0.5", transport=transport) as client:
            result = client.test_connection()
        assert result["success"] is False
        assert "Invalid response" in result["error"]

    def test_connection_http_error(self):
        transport = mock_unit({})
        with AutoclaveClient("10.0.0.5", transport=transport) as client:
            result = client.test_connection()
        assert result == {"success": False, "error": "HTTP 404: Not Found"}

    def test_connection_timeout(self):
        def slow(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with AutoclaveClient("10.0.0.5", transport=mock_unit({"/data/cycles.cgi": slow})) as client:
            assert client.test_connection() == {"success": False, "error": "Connection timeout"}

    def test_timeout_setting(self, settings):
        settings.ORTHODESK_AUTOCLAVE_TIMEOUT = 2.5
        client = AutoclaveClient("10.0.0.5", port=8080, transport=healthy_unit())
        assert client.timeout == 2.5
        assert client.base_url == "http://10.0.0.5:8080"
        client.close()
