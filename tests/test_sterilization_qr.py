"""Tests for sterilization QR content and expiry math."""

import base64
import json
from datetime import date, datetime, timedelta, timezone as dt_timezone

import pytest

from orthodesk.sterilization import qr


class TestGeneration:
    """Content generators."""

    def test_scanner_content(self):
        content = qr.generate_scanner_content(
            "2312", datetime(2025, 12, 20, 13, 15), equipment_name="Stclave-2", package_type="Pouch"
        )
        assert content == "Date STE 20-Dec-2025 Stclave-2 2312 13_15 Pouch"

    def test_scanner_content_defaults_and_spaces(self):
        content = qr.generate_scanner_content("CYC-2025-0042", datetime(2025, 1, 5, 8, 0), "Statim 2000")
        assert content == "Date STE 05-Jan-2025 Statim_2000 CYC-2025-0042 08_00 Cassette"

    def test_json_content_is_compact(self):
        content = qr.generate_json_content(
            "11111111-2222-3333-4444-1a2b3c4d5e6f",
            "CYC-2025-0042",
            date(2025, 12, 20),
            cycle_type="STEAM_PREVACUUM",
            temperature="134.4",
        )
        data = json.loads(content)
        assert " " not in content
        assert data == {
            "v": 1,
            "id": "3c4d5e6f",
            "cn": "CYC-2025-0042",
            "sd": "2025-12-20",
            "ed": "2026-01-19",
            "ct": "STEAM_PREVACUUM",
            "t": 134,
        }

    def test_json_content_id_is_last_eight(self):
        data = json.loads(qr.generate_json_content("11111111-2222-3333-4444-1a2b3c4d5e6f", "C1", date(2025, 1, 1)))
        assert data["id"] == "3c4d5e6f"
        assert "ct" not in data

    def test_legacy_content_uses_start_of_id(self):
        content = qr.generate_legacy_content(
            "CYC-2025-0042", date(2025, 12, 20), cycle_id="1A2B3C4D-0000-0000-0000-000000000000"
        )
        assert content == "ORCA-STERIL-CYC-2025-0042-1a2b3c4d-20251220"

    def test_legacy_content_without_id_hashes_number(self):
        first = qr.generate_legacy_content("CYC-1", date(2025, 1, 1))
        assert first == qr.generate_legacy_content("CYC-1", date(2025, 1, 1))
        assert qr.parse_qr_content(first) is not None


class TestParsing:
    """parse_qr_content() across formats."""

    def test_parse_scanner(self):
        parsed = qr.parse_qr_content("Date STE 20-Dec-2025 Stclave-2 2312 13_15 Pouch")
        assert parsed.version == qr.SCANNER_VERSION
        assert parsed.cycle_number == "2312"
        assert parsed.sterilization_date == date(2025, 12, 20)
        assert parsed.expiration_date == date(2026, 1, 19)
        assert parsed.equipment_name == "Stclave-2"
        assert parsed.time == "13_15"
        assert parsed.package_type == "Pouch"

    def test_parse_scanner_package_type_may_contain_spaces(self):
        parsed = qr.parse_qr_content("Date STE 01-Mar-2026 Unit1 77 09_30 Full Cassette")
        assert parsed.package_type == "Full Cassette"

    def test_parse_json(self):
        parsed = qr.parse_qr_content(
            '{"v":1,"id":"3c4d5e6f","cn":"CYC-2025-0042","sd":"2025-12-20","ed":"2026-02-01","t":134}'
        )
        assert parsed.version == qr.JSON_VERSION
        assert parsed.cycle_id_suffix == "3c4d5e6f"
        assert parsed.expiration_date == date(2026, 2, 1)
        assert parsed.temperature == 134

    def test_parse_legacy(self):
        parsed = qr.parse_qr_content("ORCA-STERIL-CYC-2025-0042-1a2b3c4d-20251220")
        assert parsed.version == qr.LEGACY_VERSION
        assert parsed.cycle_number == "CYC-2025-0042"
        assert parsed.cycle_id_suffix == "1a2b3c4d"
        assert parsed.expiration_date == date(2026, 1, 19)

    @pytest.mark.parametrize("content", [
        "",
        "hello world",
        "Date STE 32-Dec-2025 X 1 10_00 Pouch",
        "Date STE 01-Foo-2025 X 1 10_00 Pouch",
        '{"v":1,"cn":"C1"}',
        '{"v":1,"cn":"C1","sd":"2025-13-01","ed":"2026-01-01"}',
        "[1, 2, 3]",
        "ORCA-STERIL-C1-XYZ-20251220",
    ])
    def test_unrecognised_content(self, content):
        assert qr.parse_qr_content(content) is None

    def test_round_trip_to_dict(self):
        parsed = qr.parse_qr_content("Date STE 20-Dec-2025 Stclave-2 2312 13_15 Pouch")
        data = parsed.to_dict()
        assert data["sterilization_date"] == "2025-12-20"
        assert data["version"] == 2


class TestExpiry:
    """Sterility window."""

    def test_calculate_expiration_date_default(self, settings):
        settings.ORTHODESK_STERILE_EXPIRATION_DAYS = 14
        assert qr.calculate_expiration_date(date(2026, 1, 1)) == date(2026, 1, 15)

    def test_still_sterile_until_start_of_expiration_day(self):
        expires = date(2026, 1, 10)
        assert qr.is_still_sterile(expires, now=datetime(2026, 1, 9, 23, 59, tzinfo=dt_timezone.utc))
        assert not qr.is_still_sterile(expires, now=datetime(2026, 1, 10, 0, 0, tzinfo=dt_timezone.utc))

    def test_days_until_expiration_rounds_up(self):
        expires = date(2026, 1, 10)
        now = datetime(2026, 1, 8, 12, 0, tzinfo=dt_timezone.utc)
        assert qr.days_until_expiration(expires, now=now) == 2
        assert qr.days_until_expiration(expires, now=now + timedelta(days=3)) == -1


class TestImages:
    """PNG rendering."""

    def test_render_png_size(self):
        from io import BytesIO

        from PIL import Image

        png = qr.render_qr_png("ORCA-STERIL-C1-1a2b3c4d-20251220", size=150)
        assert png.startswith(b"\x89PNG")
        assert Image.open(BytesIO(png)).size == (150, 150)

    def test_data_url(self):
        url = qr.render_qr_data_url("hello", size=64)
        prefix = "data:image/png;base64,"
        assert url.startswith(prefix)
        assert base64.b64decode(url[len(prefix):]).startswith(b"\x89PNG")
