"""QR content for sterilized instrument packages.

Three content formats are understood:

- scanner (version 2, generated by default), readable by handheld
  scanners as plain text::

      Date STE 20-Dec-2025 Stclave-2 2312 13_15 Pouch

- compact JSON (version 1)::

      {"v":1,"id":"1a2b3c4d","cn":"CYC-2025-0042","sd":"2025-12-20","ed":"2026-01-19"}

- legacy (version 0)::

      ORCA-STERIL-CYC-2025-0042-1a2b3c4d-20251220

Parsing tries them in that order.
"""

import base64
import hashlib
import io
import json
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta

import qrcode
from django.utils import timezone
from PIL import Image

from orthodesk.core.conf import get_setting

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

SCANNER_VERSION = 2
JSON_VERSION = 1
LEGACY_VERSION = 0

_SCANNER_RE = re.compile(r"^Date STE (\d{2}-[A-Za-z]{3}-\d{4}) (\S+) (\S+) (\d{2}_\d{2}) (.+)$")
_SCANNER_DATE_RE = re.compile(r"^(\d{2})-([A-Za-z]{3})-(\d{4})$")
_LEGACY_RE = re.compile(r"^ORCA-STERIL-(.+)-([a-f0-9]{8})-(\d{8})$")


@dataclass(frozen=True)
class SterilizationQRData:
    """Parsed QR content."""

    version: int
    cycle_number: str
    sterilization_date: date
    expiration_date: date
    cycle_id_suffix: str = ""
    cycle_type: str | None = None
    temperature: int | None = None
    pressure: int | None = None
    exposure_time: int | None = None
    status: str | None = None
    equipment_name: str | None = None
    package_type: str | None = None
    time: str | None = None

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "cycle_number": self.cycle_number,
            "cycle_id_suffix": self.cycle_id_suffix,
            "sterilization_date": self.sterilization_date.isoformat(),
            "expiration_date": self.expiration_date.isoformat(),
            "cycle_type": self.cycle_type,
            "temperature": self.temperature,
            "pressure": self.pressure,
            "exposure_time": self.exposure_time,
            "status": self.status,
            "equipment_name": self.equipment_name,
            "package_type": self.package_type,
            "time": self.time,
        }


# =============================================================================
# Expiration
# =============================================================================


def _as_date(value) -> date:
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            value = timezone.localtime(value)
        return value.date()
    return value


def calculate_expiration_date(sterilization_date, days: int | None = None) -> date:
    """Sterilization date plus shelf life (STERILE_EXPIRATION_DAYS by default)."""
    if days is None:
        days = get_setting("STERILE_EXPIRATION_DAYS")
    return _as_date(sterilization_date) + timedelta(days=days)


def _expiry_start(expiration_date) -> datetime:
    if isinstance(expiration_date, datetime):
        return expiration_date
    return timezone.make_aware(datetime.combine(expiration_date, datetime.min.time()))


def is_still_sterile(expiration_date, now: datetime | None = None) -> bool:
    """True until the start of the expiration date."""
    now = now or timezone.now()
    return now < _expiry_start(expiration_date)


def days_until_expiration(expiration_date, now: datetime | None = None) -> int:
    """Whole days left, rounded up. Negative once expired."""
    now = now or timezone.now()
    seconds = (_expiry_start(expiration_date) - now).total_seconds()
    return math.ceil(seconds / 86400)


# =============================================================================
# Generation
# =============================================================================


def _scanner_token(value: str | None, default: str) -> str:
    return (value or default).strip().replace(" ", "_") or default


def _format_scanner_date(value: date) -> str:
    return f"{value.day:02d}-{MONTHS[value.month - 1]}-{value.year}"


def generate_scanner_content(
    cycle_number: str,
    cycle_time: datetime,
    equipment_name: str | None = None,
    package_type: str | None = None,
) -> str:
    """Scanner text: ``Date STE DD-MMM-YYYY Equipment CycleNum HH_MM PackageType``."""
    if isinstance(cycle_time, datetime) and timezone.is_aware(cycle_time):
        cycle_time = timezone.localtime(cycle_time)
    return " ".join([
        "Date STE",
        _format_scanner_date(cycle_time.date()),
        _scanner_token(equipment_name, "Unknown"),
        str(cycle_number),
        f"{cycle_time.hour:02d}_{cycle_time.minute:02d}",
        _scanner_token(package_type, "Cassette"),
    ])


def generate_json_content(
    cycle_id,
    cycle_number: str,
    sterilization_date,
    expiration_date=None,
    *,
    cycle_type: str | None = None,
    temperature=None,
    pressure=None,
    exposure_time: int | None = None,
    status: str | None = None,
    equipment_name: str | None = None,
) -> str:
    """Compact JSON with short keys. Optional keys are omitted when empty."""
    sterilization_date = _as_date(sterilization_date)
    if expiration_date is None:
        expiration_date = calculate_expiration_date(sterilization_date)
    data = {
        "v": JSON_VERSION,
        "id": str(cycle_id)[-8:],
        "cn": cycle_number,
        "sd": sterilization_date.isoformat(),
        "ed": _as_date(expiration_date).isoformat(),
    }
    if cycle_type:
        data["ct"] = cycle_type
    if temperature:
        data["t"] = round(float(temperature))
    if pressure:
        data["p"] = round(float(pressure))
    if exposure_time:
        data["et"] = exposure_time
    if status:
        data["s"] = status
    if equipment_name:
        data["eq"] = equipment_name
    return json.dumps(data, separators=(",", ":"))


def generate_legacy_content(cycle_number: str, sterilization_date, cycle_id=None) -> str:
    """``ORCA-STERIL-{cycle}-{8 hex}-{YYYYMMDD}``.

    The hex part is the start of the cycle id, or a hash of the cycle
    number when no id is given.
    """
    if cycle_id is not None:
        short_id = str(cycle_id).replace("-", "").lower()[:8]
    else:
        short_id = hashlib.sha256(str(cycle_number).encode()).hexdigest()[:8]
    return f"ORCA-STERIL-{cycle_number}-{short_id}-{_as_date(sterilization_date):%Y%m%d}"


# =============================================================================
# Parsing
# =============================================================================


def _parse_scanner_date(value: str) -> date | None:
    match = _SCANNER_DATE_RE.match(value)
    if not match:
        return None
    day, month_name, year = match.groups()
    month_name = month_name.capitalize()
    if month_name not in MONTHS:
        return None
    try:
        return date(int(year), MONTHS.index(month_name) + 1, int(day))
    except ValueError:
        return None


def _parse_scanner(content: str) -> SterilizationQRData | None:
    match = _SCANNER_RE.match(content)
    if not match:
        return None
    date_str, equipment_name, cycle_number, time, package_type = match.groups()
    sterilization_date = _parse_scanner_date(date_str)
    if sterilization_date is None:
        return None
    return SterilizationQRData(
        version=SCANNER_VERSION,
        cycle_number=cycle_number,
        sterilization_date=sterilization_date,
        expiration_date=calculate_expiration_date(sterilization_date, 30),
        equipment_name=equipment_name,
        package_type=package_type,
        time=time,
    )


def _parse_json(content: str) -> SterilizationQRData | None:
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None
    if not (data.get("v") and data.get("cn") and data.get("sd") and data.get("ed")):
        return None
    try:
        sterilization_date = date.fromisoformat(data["sd"])
        expiration_date = date.fromisoformat(data["ed"])
    except (TypeError, ValueError):
        return None
    return SterilizationQRData(
        version=data["v"],
        cycle_number=str(data["cn"]),
        cycle_id_suffix=str(data.get("id", "")),
        sterilization_date=sterilization_date,
        expiration_date=expiration_date,
        cycle_type=data.get("ct"),
        temperature=data.get("t"),
        pressure=data.get("p"),
        exposure_time=data.get("et"),
        status=data.get("s"),
        equipment_name=data.get("eq"),
    )


def _parse_legacy(content: str) -> SterilizationQRData | None:
    match = _LEGACY_RE.match(content)
    if not match:
        return None
    cycle_number, short_id, date_str = match.groups()
    try:
        sterilization_date = datetime.strptime(date_str, "%Y%m%d").date()
    except ValueError:
        return None
    return SterilizationQRData(
        version=LEGACY_VERSION,
        cycle_number=cycle_number,
        cycle_id_suffix=short_id,
        sterilization_date=sterilization_date,
        expiration_date=calculate_expiration_date(sterilization_date, 30),
    )


def parse_qr_content(content: str) -> SterilizationQRData | None:
    """Parse scanner, JSON or legacy content. Returns None if none match."""
    if not content:
        return None
    content = content.strip()
    return _parse_scanner(content) or _parse_json(content) or _parse_legacy(content)


# =============================================================================
# Images
# =============================================================================


def render_qr_png(content: str, size: int = 200) -> bytes:
    """Render content as a square PNG of ``size`` pixels.

    Error correction H, quiet zone of 2 modules.
    """
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=10,
        border=2,
    )
    qr.add_data(content)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white").get_image()
    img = img.convert("RGB").resize((size, size), Image.Resampling.NEAREST)

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def render_qr_data_url(content: str, size: int = 200) -> str:
    """PNG as a ``data:image/png;base64,...`` URL for embedding in HTML."""
    encoded = base64.b64encode(render_qr_png(content, size)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
