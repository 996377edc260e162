"""Parsers for data published by STATCLAVE-style autoclaves.

Log files live on the unit under::

    /opt/data/scilog/YYYY/MM/DD/S{YYYYMMDD}_{cyclenum}_{serial}.txt  (printed log)
    /opt/data/scilog/YYYY/MM/DD/S{YYYYMMDD}_{cyclenum}_{serial}.cpt  (cycle data)

Nothing here does I/O.
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime

from ..models import CycleType

logger = logging.getLogger(__name__)

SCILOG_BASE_PATH = "/opt/data/scilog"
KPA_TO_PSI = 0.145038
SECONDS_PER_SAMPLE = 5
DEFAULT_DURATION_MINUTES = 30

_FILENAME_RE = re.compile(r"^S(\d{4})(\d{2})(\d{2})_(\d+)_([A-Z0-9]+)\.(txt|cpt)$", re.IGNORECASE)
_FILE_CYCLE_RE = re.compile(r"_(\d+)_")
_DATETIME_RE = re.compile(r"(\d{1,2}):(\d{2}):(\d{2})\s+(\d{2})/(\d{2})/(\d{4})")
_TARGET_RE = re.compile(r"(\d+)\s*C/(\d+)min")
_STERI_VALUES_RE = re.compile(r"(\d+\.?\d*)\s*C\s+(\d+)kPa")


@dataclass(frozen=True)
class ScilogFile:
    path: str
    year: str
    month: str
    day: str
    cycle_number: str
    serial_number: str
    extension: str

    @property
    def cycle_date(self) -> date:
        return date(int(self.year), int(self.month), int(self.day))


@dataclass(frozen=True)
class AutoclaveCycleInfo:
    """One entry of the ``cyclesInfo`` array embedded in archives.php."""

    records_id: int
    cycle_start_time: int
    file_name: str
    cycle_number: int
    cycle_id: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "AutoclaveCycleInfo":
        return cls(
            records_id=int(data.get("records_id") or 0),
            cycle_start_time=int(data["cycle_start_time"]),
            file_name=str(data["file_name"]),
            cycle_number=int(data.get("cycle_number") or 0),
            cycle_id=str(data.get("cycle_id") or ""),
        )

    @property
    def started_at(self) -> datetime:
        """Start time in the server's local time, as the unit records it."""
        return datetime.fromtimestamp(self.cycle_start_time)

    @property
    def file_cycle_number(self) -> str:
        """Zero-padded cycle number from the file name, e.g. '00391'."""
        match = _FILE_CYCLE_RE.search(self.file_name)
        return match.group(1) if match else str(self.cycle_number).zfill(5)

    @property
    def external_number(self) -> int:
        return self.cycle_number or int(self.file_cycle_number)

    def cpt_path(self) -> str:
        started = self.started_at
        return f"{SCILOG_BASE_PATH}/{started:%Y/%m/%d}/{self.file_name}.cpt"

    def program_description(self) -> str:
        """'STATCLAVE_120V_solid_wrapped_132_4min' -> 'solid wrapped 132 4min'."""
        if not self.cycle_id:
            return "Unknown program"
        text = self.cycle_id.replace("_", " ")
        return re.sub(r"STATCLAVE \d+V?", "", text, flags=re.IGNORECASE).strip()


@dataclass(frozen=True)
class AutoclaveCycleData:
    """Response of /data/cycleData.php."""

    number: int
    date: str = ""
    runmode: int | None = None
    display_units: str = "metric"
    log: str = ""
    status: str = ""
    temp: str = ""
    pressure: str = ""
    succeeded: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "AutoclaveCycleData":
        return cls(
            number=int(data.get("number") or 0),
            date=str(data.get("date") or ""),
            runmode=data.get("runmode"),
            display_units=data.get("display_units") or "metric",
            log=data.get("log") or "",
            status=data.get("status") or "",
            temp=data.get("temp") or "",
            pressure=data.get("pressure") or "",
            succeeded=bool(data.get("succeeded")),
        )


@dataclass
class ParsedCycleLog:
    model: str
    cycle_number: int
    serial_number: str = ""
    unit_number: str = ""
    water_quality: str = ""
    cycle_datetime: datetime | None = None
    cycle_program: str = ""
    target_temp: int | None = None
    target_time: int | None = None
    min_temp: float | None = None
    max_temp: float | None = None
    min_pressure: int | None = None
    max_pressure: int | None = None
    sterilizing_start: int | None = None
    sterilizing_end: int | None = None
    drying_start: int | None = None
    drying_end: int | None = None
    cycle_complete: int | None = None
    digital_signature: str = ""


# =============================================================================
# File names
# =============================================================================


def parse_scilog_filename(path: str) -> ScilogFile | None:
    """Split ``.../S20251212_00391_710125H00004.txt`` into its parts."""
    name = path.rsplit("/", 1)[-1]
    match = _FILENAME_RE.match(name)
    if not match:
        logger.debug("Not a scilog file name: %s", path)
        return None
    year, month, day, cycle_number, serial, ext = match.groups()
    return ScilogFile(
        path=path,
        year=year,
        month=month,
        day=day,
        cycle_number=cycle_number,
        serial_number=serial,
        extension=ext.lower(),
    )


def build_scilog_path(cycle_date: date, cycle_number, serial_number: str, ext: str = "txt") -> str:
    """Inverse of parse_scilog_filename(). Cycle numbers are padded to 5 digits."""
    padded = str(cycle_number).zfill(5)
    return (
        f"{SCILOG_BASE_PATH}/{cycle_date:%Y/%m/%d}/"
        f"S{cycle_date:%Y%m%d}_{padded}_{serial_number}.{ext}"
    )


# =============================================================================
# Cycle log
# =============================================================================


def _minutes(line: str, prefix: str) -> int | None:
    match = re.match(rf"{prefix}\s+(\d+):(\d+)", line)
    return int(match.group(1)) if match else None


def _steri_values(next_line: str | None):
    if not next_line:
        return None, None
    match = _STERI_VALUES_RE.search(next_line)
    if not match:
        return None, None
    return float(match.group(1)), int(match.group(2))


def parse_cycle_log(text: str) -> ParsedCycleLog | None:
    """Parse the printed cycle log.

    Returns None unless both the model line and the cycle number were found.
    """
    if not text:
        return None

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        return None

    values = {"model": lines[0]}
    for i, line in enumerate(lines):
        next_line = lines[i + 1] if i + 1 < len(lines) else None

        if line.startswith("SN "):
            values["serial_number"] = line[3:].strip()

        if line.startswith("Unit #"):
            match = re.match(r"Unit #\s*:\s*(\d+)", line)
            if match:
                values["unit_number"] = match.group(1)

        if "uS" in line and "ppm" in line:
            values["water_quality"] = line

        if line.startswith("CYCLE NUMBER"):
            match = re.match(r"CYCLE NUMBER\s+(\d+)", line)
            if match:
                values["cycle_number"] = int(match.group(1))

        match = _DATETIME_RE.search(line)
        if match:
            hours, minutes, seconds, day, month, year = (int(g) for g in match.groups())
            try:
                values["cycle_datetime"] = datetime(year, month, day, hours, minutes, seconds)
            except ValueError:
                logger.debug("Invalid cycle date in log line: %s", line)

        # "Solid/Wrapped" program line and "132 C/4min" target line
        if "/" in line and ":" not in line and "ppm" not in line:
            if "C/" in line and "min" in line:
                match = _TARGET_RE.search(line)
                if match:
                    values["target_temp"] = int(match.group(1))
                    values["target_time"] = int(match.group(2))
            elif "Values" not in line:
                values["cycle_program"] = line

        if line.startswith("Min. steri. Values:"):
            temp, pressure = _steri_values(next_line)
            if temp is not None:
                values["min_temp"], values["min_pressure"] = temp, pressure

        if line.startswith("Max. steri. Values:"):
            temp, pressure = _steri_values(next_line)
            if temp is not None:
                values["max_temp"], values["max_pressure"] = temp, pressure

        if line.startswith("STERILIZING"):
            start = _minutes(line, "STERILIZING")
            if start is not None:
                values["sterilizing_start"] = values["sterilizing_end"] = start

        if line.startswith("DRYING START"):
            values["drying_start"] = _minutes(line, "DRYING START")

        if line.startswith("DRYING END"):
            values["drying_end"] = _minutes(line, "DRYING END")

        if line.startswith("CYCLE COMPLETE"):
            values["cycle_complete"] = _minutes(line, "CYCLE COMPLETE")

        if line == "Digital Signature #" and next_line and not next_line.startswith("-"):
            values["digital_signature"] = next_line

    if not values.get("model") or not values.get("cycle_number"):
        return None
    return ParsedCycleLog(**values)


# =============================================================================
# Cycle classification and metrics
# =============================================================================


def map_runmode_to_type(status: str | None = None, cycle_id: str | None = None) -> str:
    """Guess the cycle type from the program string or cycle id.

    132/134 °C programs are pre-vacuum; everything else defaults to gravity.
    """
    if status:
        lowered = status.lower()
        if "flash" in lowered or "immediate" in lowered:
            return CycleType.STEAM_FLASH
        if "prevac" in lowered or "pre-vac" in lowered:
            return CycleType.STEAM_PREVACUUM

    if cycle_id:
        lowered = cycle_id.lower()
        if "flash" in lowered or "immediate" in lowered:
            return CycleType.STEAM_FLASH
        if any(token in lowered for token in ("prevac", "pre_vac", "pre-vac")):
            return CycleType.STEAM_PREVACUUM
        if "132" in lowered or "134" in lowered:
            return CycleType.STEAM_PREVACUUM

    return CycleType.STEAM_GRAVITY


def parse_profile(text: str | None) -> list[float]:
    """Comma- or space-separated readings to floats. Bad and non-finite tokens are dropped."""
    if not text:
        return []
    tokens = text.split(",") if "," in text else text.split()
    readings = []
    for token in tokens:
        try:
            value = float(token.strip())
        except ValueError:
            continue
        if math.isfinite(value):
            readings.append(value)
    return readings


def calculate_cycle_duration(parsed: ParsedCycleLog | None, temp_profile: list[float] | None = None) -> int:
    """Cycle length in minutes.

    Prefers the log's CYCLE COMPLETE time, then the sample count of the
    temperature profile (one sample every 5 seconds).
    """
    if parsed is not None and parsed.cycle_complete:
        return parsed.cycle_complete
    if temp_profile:
        return round(len(temp_profile) * SECONDS_PER_SAMPLE / 60)
    return DEFAULT_DURATION_MINUTES


def kpa_to_psi(kpa: float) -> float:
    return kpa * KPA_TO_PSI
