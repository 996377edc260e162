"""Autoclave network integration."""

from .client import AutoclaveClient
from .parsing import (
    AutoclaveCycleData,
    AutoclaveCycleInfo,
    ParsedCycleLog,
    build_scilog_path,
    calculate_cycle_duration,
    kpa_to_psi,
    map_runmode_to_type,
    parse_cycle_log,
    parse_profile,
    parse_scilog_filename,
)

__all__ = [
    "AutoclaveClient",
    "AutoclaveCycleData",
    "AutoclaveCycleInfo",
    "ParsedCycleLog",
    "build_scilog_path",
    "calculate_cycle_duration",
    "kpa_to_psi",
    "map_runmode_to_type",
    "parse_cycle_log",
    "parse_profile",
    "parse_scilog_filename",
]
