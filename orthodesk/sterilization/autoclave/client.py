"""HTTP client for autoclaves that expose their cycle logs on the LAN.

Endpoints on the unit:

- ``GET /data/cycles.cgi``: index of years and months with cycles
- ``GET /us/archives.php``: HTML page embedding ``cyclesInfo = [...];``
- ``GET /data/cycleData.php?filename=...&t=...``: cycle data as JSON
- ``GET /data/file_reader.php?filename=...``: raw log text
"""

import json
import logging
import re
import time
from urllib.parse import quote

import httpx

from orthodesk.core.conf import get_setting

from ..exceptions import AutoclaveError
from .parsing import AutoclaveCycleData, AutoclaveCycleInfo, parse_cycle_log

logger = logging.getLogger(__name__)

_CYCLES_INFO_RE = re.compile(r"cyclesInfo\s*=\s*(\[[\s\S]*?\]);")

_AJAX_HEADERS = {
    "Accept": "application/json, text/javascript, */*",
    "X-Requested-With": "XMLHttpRequest",
}
_HTML_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


class AutoclaveClient:
    """Synchronous client for one autoclave.

    Archive and cycle-data calls are slow on the unit and get twice the
    configured timeout.

    Usage:
        with AutoclaveClient("192.168.1.50") as client:
            cycles = client.fetch_cycles(2025, 12)
    """

    def __init__(self, ip_address: str, port: int = 80, timeout: float | None = None, transport=None):
        self.ip_address = ip_address
        self.port = port
        self.timeout = timeout if timeout is not None else get_setting("AUTOCLAVE_TIMEOUT")
        self.base_url = f"http://{ip_address}:{port}"
        self.client = httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=transport)

    @classmethod
    def for_autoclave(cls, autoclave, **kwargs) -> "AutoclaveClient":
        return cls(autoclave.ip_address, autoclave.port, **kwargs)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self.client.close()

    def _get(self, path: str, *, slow: bool = False, **kwargs) -> httpx.Response:
        timeout = self.timeout * 2 if slow else self.timeout
        try:
            response = self.client.get(path, timeout=timeout, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise AutoclaveError(f"Autoclave {self.base_url} timed out on {path}") from e
        except httpx.HTTPStatusError as e:
            raise AutoclaveError(f"HTTP {e.response.status_code} from {self.base_url}{path}") from e
        except httpx.HTTPError as e:
            raise AutoclaveError(f"Cannot reach autoclave {self.base_url}: {e}") from e
        return response

    def test_connection(self) -> dict:
        """Check the unit answers and try to read its model from the latest log.

        Returns:
            {"success": bool, "model": str} or {"success": False, "error": str}
        """
        logger.info("Testing autoclave connection %s", self.base_url)
        try:
            response = self.client.get("/data/cycles.cgi")
        except httpx.TimeoutException:
            logger.warning("Autoclave %s timed out", self.base_url)
            return {"success": False, "error": "Connection timeout"}
        except httpx.HTTPError as e:
            logger.warning("Autoclave %s unreachable: %s", self.base_url, e)
            return {"success": False, "error": str(e)}

        if response.status_code != 200:
            return {"success": False, "error": f"HTTP {response.status_code}: {response.reason_phrase}"}

        try:
            index = response.json()
        except ValueError:
            index = None
        if not isinstance(index, list) or not index:
            return {"success": False, "error": "Invalid response format from autoclave"}

        model = "Unknown Autoclave"
        try:
            cycles = self.fetch_all_cycles()
            if cycles:
                latest = max(cycles, key=lambda c: c.cycle_start_time)
                parsed = parse_cycle_log(self.fetch_cycle_data(latest).log)
                if parsed:
                    model = parsed.model
        except AutoclaveError as e:
            logger.debug("Could not read model from %s: %s", self.base_url, e)

        return {"success": True, "model": model}

    def fetch_index(self) -> list:
        """Years and months that have cycles."""
        return self._get("/data/cycles.cgi").json()

    def fetch_all_cycles(self) -> list[AutoclaveCycleInfo]:
        """Scrape every cycle listed in archives.php."""
        html = self._get("/us/archives.php", slow=True, headers=_HTML_HEADERS).text
        match = _CYCLES_INFO_RE.search(html)
        if not match:
            logger.warning("No cyclesInfo found in archives.php of %s", self.base_url)
            return []
        try:
            records = json.loads(match.group(1))
        except json.JSONDecodeError:
            logger.warning("Malformed cyclesInfo in archives.php of %s", self.base_url)
            return []
        cycles = []
        for record in records:
            try:
                cycles.append(AutoclaveCycleInfo.from_dict(record))
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed cycle record %r", record)
        return cycles

    def fetch_cycles(self, year: int | None = None, month: int | None = None) -> list[AutoclaveCycleInfo]:
        """Cycles from archives.php, optionally limited to one year/month."""
        cycles = self.fetch_all_cycles()
        if year is not None:
            cycles = [c for c in cycles if c.started_at.year == int(year)]
        if month is not None:
            cycles = [c for c in cycles if c.started_at.month == int(month)]
        return sorted(cycles, key=lambda c: c.cycle_start_time)

    def fetch_cycle_data(self, info: AutoclaveCycleInfo) -> AutoclaveCycleData:
        """Temperature/pressure profiles and log text of one cycle."""
        started = info.started_at
        params = json.dumps({
            "year": f"{started:%Y}",
            "month": f"{started:%m}",
            "day": f"{started:%d}",
            "cycle": info.file_cycle_number,
        })
        # The unit expects the JSON blob as a bare query key
        query = httpx.QueryParams({"filename": info.cpt_path(), "t": int(time.time() * 1000)})
        response = self._get(
            f"/data/cycleData.php?{query}&{quote(params)}",
            slow=True,
            headers=_AJAX_HEADERS,
        )
        try:
            return AutoclaveCycleData.from_dict(response.json())
        except (ValueError, TypeError) as e:
            raise AutoclaveError(f"Invalid cycle data for {info.file_name}") from e

    def fetch_raw_log(self, path: str) -> str:
        """Raw text of a scilog file."""
        return self._get("/data/file_reader.php", params={"filename": path}, headers=_AJAX_HEADERS).text
