"""Probe service - performs a single bounded-time HTTP check against a monitor."""
import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from ..models import Monitor

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "Request timeout"


class HeaderConfigError(ValueError):
    """Stored request headers could not be turned into a header mapping."""


@dataclass
class CheckResult:
    """Outcome of one probe, before it is persisted as a Check row."""
    ok: bool
    status_code: Optional[int] = None
    latency_ms: Optional[int] = None
    error: Optional[str] = None

    @property
    def reason(self) -> str:
        """Human-readable failure reason used for incidents."""
        if self.error:
            return self.error
        return f"HTTP {self.status_code}"


def parse_headers(headers_json: Optional[str]) -> Optional[Dict[str, str]]:
    """Parse the serialized header set stored on a monitor.

    Raises:
        HeaderConfigError: the value is not a JSON object
    """
    if not headers_json or not headers_json.strip():
        return None
    try:
        headers = json.loads(headers_json)
    except json.JSONDecodeError as e:
        raise HeaderConfigError(f"Invalid headers configuration: {e.msg}") from e
    if not isinstance(headers, dict):
        raise HeaderConfigError("Invalid headers configuration: expected a JSON object")
    return {str(key): str(value) for key, value in headers.items()}


class ProbeService:
    """Service for probing HTTP endpoints.

    ``probe`` never raises: every failure mode resolves to a ``CheckResult``
    with ``ok=False`` and a populated ``error``.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def probe(self, monitor: Monitor) -> CheckResult:
        """Probe one monitor and classify the outcome."""
        try:
            headers = parse_headers(monitor.headers_json)
        except HeaderConfigError as e:
            logger.warning(f"Monitor {monitor.id} has malformed headers: {e}")
            return CheckResult(ok=False, latency_ms=0, error=str(e))

        timeout = monitor.timeout_ms / 1000
        started = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                # The client timeout is per phase; wait_for caps the whole request
                response = await asyncio.wait_for(
                    client.request(
                        monitor.method or "GET",
                        monitor.url,
                        headers=headers,
                        content=monitor.body or None,
                    ),
                    timeout=timeout,
                )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return CheckResult(ok=False, latency_ms=elapsed_ms(), error=TIMEOUT_ERROR)
        except httpx.ConnectError as e:
            return CheckResult(ok=False, latency_ms=elapsed_ms(), error=f"Connection failed: {e}")
        except Exception as e:
            logger.debug(f"Probe of monitor {monitor.id} failed: {e!r}")
            return CheckResult(ok=False, latency_ms=elapsed_ms(), error=str(e) or "Request failed")

        latency = elapsed_ms()
        status_code = response.status_code
        return CheckResult(
            ok=200 <= status_code < 300,
            status_code=status_code,
            latency_ms=latency,
        )
