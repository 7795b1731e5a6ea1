"""Health gate for the managed application.

The application is healthy when its health endpoint answers HTTP 200 with a
JSON body whose ``status`` is ``"ok"`` and whose ``db`` flag is true. The
``cache`` flag is reported but not required.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

import httpx

from rollout_sidecar.logging import get_logger

log = get_logger("rollout_sidecar.health_checker")


@dataclass
class HealthCheckConfig:
    """Polling parameters for the health gate."""

    timeout_seconds: float = 120.0
    interval_seconds: float = 3.0
    request_timeout_seconds: float = 5.0


class HealthCheckTimeout(Exception):
    """The application did not become healthy before the deadline."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"health check timed out after {timeout_seconds:g}s")
        self.timeout_seconds = timeout_seconds


async def check_service_health(client: httpx.AsyncClient, url: str) -> bool:
    """Probe the health endpoint once."""
    try:
        resp = await client.get(url)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        log.debug("health_probe_error", url=url, error=str(exc))
        return False

    if resp.status_code != 200:
        log.debug("health_probe_status", url=url, status=resp.status_code)
        return False

    try:
        body = resp.json()
    except ValueError:
        log.debug("health_probe_malformed", url=url)
        return False
    if not isinstance(body, dict):
        return False

    healthy = body.get("status") == "ok" and body.get("db") is True
    log.debug(
        "health_probe",
        url=url,
        status=body.get("status"),
        db=body.get("db"),
        cache=body.get("cache"),
        healthy=healthy,
    )
    return healthy


async def wait_for_healthy(url: str, config: HealthCheckConfig | None = None) -> None:
    """Poll ``url`` until healthy.

    Raises:
        HealthCheckTimeout: If the deadline passes first.
    """
    cfg = config or HealthCheckConfig()
    deadline = time.monotonic() + cfg.timeout_seconds
    attempts = 0

    async with httpx.AsyncClient(timeout=cfg.request_timeout_seconds) as client:
        while time.monotonic() < deadline:
            attempts += 1
            if await check_service_health(client, url):
                log.info("health_check_passed", url=url, attempts=attempts)
                return
            await asyncio.sleep(cfg.interval_seconds)

    log.warning(
        "health_check_timed_out",
        url=url,
        attempts=attempts,
        timeout=cfg.timeout_seconds,
    )
    raise HealthCheckTimeout(cfg.timeout_seconds)
