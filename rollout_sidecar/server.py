"""aiohttp control surface for the rollout sidecar.

Endpoints:
    GET  /health             sidecar liveness
    GET  /updater/status     current deployment state
    POST /updater/update     start an update to ``targetTag``
    POST /updater/rollback   start a rollback to ``previousTag``
    GET  /updater/releases   available application releases (optional)
    GET  /updater/tags       application image tags in the registry (optional)
"""

from __future__ import annotations

import asyncio
from typing import Any

from aiohttp import web

from rollout_sidecar.config import Settings
from rollout_sidecar.logging import get_logger
from rollout_sidecar.models import RollbackRequest, UpdateRequest
from rollout_sidecar.orchestrator import OperationInProgress, UpdateOrchestrator
from rollout_sidecar.releases import CHANNELS, RegistryError, ReleaseClient, TagClient

log = get_logger("rollout_sidecar.server")

ORCHESTRATOR_KEY = web.AppKey("orchestrator", UpdateOrchestrator)
RELEASES_KEY = web.AppKey("releases", ReleaseClient)
TAGS_KEY = web.AppKey("tags", TagClient)


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"status": "error", "message": message}, status=status)


async def _read_json(request: web.Request) -> dict[str, Any]:
    try:
        data = await request.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def handle_status(request: web.Request) -> web.Response:
    orchestrator = request.app[ORCHESTRATOR_KEY]
    return web.json_response(orchestrator.status())


async def handle_update(request: web.Request) -> web.Response:
    try:
        req = UpdateRequest.from_dict(await _read_json(request))
    except ValueError as exc:
        return _error(str(exc), 400)

    orchestrator = request.app[ORCHESTRATOR_KEY]
    try:
        await orchestrator.start_update(req.target_tag)
    except OperationInProgress as exc:
        log.info("update_rejected", target_tag=req.target_tag, status=exc.status.value)
        return _error(str(exc), 409)

    return web.json_response({"status": "started", "message": "Update initiated"})


async def handle_rollback(request: web.Request) -> web.Response:
    try:
        req = RollbackRequest.from_dict(await _read_json(request))
    except ValueError as exc:
        return _error(str(exc), 400)

    orchestrator = request.app[ORCHESTRATOR_KEY]
    try:
        await orchestrator.start_rollback(req.previous_tag)
    except OperationInProgress as exc:
        log.info("rollback_rejected", target_tag=req.previous_tag, status=exc.status.value)
        return _error("operation in progress", 409)

    return web.json_response({"status": "started", "message": "Rollback initiated"})


async def handle_releases(request: web.Request) -> web.Response:
    client = request.app.get(RELEASES_KEY)
    if client is None:
        return _error("release lookup is not configured", 503)

    channel = request.query.get("channel", "")
    if channel and channel not in CHANNELS:
        return _error(f"unknown channel: {channel}", 400)
    try:
        limit = int(request.query.get("limit", "20"))
    except ValueError:
        return _error("limit must be an integer", 400)
    if limit < 0:
        return _error("limit must be non-negative", 400)

    try:
        releases = await client.list_releases(limit=0 if channel else limit)
    except RegistryError as exc:
        log.warning("releases_lookup_failed", error=str(exc))
        return _error(str(exc), 502)

    if channel:
        releases = [r for r in releases if r.channel == channel]
        if limit:
            releases = releases[:limit]
    return web.json_response({"releases": [r.to_dict() for r in releases]})


async def handle_tags(request: web.Request) -> web.Response:
    client = request.app.get(TAGS_KEY)
    if client is None:
        return _error("tag lookup is not configured", 503)

    channel = request.query.get("channel", "")
    if channel and channel not in CHANNELS:
        return _error(f"unknown channel: {channel}", 400)

    try:
        tags = await client.list_tags()
    except RegistryError as exc:
        log.warning("tags_lookup_failed", error=str(exc))
        return _error(str(exc), 502)

    if channel:
        tags = [t for t in tags if t.channel == channel]
    return web.json_response({"tags": [t.to_dict() for t in tags]})


def create_app(
    orchestrator: UpdateOrchestrator,
    releases: ReleaseClient | None = None,
    tags: TagClient | None = None,
) -> web.Application:
    """Build the control surface application."""
    app = web.Application()
    app[ORCHESTRATOR_KEY] = orchestrator
    if releases is not None:
        app[RELEASES_KEY] = releases
    if tags is not None:
        app[TAGS_KEY] = tags

    app.router.add_get("/health", handle_health)
    app.router.add_get("/updater/status", handle_status)
    app.router.add_post("/updater/update", handle_update)
    app.router.add_post("/updater/rollback", handle_rollback)
    app.router.add_get("/updater/releases", handle_releases)
    app.router.add_get("/updater/tags", handle_tags)
    return app


def _release_client(settings: Settings) -> ReleaseClient | None:
    if not settings.release_repo:
        return None
    token = settings.github_token.get_secret_value() if settings.github_token else None
    return ReleaseClient(settings.release_repo, api_base=settings.github_api_base, token=token)


def _tag_client(settings: Settings) -> TagClient | None:
    if not settings.registry_tags_enabled:
        return None
    return TagClient(settings.image_repo)


async def run_server(settings: Settings) -> None:
    """Serve the control surface until cancelled."""
    orchestrator = UpdateOrchestrator.from_settings(settings)
    app = create_app(
        orchestrator,
        releases=_release_client(settings),
        tags=_tag_client(settings),
    )

    host, port = settings.listen_host_port
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    log.info(
        "rollout_sidecar_started",
        host=host,
        port=port,
        compose_dir=settings.compose_dir,
        service=settings.app_service_name,
    )

    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()
        log.info("rollout_sidecar_stopped")
