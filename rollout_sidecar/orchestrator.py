"""Update orchestrator: swaps the managed container to a new image tag.

Lifecycle of one sequence:
1. Record the running tag as the rollback target
2. Pull the new image (failure here changes nothing, so no rollback)
3. Persist the new tag to the env file (best effort)
4. Recreate the app container on the new tag
5. Wait for the health gate
6. Commit, or recreate on the previous tag and report failure
"""

from __future__ import annotations

from typing import Any

from rollout_sidecar.commands import CommandError, SubprocessRunner
from rollout_sidecar.compose import ComposeClient
from rollout_sidecar.config import Settings
from rollout_sidecar.health_checker import HealthCheckConfig, wait_for_healthy
from rollout_sidecar.logging import get_logger
from rollout_sidecar.models import ROLLBACK_BLOCKED_IN, UPDATE_ALLOWED_FROM, UpdateStatus
from rollout_sidecar.state import StateStore
from rollout_sidecar.tagfile import EnvTagFile
from rollout_sidecar.tasks import BackgroundTaskRunner, TaskRunner

log = get_logger("rollout_sidecar.orchestrator")

UNKNOWN_TAG = "unknown"


class OperationInProgress(Exception):
    """A sequence is already running and the request would conflict with it."""

    def __init__(self, status: UpdateStatus) -> None:
        super().__init__(f"update already in progress: {status.value}")
        self.status = status


class UpdateOrchestrator:
    """Drives update sequences and owns the observable deployment state."""

    def __init__(
        self,
        compose: ComposeClient,
        tag_file: EnvTagFile,
        health_url: str,
        image_repo: str,
        store: StateStore | None = None,
        tasks: TaskRunner | None = None,
        health_config: HealthCheckConfig | None = None,
    ) -> None:
        self._compose = compose
        self._tag_file = tag_file
        self._health_url = health_url
        self._image_repo = image_repo
        self._store = store or StateStore()
        self._tasks: TaskRunner = tasks or BackgroundTaskRunner()
        self._health_config = health_config or HealthCheckConfig()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        tasks: TaskRunner | None = None,
    ) -> UpdateOrchestrator:
        """Wire the production collaborators from settings."""
        store = StateStore()
        runner = SubprocessRunner(binary=settings.docker_binary, cwd=settings.compose_dir)
        compose = ComposeClient(
            runner=runner,
            store=store,
            service=settings.app_service_name,
            container_name=settings.resolved_app_container,
            sidecar_container=settings.resolved_sidecar_container,
            tag_env_key=settings.tag_env_key,
            explicit_project=settings.compose_project,
        )
        return cls(
            compose=compose,
            tag_file=EnvTagFile(settings.tag_file_path, settings.tag_env_key),
            health_url=settings.health_url,
            image_repo=settings.image_repo,
            store=store,
            tasks=tasks,
            health_config=HealthCheckConfig(
                timeout_seconds=settings.health_timeout_seconds,
                interval_seconds=settings.health_interval_seconds,
                request_timeout_seconds=settings.health_request_timeout_seconds,
            ),
        )

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def store(self) -> StateStore:
        return self._store

    def status(self) -> dict[str, Any]:
        """Return a consistent snapshot of the deployment state."""
        return self._store.snapshot().to_dict()

    async def start_update(self, target_tag: str) -> None:
        """Dispatch an update sequence without waiting for it.

        Raises:
            OperationInProgress: Unless the current status is idle,
                completed or failed.
        """
        status = self._store.status
        if status not in UPDATE_ALLOWED_FROM:
            raise OperationInProgress(status)
        log.info("update_dispatched", target_tag=target_tag)
        await self._tasks.submit(lambda: self.run_update(target_tag), name=f"update:{target_tag}")

    async def start_rollback(self, previous_tag: str) -> None:
        """Dispatch an explicit rollback, which is a full update to an older tag.

        Raises:
            OperationInProgress: While a pull, stop, start or automatic
                rollback is running.
        """
        status = self._store.status
        if status in ROLLBACK_BLOCKED_IN:
            raise OperationInProgress(status)
        log.info("rollback_dispatched", target_tag=previous_tag)
        await self._tasks.submit(
            lambda: self.run_update(previous_tag), name=f"rollback:{previous_tag}"
        )

    # ------------------------------------------------------------------
    # Sequence
    # ------------------------------------------------------------------

    async def run_update(self, target_tag: str) -> None:
        """Run one update sequence to a terminal state."""
        try:
            await self._do_update(target_tag)
        except Exception as exc:
            log.exception("update_unexpected_error", target_tag=target_tag)
            self._store.transition(UpdateStatus.FAILED, f"Unexpected error: {exc}", 0)

    async def _do_update(self, target_tag: str) -> None:
        image_ref = f"{self._image_repo}:{target_tag}"
        previous_tag = await self._resolve_previous_tag()
        self._store.set_tags(target_tag, previous_tag)

        self._store.transition(UpdateStatus.PULLING, f"Pulling {image_ref}...", 10)
        try:
            await self._compose.pull(target_tag)
        except CommandError as exc:
            log.warning("update_pull_failed", image=image_ref, error=str(exc))
            self._store.transition(UpdateStatus.FAILED, f"Pull failed: {exc}", 0)
            return

        self._store.transition(UpdateStatus.STOPPING, "Updating image tag...", 30)
        self._persist_tag(target_tag)

        self._store.transition(UpdateStatus.STARTING, "Recreating app container...", 50)
        try:
            await self._compose.recreate(target_tag)
        except Exception as exc:
            log.error(
                "update_recreate_failed",
                target_tag=target_tag,
                rollback_tag=previous_tag,
                error=str(exc),
            )
            await self.rollback_to(previous_tag)
            return

        self._store.transition(UpdateStatus.HEALTH_CHECK, "Waiting for health check...", 70)
        try:
            await wait_for_healthy(self._health_url, self._health_config)
        except Exception as exc:
            log.error(
                "update_health_check_failed",
                target_tag=target_tag,
                rollback_tag=previous_tag,
                error=str(exc),
            )
            self._store.transition(
                UpdateStatus.ROLLING_BACK, "Health check failed, rolling back...", 80
            )
            await self.rollback_to(previous_tag)
            return

        self._store.transition(UpdateStatus.COMPLETED, f"Updated to {target_tag}", 100)

    async def rollback_to(self, tag: str) -> None:
        """Put the app container back on ``tag`` and end the sequence failed.

        No health verification and no nested rollback: a recreate failure
        here is reported as-is.
        """
        log.info("rollback_started", tag=tag)
        self._persist_tag(tag)
        try:
            await self._compose.recreate(tag)
        except Exception as exc:
            log.error("rollback_failed", tag=tag, error=str(exc))
            self._store.transition(UpdateStatus.FAILED, f"Rollback failed: {exc}", 0)
            return
        log.info("rollback_complete", tag=tag)
        self._store.transition(
            UpdateStatus.FAILED, f"Rolled back to {tag} after update failure", 0
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _resolve_previous_tag(self) -> str:
        running = await self._compose.running_tag()
        if running:
            return running
        return self._tag_file.read() or UNKNOWN_TAG

    def _persist_tag(self, tag: str) -> None:
        try:
            self._tag_file.write(tag)
        except (OSError, UnicodeError) as exc:
            log.warning("tag_file_write_failed", path=str(self._tag_file.path), error=str(exc))
