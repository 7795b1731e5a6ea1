"""Docker Compose operations for the managed application service.

Recreation is stop, remove, then up. A stale container that still holds the
fixed container name when ``up`` runs is force-removed and ``up`` is retried
once.
"""

from __future__ import annotations

from rollout_sidecar.commands import CommandError, CommandRunner
from rollout_sidecar.config import FALLBACK_PROJECT
from rollout_sidecar.logging import get_logger
from rollout_sidecar.state import StateStore

log = get_logger("rollout_sidecar.compose")

PROJECT_LABEL = "com.docker.compose.project"

_NAME_CONFLICT_MARKERS = ("container name", "is already in use by container")


def parse_image_tag(image_ref: str) -> str | None:
    """Extract the tag from an image reference.

    >>> parse_image_tag("registry:5000/org/app:v1.2.0@sha256:abc")
    'v1.2.0'
    >>> parse_image_tag("registry:5000/org/app") is None
    True
    """
    ref = image_ref.strip().split("@", 1)[0]
    name_start = ref.rfind("/") + 1
    colon = ref.rfind(":")
    if colon < name_start:
        return None
    return ref[colon + 1 :] or None


def is_name_conflict(exc: Exception) -> bool:
    text = str(exc)
    return all(marker in text for marker in _NAME_CONFLICT_MARKERS)


class ComposeClient:
    """Runs compose commands scoped to the deployment's compose project."""

    def __init__(
        self,
        runner: CommandRunner,
        store: StateStore,
        service: str,
        container_name: str,
        sidecar_container: str,
        tag_env_key: str,
        explicit_project: str | None = None,
    ) -> None:
        self._runner = runner
        self._store = store
        self._service = service
        self._container_name = container_name
        self._sidecar_container = sidecar_container
        self._tag_env_key = tag_env_key
        self._explicit_project = explicit_project

    @property
    def service(self) -> str:
        return self._service

    @property
    def container_name(self) -> str:
        return self._container_name

    # ------------------------------------------------------------------
    # Project resolution
    # ------------------------------------------------------------------

    async def project_name(self) -> str:
        """Resolve the compose project, caching the first real answer.

        Order: explicit setting, label on the sidecar's own container,
        label on the application container, fixed fallback. The fallback is
        not cached.
        """
        cached = self._store.project
        if cached:
            return cached

        project = (self._explicit_project or "").strip()
        source = "config"
        if not project:
            project = await self._label_of(self._sidecar_container)
            source = "sidecar_label"
        if not project:
            project = await self._label_of(self._container_name)
            source = "app_label"
        if not project:
            log.info("compose_project_fallback", project=FALLBACK_PROJECT)
            return FALLBACK_PROJECT

        self._store.cache_project(project)
        log.info("compose_project_resolved", project=project, source=source)
        return project

    async def _label_of(self, container: str) -> str:
        if not container:
            return ""
        try:
            output = await self._runner.run(
                [
                    "inspect",
                    "--format",
                    f'{{{{ index .Config.Labels "{PROJECT_LABEL}" }}}}',
                    container,
                ]
            )
        except CommandError as exc:
            log.debug("compose_label_lookup_failed", container=container, error=str(exc))
            return ""
        value = output.strip()
        # Go templates print "<no value>" for a missing map key.
        return "" if value == "<no value>" else value

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _compose(self, *args: str, tag: str | None = None) -> str:
        env = {"COMPOSE_PROJECT_NAME": await self.project_name()}
        if tag is not None:
            env[self._tag_env_key] = tag
        return await self._runner.run(["compose", *args], env)

    async def pull(self, tag: str) -> None:
        await self._compose("pull", self._service, tag=tag)

    async def remove_container(self, name: str) -> None:
        """Force-remove a container by name, outside compose."""
        await self._runner.run(["rm", "-f", name])

    async def recreate(self, tag: str) -> None:
        """Replace the running service container with one on ``tag``.

        Raises:
            CommandError: If ``up`` fails, carrying both error texts when the
                name-conflict recovery also failed.
        """
        try:
            await self._compose("stop", self._service)
        except CommandError as exc:
            log.warning("compose_stop_failed", service=self._service, error=str(exc))
        try:
            await self._compose("rm", "-f", self._service)
        except CommandError as exc:
            log.warning("compose_rm_failed", service=self._service, error=str(exc))

        try:
            await self._compose("up", "-d", "--no-deps", self._service, tag=tag)
            return
        except CommandError as exc:
            if not is_name_conflict(exc):
                raise
            conflict = exc

        log.warning(
            "compose_name_conflict",
            container=self._container_name,
            error=str(conflict),
        )
        try:
            await self.remove_container(self._container_name)
        except CommandError as rm_exc:
            raise CommandError(
                f"{conflict}; removing conflicting container "
                f"{self._container_name} failed: {rm_exc}",
                command=rm_exc.command,
                returncode=rm_exc.returncode,
                output=rm_exc.output,
            ) from rm_exc

        try:
            await self._compose("up", "-d", "--no-deps", self._service, tag=tag)
        except CommandError as retry_exc:
            raise CommandError(
                f"{retry_exc} (after name conflict: {conflict})",
                command=retry_exc.command,
                returncode=retry_exc.returncode,
                output=retry_exc.output,
            ) from retry_exc

    async def running_tag(self) -> str | None:
        """Return the tag of the image the app container is actually running."""
        try:
            output = await self._runner.run(
                ["inspect", "--format", "{{.Config.Image}}", self._container_name]
            )
        except CommandError as exc:
            log.debug("running_tag_lookup_failed", error=str(exc))
            return None
        return parse_image_tag(output)
