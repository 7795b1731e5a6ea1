"""Shared fixtures for the rollout sidecar tests."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

import pytest

from rollout_sidecar.compose import ComposeClient
from rollout_sidecar.health_checker import HealthCheckConfig
from rollout_sidecar.orchestrator import UpdateOrchestrator
from rollout_sidecar.state import StateStore
from rollout_sidecar.tagfile import EnvTagFile
from rollout_sidecar.tasks import InlineTaskRunner, TaskRunner

Handler = Callable[[list[str]], "str | Exception | None"]


class ScriptedRunner:
    """Deterministic CommandRunner that records every call.

    ``handler`` maps an argument list to output, or to an exception to raise.
    Without a handler every command succeeds with empty output.
    """

    def __init__(self, handler: Handler | None = None) -> None:
        self.handler = handler
        self.calls: list[tuple[list[str], dict[str, str]]] = []

    async def run(self, args: Sequence[str], env: Mapping[str, str] | None = None) -> str:
        argv = list(args)
        self.calls.append((argv, dict(env or {})))
        if self.handler is None:
            return ""
        result = self.handler(argv)
        if isinstance(result, Exception):
            raise result
        return result or ""

    @property
    def commands(self) -> list[list[str]]:
        return [argv for argv, _ in self.calls]

    def count(self, *prefix: str) -> int:
        return sum(1 for argv in self.commands if argv[: len(prefix)] == list(prefix))


def running_image(tag: str) -> Handler:
    """Handler that reports the app container running ``tag``."""

    def handler(argv: list[str]) -> str:
        if argv[:3] == ["inspect", "--format", "{{.Config.Image}}"]:
            return f"ghcr.io/example/app:{tag}\n"
        return "ok\n"

    return handler


def make_compose(
    runner: ScriptedRunner,
    store: StateStore,
    project: str | None = "deploy",
) -> ComposeClient:
    return ComposeClient(
        runner=runner,
        store=store,
        service="app",
        container_name="deploy-app",
        sidecar_container="sidecar-123",
        tag_env_key="APP_IMAGE_TAG",
        explicit_project=project,
    )


def make_orchestrator(
    tmp_path: Path,
    runner: ScriptedRunner,
    tasks: TaskRunner | None = None,
    env_text: str = "APP_NAME=demo\nAPP_IMAGE_TAG=v1.0.0\n",
) -> UpdateOrchestrator:
    """Create an orchestrator over a temp env file and a scripted runner."""
    env_file = tmp_path / ".env"
    env_file.write_text(env_text, encoding="utf-8")
    store = StateStore()
    return UpdateOrchestrator(
        compose=make_compose(runner, store),
        tag_file=EnvTagFile(env_file, "APP_IMAGE_TAG"),
        health_url="http://app/health",
        image_repo="ghcr.io/example/app",
        store=store,
        tasks=tasks or InlineTaskRunner(),
        health_config=HealthCheckConfig(timeout_seconds=1, interval_seconds=0),
    )


@pytest.fixture
def runner() -> ScriptedRunner:
    return ScriptedRunner()
