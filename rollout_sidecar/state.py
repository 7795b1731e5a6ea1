"""Lock-guarded holder for the sidecar's mutable state.

The lock is held only for field access, never across an external command,
so status reads are never blocked by a running sequence.
"""

from __future__ import annotations

import threading
from dataclasses import replace

from rollout_sidecar.logging import get_logger
from rollout_sidecar.models import DeploymentState, UpdateStatus

log = get_logger("rollout_sidecar.state")


class StateStore:
    """Owns the single DeploymentState and the cached compose project."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = DeploymentState()
        self._project: str | None = None

    def snapshot(self) -> DeploymentState:
        """Return a copy of the current state taken under the lock."""
        with self._lock:
            return replace(self._state)

    @property
    def status(self) -> UpdateStatus:
        with self._lock:
            return self._state.status

    def transition(self, status: UpdateStatus, message: str, progress: int) -> None:
        with self._lock:
            self._state.status = status
            self._state.message = message
            self._state.progress = progress
        log.info("updater_state", status=status.value, message=message, progress=progress)

    def set_tags(self, target_tag: str, previous_tag: str) -> None:
        with self._lock:
            self._state.target_tag = target_tag
            self._state.previous_tag = previous_tag

    @property
    def project(self) -> str | None:
        with self._lock:
            return self._project

    def cache_project(self, project: str) -> None:
        with self._lock:
            self._project = project
