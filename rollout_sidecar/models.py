"""Data models for the rollout sidecar: status, state, and request bodies."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class UpdateStatus(Enum):
    """Phase of the current (or last) update sequence."""

    IDLE = "idle"
    PULLING = "pulling"
    STOPPING = "stopping"
    STARTING = "starting"
    HEALTH_CHECK = "health_check"
    ROLLING_BACK = "rolling_back"
    COMPLETED = "completed"
    FAILED = "failed"


# A new update may only start from a resting state.
UPDATE_ALLOWED_FROM = frozenset({UpdateStatus.IDLE, UpdateStatus.COMPLETED, UpdateStatus.FAILED})

# An explicit rollback is refused while a container-changing step is running.
ROLLBACK_BLOCKED_IN = frozenset(
    {
        UpdateStatus.PULLING,
        UpdateStatus.STOPPING,
        UpdateStatus.STARTING,
        UpdateStatus.ROLLING_BACK,
    }
)


@dataclass
class DeploymentState:
    """The single observable state record of the sidecar."""

    status: UpdateStatus = UpdateStatus.IDLE
    message: str = "Ready"
    progress: int = 0
    target_tag: str = ""
    previous_tag: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "progress": self.progress,
            "targetTag": self.target_tag,
            "previousTag": self.previous_tag,
        }


def _required_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} is required")
    return value.strip()


@dataclass
class UpdateRequest:
    """Body of POST /updater/update."""

    target_tag: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UpdateRequest:
        """Parse and validate an update request body.

        Raises:
            ValueError: If ``targetTag`` is missing or empty.
        """
        return cls(target_tag=_required_str(data, "targetTag"))


@dataclass
class RollbackRequest:
    """Body of POST /updater/rollback."""

    previous_tag: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RollbackRequest:
        """Parse and validate a rollback request body.

        Raises:
            ValueError: If ``previousTag`` is missing or empty.
        """
        return cls(previous_tag=_required_str(data, "previousTag"))
