"""Tests for rollout_sidecar.models: dataclasses and serialization."""

from __future__ import annotations

import pytest

from rollout_sidecar.models import (
    ROLLBACK_BLOCKED_IN,
    UPDATE_ALLOWED_FROM,
    DeploymentState,
    RollbackRequest,
    UpdateRequest,
    UpdateStatus,
)

# ---------------------------------------------------------------------------
# TestUpdateRequest
# ---------------------------------------------------------------------------


class TestUpdateRequest:
    """Tests for UpdateRequest dataclass."""

    def test_from_dict_valid(self) -> None:
        req = UpdateRequest.from_dict({"targetTag": "v1.0.0"})
        assert req.target_tag == "v1.0.0"

    def test_from_dict_strips_whitespace(self) -> None:
        assert UpdateRequest.from_dict({"targetTag": " v1.0.0 "}).target_tag == "v1.0.0"

    @pytest.mark.parametrize("body", [{}, {"targetTag": ""}, {"targetTag": "  "}, {"targetTag": 3}])
    def test_from_dict_invalid(self, body: dict) -> None:
        with pytest.raises(ValueError, match="targetTag is required"):
            UpdateRequest.from_dict(body)

    def test_from_dict_extra_fields_ignored(self) -> None:
        req = UpdateRequest.from_dict({"targetTag": "v2.0.0", "extra": "ignored"})
        assert req.target_tag == "v2.0.0"


class TestRollbackRequest:
    """Tests for RollbackRequest dataclass."""

    def test_from_dict_valid(self) -> None:
        assert RollbackRequest.from_dict({"previousTag": "v0.9.0"}).previous_tag == "v0.9.0"

    def test_from_dict_missing(self) -> None:
        with pytest.raises(ValueError, match="previousTag"):
            RollbackRequest.from_dict({"targetTag": "v0.9.0"})


# ---------------------------------------------------------------------------
# TestDeploymentState
# ---------------------------------------------------------------------------


class TestDeploymentState:
    def test_defaults(self) -> None:
        assert DeploymentState().to_dict() == {
            "status": "idle",
            "message": "Ready",
            "progress": 0,
            "targetTag": "",
            "previousTag": "",
        }

    def test_to_dict_uses_wire_names(self) -> None:
        state = DeploymentState(
            status=UpdateStatus.HEALTH_CHECK,
            message="Waiting for health check...",
            progress=70,
            target_tag="v1.1.0",
            previous_tag="v1.0.0",
        )
        d = state.to_dict()
        assert d["status"] == "health_check"
        assert d["targetTag"] == "v1.1.0"
        assert d["previousTag"] == "v1.0.0"


class TestAdmissionSets:
    def test_update_allowed_only_from_resting_states(self) -> None:
        assert UPDATE_ALLOWED_FROM == {
            UpdateStatus.IDLE,
            UpdateStatus.COMPLETED,
            UpdateStatus.FAILED,
        }

    def test_rollback_not_blocked_by_health_check(self) -> None:
        assert UpdateStatus.HEALTH_CHECK not in ROLLBACK_BLOCKED_IN
        assert UpdateStatus.ROLLING_BACK in ROLLBACK_BLOCKED_IN
