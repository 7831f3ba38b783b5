"""Unit tests for CI detection."""

from __future__ import annotations

from pathlib import Path

import pytest

from eventing_e2e.ci import is_ci, local_artifacts_dir


class TestIsCI:
    """Tests for is_ci()."""

    @pytest.mark.requirement("e2e-CI-001")
    def test_not_ci_by_default(self) -> None:
        assert is_ci() is False

    @pytest.mark.requirement("e2e-CI-001")
    def test_ci_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CI", "TRUE")
        assert is_ci() is True

    @pytest.mark.requirement("e2e-CI-001")
    def test_ci_variable_false(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CI", "false")
        assert is_ci() is False

    @pytest.mark.requirement("e2e-CI-001")
    def test_prow(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PROW_JOB_ID", "abc")
        assert is_ci() is True


class TestLocalArtifactsDir:
    """Tests for local_artifacts_dir()."""

    @pytest.mark.requirement("e2e-CI-002")
    def test_default(self) -> None:
        assert local_artifacts_dir() == Path("artifacts")

    @pytest.mark.requirement("e2e-CI-002")
    def test_from_environment(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("ARTIFACTS", str(tmp_path))
        assert local_artifacts_dir() == tmp_path
