"""Tests for settings-driven executor wiring."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

from sandbox.config import SandboxSettings
from sandbox.factory import create_executor, resolve_mount_path


def test_mount_path_precedence(tmp_path: Path):
    cfg = SandboxSettings(MOUNT_PATH=str(tmp_path / "configured"))
    assert resolve_mount_path(str(tmp_path / "explicit"), cfg) == str((tmp_path / "explicit").resolve())
    assert resolve_mount_path(None, cfg) == str((tmp_path / "configured").resolve())

    cfg = SandboxSettings(MOUNT_PATH=None, MOUNT_WORKSPACE=True)
    assert resolve_mount_path(None, cfg, tmp_path) == str(tmp_path.resolve())

    cfg = SandboxSettings(MOUNT_PATH=None, MOUNT_WORKSPACE=False)
    assert resolve_mount_path(None, cfg, tmp_path) is None


def test_workdir_follows_mount(tmp_path: Path):
    cfg = SandboxSettings(MOUNT_PATH=None, MOUNT_WORKSPACE=True, TIMEOUT_MS=1500)
    executor = create_executor(runtime=MagicMock(), workspace=tmp_path, cfg=cfg)

    assert executor.workdir == str(tmp_path.resolve())
    assert executor.default_timeout_ms == 1500
    assert executor.manager.mount_path == str(tmp_path.resolve())


def test_explicit_arguments_win(tmp_path: Path):
    cfg = SandboxSettings(MOUNT_PATH=None, MOUNT_WORKSPACE=False)
    executor = create_executor(
        runtime=MagicMock(),
        workspace=tmp_path,
        workdir="/srv",
        container_name="shared",
        image="acme/tools:1",
        cfg=cfg,
    )

    assert executor.workdir == "/srv"
    assert executor.manager.mount_path is None
    assert executor.manager.environment_name("pdf") == f"{tmp_path.name.lower()}-shared".replace("_", "-")
    assert executor.manager.images.reference == "acme/tools:1"


def test_defaults_without_mount(tmp_path: Path):
    cfg = SandboxSettings(MOUNT_PATH=None, MOUNT_WORKSPACE=False)
    executor = create_executor(runtime=MagicMock(), workspace=tmp_path, cfg=cfg)
    assert executor.workdir == "/workspace"
    assert executor.manager.images.reference == "skill-sandbox:latest"
