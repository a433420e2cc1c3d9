"""Wires runtime, image resolver, lifecycle manager and executor together."""

from __future__ import annotations

from pathlib import Path

from sandbox.config import SandboxSettings, settings
from sandbox.executor import SkillExecutor
from sandbox.images import ImageResolver, image_spec
from sandbox.lifecycle import EnvironmentManager
from sandbox.runtime import DockerRuntime, RuntimeControl
from sandbox.session import SkillSession


def resolve_mount_path(
    mount_path: str | None, cfg: SandboxSettings = settings, workspace: Path | None = None
) -> str | None:
    """Explicit mount → configured mount → the invoking workspace (unless disabled)."""
    if mount_path:
        return str(Path(mount_path).resolve())
    if cfg.MOUNT_PATH:
        return str(Path(cfg.MOUNT_PATH).resolve())
    if cfg.MOUNT_WORKSPACE:
        return str((workspace or Path.cwd()).resolve())
    return None


def create_executor(
    *,
    timeout_ms: int | None = None,
    workdir: str | None = None,
    mount_path: str | None = None,
    container_name: str | None = None,
    image: str | None = None,
    runtime: RuntimeControl | None = None,
    session: SkillSession | None = None,
    workspace: Path | None = None,
    cfg: SandboxSettings = settings,
) -> SkillExecutor:
    """Build a ``SkillExecutor`` from settings, with explicit arguments taking precedence."""
    workspace = (workspace or Path.cwd()).resolve()
    runtime = runtime or DockerRuntime()
    mount = resolve_mount_path(mount_path, cfg, workspace)

    resolver = ImageResolver(
        runtime,
        image_spec(cfg.DEFAULT_IMAGE, image or cfg.IMAGE, workspace),
    )
    manager = EnvironmentManager(
        runtime,
        resolver,
        workspace=workspace,
        name_override=container_name or cfg.CONTAINER_NAME,
        mount_path=mount,
        host=cfg.HOST,
        container_port=cfg.CONTAINER_PORT,
        health_attempts=cfg.HEALTH_ATTEMPTS,
        health_interval=cfg.HEALTH_INTERVAL_S,
    )
    # The mount appears at the identical path, so it is the natural working directory.
    return SkillExecutor(
        manager,
        session,
        default_timeout_ms=timeout_ms or cfg.TIMEOUT_MS,
        workdir=workdir or mount or cfg.WORKDIR,
        http_grace_s=cfg.HTTP_GRACE_S,
    )
