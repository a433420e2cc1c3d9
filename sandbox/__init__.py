"""Skill sandbox – per-skill Docker environments and command execution."""

from sandbox.errors import (
    BuildFailed,
    CreationConflict,
    EnvironmentNotFound,
    EnvironmentStartFailed,
    FileOperationFailed,
    HealthCheckTimeout,
    ImageResolutionFailed,
    RemovalFailed,
    RuntimeUnavailable,
    SandboxError,
)
from sandbox.executor import SkillExecutor
from sandbox.images import ImageResolver, image_spec
from sandbox.lifecycle import EnvironmentManager, repo_scope
from sandbox.ports import port_for
from sandbox.runtime import DockerRuntime, RuntimeControl
from sandbox.session import SkillSession

__all__ = [
    "SkillExecutor",
    "EnvironmentManager",
    "ImageResolver",
    "SkillSession",
    "RuntimeControl",
    "DockerRuntime",
    "image_spec",
    "port_for",
    "repo_scope",
    # errors
    "SandboxError",
    "RuntimeUnavailable",
    "ImageResolutionFailed",
    "BuildFailed",
    "HealthCheckTimeout",
    "CreationConflict",
    "EnvironmentNotFound",
    "EnvironmentStartFailed",
    "RemovalFailed",
    "FileOperationFailed",
]
