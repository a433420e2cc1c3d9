"""Exceptions raised while establishing or tearing down skill environments.

Anything that happens *after* an environment is usable (non-zero exit,
timeouts, transport hiccups) is reported as an ``ExecutionResult`` instead.
"""

from __future__ import annotations


class SandboxError(Exception):
    """Base class for orchestration failures."""


class RuntimeUnavailable(SandboxError):
    """The container runtime (Docker daemon) cannot be reached."""


class ImageResolutionFailed(SandboxError):
    """Neither a registry pull nor a local build produced the image."""

    def __init__(self, reference: str, reason: str):
        self.reference = reference
        self.reason = reason
        super().__init__(f"Failed to resolve image '{reference}': {reason}")


BuildFailed = ImageResolutionFailed


class HealthCheckTimeout(SandboxError):
    """The environment never answered its health endpoint."""

    def __init__(self, endpoint: str, attempts: int):
        self.endpoint = endpoint
        self.attempts = attempts
        super().__init__(
            f"Environment at {endpoint} failed to become healthy after {attempts} attempts"
        )


class CreationConflict(SandboxError):
    """The runtime refused to create an environment because the name is taken."""

    def __init__(self, name: str, detail: str = ""):
        self.name = name
        message = f"Environment name '{name}' is already in use"
        super().__init__(f"{message}: {detail}" if detail else message)


class EnvironmentNotFound(SandboxError):
    """The runtime holds no environment with the requested name."""


class EnvironmentStartFailed(SandboxError):
    """Creating or starting an environment failed for any other reason."""


class RemovalFailed(SandboxError):
    """Stopping or removing an environment failed."""


class FileOperationFailed(SandboxError):
    """A read/write helper ran but the underlying command did not succeed."""
