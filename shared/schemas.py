"""Shared schemas used by the host-side orchestrator and the execution server."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

DEFAULT_TIMEOUT_MS = 30_000
CONTAINER_PORT = 3000


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class EnvironmentStatus(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass
class EnvironmentRecord:
    """Connection details of one per-skill environment."""

    name: str
    port: int
    status: EnvironmentStatus
    endpoint: str


@dataclass
class ImageSpec:
    reference: str
    is_operator_supplied: bool
    build_context: Path


@dataclass
class ExecutionRequest:
    command: str
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    working_directory: str | None = None

    def __post_init__(self) -> None:
        if not self.command:
            raise ValueError("command must be a non-empty string")
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")

    def to_payload(self, default_cwd: str) -> dict[str, Any]:
        """Wire body for ``POST /bash`` and ``POST /bash/exec``."""
        return {
            "command": self.command,
            "timeout": self.timeout_ms,
            "cwd": self.working_directory or default_cwd,
        }


# ── Result dataclass ─────────────────────────────────────────────────

@dataclass
class ExecutionResult:
    """Structured output of one command execution."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    error_message: str | None = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    def to_dict(self) -> dict[str, Any]:
        """camelCase wire shape returned by ``POST /bash/exec``."""
        data: dict[str, Any] = {
            "success": self.success,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exitCode": self.exit_code,
            "timeout": self.timed_out,
            "message": self.message,
        }
        if self.error_message is not None:
            data["error"] = self.error_message
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionResult:
        exit_code = data.get("exitCode")
        timed_out = bool(data.get("timeout") or data.get("killed"))
        result = cls(
            exit_code=int(exit_code) if exit_code is not None else 1,
            stdout=data.get("stdout") or "",
            stderr=data.get("stderr") or "",
            timed_out=timed_out,
            error_message=data.get("error"),
            message=data.get("message") or "",
        )
        # A server that reports failure with a zero exit code (spawn errors)
        # must not read back as a success.
        if data.get("success") is False and result.success:
            result.exit_code = 1
        return result


# ── Streaming events ─────────────────────────────────────────────────

class EventType(str, Enum):
    START = "start"
    STDOUT = "stdout"
    STDERR = "stderr"
    TIMEOUT = "timeout"
    EXIT = "exit"
    ERROR = "error"


TERMINAL_EVENTS = frozenset({EventType.EXIT, EventType.ERROR})


@dataclass
class ExecutionEvent:
    """One entry of the newline-delimited ``POST /bash`` event stream."""

    type: EventType
    data: str = ""
    exit_code: int | None = None
    signal: str | None = None
    timed_out: bool = False
    message: str = ""
    timestamp: str = field(default_factory=utcnow_iso)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value, "timestamp": self.timestamp}
        if self.type in (EventType.STDOUT, EventType.STDERR):
            data["data"] = self.data
        if self.type is EventType.START:
            data["command"] = self.data
        if self.type is EventType.EXIT:
            data["exitCode"] = self.exit_code
            data["signal"] = self.signal
            data["killed"] = self.timed_out
        if self.message:
            data["message"] = self.message
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionEvent:
        event_type = EventType(data["type"])
        payload = data.get("data")
        if event_type is EventType.START:
            payload = data.get("command")
        exit_code = data.get("exitCode")
        return cls(
            type=event_type,
            data=payload or "",
            exit_code=int(exit_code) if exit_code is not None else None,
            signal=data.get("signal"),
            timed_out=bool(data.get("killed")),
            message=data.get("message") or "",
            timestamp=data.get("timestamp") or utcnow_iso(),
        )
