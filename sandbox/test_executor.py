"""Tests for SkillExecutor against a mocked execution server.

Run:
    python -m pytest sandbox/test_executor.py -v
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from sandbox.errors import FileOperationFailed, HealthCheckTimeout
from sandbox.executor import SkillExecutor
from sandbox.session import SkillSession
from shared.schemas import (
    EnvironmentRecord,
    EnvironmentStatus,
    EventType,
    ExecutionRequest,
)

ENDPOINT = "http://localhost:3123"


# ── Helpers ──────────────────────────────────────────────────────────

def _manager() -> MagicMock:
    manager = MagicMock()
    manager.ensure = AsyncMock(
        return_value=EnvironmentRecord(
            name="proj-skill-sandbox-pdf",
            port=3123,
            status=EnvironmentStatus.RUNNING,
            endpoint=ENDPOINT,
        )
    )
    return manager


def _executor(handler, manager=None, **kwargs) -> SkillExecutor:
    return SkillExecutor(
        manager or _manager(),
        SkillSession(),
        transport=httpx.MockTransport(handler),
        workdir="/repo",
        **kwargs,
    )


def _ndjson(*events: dict) -> bytes:
    return "".join(json.dumps(e) + "\n" for e in events).encode()


async def _collect(agen) -> list:
    return [event async for event in agen]


# ── Buffered execution ───────────────────────────────────────────────

class TestExecute:
    def test_success(self):
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            assert str(request.url) == f"{ENDPOINT}/bash/exec"
            return httpx.Response(
                200,
                json={"success": True, "stdout": "hi\n", "stderr": "", "exitCode": 0},
            )

        executor = _executor(handler)
        result = asyncio.run(executor.run("pdf", "echo hi", timeout_ms=5000))

        assert result.success
        assert result.stdout == "hi\n"
        assert seen == [{"command": "echo hi", "timeout": 5000, "cwd": "/repo"}]
        assert "pdf" in executor.session

    def test_default_timeout_and_explicit_cwd(self):
        seen: list[dict] = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True, "exitCode": 0})

        executor = _executor(handler, default_timeout_ms=1234)
        asyncio.run(executor.run("pdf", "pwd", workdir="/tmp"))
        assert seen[0]["timeout"] == 1234
        assert seen[0]["cwd"] == "/tmp"

    def test_non_zero_exit_is_a_result(self):
        def handler(request):
            return httpx.Response(
                200,
                json={"success": False, "stdout": "hi\n", "stderr": "err\n", "exitCode": 3},
            )

        result = asyncio.run(_executor(handler).run("pdf", "exit 3"))
        assert not result.success
        assert result.exit_code == 3
        assert result.stderr == "err\n"

    def test_timeout_result(self):
        def handler(request):
            return httpx.Response(
                200,
                json={
                    "success": False,
                    "stdout": "",
                    "stderr": "",
                    "exitCode": 143,
                    "timeout": True,
                    "error": "Command execution timeout",
                },
            )

        result = asyncio.run(_executor(handler).run("pdf", "sleep 10", timeout_ms=100))
        assert result.timed_out
        assert not result.success
        assert result.error_message == "Command execution timeout"

    def test_transport_failure_becomes_result(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        executor = _executor(handler)
        result = asyncio.run(executor.run("pdf", "ls"))

        assert not result.success
        assert result.exit_code == 1
        assert "connection refused" in result.error_message
        assert "pdf" not in executor.session

    def test_malformed_body(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>bad gateway</html>")

        result = asyncio.run(_executor(handler).run("pdf", "ls"))
        assert result.exit_code == 1
        assert result.error_message.startswith("Failed to execute command")

    def test_non_object_body(self):
        def handler(request):
            return httpx.Response(200, json=["not", "an", "object"])

        result = asyncio.run(_executor(handler).run("pdf", "ls"))
        assert result.exit_code == 1
        assert "malformed response" in result.error_message

    def test_http_error_status(self):
        def handler(request):
            return httpx.Response(400, json={"success": False, "error": "Command is required"})

        executor = _executor(handler)
        result = asyncio.run(executor.run("pdf", "ls"))
        assert not result.success
        assert result.error_message == "Command is required"
        assert "pdf" not in executor.session

    def test_server_error_without_message(self):
        def handler(request):
            return httpx.Response(500, json={"success": False, "exitCode": 1})

        executor = _executor(handler)
        result = asyncio.run(executor.run("pdf", "ls"))
        assert not result.success
        assert result.error_message == "Execution server returned HTTP 500"
        assert "pdf" not in executor.session

    def test_ensure_failure_propagates(self):
        manager = _manager()
        manager.ensure.side_effect = HealthCheckTimeout(ENDPOINT, 30)
        executor = _executor(lambda r: httpx.Response(200), manager=manager)

        with pytest.raises(HealthCheckTimeout):
            asyncio.run(executor.run("pdf", "ls"))
        assert len(executor.session) == 0

    def test_invalid_request(self):
        with pytest.raises(ValueError):
            ExecutionRequest(command="")
        with pytest.raises(ValueError):
            ExecutionRequest(command="ls", timeout_ms=0)


# ── Streaming ────────────────────────────────────────────────────────

class TestStream:
    def test_events_in_order(self):
        body = _ndjson(
            {"type": "start", "command": "echo hi"},
            {"type": "stdout", "data": "hi\n"},
            {"type": "stderr", "data": "err\n"},
            {"type": "exit", "exitCode": 3, "signal": None, "killed": False},
        )

        def handler(request):
            assert str(request.url) == f"{ENDPOINT}/bash"
            return httpx.Response(200, content=body)

        executor = _executor(handler)
        events = asyncio.run(_collect(executor.stream("pdf", ExecutionRequest("echo hi"))))

        assert [e.type for e in events] == [
            EventType.START, EventType.STDOUT, EventType.STDERR, EventType.EXIT,
        ]
        assert events[0].data == "echo hi"
        assert events[-1].exit_code == 3
        assert "pdf" in executor.session

    def test_stops_at_first_terminal_event(self):
        body = _ndjson(
            {"type": "start", "command": "x"},
            {"type": "exit", "exitCode": 0},
            {"type": "stdout", "data": "late\n"},
        )
        executor = _executor(lambda r: httpx.Response(200, content=body))
        events = asyncio.run(_collect(executor.stream("pdf", ExecutionRequest("x"))))
        assert [e.type for e in events] == [EventType.START, EventType.EXIT]

    def test_missing_start_is_synthesized(self):
        body = _ndjson({"type": "stdout", "data": "a"}, {"type": "exit", "exitCode": 0})
        executor = _executor(lambda r: httpx.Response(200, content=body))
        events = asyncio.run(_collect(executor.stream("pdf", ExecutionRequest("x"))))
        assert [e.type for e in events] == [EventType.START, EventType.STDOUT, EventType.EXIT]

    def test_truncated_stream_ends_with_error(self):
        body = _ndjson({"type": "start", "command": "x"}, {"type": "stdout", "data": "a"})
        executor = _executor(lambda r: httpx.Response(200, content=body))
        events = asyncio.run(_collect(executor.stream("pdf", ExecutionRequest("x"))))

        assert [e.type for e in events] == [EventType.START, EventType.STDOUT, EventType.ERROR]
        assert "pdf" not in executor.session

    def test_connection_failure_yields_start_then_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        events = asyncio.run(_collect(_executor(handler).stream("pdf", ExecutionRequest("x"))))
        assert [e.type for e in events] == [EventType.START, EventType.ERROR]
        assert "refused" in events[-1].message

    def test_http_error_status_uses_server_message(self):
        def handler(request):
            return httpx.Response(400, json={"success": False, "error": "Command is required"})

        events = asyncio.run(_collect(_executor(handler).stream("pdf", ExecutionRequest("x"))))
        assert events[-1].type is EventType.ERROR
        assert events[-1].message == "Command is required"


# ── File helpers ─────────────────────────────────────────────────────

class TestFiles:
    def test_read_file_quotes_path(self):
        seen: list[str] = []

        def handler(request):
            seen.append(json.loads(request.content)["command"])
            return httpx.Response(200, json={"success": True, "stdout": "data", "exitCode": 0})

        content = asyncio.run(_executor(handler).read_file("pdf", "my file.txt"))
        assert content == "data"
        assert seen == ["cat -- 'my file.txt'"]

    def test_read_file_failure(self):
        def handler(request):
            return httpx.Response(
                200, json={"success": False, "stderr": "No such file\n", "exitCode": 1}
            )

        with pytest.raises(FileOperationFailed, match="No such file"):
            asyncio.run(_executor(handler).read_file("pdf", "missing.txt"))

    def test_write_file_quotes_content(self):
        seen: list[str] = []

        def handler(request):
            seen.append(json.loads(request.content)["command"])
            return httpx.Response(200, json={"success": True, "exitCode": 0})

        asyncio.run(_executor(handler).write_file("pdf", "out.txt", "it's here"))
        assert seen == ["printf '%s' 'it'\"'\"'s here' > out.txt"]
