"""Skill executor – runs commands inside per-skill environments.

Lifecycle of one call:
  1. ``EnvironmentManager.ensure`` (errors here propagate: no usable environment)
  2. POST the command to the environment's execution server
  3. Normalize the JSON reply into an ``ExecutionResult``
  4. Record the skill in the session so shutdown cleans it up

Everything that goes wrong after step 1 (non-zero exit, timeout,
unreachable server, garbage reply) comes back as an ``ExecutionResult``
with ``success=False`` – this class never raises for it.
"""

from __future__ import annotations

import json
import logging
import shlex
from typing import Any, AsyncIterator

import httpx

from sandbox.errors import FileOperationFailed
from sandbox.lifecycle import EnvironmentManager
from sandbox.session import SkillSession
from shared.schemas import (
    DEFAULT_TIMEOUT_MS,
    EventType,
    ExecutionEvent,
    ExecutionRequest,
    ExecutionResult,
)

logger = logging.getLogger(__name__)


class SkillExecutor:
    """Sends execution requests to skill environments.

    Usage::

        executor = SkillExecutor(manager, session)
        result = await executor.run("pdf", "python3 scripts/extract.py in.pdf")
        print(result.stdout)
    """

    def __init__(
        self,
        manager: EnvironmentManager,
        session: SkillSession | None = None,
        *,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        workdir: str = "/workspace",
        http_grace_s: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.manager = manager
        self.session = session if session is not None else SkillSession()
        self.default_timeout_ms = default_timeout_ms
        self.workdir = workdir
        self.http_grace_s = http_grace_s
        self._transport = transport

    def _client(self, request: ExecutionRequest) -> httpx.AsyncClient:
        # The server-side timer is authoritative; the HTTP guard only has to outlast it.
        timeout = request.timeout_ms / 1000 + self.http_grace_s
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    def build_request(
        self, command: str, timeout_ms: int | None = None, workdir: str | None = None
    ) -> ExecutionRequest:
        return ExecutionRequest(
            command=command,
            timeout_ms=timeout_ms or self.default_timeout_ms,
            working_directory=workdir,
        )

    # -- Buffered execution --------------------------------------------

    async def run(
        self,
        skill_name: str,
        command: str,
        *,
        timeout_ms: int | None = None,
        workdir: str | None = None,
    ) -> ExecutionResult:
        return await self.execute(skill_name, self.build_request(command, timeout_ms, workdir))

    async def execute(self, skill_name: str, request: ExecutionRequest) -> ExecutionResult:
        """Run *request* in the environment for *skill_name* and wait for the result."""
        record = await self.manager.ensure(skill_name)
        url = f"{record.endpoint}/bash/exec"
        payload = request.to_payload(self.workdir)
        logger.info("[%s] exec: %s", skill_name, request.command)

        try:
            async with self._client(request) as client:
                response = await client.post(url, json=payload)
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            return _transport_failure(f"Failed to execute command: {exc}")

        if not isinstance(data, dict):
            return _transport_failure(
                f"Failed to execute command: malformed response from {url} ({type(data).__name__})"
            )

        result = ExecutionResult.from_dict(data)
        if response.is_error:
            if result.error_message is None:
                result.error_message = f"Execution server returned HTTP {response.status_code}"
            logger.warning("[%s] %s", skill_name, result.error_message)
            return result

        self.session.record(skill_name)
        logger.info(
            "[%s] exit=%d timed_out=%s", skill_name, result.exit_code, result.timed_out
        )
        return result

    # -- Streaming execution -------------------------------------------

    async def stream(
        self, skill_name: str, request: ExecutionRequest
    ) -> AsyncIterator[ExecutionEvent]:
        """Yield ``start``, output chunks, then exactly one ``exit`` or ``error``."""
        record = await self.manager.ensure(skill_name)
        url = f"{record.endpoint}/bash"
        payload = request.to_payload(self.workdir)
        started = False
        terminal: ExecutionEvent | None = None
        failure = ""

        try:
            async with self._client(request) as client:
                async with client.stream("POST", url, json=payload) as response:
                    if response.is_error:
                        await response.aread()
                        failure = _error_detail(response)
                    else:
                        async for line in response.aiter_lines():
                            if not line.strip():
                                continue
                            event = ExecutionEvent.from_dict(json.loads(line))
                            if not started and event.type is not EventType.START:
                                yield ExecutionEvent(EventType.START, data=request.command)
                            started = True
                            yield event
                            if event.is_terminal:
                                terminal = event
                                break
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            failure = f"Failed to stream command: {exc}"

        if terminal is not None:
            self.session.record(skill_name)
            return

        if not started:
            yield ExecutionEvent(EventType.START, data=request.command)
        yield ExecutionEvent(
            EventType.ERROR,
            message=failure or "Stream ended without an exit event",
        )

    # -- File helpers --------------------------------------------------

    async def read_file(self, skill_name: str, path: str) -> str:
        result = await self.run(skill_name, f"cat -- {shlex.quote(path)}")
        if not result.success:
            raise FileOperationFailed(
                f"Failed to read file {path}: "
                f"{result.error_message or result.stderr.strip() or 'unknown error'}"
            )
        return result.stdout

    async def write_file(self, skill_name: str, path: str, content: str) -> None:
        # printf is a shell builtin, so large contents never hit argv limits.
        command = f"printf '%s' {shlex.quote(content)} > {shlex.quote(path)}"
        result = await self.run(skill_name, command)
        if not result.success:
            raise FileOperationFailed(
                f"Failed to write file {path}: "
                f"{result.error_message or result.stderr.strip() or 'unknown error'}"
            )


# -- Helpers -----------------------------------------------------------

def _transport_failure(message: str) -> ExecutionResult:
    logger.warning(message)
    return ExecutionResult(exit_code=1, error_message=message)


def _error_detail(response: httpx.Response) -> str:
    try:
        body: Any = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"Execution server returned HTTP {response.status_code}"
