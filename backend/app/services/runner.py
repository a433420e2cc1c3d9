"""Command runner – spawns ``sh -c`` child processes and supervises them.

Every command runs in its own process group so a timeout can take down
the whole tree (``sh`` plus whatever it started), not just the shell.

Two consumption modes share one supervisor:
  • ``run``    – buffer everything, return an ``ExecutionResult``
  • ``stream`` – a producer task feeds an ``asyncio.Queue``; the consumer
                 yields events until the ``None`` sentinel.  The producer
                 emits ``start`` first and exactly one ``exit``/``error``
                 before the sentinel.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import signal
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable

from app.config import settings
from shared.schemas import EventType, ExecutionEvent, ExecutionResult

logger = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024

OutputSink = Callable[[EventType, str], Awaitable[None]]


# ── Spawn errors ─────────────────────────────────────────────────────

def describe_spawn_error(exc: OSError, command: str, cwd: str) -> str:
    """Human-readable reason a child process could not be started."""
    executable = command.split(" ")[0]
    if isinstance(exc, FileNotFoundError):
        if exc.filename == cwd:
            return f"Working directory not found: {cwd}"
        return f"Command not found or executable missing: {executable}"
    if isinstance(exc, PermissionError):
        return f"Permission denied executing: {executable}"
    return f"Failed to execute command: {exc}"


# ── Outcome ──────────────────────────────────────────────────────────

@dataclass
class ProcessOutcome:
    returncode: int
    timed_out: bool

    @property
    def signal(self) -> str | None:
        if self.returncode >= 0:
            return None
        try:
            return signal.Signals(-self.returncode).name
        except ValueError:
            return f"SIG{-self.returncode}"

    @property
    def exit_code(self) -> int:
        # Shell convention for signal deaths: 128 + signum.
        return 128 - self.returncode if self.returncode < 0 else self.returncode

    @property
    def message(self) -> str:
        if self.timed_out:
            return "Command execution timed out and was terminated"
        if self.signal:
            return f"Command terminated by signal: {self.signal}"
        if self.returncode != 0:
            return f"Command failed with exit code: {self.returncode}"
        return "Command completed successfully"

    def exit_event(self) -> ExecutionEvent:
        return ExecutionEvent(
            EventType.EXIT,
            exit_code=self.exit_code,
            signal=self.signal,
            timed_out=self.timed_out,
            message=self.message,
        )


# ── Runner ───────────────────────────────────────────────────────────

class CommandRunner:
    """Runs shell commands with a restricted environment and a hard timeout."""

    def __init__(self, exec_path: str, kill_grace_s: float = 2.0):
        self.exec_path = exec_path
        self.kill_grace_s = kill_grace_s

    # -- Process management --------------------------------------------

    async def _spawn(
        self, command: str, cwd: str, stdin_data: str | None = None
    ) -> asyncio.subprocess.Process:
        env = {**os.environ, "HOME": cwd, "PATH": self.exec_path}
        return await asyncio.create_subprocess_exec(
            "sh", "-c", command,
            cwd=cwd,
            env=env,
            stdin=asyncio.subprocess.PIPE if stdin_data is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )

    @staticmethod
    def _signal_group(pid: int, sig: signal.Signals) -> None:
        try:
            os.killpg(pid, sig)
        except ProcessLookupError:
            pass  # whole group already gone

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM the process group, SIGKILL it if it lingers."""
        self._signal_group(proc.pid, signal.SIGTERM)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.kill_grace_s)
        except asyncio.TimeoutError:
            logger.warning("Process %d ignored SIGTERM, sending SIGKILL", proc.pid)
            self._signal_group(proc.pid, signal.SIGKILL)
            await proc.wait()

    @staticmethod
    async def _pump(stream: asyncio.StreamReader, kind: EventType, sink: OutputSink) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                tail = decoder.decode(b"", final=True)
                if tail:
                    await sink(kind, tail)
                return
            text = decoder.decode(chunk)
            if text:
                await sink(kind, text)

    @staticmethod
    async def _feed(proc: asyncio.subprocess.Process, data: str) -> None:
        assert proc.stdin is not None
        try:
            proc.stdin.write(data.encode("utf-8"))
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Process %d closed stdin before reading all input", proc.pid)
        finally:
            proc.stdin.close()

    async def _supervise(
        self,
        proc: asyncio.subprocess.Process,
        timeout_ms: int,
        sink: OutputSink,
        on_timeout: Callable[[], Awaitable[None]] | None = None,
        stdin_data: str | None = None,
    ) -> ProcessOutcome:
        assert proc.stdout is not None and proc.stderr is not None
        tasks = [
            asyncio.create_task(self._pump(proc.stdout, EventType.STDOUT, sink)),
            asyncio.create_task(self._pump(proc.stderr, EventType.STDERR, sink)),
        ]
        if stdin_data is not None:
            tasks.append(asyncio.create_task(self._feed(proc, stdin_data)))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        timed_out = False
        try:
            try:
                await asyncio.wait_for(proc.wait(), timeout=timeout_ms / 1000)
            except asyncio.TimeoutError:
                timed_out = True
                logger.info("Process %d exceeded %d ms, terminating", proc.pid, timeout_ms)
                if on_timeout is not None:
                    await on_timeout()
                await self._terminate(proc)

            # Background children may still hold the pipes open after sh exits.
            grace = max(deadline - loop.time(), self.kill_grace_s)
            _, pending = await asyncio.wait(tasks, timeout=grace)
            if pending:
                self._signal_group(proc.pid, signal.SIGKILL)
                _, pending = await asyncio.wait(pending, timeout=self.kill_grace_s)
                for task in pending:
                    task.cancel()
        except asyncio.CancelledError:
            self._signal_group(proc.pid, signal.SIGKILL)
            for task in tasks:
                task.cancel()
            raise

        return ProcessOutcome(returncode=proc.returncode, timed_out=timed_out)

    # -- Buffered ------------------------------------------------------

    async def run(
        self, command: str, cwd: str, timeout_ms: int, stdin_data: str | None = None
    ) -> ExecutionResult:
        try:
            proc = await self._spawn(command, cwd, stdin_data)
        except OSError as exc:
            message = describe_spawn_error(exc, command, cwd)
            logger.warning("Spawn failed: %s", message)
            return ExecutionResult(exit_code=1, error_message=message, message=message)

        buffers: dict[EventType, list[str]] = {EventType.STDOUT: [], EventType.STDERR: []}

        async def collect(kind: EventType, text: str) -> None:
            buffers[kind].append(text)

        outcome = await self._supervise(proc, timeout_ms, collect, stdin_data=stdin_data)
        return ExecutionResult(
            exit_code=outcome.exit_code,
            stdout="".join(buffers[EventType.STDOUT]),
            stderr="".join(buffers[EventType.STDERR]),
            timed_out=outcome.timed_out,
            error_message="Command execution timeout" if outcome.timed_out else None,
            message=outcome.message,
        )

    # -- Streaming -----------------------------------------------------

    async def stream(self, command: str, cwd: str, timeout_ms: int) -> AsyncIterator[ExecutionEvent]:
        queue: asyncio.Queue[ExecutionEvent | None] = asyncio.Queue()
        producer = asyncio.create_task(self._produce(command, cwd, timeout_ms, queue))
        try:
            while True:
                event = await queue.get()
                if event is None:
                    return
                yield event
        finally:
            if not producer.done():
                producer.cancel()

    async def _produce(
        self,
        command: str,
        cwd: str,
        timeout_ms: int,
        queue: asyncio.Queue[ExecutionEvent | None],
    ) -> None:
        await queue.put(ExecutionEvent(EventType.START, data=command))
        try:
            proc = await self._spawn(command, cwd)
        except OSError as exc:
            await queue.put(
                ExecutionEvent(EventType.ERROR, message=describe_spawn_error(exc, command, cwd))
            )
            await queue.put(None)
            return

        async def forward(kind: EventType, text: str) -> None:
            await queue.put(ExecutionEvent(kind, data=text))

        async def announce_timeout() -> None:
            await queue.put(ExecutionEvent(EventType.TIMEOUT, message="Command execution timeout"))

        try:
            outcome = await self._supervise(proc, timeout_ms, forward, announce_timeout)
        except Exception as exc:
            logger.exception("Supervising %r failed", command)
            await queue.put(ExecutionEvent(EventType.ERROR, message=f"Failed to execute command: {exc}"))
        else:
            await queue.put(outcome.exit_event())
        await queue.put(None)


_runner: CommandRunner | None = None


def get_runner() -> CommandRunner:
    """FastAPI dependency returning the process-wide runner."""
    global _runner
    if _runner is None:
        _runner = CommandRunner(settings.EXEC_PATH, settings.KILL_GRACE_S)
    return _runner
