"""UseSkillTool - runs a shell command inside a skill's sandbox environment.

The first call for a skill provisions its environment (image, container,
health check); later calls reuse it. The command's output is formatted
into a single text block the agent can read:

    STDOUT:
    ...
    STDERR:
    ...
    Exit Code: 0
    Status: SUCCESS
"""

from __future__ import annotations

import logging
from typing import Any

from sandbox.config import DEFAULT_TECHNOLOGIES
from sandbox.errors import RuntimeUnavailable, SandboxError
from sandbox.executor import SkillExecutor
from shared.schemas import ExecutionResult
from skills.tools.registry import SkillTool, ToolResult

logger = logging.getLogger(__name__)


def format_result(result: ExecutionResult) -> str:
    """Render an execution result the way the agent sees it."""
    lines: list[str] = []
    if result.stdout:
        lines += ["STDOUT:", result.stdout.rstrip("\n")]
    if result.stderr:
        lines += ["STDERR:", result.stderr.rstrip("\n")]
    lines.append(f"Exit Code: {result.exit_code}")

    if result.timed_out:
        status = "TIMEOUT"
    elif result.success:
        status = "SUCCESS"
    else:
        status = "FAILED"
    lines.append(f"Status: {status}")

    if result.error_message:
        lines.append(f"Error: {result.error_message}")
    return "\n".join(lines)


class UseSkillTool(SkillTool):
    """Execute a bash command in the isolated environment of one skill."""

    name = "use-skill"
    input_schema = {
        "type": "object",
        "properties": {
            "skillName": {
                "type": "string",
                "description": "Name of the skill whose environment runs the command",
            },
            "bash": {
                "type": "string",
                "description": "Shell command to execute",
            },
            "timeout": {
                "type": "integer",
                "description": "Optional timeout in milliseconds",
            },
        },
        "required": ["skillName", "bash"],
    }

    def __init__(self, executor: SkillExecutor, technologies: str = DEFAULT_TECHNOLOGIES):
        self.executor = executor
        self.technologies = technologies

    @property
    def description(self) -> str:
        mount = self.executor.manager.mount_path
        mount_line = (
            f"The host directory {mount} is mounted at the same path inside the environment."
            if mount
            else "No host directory is mounted."
        )
        return (
            "Execute a bash command inside the sandboxed environment of a skill. "
            "Each skill runs in its own container, created on first use and reused afterwards.\n\n"
            f"Default timeout: {self.executor.default_timeout_ms}ms\n"
            f"Working directory: {self.executor.workdir}\n"
            f"{mount_line}\n"
            f"Available technologies: {self.technologies}"
        )

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        skill_name = str(arguments.get("skillName") or "").strip()
        command = str(arguments.get("bash") or "")
        timeout = arguments.get("timeout")

        if not skill_name or not command.strip():
            return self._error("Both 'skillName' and 'bash' are required")
        if timeout is not None and (not isinstance(timeout, int) or timeout <= 0):
            return self._error("'timeout' must be a positive number of milliseconds")

        try:
            await self.executor.manager.check_runtime()
        except RuntimeUnavailable as exc:
            return self._error(
                f"Docker is not available: {exc}. "
                "Install Docker and make sure the daemon is running."
            )

        try:
            result = await self.executor.run(skill_name, command, timeout_ms=timeout)
        except SandboxError as exc:
            logger.error("[%s] environment unavailable: %s", skill_name, exc)
            return self._error(f"Failed to prepare environment for '{skill_name}': {exc}")

        return ToolResult(
            tool_name=self.name,
            status="success" if result.success else "failure",
            summary=f"{skill_name}: exit {result.exit_code}",
            content=[format_result(result)],
            outputs={"skill": skill_name, **result.to_dict()},
            errors=[result.error_message] if result.error_message else [],
        )

    def _error(self, message: str) -> ToolResult:
        return ToolResult(
            tool_name=self.name,
            status="failure",
            summary=message,
            content=[f"Error: {message}"],
            errors=[message],
        )
