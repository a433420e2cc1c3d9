"""Tool infrastructure for exposing skills to a calling agent.

Provides:
  • SkillTool    - protocol that every exposed tool implements
  • ToolResult   - structured return value from every tool execution
  • ToolRegistry - registers, validates, and looks up tools by name
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


# ── Tool result ──────────────────────────────────────────────────────

@dataclass
class ToolResult:
    """Structured output returned by every tool execution."""

    tool_name: str
    status: str               # "success" | "failure"
    summary: str = ""
    content: list[str] = field(default_factory=list)   # text blocks shown to the agent
    outputs: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def is_error(self) -> bool:
        return self.status != "success"

    @property
    def text(self) -> str:
        return "\n".join(self.content)


# ── Tool protocol ────────────────────────────────────────────────────

class SkillTool(ABC):
    """Protocol that every agent-facing tool implements.

    Attributes:
        name:         Unique tool identifier (e.g. "use-skill").
        input_schema: JSON schema of the ``arguments`` mapping.
    """

    name: str = "base_tool"
    input_schema: dict[str, Any] = {}

    @property
    def description(self) -> str:
        return ""

    @property
    def required_inputs(self) -> list[str]:
        return list(self.input_schema.get("required", []))

    @abstractmethod
    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        """Run the tool and return a structured ToolResult.

        Expected failures (bad input, unavailable runtime, failed command)
        are reported through ``ToolResult.status``, not raised.
        """
        ...

    def __repr__(self) -> str:
        return f"<Tool: {self.name}>"


# ── Tool registry ───────────────────────────────────────────────────

class ToolRegistry:
    """Central registry of the tools offered to the agent.

    Usage::

        registry = ToolRegistry(disabled=["get-skill"])
        registry.register(UseSkillTool(executor))
        tool = registry.get("use-skill")
        result = await tool.execute({"skillName": "pdf", "bash": "ls"})
    """

    def __init__(self, disabled: list[str] | None = None) -> None:
        self._tools: dict[str, SkillTool] = {}
        self.disabled: set[str] = set(disabled or [])

    def register(self, tool: SkillTool) -> bool:
        """Register a tool instance by its name; disabled tools are skipped."""
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered.")
        if tool.name in self.disabled:
            return False
        self._tools[tool.name] = tool
        return True

    def get(self, name: str) -> SkillTool:
        """Retrieve a tool by name. Raises KeyError if not found."""
        if name in self.disabled:
            raise KeyError(f"Tool '{name}' is disabled")
        if name not in self._tools:
            raise KeyError(
                f"Tool '{name}' not found. Available: {list(self._tools.keys())}"
            )
        return self._tools[name]

    def validate_input(self, tool_name: str, arguments: dict[str, Any]) -> list[str]:
        """Check that all required inputs are present and non-empty.

        Returns a list of missing keys (empty means valid).
        """
        tool = self.get(tool_name)
        return [k for k in tool.required_inputs if not arguments.get(k)]

    def __iter__(self):
        return iter(list(self._tools.values()))

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
