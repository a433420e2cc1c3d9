"""Tools sub-package - agent-facing skill tools."""

from skills.tools.registry import SkillTool, ToolResult, ToolRegistry
from skills.tools.use_skill_tool import UseSkillTool
from skills.tools.get_skill_tool import GetSkillTool

__all__ = [
    "SkillTool",
    "ToolResult",
    "ToolRegistry",
    "UseSkillTool",
    "GetSkillTool",
]
