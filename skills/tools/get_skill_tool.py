"""GetSkillTool - loads a skill's instructions into the agent's context."""

from __future__ import annotations

from typing import Any
from xml.sax.saxutils import escape

from skills.catalog import Skill, SkillCatalog
from skills.tools.registry import SkillTool, ToolResult


def available_skills_xml(skills: list[Skill]) -> str:
    blocks = []
    for skill in skills:
        blocks.append(
            "<skill>\n"
            f"<name>{escape(skill.name)}</name>\n"
            f"<description>{escape(skill.description)}</description>\n"
            f"<location>{escape(skill.location)}</location>\n"
            "</skill>"
        )
    return "<available_skills>\n" + "\n".join(blocks) + "\n</available_skills>"


class GetSkillTool(SkillTool):
    """Return the full ``SKILL.md`` body of a skill, with its base directory."""

    name = "get-skill"
    input_schema = {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": 'The skill name (no arguments), e.g. "pdf"',
            },
        },
        "required": ["command"],
    }

    def __init__(self, catalog: SkillCatalog):
        self.catalog = catalog

    @property
    def description(self) -> str:
        skills = self.catalog.list()
        listing = available_skills_xml(skills) if skills else "No skills are installed."
        return (
            "Load the instructions of a skill before using it. Invoke with the "
            "skill name only; run its scripts afterwards with use-skill.\n\n"
            + listing
        )

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        name = str(arguments.get("command") or "").strip()
        if not name:
            return self._error("'command' (the skill name) is required", [])

        skill = self.catalog.get(name)
        if skill is None:
            return self._error(f"Skill '{name}' not found", self.catalog.list())

        return ToolResult(
            tool_name=self.name,
            status="success",
            summary=f"Loaded skill {skill.name}",
            content=[
                f"Launching skill: {skill.name}",
                f'<command-message>The "{skill.name}" skill is loading</command-message>\n'
                f"<command-name>{skill.name}</command-name>",
                f"Base directory for this skill: {skill.base_path}\n\n{skill.content}",
            ],
            outputs=skill.to_dict(),
        )

    def _error(self, message: str, skills: list[Skill]) -> ToolResult:
        content = [f"Error: {message}"]
        if skills:
            content.append(available_skills_xml(skills))
        return ToolResult(
            tool_name=self.name,
            status="failure",
            summary=message,
            content=content,
            errors=[message],
        )
