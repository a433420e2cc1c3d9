"""Skill catalog – reads instruction bundles from ``.claude/skills/<name>/SKILL.md``.

Each ``SKILL.md`` starts with YAML frontmatter::

    ---
    name: pdf
    description: Extract text and tables from PDF files
    ---
    # Instructions …
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

SKILL_FILE = "SKILL.md"

_FRONTMATTER = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)


@dataclass
class Skill:
    name: str
    description: str
    location: str
    content: str
    base_path: Path

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "location": self.location,
            "base_path": str(self.base_path),
        }


def parse_skill_file(text: str) -> tuple[dict[str, Any], str]:
    """Split ``SKILL.md`` into (frontmatter, body).  Raises ``ValueError`` on bad YAML."""
    match = _FRONTMATTER.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid frontmatter: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("frontmatter must be a mapping")
    return data, text[match.end():]


class SkillCatalog:
    """Lists and looks up the skills available to the current workspace."""

    def __init__(self, skills_path: str | Path = ".claude/skills", root: Path | None = None):
        self.skills_path = Path(skills_path)
        self.root = root

    @property
    def directory(self) -> Path:
        return ((self.root or Path.cwd()) / self.skills_path).resolve()

    def list(self) -> list[Skill]:
        directory = self.directory
        if not directory.is_dir():
            return []

        skills: list[Skill] = []
        for skill_dir in sorted(p for p in directory.iterdir() if p.is_dir()):
            skill_file = skill_dir / SKILL_FILE
            if not skill_file.is_file():
                continue
            try:
                meta, body = parse_skill_file(skill_file.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, ValueError) as exc:
                logger.error("Error parsing skill %s: %s", skill_dir.name, exc)
                continue
            skills.append(
                Skill(
                    name=str(meta.get("name") or skill_dir.name),
                    description=str(meta.get("description") or ""),
                    location="project",
                    content=body,
                    base_path=skill_dir,
                )
            )
        return skills

    def get(self, name: str) -> Skill | None:
        for skill in self.list():
            if skill.name == name:
                return skill
        return None
