"""Per-run record of the skill environments that were used.

One ``SkillSession`` is owned by each entry point (MCP server, CLI
command); draining it at shutdown stops and removes every environment the
run touched.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from sandbox.lifecycle import EnvironmentManager

logger = logging.getLogger(__name__)


class SkillSession:
    """Ordered set of skill names used successfully during this run."""

    def __init__(self) -> None:
        self._skills: dict[str, None] = {}

    def record(self, skill_name: str) -> None:
        self._skills[skill_name] = None

    def __contains__(self, skill_name: object) -> bool:
        return skill_name in self._skills

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._skills))

    def __len__(self) -> int:
        return len(self._skills)

    async def drain(self, manager: EnvironmentManager) -> list[str]:
        """Stop + remove every tracked environment, then forget them.

        Failures are logged and do not stop the remaining cleanups.
        Returns the skills whose cleanup failed.
        """
        skills = list(self._skills)
        self._skills.clear()
        if not skills:
            return []

        logger.info("Cleaning up %d skill environment(s)…", len(skills))
        failed: list[str] = []
        for skill_name in skills:
            try:
                await manager.remove(skill_name)
            except Exception as exc:
                logger.error("Failed to clean up environment for %s: %s", skill_name, exc)
                failed.append(skill_name)
        return failed
