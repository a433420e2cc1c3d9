"""MCP server exposing the skill tools over stdio.

Startup kicks off a background image prewarm so the first ``use-skill``
call doesn't pay for a pull or build; shutdown removes every environment
the session touched.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from sandbox.config import SandboxSettings, settings
from sandbox.executor import SkillExecutor
from skills.catalog import SkillCatalog
from skills.tools import GetSkillTool, ToolRegistry, UseSkillTool

logger = logging.getLogger(__name__)

INSTRUCTIONS = (
    "Skills are instruction bundles stored under the project's skills directory. "
    "Call get-skill with a skill name to read its instructions, then use-skill to run "
    "the skill's commands inside its own isolated container. Containers are created on "
    "first use and removed when this server shuts down."
)


def build_registry(
    executor: SkillExecutor, catalog: SkillCatalog, cfg: SandboxSettings = settings
) -> ToolRegistry:
    registry = ToolRegistry(disabled=cfg.disabled_tools)
    registry.register(UseSkillTool(executor, technologies=cfg.TECHNOLOGIES))
    registry.register(GetSkillTool(catalog))
    return registry


async def call_tool(registry: ToolRegistry, name: str, arguments: dict[str, Any]) -> str:
    """Validate *arguments* against the tool's required inputs, run it, return its text.

    Raises ``ToolError`` for missing inputs and for error results.
    """
    missing = registry.validate_input(name, arguments)
    if missing:
        raise ToolError(f"Missing required input(s) for {name}: {', '.join(missing)}")

    result = await registry.get(name).execute(arguments)
    logger.info("%s: %s", name, result.summary)
    if result.is_error:
        raise ToolError(result.text)
    return result.text


def session_lifespan(executor: SkillExecutor, cfg: SandboxSettings = settings):
    """Prewarm the image on startup; on shutdown stop the prewarm and drain the session."""

    @asynccontextmanager
    async def lifespan(server: FastMCP | None = None) -> AsyncIterator[dict]:
        images = executor.manager.images
        if cfg.PREWARM:
            images.start_prewarm()
        try:
            yield {}
        finally:
            await images.cancel_prewarm()
            failed = await executor.session.drain(executor.manager)
            if failed:
                logger.warning("Environments left behind: %s", ", ".join(failed))

    return lifespan


def build_server(
    executor: SkillExecutor,
    catalog: SkillCatalog,
    cfg: SandboxSettings = settings,
    registry: ToolRegistry | None = None,
) -> FastMCP:
    """Create the FastMCP server with the enabled tools registered."""
    registry = registry or build_registry(executor, catalog, cfg)
    mcp_server = FastMCP(
        "skill-sandbox", instructions=INSTRUCTIONS, lifespan=session_lifespan(executor, cfg)
    )

    if "use-skill" in registry:
        use_tool = registry.get("use-skill")

        @mcp_server.tool(name=use_tool.name, description=use_tool.description)
        async def use_skill(skillName: str, bash: str, timeout: int | None = None) -> str:
            arguments: dict[str, Any] = {"skillName": skillName, "bash": bash}
            if timeout is not None:
                arguments["timeout"] = timeout
            return await call_tool(registry, use_tool.name, arguments)

    if "get-skill" in registry:
        get_tool = registry.get("get-skill")

        @mcp_server.tool(name=get_tool.name, description=get_tool.description)
        async def get_skill(command: str) -> str:
            return await call_tool(registry, get_tool.name, {"command": command})

    logger.info("MCP server ready with tools: %s", [t.name for t in registry])
    return mcp_server
