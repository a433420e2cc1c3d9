"""``skill-sandbox`` command-line entry point.

    skill-sandbox mcp-serve                 # MCP server on stdio
    skill-sandbox http-serve --port 3000    # execution server (inside an environment)
    skill-sandbox use-skill pdf "ls -la"
    skill-sandbox get-skill pdf | --list
    skill-sandbox doctor
    skill-sandbox cleanup pdf
    skill-sandbox logs pdf --tail 50

Logs go to stderr; stdout is reserved for results and the MCP protocol.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from sandbox.config import settings
from sandbox.errors import SandboxError
from sandbox.factory import create_executor
from sandbox.executor import SkillExecutor
from skills.catalog import SkillCatalog
from skills.tools import GetSkillTool, UseSkillTool

logger = logging.getLogger(__name__)


# ── Logging configuration ────────────────────────────────────────────

def _configure_logging(level: str | None = None) -> None:
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(log_level)
    console.setFormatter(fmt)

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()
    root.addHandler(console)

    if settings.LOG_FILE:
        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    for noisy in ("httpx", "httpcore", "urllib3", "docker", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ── Helpers ──────────────────────────────────────────────────────────

def _executor(args: argparse.Namespace) -> SkillExecutor:
    return create_executor(
        timeout_ms=args.timeout,
        workdir=args.workdir,
        mount_path=args.mount_path,
        container_name=args.container_name,
        image=args.image,
    )


def _catalog(args: argparse.Namespace) -> SkillCatalog:
    return SkillCatalog(args.skills_path or settings.SKILLS_PATH)


def _emit(text: str, is_error: bool) -> int:
    print(text, file=sys.stderr if is_error else sys.stdout)
    return 1 if is_error else 0


# ── Commands ─────────────────────────────────────────────────────────

def cmd_mcp_serve(args: argparse.Namespace) -> int:
    from skills.mcp_server import build_server

    cfg = settings.model_copy(update={"PREWARM": False}) if args.no_prewarm else settings
    server = build_server(_executor(args), _catalog(args), cfg)
    server.run(transport="stdio")
    return 0


def cmd_http_serve(args: argparse.Namespace) -> int:
    from app.main import run

    run(host=args.host, port=args.port)
    return 0


def cmd_use_skill(args: argparse.Namespace) -> int:
    executor = _executor(args)
    tool = UseSkillTool(executor, technologies=settings.TECHNOLOGIES)

    async def _run():
        try:
            return await tool.execute({"skillName": args.skill, "bash": args.bash})
        finally:
            if not args.keep:
                await executor.session.drain(executor.manager)

    result = asyncio.run(_run())
    return _emit(result.text, result.is_error)


def cmd_get_skill(args: argparse.Namespace) -> int:
    catalog = _catalog(args)
    if args.list or not args.name:
        skills = catalog.list()
        if not skills:
            print(f"No skills found in {catalog.directory}")
            return 0
        for skill in skills:
            print(f"{skill.name}\t{skill.description}")
        return 0

    result = asyncio.run(GetSkillTool(catalog).execute({"command": args.name}))
    return _emit(result.text, result.is_error)


def cmd_doctor(args: argparse.Namespace) -> int:
    executor = _executor(args)
    manager = executor.manager

    try:
        version = asyncio.run(manager.check_runtime())
    except SandboxError as exc:
        print(f"✗ Docker: {exc}")
        print("  Install Docker and make sure the daemon is running.")
        return 1
    print(f"✓ Docker {version}")

    reference = manager.images.reference
    try:
        present = manager.runtime.image_exists(reference)
    except SandboxError as exc:
        print(f"✗ Image {reference}: {exc}")
        return 1
    print(f"{'✓' if present else '·'} Image {reference} {'present' if present else 'not built yet'}")
    print(f"  Mount: {manager.mount_path or '(none)'}")
    print(f"  Skills: {_catalog(args).directory}")
    return 0


def cmd_cleanup(args: argparse.Namespace) -> int:
    manager = _executor(args).manager
    try:
        removed = asyncio.run(manager.remove(args.skill))
    except SandboxError as exc:
        print(f"Cleanup failed: {exc}", file=sys.stderr)
        return 1
    name = manager.environment_name(args.skill)
    print(f"Removed {name}" if removed else f"No environment named {name}")
    return 0


def cmd_logs(args: argparse.Namespace) -> int:
    manager = _executor(args).manager
    try:
        print(asyncio.run(manager.logs(args.skill, tail=args.tail)), end="")
    except SandboxError as exc:
        print(f"Could not read logs: {exc}", file=sys.stderr)
        return 1
    return 0


# ── Parser ───────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--timeout", type=int, default=None, help="Command timeout in ms")
    common.add_argument("--workdir", default=None, help="Working directory inside the environment")
    common.add_argument("--mount-path", default=None, help="Host directory to mount")
    common.add_argument("--container-name", default=None, help="Fixed environment name suffix")
    common.add_argument("--image", default=None, help="Image reference to use instead of the default")
    common.add_argument("--skills-path", default=None, help="Skills directory (relative to cwd)")
    common.add_argument("--log-level", default=None)

    parser = argparse.ArgumentParser(
        prog="skill-sandbox",
        description="Run agent skills inside per-skill Docker environments",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("mcp-serve", parents=[common], help="Serve the skill tools over MCP stdio")
    p.add_argument("--no-prewarm", action="store_true", help="Skip the background image prewarm")
    p.set_defaults(func=cmd_mcp_serve)

    p = sub.add_parser("http-serve", parents=[common], help="Run the execution server")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)
    p.set_defaults(func=cmd_http_serve)

    p = sub.add_parser("use-skill", parents=[common], help="Run a command in a skill environment")
    p.add_argument("skill")
    p.add_argument("bash")
    p.add_argument("--keep", action="store_true", help="Leave the environment running afterwards")
    p.set_defaults(func=cmd_use_skill)

    p = sub.add_parser("get-skill", parents=[common], help="Print a skill's instructions")
    p.add_argument("name", nargs="?")
    p.add_argument("--list", action="store_true", help="List installed skills")
    p.set_defaults(func=cmd_get_skill)

    p = sub.add_parser("doctor", parents=[common], help="Check the container runtime and image")
    p.set_defaults(func=cmd_doctor)

    p = sub.add_parser("cleanup", parents=[common], help="Stop and remove a skill's environment")
    p.add_argument("skill")
    p.set_defaults(func=cmd_cleanup)

    p = sub.add_parser("logs", parents=[common], help="Show a skill environment's logs")
    p.add_argument("skill")
    p.add_argument("--tail", type=int, default=100)
    p.set_defaults(func=cmd_logs)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command != "http-serve":
        _configure_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
