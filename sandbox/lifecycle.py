"""Environment lifecycle manager – reconciles "a healthy environment for
this skill should exist" against what the container runtime reports.

``ensure`` is idempotent and lock-free: the runtime's registry is queried
before every action and its name-uniqueness constraint is the only
protection against two callers creating the same environment.

Lifecycle of ``ensure(skill)``:
  1. Derive the environment name from (repo scope, override, skill)
  2. Running already?  Read back its bound port and return (fast path)
  3. Resolve the image (local → pull → build)
  4. Stopped?  Start it and read back its bound port
  5. Otherwise create it on the computed port (optionally mounting a host path)
  6. Poll ``/health`` until it answers or the attempt budget runs out
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

import httpx

from sandbox.errors import (
    CreationConflict,
    EnvironmentNotFound,
    HealthCheckTimeout,
    RemovalFailed,
    SandboxError,
)
from sandbox.images import ImageResolver
from sandbox.ports import port_for
from sandbox.runtime import RuntimeControl
from shared.schemas import CONTAINER_PORT, EnvironmentRecord, EnvironmentStatus

logger = logging.getLogger(__name__)

HEALTH_REQUEST_TIMEOUT_S = 2.0


def repo_scope(workspace: str | Path | None = None) -> str:
    """Sanitized name of the invoking workspace, e.g. ``My Repo`` → ``my-repo``."""
    base = Path(workspace or Path.cwd()).resolve().name.lower()
    return re.sub(r"[^a-z0-9-]", "-", base)


def _require_skill(skill_name: str) -> None:
    if not skill_name:
        raise ValueError("skill name must be a non-empty string")


class EnvironmentManager:
    """Owns creation, reuse, health verification and teardown of skill environments."""

    def __init__(
        self,
        runtime: RuntimeControl,
        images: ImageResolver,
        *,
        workspace: str | Path | None = None,
        name_override: str | None = None,
        mount_path: str | None = None,
        host: str = "localhost",
        container_port: int = CONTAINER_PORT,
        health_attempts: int = 30,
        health_interval: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.runtime = runtime
        self.images = images
        self.scope = repo_scope(workspace)
        self.name_override = name_override
        self.mount_path = mount_path
        self.host = host
        self.container_port = container_port
        self.health_attempts = health_attempts
        self.health_interval = health_interval
        self._transport = transport
        self._runtime_checked = False

    # -- Naming --------------------------------------------------------

    def environment_name(self, skill_name: str) -> str:
        """Per-workspace name; an override makes every skill share one environment."""
        if self.name_override:
            return f"{self.scope}-{self.name_override}"
        return f"{self.scope}-skill-sandbox-{skill_name}"

    def endpoint(self, port: int) -> str:
        return f"http://{self.host}:{port}"

    # -- Runtime checks ------------------------------------------------

    async def check_runtime(self) -> str:
        """Raise ``RuntimeUnavailable`` unless the runtime answers a version query."""
        version = await asyncio.to_thread(self.runtime.version)
        self._runtime_checked = True
        return version

    # -- Ensure --------------------------------------------------------

    async def ensure(self, skill_name: str) -> EnvironmentRecord:
        """Return a running, healthy environment for *skill_name*."""
        _require_skill(skill_name)
        name = self.environment_name(skill_name)

        state = await asyncio.to_thread(self.runtime.find_environment, name)
        if state is EnvironmentStatus.RUNNING:
            port = await self._bound_port(name, skill_name)
            logger.debug("Environment %s already running on port %d", name, port)
            return EnvironmentRecord(
                name=name, port=port, status=EnvironmentStatus.RUNNING, endpoint=self.endpoint(port)
            )

        if not self._runtime_checked:
            await self.check_runtime()
        await self.images.resolve()

        if state is EnvironmentStatus.STOPPED:
            logger.info("Starting existing environment %s…", name)
            await asyncio.to_thread(self.runtime.start, name)
            port = await self._bound_port(name, skill_name)
        else:
            port = await self._create(name, skill_name)

        record = EnvironmentRecord(
            name=name, port=port, status=EnvironmentStatus.STARTING, endpoint=self.endpoint(port)
        )
        try:
            await self.wait_until_healthy(record.endpoint)
        except HealthCheckTimeout:
            record.status = EnvironmentStatus.ERROR
            raise
        record.status = EnvironmentStatus.RUNNING
        logger.info("Environment %s is ready at %s", name, record.endpoint)
        return record

    async def _create(self, name: str, skill_name: str) -> int:
        port = port_for(skill_name)
        logger.info("Starting new environment %s on port %d…", name, port)
        try:
            await asyncio.to_thread(
                self.runtime.create_environment,
                name,
                self.images.reference,
                port,
                self.container_port,
                self.mount_path,
                {"skill": skill_name},
            )
            return port
        except CreationConflict:
            # Another caller created it between our query and our create.
            logger.warning("Environment %s was created concurrently, re-checking…", name)
            state = await asyncio.to_thread(self.runtime.find_environment, name)
            if state is None:
                raise
            if state is EnvironmentStatus.STOPPED:
                await asyncio.to_thread(self.runtime.start, name)
            return await self._bound_port(name, skill_name)

    async def _bound_port(self, name: str, skill_name: str) -> int:
        """Port the runtime actually bound; the hash is only a fallback."""
        actual = await asyncio.to_thread(self.runtime.host_port, name, self.container_port)
        if actual is None:
            return port_for(skill_name)
        return actual

    async def wait_until_healthy(self, endpoint: str) -> int:
        """Poll ``/health``; return the attempt that succeeded."""
        url = f"{endpoint}/health"
        async with httpx.AsyncClient(
            timeout=HEALTH_REQUEST_TIMEOUT_S, transport=self._transport
        ) as client:
            for attempt in range(1, self.health_attempts + 1):
                try:
                    response = await client.get(url)
                    if response.is_success:
                        return attempt
                except httpx.HTTPError:
                    pass  # not listening yet
                if attempt < self.health_attempts:
                    await asyncio.sleep(self.health_interval)
        raise HealthCheckTimeout(endpoint, self.health_attempts)

    # -- Teardown ------------------------------------------------------

    async def stop(self, skill_name: str) -> bool:
        """Stop the environment if it is running; return whether a stop was issued."""
        _require_skill(skill_name)
        name = self.environment_name(skill_name)
        state = await asyncio.to_thread(self.runtime.find_environment, name)
        if state is not EnvironmentStatus.RUNNING:
            return False
        await asyncio.to_thread(self.runtime.stop, name)
        logger.info("Environment %s stopped", name)
        return True

    async def remove(self, skill_name: str) -> bool:
        """Stop, then remove.  A failed removal does not undo the stop."""
        await self.stop(skill_name)
        name = self.environment_name(skill_name)
        try:
            await asyncio.to_thread(self.runtime.remove, name)
        except EnvironmentNotFound:
            return False
        except RemovalFailed:
            raise
        except SandboxError as exc:
            raise RemovalFailed(f"Failed to remove environment {name}: {exc}") from exc
        logger.info("Environment %s removed", name)
        return True

    async def logs(self, skill_name: str, tail: int = 100) -> str:
        _require_skill(skill_name)
        return await asyncio.to_thread(self.runtime.logs, self.environment_name(skill_name), tail)
