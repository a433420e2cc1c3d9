"""Runtime control – the narrow interface the orchestrator needs from a
container runtime, plus its Docker implementation.

The lifecycle manager only talks to ``RuntimeControl``; tests swap in a
fake, production uses ``DockerRuntime`` (Docker SDK, ``pip install docker``).
All methods are blocking and are called through ``asyncio.to_thread``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import docker
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from docker.models.containers import Container
from docker.utils import parse_repository_tag

from sandbox.errors import (
    CreationConflict,
    EnvironmentNotFound,
    EnvironmentStartFailed,
    ImageResolutionFailed,
    RemovalFailed,
    RuntimeUnavailable,
    SandboxError,
)
from shared.schemas import EnvironmentStatus

logger = logging.getLogger(__name__)

MANAGED_LABEL = "managed-by"
MANAGED_VALUE = "skill-sandbox"


class RuntimeControl(ABC):
    """Primitive operations consumed by the environment lifecycle manager."""

    @abstractmethod
    def version(self) -> str:
        """Return the runtime version; raise ``RuntimeUnavailable`` if unreachable."""

    @abstractmethod
    def image_exists(self, reference: str) -> bool: ...

    @abstractmethod
    def pull_image(self, reference: str) -> None: ...

    @abstractmethod
    def build_image(self, reference: str, context: Path) -> None: ...

    @abstractmethod
    def find_environment(self, name: str) -> EnvironmentStatus | None:
        """Return RUNNING / STOPPED for an environment named exactly *name*, else None."""

    @abstractmethod
    def create_environment(
        self,
        name: str,
        image: str,
        host_port: int,
        container_port: int,
        mount_path: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Create and start an environment; raise ``CreationConflict`` on a name clash."""

    @abstractmethod
    def start(self, name: str) -> None: ...

    @abstractmethod
    def stop(self, name: str) -> None: ...

    @abstractmethod
    def remove(self, name: str) -> None: ...

    @abstractmethod
    def host_port(self, name: str, container_port: int) -> int | None:
        """Return the host port actually bound to *container_port*, if any."""

    @abstractmethod
    def logs(self, name: str, tail: int = 100) -> str: ...


# ── Docker implementation ────────────────────────────────────────────

@contextmanager
def _docker_errors(action: str, error_cls: type[SandboxError]) -> Iterator[None]:
    """Translate Docker SDK exceptions into orchestration errors."""
    try:
        yield
    except NotFound as exc:
        raise EnvironmentNotFound(f"{action}: {exc.explanation or exc}") from exc
    except APIError as exc:
        raise error_cls(f"{action} failed: {exc.explanation or exc}") from exc
    except DockerException as exc:
        raise error_cls(f"{action} failed: {exc}") from exc
    except OSError as exc:
        # requests' connection errors derive from OSError
        raise RuntimeUnavailable(f"{action}: cannot reach Docker daemon ({exc})") from exc


class DockerRuntime(RuntimeControl):
    """``RuntimeControl`` backed by the local Docker daemon."""

    def __init__(self, client: docker.DockerClient | None = None):
        self._client = client

    # -- Docker client (lazy) ------------------------------------------

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as exc:
                raise RuntimeUnavailable(f"Docker is not available: {exc}") from exc
        return self._client

    def version(self) -> str:
        try:
            info = self.client.version()
        except (DockerException, OSError) as exc:
            raise RuntimeUnavailable(f"Docker daemon is not running: {exc}") from exc
        return str(info.get("Version", "unknown"))

    # -- Images --------------------------------------------------------

    def image_exists(self, reference: str) -> bool:
        try:
            self.client.images.get(reference)
        except ImageNotFound:
            return False
        except (DockerException, OSError) as exc:
            raise RuntimeUnavailable(f"Cannot query image {reference}: {exc}") from exc
        return True

    def pull_image(self, reference: str) -> None:
        repository, tag = parse_repository_tag(reference)
        logger.info("Pulling image %s …", reference)
        try:
            self.client.images.pull(repository, tag=tag or "latest")
        except (DockerException, OSError) as exc:
            raise ImageResolutionFailed(reference, f"pull failed: {exc}") from exc

    def build_image(self, reference: str, context: Path) -> None:
        if not (context / "Dockerfile").is_file():
            raise ImageResolutionFailed(reference, f"no Dockerfile in build context {context}")
        logger.info("Building image %s from %s …", reference, context)
        try:
            self.client.images.build(path=str(context), tag=reference, rm=True)
        except (DockerException, OSError) as exc:
            raise ImageResolutionFailed(reference, f"build failed: {exc}") from exc

    # -- Containers ----------------------------------------------------

    def _container(self, name: str) -> Container | None:
        # The name filter matches substrings; only an exact name counts.
        with _docker_errors(f"list containers named {name}", SandboxError):
            candidates = self.client.containers.list(all=True, filters={"name": name})
        for container in candidates:
            if container.name == name:
                return container
        return None

    def _require(self, name: str) -> Container:
        container = self._container(name)
        if container is None:
            raise EnvironmentNotFound(f"No environment named {name}")
        return container

    def find_environment(self, name: str) -> EnvironmentStatus | None:
        container = self._container(name)
        if container is None:
            return None
        if container.status == "running":
            return EnvironmentStatus.RUNNING
        return EnvironmentStatus.STOPPED

    def create_environment(
        self,
        name: str,
        image: str,
        host_port: int,
        container_port: int,
        mount_path: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> None:
        volumes = None
        if mount_path:
            # Same path on both sides so commands never need path rewriting.
            volumes = {mount_path: {"bind": mount_path, "mode": "rw"}}
            logger.info("Mounting %s to %s", mount_path, mount_path)

        try:
            self.client.containers.run(
                image,
                name=name,
                detach=True,
                ports={f"{container_port}/tcp": host_port},
                volumes=volumes,
                labels={MANAGED_LABEL: MANAGED_VALUE, **(labels or {})},
            )
        except APIError as exc:
            if exc.status_code == 409:
                raise CreationConflict(name, str(exc.explanation or "")) from exc
            raise EnvironmentStartFailed(
                f"Failed to create environment {name}: {exc.explanation or exc}"
            ) from exc
        except (DockerException, OSError) as exc:
            raise EnvironmentStartFailed(f"Failed to create environment {name}: {exc}") from exc

    def start(self, name: str) -> None:
        container = self._require(name)
        with _docker_errors(f"start {name}", EnvironmentStartFailed):
            container.start()

    def stop(self, name: str) -> None:
        container = self._require(name)
        with _docker_errors(f"stop {name}", RemovalFailed):
            container.stop()

    def remove(self, name: str) -> None:
        container = self._require(name)
        with _docker_errors(f"remove {name}", RemovalFailed):
            container.remove()

    def host_port(self, name: str, container_port: int) -> int | None:
        container = self._container(name)
        if container is None:
            return None
        with _docker_errors(f"inspect {name}", SandboxError):
            container.reload()
        # {"3000/tcp": [{"HostIp": "0.0.0.0", "HostPort": "3218"}, ...]}
        bindings = container.ports.get(f"{container_port}/tcp") or []
        for binding in bindings:
            host_port = binding.get("HostPort")
            if host_port:
                return int(host_port)
        return None

    def logs(self, name: str, tail: int = 100) -> str:
        container = self._require(name)
        with _docker_errors(f"logs {name}", SandboxError):
            raw = container.logs(stdout=True, stderr=True, tail=tail)
        return raw.decode("utf-8", errors="replace")
