"""Tests for DockerRuntime with a mocked Docker SDK client."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from docker.errors import APIError, DockerException, ImageNotFound

from sandbox.errors import (
    CreationConflict,
    EnvironmentNotFound,
    EnvironmentStartFailed,
    ImageResolutionFailed,
    RuntimeUnavailable,
)
from sandbox.runtime import MANAGED_LABEL, MANAGED_VALUE, DockerRuntime
from shared.schemas import EnvironmentStatus


def _container(name: str, status: str = "running", ports: dict | None = None) -> MagicMock:
    container = MagicMock()
    container.name = name
    container.status = status
    container.ports = ports or {}
    return container


def _api_error(status: int, explanation: str = "") -> APIError:
    response = MagicMock()
    response.status_code = status
    return APIError("error", response=response, explanation=explanation)


def test_version_unavailable():
    client = MagicMock()
    client.version.side_effect = DockerException("connection refused")
    with pytest.raises(RuntimeUnavailable):
        DockerRuntime(client).version()


def test_image_exists():
    client = MagicMock()
    assert DockerRuntime(client).image_exists("img:1") is True
    client.images.get.side_effect = ImageNotFound("missing")
    assert DockerRuntime(client).image_exists("img:1") is False


def test_pull_defaults_to_latest_tag():
    client = MagicMock()
    DockerRuntime(client).pull_image("acme/tools")
    client.images.pull.assert_called_once_with("acme/tools", tag="latest")


def test_pull_failure():
    client = MagicMock()
    client.images.pull.side_effect = _api_error(404, "not found")
    with pytest.raises(ImageResolutionFailed):
        DockerRuntime(client).pull_image("acme/tools:1")


def test_build_requires_dockerfile(tmp_path: Path):
    client = MagicMock()
    with pytest.raises(ImageResolutionFailed, match="no Dockerfile"):
        DockerRuntime(client).build_image("img", tmp_path)
    client.images.build.assert_not_called()


def test_find_environment_requires_exact_name():
    client = MagicMock()
    client.containers.list.return_value = [
        _container("proj-skill-sandbox-pdf2"),
        _container("proj-skill-sandbox-pdf", status="exited"),
    ]
    runtime = DockerRuntime(client)
    assert runtime.find_environment("proj-skill-sandbox-pdf") is EnvironmentStatus.STOPPED
    assert runtime.find_environment("proj-skill-sandbox") is None


def test_create_environment_arguments():
    client = MagicMock()
    DockerRuntime(client).create_environment(
        "proj-skill-sandbox-pdf", "img", 3123, 3000, "/home/dev/proj", {"skill": "pdf"}
    )
    kwargs = client.containers.run.call_args.kwargs
    assert client.containers.run.call_args.args == ("img",)
    assert kwargs["name"] == "proj-skill-sandbox-pdf"
    assert kwargs["detach"] is True
    assert kwargs["ports"] == {"3000/tcp": 3123}
    assert kwargs["volumes"] == {"/home/dev/proj": {"bind": "/home/dev/proj", "mode": "rw"}}
    assert kwargs["labels"] == {MANAGED_LABEL: MANAGED_VALUE, "skill": "pdf"}


def test_create_conflict():
    client = MagicMock()
    client.containers.run.side_effect = _api_error(409, "name in use")
    with pytest.raises(CreationConflict):
        DockerRuntime(client).create_environment("x", "img", 3123, 3000)


def test_create_other_failure():
    client = MagicMock()
    client.containers.run.side_effect = _api_error(500, "port is already allocated")
    with pytest.raises(EnvironmentStartFailed):
        DockerRuntime(client).create_environment("x", "img", 3123, 3000)


def test_host_port_reads_binding():
    client = MagicMock()
    client.containers.list.return_value = [
        _container("x", ports={"3000/tcp": [{"HostIp": "0.0.0.0", "HostPort": "3218"}]})
    ]
    assert DockerRuntime(client).host_port("x", 3000) == 3218


def test_host_port_without_binding():
    client = MagicMock()
    client.containers.list.return_value = [_container("x")]
    assert DockerRuntime(client).host_port("x", 3000) is None


def test_remove_missing():
    client = MagicMock()
    client.containers.list.return_value = []
    with pytest.raises(EnvironmentNotFound):
        DockerRuntime(client).remove("x")


def test_logs_decoded():
    client = MagicMock()
    container = _container("x")
    container.logs.return_value = b"listening on 3000\n"
    client.containers.list.return_value = [container]
    assert DockerRuntime(client).logs("x", tail=5) == "listening on 3000\n"
    container.logs.assert_called_once_with(stdout=True, stderr=True, tail=5)
