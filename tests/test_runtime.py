"""Unit tests for DockerRuntime."""

from unittest.mock import MagicMock

import pytest
from docker.errors import APIError, NotFound

from dokploy_dns.errors import RuntimeUnavailableError
from dokploy_dns.runtime import ContainerSummary, DockerRuntime


def sparse_container(attrs: dict) -> MagicMock:
    container = MagicMock()
    container.attrs = attrs
    container.id = attrs.get("Id")
    return container


def test_list_containers_maps_sparse_attrs() -> None:
    client = MagicMock()
    client.containers.list.return_value = [
        sparse_container(
            {
                "Id": "0123456789abcdef" * 4,
                "Names": ["/web"],
                "State": "running",
                "Status": "Up 5 minutes",
                "Labels": {"traefik.enable": "true"},
            }
        ),
        sparse_container({"Id": "f" * 64, "Names": [], "State": "exited", "Labels": None}),
    ]

    containers = DockerRuntime(client=client).list_containers()

    client.containers.list.assert_called_once_with(all=True, sparse=True)
    assert containers[0] == ContainerSummary(
        id="0123456789abcdef" * 4, name="web", state="running", status="Up 5 minutes"
    )
    assert containers[0].short_id == "0123456789ab"
    assert containers[0].running is True
    assert containers[0].labels == {"traefik.enable": "true"}
    assert containers[1].name == "f" * 12
    assert containers[1].running is False
    assert containers[1].labels == {}


def test_list_containers_handles_inspect_style_state() -> None:
    client = MagicMock()
    client.containers.list.return_value = [
        sparse_container({"Id": "a" * 64, "Names": ["/db"], "State": {"Status": "running"}})
    ]

    containers = DockerRuntime(client=client).list_containers()

    assert containers[0].state == "running"


def test_list_containers_wraps_docker_errors() -> None:
    client = MagicMock()
    client.containers.list.side_effect = APIError("daemon gone")

    with pytest.raises(RuntimeUnavailableError):
        DockerRuntime(client=client).list_containers()


def test_inspect_labels() -> None:
    client = MagicMock()
    client.containers.get.return_value.labels = {"traefik.enable": "true"}

    labels = DockerRuntime(client=client).inspect_labels("abc")

    client.containers.get.assert_called_once_with("abc")
    assert labels == {"traefik.enable": "true"}


def test_inspect_labels_wraps_not_found() -> None:
    client = MagicMock()
    client.containers.get.side_effect = NotFound("No such container: abc")

    with pytest.raises(RuntimeUnavailableError):
        DockerRuntime(client=client).inspect_labels("abc")
