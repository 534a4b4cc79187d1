"""Container runtime adapters."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import docker
from docker.errors import DockerException

from .errors import RuntimeUnavailableError

logger = logging.getLogger(__name__)

SHORT_ID_LENGTH = 12


@dataclass(frozen=True)
class ContainerSummary:
    """One entry of a container listing."""

    id: str
    name: str
    state: str
    status: str = ""
    labels: Dict[str, str] = field(default_factory=dict, compare=False)

    @property
    def short_id(self) -> str:
        return self.id[:SHORT_ID_LENGTH]

    @property
    def running(self) -> bool:
        return self.state == "running"


class ContainerRuntime(ABC):
    """Abstract base class for container runtimes."""

    @abstractmethod
    def list_containers(self) -> List[ContainerSummary]:
        """List all containers, including stopped ones."""
        pass

    @abstractmethod
    def inspect_labels(self, container_id: str) -> Dict[str, str]:
        """Return the full label map of one container."""
        pass


class DockerRuntime(ContainerRuntime):
    """Docker Engine runtime using the Docker SDK."""

    def __init__(self, client: Optional[docker.DockerClient] = None):
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                raise RuntimeUnavailableError(f"Cannot connect to Docker: {e}") from e
        return self._client

    def list_containers(self) -> List[ContainerSummary]:
        try:
            containers = self.client.containers.list(all=True, sparse=True)
        except DockerException as e:
            raise RuntimeUnavailableError(f"Failed to list containers: {e}") from e

        summaries: List[ContainerSummary] = []
        for container in containers:
            attrs: Dict[str, Any] = container.attrs or {}
            container_id = str(attrs.get("Id") or container.id or "")
            if not container_id:
                logger.debug(f"Skipping container without id: {attrs}")
                continue
            names = attrs.get("Names") or []
            name = str(names[0]).lstrip("/") if names else container_id[:SHORT_ID_LENGTH]
            state = attrs.get("State")
            if isinstance(state, dict):
                state = state.get("Status")
            summaries.append(
                ContainerSummary(
                    id=container_id,
                    name=name,
                    state=str(state or ""),
                    status=str(attrs.get("Status") or ""),
                    labels=dict(attrs.get("Labels") or {}),
                )
            )
        return summaries

    def inspect_labels(self, container_id: str) -> Dict[str, str]:
        try:
            container = self.client.containers.get(container_id)
            return dict(container.labels or {})
        except DockerException as e:
            raise RuntimeUnavailableError(f"Failed to inspect container {container_id}: {e}") from e
