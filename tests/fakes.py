"""In-memory fakes shared by the engine and service tests."""

from typing import Dict, List, Optional, Set

from dokploy_dns.errors import RegistrarError, RuntimeUnavailableError
from dokploy_dns.registrar import Registrar, RegistrarRecord
from dokploy_dns.runtime import ContainerRuntime, ContainerSummary


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRegistrar(Registrar):
    """In-memory registrar with call tracking and injectable failures."""

    def __init__(self, existing: Optional[Dict[str, List[RegistrarRecord]]] = None):
        self.create_calls: List[tuple] = []
        self.delete_calls: List[tuple] = []
        self.list_calls: List[str] = []
        self.failing_creates: Set[str] = set()
        self.fail_deletes = False
        self.existing = existing or {}
        self._next_id = 100

    @property
    def name(self) -> str:
        return "FakeRegistrar"

    def create_cname(self, domain: str, subdomain: str, target: str, ttl: int = 3600) -> str:
        self.create_calls.append((domain, subdomain, target, ttl))
        if f"{subdomain}.{domain}" in self.failing_creates:
            raise RegistrarError("create", domain, "500 Server Error")
        self._next_id += 1
        return str(self._next_id)

    def delete_record(self, domain: str, record_id: str) -> bool:
        self.delete_calls.append((domain, record_id))
        if self.fail_deletes:
            raise RegistrarError("delete", domain, "404 Not Found")
        return True

    def list_records(self, domain: str) -> List[RegistrarRecord]:
        self.list_calls.append(domain)
        return self.existing.get(domain, [])

    @property
    def call_count(self) -> int:
        return len(self.create_calls) + len(self.delete_calls) + len(self.list_calls)


class FakeRuntime(ContainerRuntime):
    def __init__(self) -> None:
        self.containers: Dict[str, ContainerSummary] = {}
        self.fail_listing = False
        self.failing_inspects: Set[str] = set()
        self.inspect_calls: List[str] = []

    def add(self, container_id: str, *hosts: str, state: str = "running", enable: str = "true") -> None:
        labels = {"traefik.enable": enable}
        for i, host in enumerate(hosts):
            labels[f"traefik.http.routers.r{i}.rule"] = f"Host(`{host}`)"
        self.containers[container_id] = ContainerSummary(
            id=container_id, name=f"/{container_id[:4]}", state=state, labels=labels
        )

    def set_state(self, container_id: str, state: str) -> None:
        c = self.containers[container_id]
        self.containers[container_id] = ContainerSummary(
            id=c.id, name=c.name, state=state, labels=c.labels
        )

    def list_containers(self) -> List[ContainerSummary]:
        if self.fail_listing:
            raise RuntimeUnavailableError("Docker daemon not reachable")
        return list(self.containers.values())

    def inspect_labels(self, container_id: str) -> Dict[str, str]:
        self.inspect_calls.append(container_id)
        if container_id in self.failing_inspects:
            raise RuntimeUnavailableError(f"No such container: {container_id}")
        return dict(self.containers[container_id].labels)


C1 = "a" * 64
C2 = "b" * 64
C1_SHORT = C1[:12]
C2_SHORT = C2[:12]
