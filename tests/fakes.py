# tests/fakes.py
"""In-memory stand-ins for the socket, process and container sources."""
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

from portsurgeon.core.config import Config
from portsurgeon.core.database import DatabaseManager
from portsurgeon.core.engine import SurgeonEngine
from portsurgeon.core.safety import SafetyRegistry
from portsurgeon.core.schemas import (
    ContainerAction, ContainerInfo, ContainerPort, ProcessMetadata, Protocol,
    SocketRecord, SocketState, TerminationOutcome
)
from portsurgeon.core.terminator import ProcessTerminator
from portsurgeon.modules.container_resolver import ContainerError, ContainerSource

OWN_PID = 99999


def make_record(port: int, pids, address: str = "0.0.0.0", protocol: Protocol = Protocol.TCP,
                state: SocketState = SocketState.LISTENING) -> SocketRecord:
    if isinstance(pids, int):
        pids = [pids]
    return SocketRecord(protocol=protocol, local_address=address, local_port=port, state=state, pids=pids)


def make_container(container_id: str, name: str, host_ports=(), image: str = "nginx:latest") -> ContainerInfo:
    return ContainerInfo(
        id=container_id,
        name=name,
        image=image,
        status="Up 5 minutes",
        state="running",
        ports=[ContainerPort(host_port=p, container_port=p) for p in host_ports],
    )


def linux_registry(**kwargs) -> SafetyRegistry:
    return SafetyRegistry.for_platform("linux", own_pid=OWN_PID, **kwargs)


class FakeScanner:
    def __init__(self, records=(), error: Optional[Exception] = None):
        self.records = list(records)
        self.error = error

    def scan(self, listening_only: bool = False) -> List[SocketRecord]:
        if self.error:
            raise self.error
        records = [r for r in self.records if not listening_only or r.state == SocketState.LISTENING]
        return sorted(records, key=lambda r: r.local_port)

    def find_port_users(self, port: int) -> List[SocketRecord]:
        return [r for r in self.scan() if r.local_port == port]


class FakeEnricher:
    """pid -> name table. `alive` scripts successive is_alive() answers."""

    def __init__(self, processes: Optional[Dict[int, str]] = None, alive=None):
        self.processes = dict(processes or {})
        self.alive = list(alive or [])
        self.refreshes = 0

    def refresh(self) -> None:
        self.refreshes += 1

    def get_process_info(self, pid: int) -> Optional[ProcessMetadata]:
        name = self.processes.get(pid)
        if name is None:
            return None
        return ProcessMetadata(pid=pid, name=name, user="alice", memory_usage=2048, cpu_usage=1.25)

    def get_processes_info(self, pids) -> Dict[int, ProcessMetadata]:
        return {pid: self.get_process_info(pid) for pid in pids if pid in self.processes}

    def get_process_name(self, pid: int) -> Optional[str]:
        return self.processes.get(pid)

    def is_alive(self, pid: int) -> bool:
        if self.alive:
            return self.alive.pop(0)
        return pid in self.processes


class FakeContainerSource(ContainerSource):
    def __init__(self, containers=(), available: bool = True, error: Optional[str] = None):
        self.containers = list(containers)
        self.available = available
        self.error = error
        self.refreshes = 0
        self.actions = []
        self._port_map: Dict[int, ContainerInfo] = {}

    def is_available(self) -> bool:
        return self.available

    async def refresh(self) -> None:
        self.refreshes += 1
        if self.error:
            raise ContainerError(self.error)
        self._port_map = {p.host_port: c for c in self.containers for p in c.ports}

    async def get_container_for_port(self, port: int) -> Optional[ContainerInfo]:
        return self._port_map.get(port)

    async def list_all_containers(self) -> List[ContainerInfo]:
        if self.error:
            raise ContainerError(self.error)
        return list(self.containers)

    async def execute_action(self, container_id: str, action: ContainerAction) -> None:
        if self.error:
            raise ContainerError(self.error)
        self.actions.append((container_id, action))


def build_engine(tmp_path, records=(), processes=None, containers=None, scan_error=None,
                 alive=None, elevated_outcome=None, config=None) -> SurgeonEngine:
    config = config or Config(config_path=str(tmp_path / "config.yaml"))
    safety = linux_registry()
    enricher = FakeEnricher(processes, alive=alive)

    elevator = MagicMock()
    elevator.terminate = AsyncMock(return_value=elevated_outcome or TerminationOutcome(
        success=True, message="Process terminated with elevated privileges", required_elevation=True,
    ))

    return SurgeonEngine(
        config=config,
        scanner=FakeScanner(records, error=scan_error),
        enricher=enricher,
        containers=containers,
        safety=safety,
        terminator=ProcessTerminator(safety, enricher=enricher, elevator=elevator, poll_interval=0.01),
        db=DatabaseManager(db_name=str(tmp_path / "history.db")),
    )
