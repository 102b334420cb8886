"""
PortSurgeon - Correlation Engine
Fuses socket records, process metadata and container metadata into ProcessNodes.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from portsurgeon.core.safety import SafetyRegistry
from portsurgeon.core.schemas import (
    ContainerInfo, PortEntry, ProcessMetadata, ProcessNode, Protocol, SocketRecord, SocketState
)
from portsurgeon.modules.container_resolver import ContainerSource
from portsurgeon.modules.process_info import is_container_proxy_name

# Wildcard and loopback binds of the same port are one logical listener
ANY_ADDRESSES = frozenset({"0.0.0.0", "::", "127.0.0.1", "::1"})
ANY_BUCKET = "any"

DedupKey = Tuple[Protocol, int, str]


def normalize_address(address: str) -> str:
    return ANY_BUCKET if address in ANY_ADDRESSES else address


def dedup_key(record: SocketRecord) -> DedupKey:
    return record.protocol, record.local_port, normalize_address(record.local_address)


@dataclass
class CorrelationResult:
    processes: List[ProcessNode] = field(default_factory=list)
    total_connections: int = 0
    listening_ports: int = 0


class CorrelationEngine:
    """
    Builds the unified process view.

    Ports are deduplicated per process only: the same (protocol, port, address)
    owned by two PIDs yields one entry for each, since SO_REUSEPORT-style
    listeners must all be visible.
    """
    def __init__(self, safety: SafetyRegistry):
        self.safety = safety

    def group_ports(self, records: Iterable[SocketRecord]) -> Dict[int, List[PortEntry]]:
        """First PortEntry per (pid, dedup key) wins; groups keep first-seen order."""
        pid_to_ports: Dict[int, List[PortEntry]] = {}
        seen: Dict[int, Set[DedupKey]] = {}

        for record in records:
            key = dedup_key(record)
            entry = PortEntry.from_record(record)
            for pid in record.pids:
                pid_seen = seen.setdefault(pid, set())
                if key in pid_seen:
                    continue
                pid_seen.add(key)
                pid_to_ports.setdefault(pid, []).append(entry)

        return pid_to_ports

    async def _resolve_container(self, name: str, port: int,
                                 containers: Optional[ContainerSource]) -> Tuple[bool, Optional[ContainerInfo]]:
        is_proxy = is_container_proxy_name(name)
        if not is_proxy or containers is None or not containers.is_available():
            return is_proxy, None
        return is_proxy, await containers.get_container_for_port(port)

    async def _make_node(self, pid: int, ports: List[PortEntry],
                         processes: Mapping[int, ProcessMetadata],
                         containers: Optional[ContainerSource]) -> ProcessNode:
        info = processes.get(pid) or ProcessMetadata.unknown(pid)
        first_port = ports[0].local_port if ports else 0
        is_proxy, container = await self._resolve_container(info.name, first_port, containers)

        return ProcessNode(
            id=f"{pid}-{first_port}",
            pid=pid,
            name=info.name,
            exe_path=info.exe_path,
            command_line=info.command_line,
            user=info.user,
            memory_usage=info.memory_usage,
            cpu_usage=info.cpu_usage,
            start_time=info.start_time,
            ports=ports,
            is_container_proxy=is_proxy,
            container=container,
            is_protected=self.safety.is_protected(pid, info.name),
        )

    async def build(self, records: List[SocketRecord],
                    processes: Mapping[int, ProcessMetadata],
                    containers: Optional[ContainerSource] = None) -> CorrelationResult:
        """Full view: one node per owning PID, sorted by PID."""
        nodes = []
        for pid, ports in self.group_ports(records).items():
            nodes.append(await self._make_node(pid, ports, processes, containers))

        nodes.sort(key=lambda n: n.pid)
        listening = sum(
            1 for n in nodes if any(p.state == SocketState.LISTENING for p in n.ports)
        )
        return CorrelationResult(
            processes=nodes,
            total_connections=len(records),
            listening_ports=listening,
        )

    async def find_by_port(self, records: List[SocketRecord], port: int,
                           processes: Mapping[int, ProcessMetadata],
                           containers: Optional[ContainerSource] = None) -> List[ProcessNode]:
        """One node per (PID, matching socket); nothing to deduplicate on a single port."""
        nodes = []
        for record in records:
            if record.local_port != port:
                continue
            entry = PortEntry.from_record(record)
            for pid in record.pids:
                nodes.append(await self._make_node(pid, [entry], processes, containers))
        return nodes
