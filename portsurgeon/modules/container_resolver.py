"""
Container Resolver Module - Host port to container mapping

Talks to the container runtime through its CLI (docker or podman) with JSON
output and keeps a point-in-time index of host port -> running container.

Index semantics:
- refresh() lists running containers only and rebuilds the index wholesale
- two containers publishing the same host port: the later one in the listing wins
- a missing port is not an error, it means no running container publishes it
"""

import asyncio
import json
import os
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from portsurgeon.core.rwlock import AsyncRWLock
from portsurgeon.core.schemas import (
    ContainerAction, ContainerInfo, ContainerPort, ContainerRuntime, Protocol
)
from portsurgeon.utils.logger import Logger

STOP_TIMEOUT_SECONDS = 10

# "0.0.0.0:8080->80/tcp", ":::8080->80/tcp", "[::]:8000-8001->8000-8001/udp"
PUBLISHED_PORT_RE = re.compile(
    r"^(?:(?P<ip>.*):)?(?P<host>\d+)(?:-(?P<host_end>\d+))?"
    r"->(?P<cport>\d+)(?:-(?P<cport_end>\d+))?/(?P<proto>\w+)$"
)

ACTION_ARGS = {
    ContainerAction.STOP: ["stop", "-t", str(STOP_TIMEOUT_SECONDS)],
    ContainerAction.KILL: ["kill", "--signal", "SIGKILL"],
    ContainerAction.REMOVE: ["rm", "-f"],
    ContainerAction.RESTART: ["restart"],
}


class ContainerError(Exception):
    """A container runtime call failed or the runtime is unreachable."""


def _kill(proc) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass


def parse_ports(ports_field: str) -> List[ContainerPort]:
    """Parses the CLI 'Ports' column, keeping only ports published on the host."""
    ports: List[ContainerPort] = []
    for chunk in (ports_field or "").split(","):
        match = PUBLISHED_PORT_RE.match(chunk.strip())
        if not match:
            continue

        host_start = int(match.group("host"))
        host_end = int(match.group("host_end") or host_start)
        cport_start = int(match.group("cport"))
        cport_end = int(match.group("cport_end") or cport_start)
        if host_end - host_start != cport_end - cport_start:
            cport_end = cport_start + (host_end - host_start)

        ip = (match.group("ip") or "").strip("[]") or None
        protocol = Protocol.UDP if match.group("proto").lower() == "udp" else Protocol.TCP

        for offset in range(host_end - host_start + 1):
            ports.append(ContainerPort(
                host_port=host_start + offset,
                container_port=cport_start + offset,
                protocol=protocol,
                host_ip=ip,
            ))
    return ports


def parse_port_mappings(entries: list) -> List[ContainerPort]:
    """
    Parses podman's structured Ports list:
    [{"host_ip": "", "container_port": 80, "host_port": 8080, "range": 1, "protocol": "tcp"}]
    Plain strings in the list are handled like the docker column.
    """
    ports: List[ContainerPort] = []
    for entry in entries:
        if isinstance(entry, str):
            ports.extend(parse_ports(entry))
            continue
        if not isinstance(entry, dict):
            continue

        try:
            host_start = int(entry.get("host_port") or 0)
            cport_start = int(entry.get("container_port") or 0)
            span = max(1, int(entry.get("range") or 1))
        except (TypeError, ValueError):
            continue
        if host_start <= 0:
            continue

        ip = str(entry.get("host_ip") or "").strip("[]") or None
        for proto in str(entry.get("protocol") or "tcp").split(","):
            protocol = Protocol.UDP if proto.strip().lower() == "udp" else Protocol.TCP
            for offset in range(span):
                if max(host_start, cport_start) + offset > 65535:
                    break
                ports.append(ContainerPort(
                    host_port=host_start + offset,
                    container_port=cport_start + offset,
                    protocol=protocol,
                    host_ip=ip,
                ))
    return ports


def runtime_from_binary(binary: str) -> ContainerRuntime:
    name = os.path.basename(binary).lower()
    if name.endswith(".exe"):
        name = name[:-4]
    for runtime in ContainerRuntime:
        if runtime.value == name:
            return runtime
    return ContainerRuntime.UNKNOWN


class ContainerSource(ABC):
    """Capability interface consumed by the correlation engine."""

    @abstractmethod
    def is_available(self) -> bool: ...

    @abstractmethod
    async def refresh(self) -> None: ...

    @abstractmethod
    async def get_container_for_port(self, port: int) -> Optional[ContainerInfo]: ...

    @abstractmethod
    async def list_all_containers(self) -> List[ContainerInfo]: ...

    @abstractmethod
    async def execute_action(self, container_id: str, action: ContainerAction) -> None: ...


class NullContainerSource(ContainerSource):
    """Stand-in used when no container runtime is reachable."""

    def is_available(self) -> bool:
        return False

    async def refresh(self) -> None:
        return None

    async def get_container_for_port(self, port: int) -> Optional[ContainerInfo]:
        return None

    async def list_all_containers(self) -> List[ContainerInfo]:
        return []

    async def execute_action(self, container_id: str, action: ContainerAction) -> None:
        raise ContainerError("Container runtime is not available")


class CliContainerResolver(ContainerSource):
    """Container runtime client driving the docker/podman CLI.

    Every call runs the runtime binary as an asyncio subprocess with a timeout
    and parses its JSON output. The port index is guarded by an AsyncRWLock:
    lookups share it, refresh() holds it exclusively for the whole rebuild.
    """

    def __init__(self, binary: str = "docker", timeout: float = 10.0):
        self.logger = Logger()
        self.binary = binary
        self.timeout = timeout
        self.runtime = runtime_from_binary(binary)
        self._available = False
        self._port_map: Dict[int, ContainerInfo] = {}
        self._lock = AsyncRWLock(name="container-port-index")

    async def _run(self, *args: str) -> str:
        """Runs '<binary> args...' and returns stdout, raising ContainerError on any failure."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary, *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ContainerError(f"{self.binary} not executable: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            _kill(proc)
            await proc.wait()
            raise ContainerError(f"{self.binary} {args[0]} timed out after {self.timeout}s") from e
        except asyncio.CancelledError:
            # The caller went away: do not leave the CLI running
            _kill(proc)
            raise

        if proc.returncode != 0:
            error = stderr.decode("utf-8", errors="replace").strip()
            raise ContainerError(error or f"{self.binary} {args[0]} exited with {proc.returncode}")
        return stdout.decode("utf-8", errors="replace")

    async def connect(self) -> bool:
        """Pings the runtime daemon. Failure only disables container features."""
        try:
            await self._run("version", "--format", "{{json .Server}}")
            self._available = True
            self.logger.info(f"Container runtime connection established ({self.binary})")
        except ContainerError as e:
            self._available = False
            self.logger.warning(f"Container runtime not available - container features disabled ({e})")
        return self._available

    def is_available(self) -> bool:
        return self._available

    def _to_info(self, data: dict) -> ContainerInfo:
        names = data.get("Names") or ""
        if isinstance(names, list):
            names = ",".join(names)
        name = names.split(",")[0].lstrip("/") or "unknown"

        ports_field = data.get("Ports") or ""
        if isinstance(ports_field, list):
            ports = parse_port_mappings(ports_field)
        else:
            ports = parse_ports(str(ports_field))

        return ContainerInfo(
            id=data.get("ID") or data.get("Id") or "",
            name=name,
            image=data.get("Image") or "",
            status=data.get("Status") or "",
            state=data.get("State") or "",
            runtime=self.runtime,
            ports=ports,
        )

    async def _list(self, include_stopped: bool) -> List[ContainerInfo]:
        if not self._available:
            raise ContainerError("Container runtime is not available")

        args = ["ps", "--no-trunc", "--format", "{{json .}}"]
        if include_stopped:
            args.insert(1, "-a")
        output = await self._run(*args)

        containers = []
        for line in output.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                self.logger.warning(f"Skipping unparsable container row: {line[:80]}")
                continue
            # podman prints a single JSON array instead of one object per line
            for item in (data if isinstance(data, list) else [data]):
                containers.append(self._to_info(item))
        return containers

    async def refresh(self) -> None:
        containers = await self._list(include_stopped=False)
        async with self._lock.write_lock():
            self._port_map.clear()
            for container in containers:
                for port in container.ports:
                    self._port_map[port.host_port] = container
        self.logger.debug(f"Container index rebuilt: {len(self._port_map)} host ports")

    async def get_container_for_port(self, port: int) -> Optional[ContainerInfo]:
        async with self._lock.read_lock():
            return self._port_map.get(port)

    async def indexed_ports(self) -> Dict[int, str]:
        """Host port -> container id view of the current index."""
        async with self._lock.read_lock():
            return {port: info.id for port, info in self._port_map.items()}

    async def list_all_containers(self) -> List[ContainerInfo]:
        return await self._list(include_stopped=True)

    async def execute_action(self, container_id: str, action: ContainerAction) -> None:
        if not self._available:
            raise ContainerError("Container runtime is not available")
        await self._run(*ACTION_ARGS[action], container_id)
        self.logger.info(f"Container {container_id[:12]}: {action.value} completed")


async def create_container_source(binary: str = "docker", timeout: float = 10.0,
                                  enabled: bool = True) -> ContainerSource:
    """Returns a connected CLI resolver, or the null source when the runtime is unreachable."""
    if not enabled:
        return NullContainerSource()
    resolver = CliContainerResolver(binary=binary, timeout=timeout)
    if await resolver.connect():
        return resolver
    return NullContainerSource()
