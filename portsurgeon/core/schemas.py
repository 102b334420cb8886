"""
PortSurgeon Data Contracts
Defines the structure of socket, process and container data shared across modules.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class Protocol(str, Enum):
    TCP = "tcp"
    UDP = "udp"


class SocketState(str, Enum):
    LISTENING = "LISTENING"
    ESTABLISHED = "ESTABLISHED"
    SYN_SENT = "SYN_SENT"
    SYN_RECEIVED = "SYN_RECEIVED"
    FIN_WAIT_1 = "FIN_WAIT_1"
    FIN_WAIT_2 = "FIN_WAIT_2"
    CLOSE_WAIT = "CLOSE_WAIT"
    CLOSING = "CLOSING"
    LAST_ACK = "LAST_ACK"
    TIME_WAIT = "TIME_WAIT"
    CLOSED = "CLOSED"
    UNKNOWN = "UNKNOWN"


class ContainerRuntime(str, Enum):
    DOCKER = "docker"
    PODMAN = "podman"
    CONTAINERD = "containerd"
    UNKNOWN = "unknown"


class ContainerAction(str, Enum):
    STOP = "stop"
    KILL = "kill"
    REMOVE = "remove"
    RESTART = "restart"


class SocketRecord(BaseModel):
    """One row of the OS connection table."""
    protocol: Protocol
    local_address: str
    local_port: int = Field(ge=0, le=65535)
    remote_address: Optional[str] = None
    remote_port: Optional[int] = Field(default=None, ge=0, le=65535)
    state: SocketState = SocketState.UNKNOWN
    pids: List[int] = Field(min_length=1)


class ProcessMetadata(BaseModel):
    pid: int
    name: str
    exe_path: Optional[str] = None
    command_line: Optional[str] = None
    user: str = "Unknown"
    memory_usage: int = 0
    cpu_usage: float = 0.0
    start_time: Optional[datetime] = None
    parent_pid: Optional[int] = None

    @classmethod
    def unknown(cls, pid: int) -> "ProcessMetadata":
        """Stand-in for a socket owner that exited or cannot be read."""
        return cls(pid=pid, name="Unknown", user="Unknown")


class ContainerPort(BaseModel):
    host_port: int = Field(ge=0, le=65535)
    container_port: int = Field(ge=0, le=65535)
    protocol: Protocol = Protocol.TCP
    host_ip: Optional[str] = None


class ContainerInfo(BaseModel):
    id: str
    name: str
    image: str = ""
    status: str = ""
    state: str = ""
    runtime: ContainerRuntime = ContainerRuntime.UNKNOWN
    ports: List[ContainerPort] = Field(default_factory=list)


class PortEntry(BaseModel):
    protocol: Protocol
    local_address: str
    local_port: int
    remote_address: Optional[str] = None
    remote_port: Optional[int] = None
    state: SocketState

    @classmethod
    def from_record(cls, record: SocketRecord) -> "PortEntry":
        return cls(
            protocol=record.protocol,
            local_address=record.local_address,
            local_port=record.local_port,
            remote_address=record.remote_address,
            remote_port=record.remote_port,
            state=record.state,
        )


class ProcessNode(BaseModel):
    """Unified view of one process, its ports, its container and its safety flag."""
    id: str
    pid: int
    name: str
    exe_path: Optional[str] = None
    command_line: Optional[str] = None
    user: str
    memory_usage: int = 0
    cpu_usage: float = 0.0
    start_time: Optional[datetime] = None
    ports: List[PortEntry] = Field(min_length=1)
    is_container_proxy: bool = False
    container: Optional[ContainerInfo] = None
    is_protected: bool = False


class TerminationOutcome(BaseModel):
    success: bool
    message: str
    required_elevation: bool = False


class ProcessSnapshot(BaseModel):
    """Response of the query-all operation."""
    processes: List[ProcessNode]
    total_connections: int
    listening_ports: int
    container_available: bool
    last_updated: datetime


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: Optional[str] = None


class HistoryEntry(BaseModel):
    id: int
    timestamp: str
    action: str
    target: str
    pid: int = 0
    port: Optional[int] = None
    success: bool
    message: str


# --- Request bodies ---

class KillRequest(BaseModel):
    force: bool = False


class GracefulKillRequest(BaseModel):
    timeout: Optional[float] = Field(default=None, gt=0)


class ContainerActionRequest(BaseModel):
    action: ContainerAction
