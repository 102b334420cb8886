# portsurgeon/modules/port_scanner.py
import psutil
import socket
from typing import Dict, List, Optional
from portsurgeon.core.schemas import Protocol, SocketRecord, SocketState
from portsurgeon.utils.logger import Logger

# psutil status strings -> SocketState
TCP_STATES: Dict[str, SocketState] = {
    psutil.CONN_LISTEN: SocketState.LISTENING,
    psutil.CONN_ESTABLISHED: SocketState.ESTABLISHED,
    psutil.CONN_SYN_SENT: SocketState.SYN_SENT,
    psutil.CONN_SYN_RECV: SocketState.SYN_RECEIVED,
    psutil.CONN_FIN_WAIT1: SocketState.FIN_WAIT_1,
    psutil.CONN_FIN_WAIT2: SocketState.FIN_WAIT_2,
    psutil.CONN_CLOSE_WAIT: SocketState.CLOSE_WAIT,
    psutil.CONN_CLOSING: SocketState.CLOSING,
    psutil.CONN_LAST_ACK: SocketState.LAST_ACK,
    psutil.CONN_TIME_WAIT: SocketState.TIME_WAIT,
    psutil.CONN_CLOSE: SocketState.CLOSED,
}


class ScanError(Exception):
    """The platform socket table could not be read."""


def _split_addr(addr) -> tuple:
    if not addr:
        return None, None
    ip = addr.ip if hasattr(addr, 'ip') else addr[0]
    port = addr.port if hasattr(addr, 'port') else addr[1]
    return ip, port


class PortScanner:
    """
    Socket table enumeration.
    Produces one SocketRecord per psutil connection that has an owning process.
    """
    def __init__(self):
        self.logger = Logger()

    def _to_record(self, conn) -> Optional[SocketRecord]:
        if conn.pid is None or not conn.laddr:
            return None

        local_ip, local_port = _split_addr(conn.laddr)
        if conn.type == socket.SOCK_STREAM:
            protocol = Protocol.TCP
            remote_ip, remote_port = _split_addr(conn.raddr)
            state = TCP_STATES.get(conn.status, SocketState.UNKNOWN)
        else:
            # UDP is connectionless: every bound socket counts as listening
            protocol = Protocol.UDP
            remote_ip, remote_port = None, None
            state = SocketState.LISTENING

        return SocketRecord(
            protocol=protocol,
            local_address=str(local_ip),
            local_port=local_port,
            remote_address=remote_ip,
            remote_port=remote_port,
            state=state,
            pids=[conn.pid],
        )

    def scan(self, listening_only: bool = False) -> List[SocketRecord]:
        """Returns every TCP/UDP socket (IPv4 and IPv6) sorted by local port."""
        try:
            connections = psutil.net_connections(kind='inet')
        except (psutil.AccessDenied, PermissionError) as e:
            raise ScanError(f"Access denied reading socket table: {e}") from e
        except (psutil.Error, OSError) as e:
            raise ScanError(f"Failed to read socket table: {e}") from e

        records = []
        for conn in connections:
            record = self._to_record(conn)
            if record is None:
                continue
            if listening_only and record.state != SocketState.LISTENING:
                continue
            records.append(record)

        records.sort(key=lambda r: r.local_port)
        self.logger.debug(f"PortScanner: {len(records)} sockets (listening_only={listening_only})")
        return records

    def find_port_users(self, port: int) -> List[SocketRecord]:
        """Returns every socket bound locally to the given port."""
        return [r for r in self.scan() if r.local_port == port]
