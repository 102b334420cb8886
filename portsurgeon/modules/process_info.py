"""
PortSurgeon - Process Metadata Source
Looks up name, path, command line, owner and resource usage by PID.
"""
import psutil
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional
from portsurgeon.core.schemas import ProcessMetadata

# Runtime daemons and their port-forwarding helpers (docker-proxy, com.docker.backend, ...)
CONTAINER_PROXY_SUBSTRINGS = ("docker", "containerd")
CONTAINER_PROXY_NAMES = ("vpnkit",)


def is_container_proxy_name(name: str) -> bool:
    """True when the process name belongs to a container runtime."""
    lowered = (name or "").lower()
    return lowered in CONTAINER_PROXY_NAMES or any(s in lowered for s in CONTAINER_PROXY_SUBSTRINGS)


def _read(getter, default):
    """Reads one attribute; permission-restricted fields fall back to the default."""
    try:
        value = getter()
    except (psutil.AccessDenied, KeyError, OSError):
        return default
    return default if value in (None, "") else value


class ProcessEnricher:
    """
    psutil-backed process table.

    refresh() rescans the live PIDs and keeps the psutil.Process handles of
    processes that survived, so cpu_percent() has a previous sample to diff
    against. Lookups never fail: unreadable or vanished processes return None.
    """
    def __init__(self):
        self._procs: Dict[int, psutil.Process] = {}

    def refresh(self) -> None:
        current: Dict[int, psutil.Process] = {}
        for proc in psutil.process_iter():
            previous = self._procs.get(proc.pid)
            # The same pid may have been recycled by a new process
            if previous is not None and previous.is_running():
                current[proc.pid] = previous
            else:
                current[proc.pid] = proc
                try:
                    proc.cpu_percent(interval=None)
                except (psutil.NoSuchProcess, psutil.AccessDenied):
                    pass
        self._procs = current

    def _handle(self, pid: int) -> Optional[psutil.Process]:
        proc = self._procs.get(pid)
        if proc is not None:
            return proc
        try:
            return psutil.Process(pid)
        except (psutil.NoSuchProcess, psutil.AccessDenied, ValueError):
            return None

    def get_process_info(self, pid: int) -> Optional[ProcessMetadata]:
        proc = self._handle(pid)
        if proc is None:
            return None
        try:
            with proc.oneshot():
                name = proc.name()
                user = _read(proc.username, "Unknown")
                exe = _read(proc.exe, None)
                cmdline = " ".join(_read(proc.cmdline, [])) or None
                memory = _read(lambda: proc.memory_info().rss, 0)
                cpu = _read(lambda: proc.cpu_percent(interval=None), 0.0)
                created = _read(proc.create_time, 0.0)
                parent = _read(proc.ppid, None)
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            return None
        except psutil.AccessDenied:
            return ProcessMetadata.unknown(pid)

        return ProcessMetadata(
            pid=pid,
            name=name,
            exe_path=exe,
            command_line=cmdline,
            user=user or "Unknown",
            memory_usage=memory,
            cpu_usage=cpu,
            start_time=datetime.fromtimestamp(created, tz=timezone.utc) if created > 0 else None,
            parent_pid=parent or None,
        )

    def get_processes_info(self, pids: Iterable[int]) -> Dict[int, ProcessMetadata]:
        """Absent or unreadable PIDs are simply omitted."""
        found: Dict[int, ProcessMetadata] = {}
        for pid in pids:
            info = self.get_process_info(pid)
            if info is not None:
                found[pid] = info
        return found

    def get_process_name(self, pid: int) -> Optional[str]:
        info = self.get_process_info(pid)
        return info.name if info else None

    def is_alive(self, pid: int) -> bool:
        """Zombies count as exited: they hold no sockets and cannot be signalled further."""
        try:
            proc = psutil.Process(pid)
            return proc.status() != psutil.STATUS_ZOMBIE
        except (psutil.NoSuchProcess, ValueError):
            return False
        except psutil.AccessDenied:
            return True
