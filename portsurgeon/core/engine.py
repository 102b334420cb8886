"""
PortSurgeon Engine - request-level facade

Every query is a fresh, independent snapshot:
1. Socket table scan (ScanError is the only failure that reaches the caller)
2. Process table re-scan under the exclusive side of the process lock, then
   metadata lookups under the shared side
3. Container index refresh (skipped or degraded when the runtime is unavailable)
4. Correlation into ProcessNodes annotated by the Safety Registry

Termination and container actions always return a TerminationOutcome and are
recorded in the action history.
"""
import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from portsurgeon.core.config import Config
from portsurgeon.core.database import DatabaseManager
from portsurgeon.core.rwlock import AsyncRWLock
from portsurgeon.core.safety import SafetyRegistry
from portsurgeon.core.schemas import (
    ContainerAction, ContainerInfo, HistoryEntry, ProcessMetadata, ProcessNode,
    ProcessSnapshot, SocketRecord, TerminationOutcome
)
from portsurgeon.core.terminator import ProcessTerminator
from portsurgeon.modules.container_resolver import (
    ContainerError, ContainerSource, NullContainerSource, create_container_source
)
from portsurgeon.modules.correlation import CorrelationEngine
from portsurgeon.modules.port_scanner import PortScanner
from portsurgeon.modules.process_info import ProcessEnricher
from portsurgeon.utils.exporter import export_csv, export_json
from portsurgeon.utils.logger import Logger

CONTAINER_ACTION_LABELS = {
    ContainerAction.STOP: "container_stop",
    ContainerAction.KILL: "container_kill",
    ContainerAction.REMOVE: "container_remove",
    ContainerAction.RESTART: "container_restart",
}


class SurgeonEngine:
    """Query, termination and container operations exposed to the calling layer."""

    def __init__(
        self,
        config: Optional[Config] = None,
        scanner: Optional[PortScanner] = None,
        enricher: Optional[ProcessEnricher] = None,
        containers: Optional[ContainerSource] = None,
        safety: Optional[SafetyRegistry] = None,
        terminator: Optional[ProcessTerminator] = None,
        db: Optional[DatabaseManager] = None,
    ):
        self.logger = Logger()
        self.config = config or Config()
        self.scanner = scanner or PortScanner()
        self.enricher = enricher or ProcessEnricher()
        self.containers: ContainerSource = containers or NullContainerSource()
        self.safety = safety or SafetyRegistry.for_platform(extra_names=self.config.extra_protected_names)
        self.correlation = CorrelationEngine(self.safety)
        self.terminator = terminator or ProcessTerminator(
            self.safety, poll_interval=self.config.poll_interval
        )
        self.db = db or DatabaseManager(db_name=self.config.db_name)
        self._process_lock = AsyncRWLock(name="process-table")

        # Labels for history entries, taken from the latest query
        self._last_targets: Dict[int, Tuple[str, Optional[int]]] = {}
        self._last_containers: Dict[str, Tuple[str, int, Optional[int]]] = {}

    @classmethod
    async def create(cls, config: Optional[Config] = None) -> "SurgeonEngine":
        """Builds an engine with a live container runtime connection when one is reachable."""
        config = config or Config()
        containers = await create_container_source(
            binary=config.container_runtime,
            timeout=config.container_timeout,
            enabled=config.containers_enabled,
        )
        engine = cls(config=config, containers=containers)
        engine.logger.info(
            f"Engine ready (containers: {'available' if containers.is_available() else 'unavailable'}, "
            f"{len(engine.safety.protected_names)} protected names)"
        )
        return engine

    def close(self) -> None:
        self.db.close()

    # --- Queries ---

    async def _lookup_processes(self, records: List[SocketRecord]) -> Dict[int, ProcessMetadata]:
        pids = sorted({pid for record in records for pid in record.pids})
        async with self._process_lock.write_lock():
            await asyncio.to_thread(self.enricher.refresh)
        async with self._process_lock.read_lock():
            return await asyncio.to_thread(self.enricher.get_processes_info, pids)

    async def _refresh_containers(self) -> None:
        if not self.containers.is_available():
            return
        try:
            await self.containers.refresh()
        except ContainerError as e:
            self.logger.warning(f"Container index refresh failed: {e}")

    def _remember(self, nodes: List[ProcessNode], replace: bool = True) -> None:
        if replace:
            self._last_targets.clear()
            self._last_containers.clear()
        for n in nodes:
            self._last_targets[n.pid] = (n.name, n.ports[0].local_port)
            if n.container:
                self._last_containers[n.container.id] = (n.container.name, n.pid, n.ports[0].local_port)

    async def get_processes(self, include_non_listening: bool = False) -> ProcessSnapshot:
        """Query-all. Raises ScanError when the socket table cannot be read."""
        self.logger.debug(f"Fetching processes, include_non_listening={include_non_listening}")
        records = await asyncio.to_thread(self.scanner.scan, not include_non_listening)
        process_map = await self._lookup_processes(records)
        await self._refresh_containers()

        result = await self.correlation.build(records, process_map, self.containers)
        self._remember(result.processes)

        return ProcessSnapshot(
            processes=result.processes,
            total_connections=result.total_connections,
            listening_ports=result.listening_ports,
            container_available=self.containers.is_available(),
            last_updated=datetime.now(timezone.utc),
        )

    async def find_port(self, port: int) -> List[ProcessNode]:
        """Query-by-port. An unused port yields an empty list."""
        records = await asyncio.to_thread(self.scanner.find_port_users, port)
        if not records:
            return []

        process_map = await self._lookup_processes(records)
        await self._refresh_containers()
        nodes = await self.correlation.find_by_port(records, port, process_map, self.containers)
        self._remember(nodes, replace=False)
        return nodes

    # --- Termination ---

    def _record(self, action: str, pid: int, outcome: TerminationOutcome) -> None:
        name, port = self._last_targets.get(pid, ("Unknown", None))
        self.logger.audit(action, name, pid, port, outcome.success, outcome.message)
        self.db.log_action(action, name, pid, port, outcome.success, outcome.message)

    async def kill_process(self, pid: int, force: bool = False) -> TerminationOutcome:
        self.logger.info(f"Kill request for PID {pid} (force: {force})")
        outcome = await self.terminator.terminate(pid, force)
        self._record("force_kill" if force else "kill", pid, outcome)
        return outcome

    async def kill_process_elevated(self, pid: int, force: bool = False) -> TerminationOutcome:
        self.logger.info(f"Elevated kill request for PID {pid} (force: {force})")
        outcome = await self.terminator.terminate_elevated(pid, force)
        self._record("elevated_kill", pid, outcome)
        return outcome

    async def kill_process_graceful(self, pid: int, timeout: Optional[float] = None) -> TerminationOutcome:
        timeout = self.config.graceful_timeout if timeout is None else timeout
        self.logger.info(f"Graceful kill request for PID {pid} (timeout: {timeout}s)")
        outcome = await self.terminator.terminate_graceful(pid, timeout)
        self._record("graceful_kill", pid, outcome)
        return outcome

    # --- Containers ---

    def is_container_available(self) -> bool:
        return self.containers.is_available()

    async def get_containers(self) -> List[ContainerInfo]:
        """Running and stopped containers; empty when the runtime is unreachable."""
        if not self.containers.is_available():
            return []
        try:
            return await self.containers.list_all_containers()
        except ContainerError as e:
            self.logger.warning(f"Container listing failed: {e}")
            return []

    async def container_action(self, container_id: str, action: ContainerAction) -> TerminationOutcome:
        """Never raises: failures come back as an unsuccessful outcome."""
        self.logger.info(f"Container action {action.value} for {container_id[:12]}")
        if not self.containers.is_available():
            outcome = TerminationOutcome(success=False, message="Container runtime is not available")
        else:
            try:
                await self.containers.execute_action(container_id, action)
                outcome = TerminationOutcome(
                    success=True,
                    message=f"Container {container_id[:12]} action {action.value} completed",
                )
            except ContainerError as e:
                outcome = TerminationOutcome(success=False, message=f"Container action failed: {e}")

        name, pid, port = self._last_containers.get(container_id, (container_id[:12], 0, None))
        label = CONTAINER_ACTION_LABELS[action]
        self.logger.audit(label, name, pid, port, outcome.success, outcome.message)
        self.db.log_action(label, name, pid, port, outcome.success, outcome.message)
        return outcome

    # --- History & export ---

    def history(self, limit: Optional[int] = None) -> List[HistoryEntry]:
        return self.db.get_recent_actions(limit or self.config.history_limit)

    def clear_history(self) -> None:
        self.db.clear_actions()

    async def export(self, fmt: str = "json", include_non_listening: bool = False) -> str:
        snapshot = await self.get_processes(include_non_listening)
        if fmt == "csv":
            return export_csv(snapshot.processes)
        return export_json(snapshot.processes)
