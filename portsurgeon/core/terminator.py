"""
PortSurgeon - Termination Orchestrator

Per-request state machine:
    Start -> SafetyCheck -> Refused
                         -> Attempt -> Succeeded
                                    -> NeedsElevation -> ElevatedAttempt -> Succeeded | Failed

Elevation is never automatic: terminate() reports required_elevation and the
caller decides whether to run terminate_elevated().
"""
import asyncio
from enum import Enum
from typing import Dict, FrozenSet, Optional

import psutil

from portsurgeon.core.elevation import Elevator
from portsurgeon.core.rwlock import AsyncRWLock
from portsurgeon.core.safety import SafetyRegistry
from portsurgeon.core.schemas import TerminationOutcome
from portsurgeon.modules.process_info import ProcessEnricher
from portsurgeon.utils.logger import Logger

DEFAULT_POLL_INTERVAL = 0.1


def _not_found(pid: int) -> TerminationOutcome:
    return TerminationOutcome(success=False, message=f"Process {pid} not found", required_elevation=False)


class ProcessTerminator:
    """Safety-gated process termination with explicit privilege escalation."""

    def __init__(self, safety: SafetyRegistry, enricher: Optional[ProcessEnricher] = None,
                 elevator: Optional[Elevator] = None, poll_interval: float = DEFAULT_POLL_INTERVAL):
        self.logger = Logger()
        self.safety = safety
        self.enricher = enricher or ProcessEnricher()
        self.elevator = elevator or Elevator()
        self.poll_interval = poll_interval
        self._lock = AsyncRWLock(name="terminator-snapshot")

    async def resolve_name(self, pid: int) -> Optional[str]:
        """Fresh lookup: the PID may be stale relative to the query that surfaced it."""
        async with self._lock.write_lock():
            await asyncio.to_thread(self.enricher.refresh)
        async with self._lock.read_lock():
            return await asyncio.to_thread(self.enricher.get_process_name, pid)

    def _gate(self, pid: int, name: Optional[str]) -> Optional[TerminationOutcome]:
        """Returns a refusal outcome for protected targets, None when the kill may proceed."""
        verdict = self.safety.classify(pid, name or "Unknown")
        if verdict.is_safe:
            return None
        self.logger.warning(f"Termination of PID {pid} refused: {verdict.reason}")
        return TerminationOutcome(success=False, message=verdict.reason, required_elevation=False)

    def send_signal(self, pid: int, name: str, force: bool) -> TerminationOutcome:
        """SIGTERM or SIGKILL through psutil; privilege failures ask for elevation."""
        try:
            process = psutil.Process(pid)
            if force:
                process.kill()
            else:
                process.terminate()
        except psutil.NoSuchProcess:
            return _not_found(pid)
        except psutil.AccessDenied:
            self.logger.error(f"Access denied terminating PID {pid}. Elevated privileges required.")
            return TerminationOutcome(
                success=False,
                message=f"Failed to terminate process {pid} ({name}). Elevated privileges required.",
                required_elevation=True,
            )
        except (psutil.Error, OSError) as e:
            self.logger.error(f"Signal delivery to PID {pid} failed: {e}")
            return TerminationOutcome(
                success=False,
                message=f"Failed to terminate process {pid} ({name}). May require elevated privileges.",
                required_elevation=True,
            )

        self.logger.success(f"PID {pid} ({name}) signalled ({'SIGKILL' if force else 'SIGTERM'}).")
        return TerminationOutcome(
            success=True,
            message=f"Process {pid} ({name}) terminated successfully",
            required_elevation=False,
        )

    async def terminate(self, pid: int, force: bool = False) -> TerminationOutcome:
        name = await self.resolve_name(pid)

        refusal = self._gate(pid, name)
        if refusal is not None:
            return refusal
        if name is None:
            return _not_found(pid)

        return await asyncio.to_thread(self.send_signal, pid, name, force)

    async def terminate_elevated(self, pid: int, force: bool = False) -> TerminationOutcome:
        """Privileged retry through the platform prompt. Its result is terminal."""
        name = await self.resolve_name(pid)

        refusal = self._gate(pid, name)
        if refusal is not None:
            return refusal
        if name is None:
            return _not_found(pid)

        return await self.elevator.terminate(pid, force)

    async def is_alive(self, pid: int) -> bool:
        async with self._lock.read_lock():
            return await asyncio.to_thread(self.enricher.is_alive, pid)

    async def terminate_graceful(self, pid: int, timeout: float) -> TerminationOutcome:
        """Ask nicely (SIGTERM), wait up to `timeout`, then insist (SIGKILL)."""
        return await GracefulTermination(self, pid, timeout).run()


class GracefulState(str, Enum):
    START = "start"
    SIGNALED = "signaled"
    WAITING = "waiting"
    EXITED = "exited"
    ESCALATED = "escalated"
    FAILED = "failed"


TRANSITIONS: Dict[GracefulState, FrozenSet[GracefulState]] = {
    GracefulState.START: frozenset({GracefulState.SIGNALED, GracefulState.FAILED}),
    GracefulState.SIGNALED: frozenset({GracefulState.WAITING}),
    GracefulState.WAITING: frozenset({GracefulState.EXITED, GracefulState.ESCALATED}),
    GracefulState.EXITED: frozenset(),
    GracefulState.ESCALATED: frozenset(),
    GracefulState.FAILED: frozenset(),
}


class GracefulTermination:
    """
    Graceful-then-forced termination of one PID.

    START --terminate ok--> SIGNALED --> WAITING --exited--> EXITED
      |                                     \\--timeout--> ESCALATED (forced kill)
      \\--refused / not found / needs elevation--> FAILED
    """

    def __init__(self, terminator: ProcessTerminator, pid: int, timeout: float):
        self.terminator = terminator
        self.pid = pid
        self.timeout = max(0.0, timeout)
        self.state = GracefulState.START

    def _transition(self, new_state: GracefulState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid graceful termination transition {self.state.value} -> {new_state.value}")
        self.state = new_state

    async def run(self) -> TerminationOutcome:
        outcome = await self.terminator.terminate(self.pid, force=False)
        if not outcome.success:
            self._transition(GracefulState.FAILED)
            return outcome
        self._transition(GracefulState.SIGNALED)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        self._transition(GracefulState.WAITING)

        while True:
            if not await self.terminator.is_alive(self.pid):
                self._transition(GracefulState.EXITED)
                return TerminationOutcome(
                    success=True,
                    message=f"Process {self.pid} terminated gracefully",
                    required_elevation=False,
                )
            if loop.time() >= deadline:
                break
            await asyncio.sleep(self.terminator.poll_interval)

        self._transition(GracefulState.ESCALATED)
        self.terminator.logger.warning(
            f"Process {self.pid} did not exit within {self.timeout}s, forcing termination"
        )
        return await self.terminator.terminate(self.pid, force=True)
