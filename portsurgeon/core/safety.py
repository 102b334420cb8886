"""
PortSurgeon Safety Registry
"Do no harm" classification of termination targets.

A registry is built once per process from a platform table and passed to every
component that needs it. It is immutable and needs no locking.
"""
import os
import sys
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional

APP_PROCESS_NAME = "portsurgeon"
ELEVATION_HELPER_NAME = "ps-surgeon-proxy"
EXECUTABLE_SUFFIX = ".exe"

PROTECTED_PIDS: FrozenSet[int] = frozenset({0, 1})

PROTECTED_NAMES = {
    "linux": frozenset({
        "init", "systemd", "kthreadd", "ksoftirqd", "kworker", "rcu_sched",
        "migration", "watchdog", "cpuhp", "netns", "dbus-daemon",
        "NetworkManager", "systemd-journald", "systemd-logind", "systemd-udevd",
        "Xorg", "gdm", "sddm",
        APP_PROCESS_NAME, ELEVATION_HELPER_NAME,
    }),
    "darwin": frozenset({
        "kernel_task", "launchd", "WindowServer", "loginwindow",
        "opendirectoryd", "diskarbitrationd", "configd", "securityd",
        "coreauthd", "cfprefsd", "powerd", "logd", "UserEventAgent", "mds",
        "mds_stores", "notifyd", "distnoted",
        APP_PROCESS_NAME, "PortSurgeon", ELEVATION_HELPER_NAME,
    }),
    "win32": frozenset({
        "csrss.exe", "lsass.exe", "wininit.exe", "smss.exe", "services.exe",
        "winlogon.exe", "dwm.exe", "system", "registry", "memory compression",
        f"{APP_PROCESS_NAME}.exe", f"{ELEVATION_HELPER_NAME}.exe",
    }),
}


def _platform_key(platform: str) -> str:
    if platform.startswith("win"):
        return "win32"
    if platform == "darwin":
        return "darwin"
    return "linux"


def normalize_name(name: str) -> str:
    """Lower-case a process name and strip a trailing executable suffix."""
    lowered = name.strip().lower()
    if lowered.endswith(EXECUTABLE_SUFFIX):
        lowered = lowered[: -len(EXECUTABLE_SUFFIX)]
    return lowered


class VerdictKind(str, Enum):
    SAFE = "safe"
    PROTECTED_NAME = "protected_name"
    PROTECTED_PID = "protected_pid"
    SELF_TERMINATION = "self_termination"


@dataclass(frozen=True)
class SafetyVerdict:
    kind: VerdictKind
    name: Optional[str] = None
    pid: Optional[int] = None

    @classmethod
    def safe(cls) -> "SafetyVerdict":
        return cls(VerdictKind.SAFE)

    @classmethod
    def protected_name(cls, name: str) -> "SafetyVerdict":
        return cls(VerdictKind.PROTECTED_NAME, name=name)

    @classmethod
    def protected_pid(cls, pid: int) -> "SafetyVerdict":
        return cls(VerdictKind.PROTECTED_PID, pid=pid)

    @classmethod
    def self_termination(cls) -> "SafetyVerdict":
        return cls(VerdictKind.SELF_TERMINATION)

    @property
    def is_safe(self) -> bool:
        return self.kind is VerdictKind.SAFE

    @property
    def reason(self) -> str:
        """Operator-facing refusal message."""
        if self.kind is VerdictKind.PROTECTED_NAME:
            return f"Cannot terminate protected system process: {self.name}"
        if self.kind is VerdictKind.PROTECTED_PID:
            return f"Cannot terminate protected PID: {self.pid}"
        if self.kind is VerdictKind.SELF_TERMINATION:
            return "Cannot terminate self"
        return "Process is safe to terminate"


class SafetyRegistry:
    """
    Classifies a (pid, name) pair as terminable or protected.

    Evaluation order, first match wins:
    1. the caller's own pid -> SelfTermination
    2. a protected pid (kernel / init anchor) -> ProtectedPid
    3. a denylisted name (case-insensitive, '.exe' stripped on both sides) -> ProtectedProcessName
    4. otherwise Safe
    """

    def __init__(
        self,
        protected_names: Iterable[str],
        protected_pids: Iterable[int] = PROTECTED_PIDS,
        own_pid: Optional[int] = None,
    ) -> None:
        self._names: FrozenSet[str] = frozenset(normalize_name(n) for n in protected_names)
        self._pids: FrozenSet[int] = frozenset(protected_pids)
        self._own_pid = os.getpid() if own_pid is None else own_pid

    @classmethod
    def for_platform(
        cls,
        platform: Optional[str] = None,
        extra_names: Iterable[str] = (),
        own_pid: Optional[int] = None,
    ) -> "SafetyRegistry":
        """Builds the registry from the denylist of the given (or current) platform."""
        table = PROTECTED_NAMES[_platform_key(platform or sys.platform)]
        return cls(table | frozenset(extra_names), own_pid=own_pid)

    @property
    def own_pid(self) -> int:
        return self._own_pid

    @property
    def protected_names(self) -> FrozenSet[str]:
        return self._names

    @property
    def protected_pids(self) -> FrozenSet[int]:
        return self._pids

    def classify(self, pid: int, name: str) -> SafetyVerdict:
        if pid == self._own_pid:
            return SafetyVerdict.self_termination()
        if pid in self._pids:
            return SafetyVerdict.protected_pid(pid)
        if normalize_name(name) in self._names:
            return SafetyVerdict.protected_name(name)
        return SafetyVerdict.safe()

    def is_protected(self, pid: int, name: str) -> bool:
        return not self.classify(pid, name).is_safe
