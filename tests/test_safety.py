# tests/test_safety.py
import pytest
from portsurgeon.core.safety import (
    SafetyRegistry, VerdictKind, normalize_name
)
from fakes import OWN_PID, linux_registry


def test_own_pid_is_self_termination():
    """The running service can never be its own target, whatever it is called."""
    verdict = linux_registry().classify(OWN_PID, "python3")
    assert verdict.kind is VerdictKind.SELF_TERMINATION
    assert verdict.reason == "Cannot terminate self"


@pytest.mark.parametrize("pid", [0, 1])
def test_anchor_pids_are_protected(pid):
    verdict = linux_registry().classify(pid, "anything")
    assert verdict.kind is VerdictKind.PROTECTED_PID
    assert verdict.reason == f"Cannot terminate protected PID: {pid}"


def test_self_takes_precedence_over_pid():
    registry = SafetyRegistry(protected_names=[], own_pid=1)
    assert registry.classify(1, "init").kind is VerdictKind.SELF_TERMINATION


def test_pid_takes_precedence_over_name():
    assert linux_registry().classify(1, "systemd").kind is VerdictKind.PROTECTED_PID


@pytest.mark.parametrize("name", ["systemd", "SYSTEMD", "Xorg", "xorg", "systemd.exe", "NetworkManager"])
def test_denylisted_names_match_case_insensitively(name):
    verdict = linux_registry().classify(1234, name)
    assert verdict.kind is VerdictKind.PROTECTED_NAME
    assert verdict.reason == f"Cannot terminate protected system process: {name}"


@pytest.mark.parametrize("name", ["nginx", "node", "python3", "systemd-resolved-helper", "Unknown"])
def test_ordinary_processes_are_safe(name):
    verdict = linux_registry().classify(1234, name)
    assert verdict.is_safe
    assert not linux_registry().is_protected(1234, name)


def test_windows_names_strip_executable_suffix():
    registry = SafetyRegistry.for_platform("win32", own_pid=OWN_PID)
    assert registry.is_protected(800, "lsass.exe")
    assert registry.is_protected(800, "LSASS")
    assert registry.is_protected(800, "Csrss.EXE")
    assert not registry.is_protected(800, "chrome.exe")


def test_macos_table():
    registry = SafetyRegistry.for_platform("darwin", own_pid=OWN_PID)
    assert registry.is_protected(200, "launchd")
    assert registry.is_protected(200, "WindowServer")
    assert not registry.is_protected(200, "Safari")


def test_own_binaries_are_denylisted_everywhere():
    for platform in ("linux", "darwin", "win32"):
        registry = SafetyRegistry.for_platform(platform, own_pid=OWN_PID)
        assert registry.is_protected(4321, "portsurgeon")
        assert registry.is_protected(4321, "ps-surgeon-proxy")


def test_extra_names_extend_the_table():
    registry = linux_registry(extra_names=["postgres"])
    assert registry.is_protected(5000, "postgres")
    assert registry.is_protected(5000, "systemd")


def test_protection_never_shrinks():
    """Once protected, a pid/name pair stays protected for the registry's lifetime."""
    registry = linux_registry()
    samples = [(0, "x"), (1, "y"), (4242, "systemd"), (OWN_PID, "z")]
    first = [registry.is_protected(pid, name) for pid, name in samples]
    for _ in range(3):
        assert [registry.is_protected(pid, name) for pid, name in samples] == first
    assert all(first)


def test_registry_exposes_frozen_sets():
    registry = linux_registry()
    assert registry.protected_pids == frozenset({0, 1})
    assert "systemd" in registry.protected_names
    assert registry.own_pid == OWN_PID
    assert "xorg" in registry.protected_names


def test_normalize_name():
    assert normalize_name("  Notepad.EXE ") == "notepad"
    assert normalize_name("nginx") == "nginx"
