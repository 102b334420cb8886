# tests/test_process_info.py
import os

import psutil
import pytest
from unittest.mock import MagicMock, patch

from portsurgeon.modules.process_info import ProcessEnricher, is_container_proxy_name


@pytest.mark.parametrize("name,expected", [
    ("docker-proxy", True),
    ("com.docker.backend", True),
    ("containerd-shim", True),
    ("vpnkit", True),
    ("nginx", False),
    ("", False),
])
def test_container_proxy_names(name, expected):
    assert is_container_proxy_name(name) is expected


def test_own_process_is_described():
    enricher = ProcessEnricher()
    enricher.refresh()
    info = enricher.get_process_info(os.getpid())

    assert info is not None
    assert info.pid == os.getpid()
    assert info.name
    assert enricher.is_alive(os.getpid())


def test_vanished_process_yields_none():
    with patch('psutil.Process', side_effect=psutil.NoSuchProcess(pid=424242)):
        enricher = ProcessEnricher()
        assert enricher.get_process_info(424242) is None
        assert enricher.get_process_name(424242) is None
        assert enricher.get_processes_info([424242]) == {}
        assert not enricher.is_alive(424242)


def test_restricted_fields_fall_back():
    """A process owned by another user still reports its name."""
    proc = MagicMock()
    proc.name.return_value = "postgres"
    proc.username.side_effect = psutil.AccessDenied(pid=900)
    proc.exe.side_effect = psutil.AccessDenied(pid=900)
    proc.cmdline.side_effect = psutil.AccessDenied(pid=900)
    proc.memory_info.return_value.rss = 4096
    proc.cpu_percent.return_value = 3.5
    proc.create_time.return_value = 1700000000.0
    proc.ppid.return_value = 1

    with patch('psutil.Process', return_value=proc):
        info = ProcessEnricher().get_process_info(900)

    assert info.name == "postgres"
    assert info.user == "Unknown"
    assert info.exe_path is None
    assert info.command_line is None
    assert info.memory_usage == 4096
    assert info.start_time is not None


def test_unreadable_name_yields_unknown_sentinel():
    proc = MagicMock()
    proc.name.side_effect = psutil.AccessDenied(pid=901)
    with patch('psutil.Process', return_value=proc):
        info = ProcessEnricher().get_process_info(901)
    assert info.name == "Unknown"


def test_zombie_counts_as_exited():
    with patch('psutil.Process') as MockProcess:
        MockProcess.return_value.status.return_value = psutil.STATUS_ZOMBIE
        assert not ProcessEnricher().is_alive(4242)
