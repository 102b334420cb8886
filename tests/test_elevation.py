# tests/test_elevation.py
from unittest.mock import AsyncMock, MagicMock, patch

from portsurgeon.core.elevation import Elevator, build_elevated_command


def test_linux_uses_pkexec():
    assert build_elevated_command(4242, False, "linux") == ["pkexec", "kill", "-15", "4242"]
    assert build_elevated_command(4242, True, "linux") == ["pkexec", "kill", "-9", "4242"]


def test_macos_uses_admin_dialog():
    cmd = build_elevated_command(4242, True, "darwin")
    assert cmd[0] == "osascript"
    assert "kill -KILL 4242" in cmd[2]
    assert "with administrator privileges" in cmd[2]


def test_windows_uses_uac():
    cmd = build_elevated_command(4242, True, "win32")
    assert cmd[0] == "powershell"
    assert "/PID 4242 /F" in cmd[-1]
    assert "-Verb RunAs" in cmd[-1]
    assert "/F" not in build_elevated_command(4242, False, "win32")[-1]


def _fake_proc(returncode, stderr=b""):
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(b"", stderr))
    return proc


async def test_successful_prompt():
    with patch('asyncio.create_subprocess_exec', new=AsyncMock(return_value=_fake_proc(0))) as mock_exec:
        outcome = await Elevator(platform="linux").terminate(4242, force=False)

    assert outcome.success
    assert outcome.required_elevation
    assert mock_exec.call_args.args[:2] == ("pkexec", "kill")


async def test_dismissed_prompt_reports_stderr():
    proc = _fake_proc(126, b"Error executing command as another user: Request dismissed")
    with patch('asyncio.create_subprocess_exec', new=AsyncMock(return_value=proc)):
        outcome = await Elevator(platform="linux").terminate(4242, force=True)

    assert not outcome.success
    assert outcome.required_elevation
    assert "Request dismissed" in outcome.message


async def test_missing_helper_binary():
    with patch('asyncio.create_subprocess_exec', new=AsyncMock(side_effect=FileNotFoundError("pkexec"))):
        outcome = await Elevator(platform="linux").terminate(4242, force=False)

    assert not outcome.success
    assert "pkexec is not available" in outcome.message
