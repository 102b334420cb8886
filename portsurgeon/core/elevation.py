# portsurgeon/core/elevation.py
import asyncio
import sys
from typing import List, Optional
from portsurgeon.core.schemas import TerminationOutcome
from portsurgeon.utils.logger import Logger


def build_elevated_command(pid: int, force: bool, platform: Optional[str] = None) -> List[str]:
    """
    Command that kills a PID through the platform's interactive elevation prompt.
    Linux: Polkit (pkexec). macOS: osascript admin dialog. Windows: UAC via Start-Process -Verb RunAs.
    """
    platform = platform or sys.platform
    if platform.startswith("win"):
        args = f"/PID {pid} /F" if force else f"/PID {pid}"
        return [
            "powershell", "-NoProfile", "-Command",
            f"Start-Process -FilePath 'taskkill' -ArgumentList '{args}' -Verb RunAs -Wait",
        ]
    if platform == "darwin":
        signal = "KILL" if force else "TERM"
        script = f'do shell script "kill -{signal} {pid}" with administrator privileges'
        return ["osascript", "-e", script]
    return ["pkexec", "kill", "-9" if force else "-15", str(pid)]


class Elevator:
    """Runs the elevated kill. The result is final: no retry after it."""

    def __init__(self, platform: Optional[str] = None):
        self.logger = Logger()
        self.platform = platform or sys.platform

    async def terminate(self, pid: int, force: bool) -> TerminationOutcome:
        cmd = build_elevated_command(pid, force, self.platform)
        self.logger.info(f"Requesting elevated termination for PID {pid} via {cmd[0]}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await proc.communicate()
        except (FileNotFoundError, PermissionError) as e:
            self.logger.error(f"Elevation helper unavailable: {e}")
            return TerminationOutcome(
                success=False,
                message=f"Elevated termination failed: {cmd[0]} is not available",
                required_elevation=True,
            )

        if proc.returncode == 0:
            self.logger.success(f"PID {pid} terminated with elevated privileges.")
            return TerminationOutcome(
                success=True,
                message=f"Process {pid} terminated with elevated privileges",
                required_elevation=True,
            )

        error = stderr.decode("utf-8", errors="replace").strip() or f"exit code {proc.returncode}"
        self.logger.error(f"Elevated termination of PID {pid} failed: {error}")
        return TerminationOutcome(
            success=False,
            message=f"Elevated termination failed: {error}",
            required_elevation=True,
        )
