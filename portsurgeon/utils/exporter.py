"""
PortSurgeon Snapshot Export
Serializes a process view to JSON or CSV for sharing and offline review.
"""
import csv
import io
import json
from typing import List
from portsurgeon.core.schemas import ProcessNode

CSV_HEADERS = ["PID", "Name", "User", "Port", "Protocol", "State", "Memory (bytes)", "CPU %", "Container"]


def export_json(processes: List[ProcessNode]) -> str:
    data = [
        {
            "pid": p.pid,
            "name": p.name,
            "user": p.user,
            "commandLine": p.command_line,
            "memoryUsage": p.memory_usage,
            "cpuUsage": p.cpu_usage,
            "ports": [
                {
                    "port": port.local_port,
                    "protocol": port.protocol.value,
                    "state": port.state.value,
                    "address": port.local_address,
                }
                for port in p.ports
            ],
            "container": {
                "name": p.container.name,
                "image": p.container.image,
                "id": p.container.id,
            } if p.container else None,
        }
        for p in processes
    ]
    return json.dumps(data, indent=2)


def export_csv(processes: List[ProcessNode]) -> str:
    """One row per port entry."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for p in processes:
        container = p.container.name if p.container else ""
        for port in p.ports:
            writer.writerow([
                p.pid,
                p.name,
                p.user,
                port.local_port,
                port.protocol.value.upper(),
                port.state.value,
                p.memory_usage,
                f"{p.cpu_usage:.1f}",
                container,
            ])
    return buffer.getvalue()
