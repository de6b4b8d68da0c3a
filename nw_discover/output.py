# Copyright 2025 nw-discover contributors
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.
"""Output rendering for reports."""

from __future__ import annotations

import csv
import json
from collections import Counter
from pathlib import Path
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from nw_discover.models import JobResult, PortNeighbor
from nw_discover.schema import DevicePort

_NEIGHBOR_FIELDS = (
    "device",
    "port",
    "remote_ip",
    "remote_port",
    "remote_type",
    "remote_id",
    "is_uplink",
    "is_master",
    "manual_topo",
)


def collect_port_neighbors(factory: sessionmaker) -> list[PortNeighbor]:
    """Return every stored port that has a neighbor, ordered by device and port."""

    with factory() as session:
        rows = session.scalars(
            select(DevicePort)
            .where(DevicePort.remote_ip.is_not(None))
            .order_by(DevicePort.ip, DevicePort.port)
        ).all()
        return [
            PortNeighbor(
                device=row.ip,
                port=row.port,
                remote_ip=row.remote_ip,
                remote_port=row.remote_port,
                remote_type=row.remote_type,
                remote_id=row.remote_id,
                is_uplink=bool(row.is_uplink),
                is_master=bool(row.is_master),
                manual_topo=bool(row.manual_topo),
            )
            for row in rows
        ]


def write_port_neighbors(path: str | Path, neighbors: list[PortNeighbor]) -> None:
    """Write port neighbors CSV."""

    with Path(path).open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(_NEIGHBOR_FIELDS)
        for neighbor in sorted(neighbors, key=lambda item: (item.device, item.port)):
            writer.writerow(
                [
                    neighbor.device,
                    neighbor.port,
                    neighbor.remote_ip,
                    neighbor.remote_port or "",
                    neighbor.remote_type or "",
                    neighbor.remote_id or "",
                    str(neighbor.is_uplink).lower(),
                    str(neighbor.is_master).lower(),
                    str(neighbor.manual_topo).lower(),
                ]
            )


def write_port_neighbors_json(path: str | Path, neighbors: list[PortNeighbor]) -> None:
    """Write port neighbors JSON."""

    data: list[dict[str, Any]] = [
        {name: getattr(neighbor, name) for name in _NEIGHBOR_FIELDS}
        for neighbor in sorted(neighbors, key=lambda item: (item.device, item.port))
    ]

    with Path(path).open("w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=2, ensure_ascii=False)
        handle.write("\n")


def summarize_results(results: list[JobResult], neighbors: list[PortNeighbor]) -> dict[str, Any]:
    """Build the run summary."""

    statuses = Counter(result.status for result in results)
    return {
        "jobs": len(results),
        "statuses": dict(sorted(statuses.items())),
        "deferred_devices": sorted({r.ip for r in results if r.status == "defer"}),
        "failed_devices": sorted({r.ip for r in results if r.status == "error"}),
        "neighbor_ports": len(neighbors),
        "manual_topology_ports": sum(1 for n in neighbors if n.manual_topo),
    }


def write_summary(
    path: str | Path,
    results: list[JobResult],
    neighbors: list[PortNeighbor],
) -> None:
    """Write summary report."""

    summary = summarize_results(results, neighbors)
    statuses = ", ".join(f"{name}={count}" for name, count in summary["statuses"].items())

    with Path(path).open("w", encoding="utf-8") as handle:
        handle.write(f"jobs: {summary['jobs']}\n")
        handle.write(f"statuses: {statuses}\n")
        handle.write(f"deferred_devices: {', '.join(summary['deferred_devices'])}\n")
        handle.write(f"failed_devices: {', '.join(summary['failed_devices'])}\n")
        handle.write(f"neighbor_ports: {summary['neighbor_ports']}\n")
        handle.write(f"manual_topology_ports: {summary['manual_topology_ports']}\n")


def write_summary_json(
    path: str | Path,
    results: list[JobResult],
    neighbors: list[PortNeighbor],
) -> None:
    """Write summary report JSON."""

    data = summarize_results(results, neighbors)
    data["results"] = [
        {"ip": r.ip, "action": r.action, "status": r.status, "log": r.log} for r in results
    ]

    with Path(path).open("w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=2, ensure_ascii=False)
        handle.write("\n")
