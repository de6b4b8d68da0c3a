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
"""CLI entrypoint."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from nw_discover.config import load_settings
from nw_discover.discover_workers import register_discover_workers
from nw_discover.inventory import load_topology_links
from nw_discover.jobs import JobQueue
from nw_discover.models import DiscoveryJob, JobResult
from nw_discover.normalize import canonical_ip
from nw_discover.output import (
    collect_port_neighbors,
    write_port_neighbors,
    write_port_neighbors_json,
    write_summary,
    write_summary_json,
)
from nw_discover.schema import create_db_engine, init_db, session_factory
from nw_discover.snapshot import JsonSnapshotReader
from nw_discover.storage import describe_device
from nw_discover.topology import sync_topology
from nw_discover.worker import WorkerRegistry

_LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build argument parser."""

    parser = argparse.ArgumentParser(description="nw-discover")
    parser.add_argument(
        "--device",
        action="append",
        required=True,
        help="IP address of a device to discover (repeatable)",
    )
    parser.add_argument("--snapshots", required=True, help="directory of device snapshot JSON files")
    parser.add_argument("--out-dir", required=True, help="output directory")
    parser.add_argument("--config", help="path to settings YAML")
    parser.add_argument(
        "--database",
        default="sqlite:///nw_discover.db",
        help="SQLAlchemy database URL (default: sqlite:///nw_discover.db)",
    )
    parser.add_argument("--topology", help="path to manual topology CSV")
    parser.add_argument(
        "--crawl",
        action="store_true",
        help="queue and discover newly seen neighbors",
    )
    parser.add_argument("--max-jobs", type=int, help="stop after this many jobs")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["INFO", "DEBUG", "WARN"],
        help="log level",
    )
    parser.add_argument(
        "--output-format",
        default="csv",
        choices=["csv", "json", "both"],
        help="output format (default: csv)",
    )
    return parser


def configure_logging(level: str) -> None:
    """Configure logging."""

    logging.basicConfig(level=getattr(logging, level), format="%(levelname)s %(message)s")


def main(argv: list[str] | None = None) -> int:
    """Run nw-discover."""

    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    try:
        settings = load_settings(args.config)
        links = load_topology_links(args.topology) if args.topology else None
        devices = [_device_address(raw) for raw in args.device]
    except (OSError, ValueError) as exc:
        _LOGGER.error("Invalid input: %s", exc)
        return 3

    engine = create_db_engine(args.database)
    init_db(engine)
    factory = session_factory(engine)

    if links is not None:
        count = sync_topology(factory, links)
        _LOGGER.info("Loaded %s manual topology links", count)

    queue = JobQueue(factory)
    for ip in devices:
        queue.insert(DiscoveryJob(device=ip))

    registry = WorkerRegistry(settings)
    register_discover_workers(
        registry,
        factory,
        JsonSnapshotReader(args.snapshots),
        settings,
        queue=queue if args.crawl else None,
    )
    registry.freeze()

    results: list[JobResult] = []
    while args.max_jobs is None or len(results) < args.max_jobs:
        jobs = queue.take(limit=1)
        if not jobs:
            break
        job = jobs[0]
        job.device = describe_device(factory, job.ip)
        status, _ = registry.run_action(job)
        queue.finish(job, status.level.value, status.message)
        _LOGGER.info("[%s] %s - %s: %s", job.ip, job.action, status.level.value, status.message)
        results.append(JobResult(job.ip, job.action, status.level.value, status.message))

    _LOGGER.info("Processed %s jobs, %s still queued", len(results), queue.pending())

    neighbors = collect_port_neighbors(factory)
    if args.output_format in ("csv", "both"):
        write_port_neighbors(out_dir / "port_neighbors.csv", neighbors)
        write_summary(out_dir / "summary.txt", results, neighbors)

    if args.output_format in ("json", "both"):
        write_port_neighbors_json(out_dir / "port_neighbors.json", neighbors)
        write_summary_json(out_dir / "summary.json", results, neighbors)

    engine.dispose()
    if any(result.status in ("defer", "error") for result in results):
        return 2
    return 0


def _device_address(raw: str) -> str:
    ip = canonical_ip(raw.strip())
    if ip is None:
        raise ValueError(f"--device {raw!r} is not an IP address")
    return ip


if __name__ == "__main__":
    raise SystemExit(main())
