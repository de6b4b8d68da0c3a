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
"""Workers of the ``discover`` action."""

from __future__ import annotations

import logging

from sqlalchemy.orm import sessionmaker

from nw_discover.config import Settings
from nw_discover.discovery_queue import DiscoveryJobSink, enqueue_discoverable
from nw_discover.inventory import store_device, store_interfaces
from nw_discover.jobs import Job
from nw_discover.neighbors import resolve_neighbors
from nw_discover.snapshot import SnapshotReader, TransportUnavailable
from nw_discover.storage import describe_device
from nw_discover.topology import apply_manual_topology
from nw_discover.worker import Action, Status, WorkerConfig, WorkerRegistry

_LOGGER = logging.getLogger(__name__)


def register_discover_workers(
    registry: WorkerRegistry,
    factory: sessionmaker,
    reader: SnapshotReader,
    settings: Settings,
    queue: DiscoveryJobSink | None = None,
) -> None:
    """Register the discover workers on ``registry``.

    Phases run as ``00init`` (fetch), ``properties``, ``interfaces`` and
    ``neighbors``. New neighbors are queued only when ``queue`` is given.
    """

    def fetch_snapshot(job: Job, config: WorkerConfig) -> Status:
        try:
            job.snapshot = reader.read(job.ip)
        except TransportUnavailable as exc:
            _LOGGER.info("[%s] discover - device unreachable: %s", job.ip, exc)
            return Status.defer(f"discover failed: could not connect to {job.ip}")
        return Status.done(f"fetched snapshot of {job.ip}")

    def properties(job: Job, config: WorkerConfig) -> Status:
        if job.snapshot is None:
            return Status.skip("no snapshot to store")
        device_ip = store_device(factory, job.ip, job.snapshot, settings)
        job.ip = device_ip
        job.device = describe_device(factory, device_ip)
        return Status.done(f"ended discover properties for {device_ip}")

    def interfaces(job: Job, config: WorkerConfig) -> Status:
        if job.snapshot is None:
            return Status.skip("no snapshot to store")
        count = store_interfaces(factory, job.ip, job.snapshot, settings)
        return Status.done(f"stored {count} interfaces")

    def neighbors(job: Job, config: WorkerConfig) -> Status:
        if job.snapshot is None:
            return Status.skip("no snapshot to store")
        if job.device is None or not job.device.in_storage:
            return Status.skip(f"skipped neighbors - {job.ip} is not yet discovered")

        apply_manual_topology(factory, job.ip, settings)
        found = resolve_neighbors(factory, job.ip, job.snapshot, settings)
        if queue is not None:
            queued = enqueue_discoverable(factory, queue, found, settings, job.ip)
            _LOGGER.info("[%s] neigh - queued %d new devices", job.ip, len(queued))
        return Status.done(f"processed {len(found)} neighbors")

    registry.register_worker(
        WorkerConfig(action=Action.DISCOVER, name="fetch_snapshot"), fetch_snapshot
    )
    registry.register_worker(
        WorkerConfig(action=Action.DISCOVER, phase="properties", driver="snmp", name="properties"),
        properties,
    )
    registry.register_worker(
        WorkerConfig(action=Action.DISCOVER, phase="interfaces", driver="snmp", name="interfaces"),
        interfaces,
    )
    registry.register_worker(
        WorkerConfig(action=Action.DISCOVER, phase="neighbors", driver="snmp", name="neighbors"),
        neighbors,
    )
