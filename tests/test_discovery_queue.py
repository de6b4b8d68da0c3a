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
"""Tests for queueing newly seen neighbors."""

from __future__ import annotations

from typing import Callable

from sqlalchemy.orm import sessionmaker

from nw_discover.config import Settings
from nw_discover.discovery_queue import enqueue_discoverable, is_discoverable
from nw_discover.models import DiscoveredNeighbor, DiscoveryJob


class RecordingQueue:
    def __init__(self) -> None:
        self.jobs: list[DiscoveryJob] = []

    def insert(self, job: DiscoveryJob) -> bool:
        self.jobs.append(job)
        return True


def test_same_identity_is_queued_once(factory: sessionmaker) -> None:
    queue = RecordingQueue()
    neighbors = [
        DiscoveredNeighbor("10.0.0.5", "cisco", "core1"),
        DiscoveredNeighbor("10.0.0.6", "cisco", "core1"),
    ]

    queued = enqueue_discoverable(factory, queue, neighbors, Settings(), "10.0.0.1")

    assert queued == ["10.0.0.5"]
    assert queue.jobs == [
        DiscoveryJob(device="10.0.0.5", action="discover", subaction="with-nodes", device_key="core1")
    ]


def test_same_address_is_queued_once(factory: sessionmaker) -> None:
    queue = RecordingQueue()
    neighbors = [
        DiscoveredNeighbor("10.0.0.5", "", None),
        DiscoveredNeighbor("10.0.0.5", "", "switchB"),
        DiscoveredNeighbor("10.0.0.7", "", "switchB"),
    ]

    queued = enqueue_discoverable(factory, queue, neighbors, Settings(), "10.0.0.1")

    assert queued == ["10.0.0.5", "10.0.0.7"]
    assert queue.jobs[0].device_key is None
    assert queue.jobs[1].device_key == "switchB"


def test_known_devices_are_not_queued(
    factory: sessionmaker,
    add_device: Callable[..., None],
) -> None:
    add_device("10.0.0.2", aliases=("10.0.0.2", "10.1.0.2"))
    queue = RecordingQueue()
    neighbors = [
        DiscoveredNeighbor("10.0.0.2", "", "a"),
        DiscoveredNeighbor("10.1.0.2", "", "b"),
        DiscoveredNeighbor("10.0.0.9", "", "c"),
    ]

    assert enqueue_discoverable(factory, queue, neighbors, Settings(), "10.0.0.1") == ["10.0.0.9"]


def test_admission_policy_is_applied(factory: sessionmaker) -> None:
    queue = RecordingQueue()
    settings = Settings(discover_no=["192.0.2.0/24"], discover_no_type=["^linux"])
    neighbors = [
        DiscoveredNeighbor("192.0.2.5", "cisco", "a"),
        DiscoveredNeighbor("10.0.0.6", "Linux server", "b"),
        DiscoveredNeighbor("10.0.0.7", "Cisco IP Phone 7960", "c"),
        DiscoveredNeighbor("10.0.0.8", "cisco WS-C3750", "d"),
    ]

    assert enqueue_discoverable(factory, queue, neighbors, settings, "10.0.0.1") == ["10.0.0.8"]


def test_is_discoverable() -> None:
    assert is_discoverable("10.0.0.5", None, Settings())
    assert not is_discoverable("10.0.0.5", "cisco", Settings(discover_only=["192.0.2.0/24"]))
    assert is_discoverable("192.0.2.5", "cisco", Settings(discover_only=["192.0.2.0/24"]))
    assert not is_discoverable("10.0.0.5", "Cisco IP Phone", Settings())
    assert is_discoverable("10.0.0.5", "Cisco IP Phone", Settings(discover_phones=True))
    assert is_discoverable("10.0.0.5", "Cisco AIR-CAP3702I", Settings())
    assert not is_discoverable("10.0.0.5", "Cisco AIR-CAP3702I", Settings(discover_waps=False))
    assert is_discoverable("10.0.0.5", "cisco", Settings(discover_no_type=["[bad"]))
