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
"""Queue newly seen neighbors for discovery."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Protocol

from sqlalchemy.orm import sessionmaker

from nw_discover.acl import check_acl_no, check_acl_only
from nw_discover.config import Settings
from nw_discover.models import DiscoveredNeighbor, DiscoveryJob
from nw_discover.storage import get_device

_LOGGER = logging.getLogger(__name__)

_PHONE_TYPE = re.compile(r"ip[ _-]?phone|mitel.5\d{3}|^sep[0-9a-f]{12}", re.IGNORECASE)
_WAP_TYPE = re.compile(r"^ap\b|wireless|air-(?:ap|cap|lap)|\baironet\b", re.IGNORECASE)


class DiscoveryJobSink(Protocol):
    def insert(self, job: DiscoveryJob) -> bool: ...


def is_discoverable(ip: str, remote_type: str | None, settings: Settings) -> bool:
    """Check the discover_* settings for a neighbor address and platform."""

    if check_acl_no(ip, settings.discover_no, settings):
        return False
    if not check_acl_only(ip, settings.discover_only, settings):
        return False

    platform = remote_type or ""
    for pattern in settings.discover_no_type:
        try:
            if re.search(pattern, platform, flags=re.IGNORECASE):
                return False
        except re.error:
            _LOGGER.warning("ignoring invalid discover_no_type pattern %r", pattern)

    if not settings.discover_phones and _PHONE_TYPE.search(platform):
        return False
    if not settings.discover_waps and _WAP_TYPE.search(platform):
        return False
    return True


def enqueue_discoverable(
    factory: sessionmaker,
    queue: DiscoveryJobSink,
    neighbors: Iterable[DiscoveredNeighbor],
    settings: Settings,
    source_ip: str,
) -> list[str]:
    """Queue discover jobs for unknown, permitted neighbors; return the queued addresses."""

    seen_ip: set[str] = set()
    seen_id: set[str] = set()
    queued: list[str] = []

    for neighbor in neighbors:
        ip, remote_type, remote_id = neighbor.ip, neighbor.remote_type, neighbor.remote_id
        if ip in seen_ip:
            _LOGGER.debug("queue - skip: IP %s is already queued from %s", ip, source_ip)
            continue
        seen_ip.add(ip)

        if remote_id:
            if remote_id in seen_id:
                _LOGGER.debug(
                    "queue - skip: %s with ID [%s] already queued from %s",
                    ip,
                    remote_id,
                    source_ip,
                )
                continue
            seen_id.add(remote_id)

        with factory() as session:
            known = get_device(session, ip) is not None
        if known:
            continue

        if not is_discoverable(ip, remote_type, settings):
            _LOGGER.debug(
                "queue - skip: %s of type [%s] excluded by discover_* config",
                ip,
                remote_type or "",
            )
            continue

        job = DiscoveryJob(
            device=ip,
            action="discover",
            subaction="with-nodes",
            device_key=remote_id or None,
        )
        if queue.insert(job):
            queued.append(ip)
            _LOGGER.debug(
                "[%s] queue - queued %s for discovery (ID: [%s])",
                source_ip,
                ip,
                remote_id or "",
            )

    return queued
