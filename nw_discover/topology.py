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
"""Manually configured topology.

Links in the ``topology`` table always win over neighbors reported by
discovery protocols. Ports they touch are flagged ``manual_topo`` so that the
neighbor resolver leaves them alone.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from nw_discover.config import Settings
from nw_discover.models import TopologyLink
from nw_discover.schema import DevicePort, Topology
from nw_discover.storage import get_device, get_port

_LOGGER = logging.getLogger(__name__)


def sync_topology(factory: sessionmaker, links: Iterable[TopologyLink]) -> int:
    """Replace the stored topology links."""

    unique = {(link.dev1, link.port1, link.dev2, link.port2): link for link in links}
    with factory.begin() as session:
        session.execute(delete(Topology))
        session.add_all(
            Topology(dev1=link.dev1, port1=link.port1, dev2=link.dev2, port2=link.port2)
            for link in unique.values()
        )
    _LOGGER.info("Loaded %s manual topology links", len(unique))
    return len(unique)


def apply_manual_topology(factory: sessionmaker, device_ip: str, settings: Settings) -> int:
    """Clear stale manual flags, then apply the links touching ``device_ip``.

    Returns the number of links applied. Links whose devices or ports are not
    known yet are skipped; a failure on one link does not affect the others.
    """

    applied = 0
    with factory.begin() as session:
        clear = update(DevicePort).values(manual_topo=False)
        if settings.manual_topo_scope == "device":
            clear = clear.where(DevicePort.ip == device_ip)
        session.execute(clear)

        links = session.scalars(
            select(Topology)
            .where(or_(Topology.dev1 == device_ip, Topology.dev2 == device_ip))
            .order_by(Topology.id)
        ).all()
        _LOGGER.debug("[%s] neigh - setting manual topology links", device_ip)

        for link in links:
            try:
                with session.begin_nested():
                    if _apply_link(session, link):
                        applied += 1
            except SQLAlchemyError as exc:
                _LOGGER.warning(
                    "[%s] neigh - failed to apply topology link %s:%s - %s:%s (%s)",
                    device_ip,
                    link.dev1,
                    link.port1,
                    link.dev2,
                    link.port2,
                    exc,
                )

    return applied


def _apply_link(session: Session, link: Topology) -> bool:
    # only work on root IPs
    left = get_device(session, link.dev1)
    right = get_device(session, link.dev2)
    if left is None or right is None:
        _LOGGER.debug(
            "neigh - skipping topology link %s:%s - %s:%s, device not known",
            link.dev1,
            link.port1,
            link.dev2,
            link.port2,
        )
        return False

    left_port = get_port(session, left.ip, link.port1, for_update=True)
    right_port = get_port(session, right.ip, link.port2, for_update=True)
    if left_port is None or right_port is None:
        _LOGGER.debug(
            "neigh - skipping topology link %s:%s - %s:%s, port not known",
            left.ip,
            link.port1,
            right.ip,
            link.port2,
        )
        return False

    _set_manual_neighbor(left_port, right.ip, right_port.port)
    _set_manual_neighbor(right_port, left.ip, left_port.port)
    return True


def _set_manual_neighbor(port: DevicePort, remote_ip: str, remote_port: str) -> None:
    port.remote_ip = remote_ip
    port.remote_port = remote_port
    port.remote_type = None
    port.remote_id = None
    port.is_uplink = True
    port.manual_topo = True
