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
"""Neighbor resolution.

Turns the raw CDP/LLDP neighbor tables of a device into neighbor fields on
its port rows, and reports every neighbor found so that unknown ones can be
queued for discovery. Every problem with a single entry is logged and the
entry skipped; the rest of the table is still processed.
"""

from __future__ import annotations

import logging
from typing import Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from nw_discover.acl import check_acl_no
from nw_discover.config import LOCAL_ADDRESSES_GROUP, Settings
from nw_discover.identity import recover_address
from nw_discover.models import (
    DeviceSnapshot,
    DiscoveredNeighbor,
    MultipleAddresses,
    NeighborAddress,
    NeighborTables,
    SingleAddress,
)
from nw_discover.normalize import (
    canonical_ip,
    clean_remote_port,
    decode_text,
    is_unspecified_or_loopback,
)
from nw_discover.schema import DevicePort
from nw_discover.storage import DatabaseDeviceLookup, get_device, get_port

_LOGGER = logging.getLogger(__name__)

_MANGLED_PREFIX = "0."


def merge_neighbor_addresses(
    ipv4: Mapping[str, NeighborAddress],
    ipv6: Mapping[str, NeighborAddress | None],
) -> dict[str, NeighborAddress]:
    """Combine IPv4 and IPv6 neighbor tables; IPv6 wins, undefined IPv6 values are dropped."""

    merged: dict[str, NeighborAddress] = dict(ipv4)
    for entry, value in ipv6.items():
        if value is None:
            continue
        if isinstance(value, SingleAddress) and not value.address:
            continue
        merged[entry] = value
    return merged


def repair_interface_id(entry: str, c_if: Mapping[str, str]) -> str:
    """Find the real neighbor key for entries some agents report as ``0.<suffix>``.

    For example the address table may use ``0.414.20`` while the port table
    uses ``15315603.414.20`` for the same neighbor.
    """

    if entry in c_if or not entry.startswith(_MANGLED_PREFIX):
        return entry
    suffix = entry[len(_MANGLED_PREFIX) :]
    for candidate in sorted(c_if):
        if candidate == suffix or candidate.endswith("." + suffix):
            return candidate
    return entry


def resolve_neighbors(
    factory: sessionmaker,
    device_ip: str,
    snapshot: DeviceSnapshot,
    settings: Settings,
) -> list[DiscoveredNeighbor]:
    """Store the neighbors of each port and return every neighbor resolved."""

    tables = snapshot.neighbors
    addresses = merge_neighbor_addresses(tables.c_ip, tables.lldp_ipv6)
    if not tables.has_topo and not addresses:
        _LOGGER.debug("[%s] neigh - neighbor protocols are not enabled", device_ip)
        return []

    interfaces = {iid: row.port for iid, row in snapshot.interfaces.items()}
    discovered: list[DiscoveredNeighbor] = []
    for entry in sorted(addresses):
        try:
            neighbor = _resolve_entry(
                factory, device_ip, entry, addresses[entry], tables, interfaces, settings
            )
        except (SQLAlchemyError, UnicodeError) as exc:
            _LOGGER.warning("[%s] neigh - failed to store neighbor %s (%s)", device_ip, entry, exc)
            continue
        if neighbor is not None:
            discovered.append(neighbor)
    return discovered


def _resolve_entry(
    factory: sessionmaker,
    device_ip: str,
    entry: str,
    address: NeighborAddress,
    tables: NeighborTables,
    interfaces: Mapping[str, str],
    settings: Settings,
) -> DiscoveredNeighbor | None:
    entry_if = repair_interface_id(entry, tables.c_if)
    iid = tables.c_if.get(entry_if)
    port = interfaces.get(iid) if iid is not None else None
    if not port:
        _LOGGER.debug("[%s] neigh - port for IID:%s not resolved, skipping", device_ip, entry)
        return None

    remote_type = decode_text(tables.c_platform.get(entry_if)) or ""
    remote_id = decode_text(tables.c_id.get(entry_if))
    raw_remote_port = tables.c_port.get(entry_if)

    with factory.begin() as session:
        portrow = get_port(session, device_ip, port, for_update=True)
        if portrow is None:
            _LOGGER.info("[%s] neigh - local port %s not in database!", device_ip, port)
            return None

        if portrow.manual_topo:
            _LOGGER.info("[%s] neigh - %s has manually defined topology", device_ip, port)
            return None

        if isinstance(address, MultipleAddresses):
            _LOGGER.error(
                "[%s] neigh - Error! port %s has multiple neighbors - skipping", device_ip, port
            )
            return None

        remote_ip = _usable_remote_ip(session, device_ip, port, address.address, remote_id, settings)
        if remote_ip is None:
            return None

        _LOGGER.debug(
            "[%s] neigh - %s with ID [%s] on %s", device_ip, remote_ip, remote_id or "", port
        )

        remote_port = clean_remote_port(raw_remote_port)
        if remote_port is None:
            _LOGGER.info(
                "[%s] neigh - no remote port found for port %s at %s", device_ip, port, remote_ip
            )

        portrow.remote_ip = remote_ip
        portrow.remote_port = remote_port
        portrow.remote_type = remote_type
        portrow.remote_id = remote_id
        portrow.is_uplink = True
        portrow.manual_topo = False

        _update_aggregate_master(session, device_ip, portrow, remote_ip)

    return DiscoveredNeighbor(ip=remote_ip, remote_type=remote_type, remote_id=remote_id)


def _usable_remote_ip(
    session: Session,
    device_ip: str,
    port: str,
    raw_ip: str,
    remote_id: str | None,
    settings: Settings,
) -> str | None:
    """Return a trustworthy neighbor address, searching known devices if needed."""

    remote_ip = canonical_ip(raw_ip)
    if remote_ip is not None and remote_ip != raw_ip:
        _LOGGER.info(
            "[%s] neigh - discrepancy in IP on %s: using %s instead of %s",
            device_ip,
            port,
            remote_ip,
            raw_ip,
        )

    if (
        remote_ip is not None
        and not is_unspecified_or_loopback(remote_ip)
        and not check_acl_no(remote_ip, f"group:{LOCAL_ADDRESSES_GROUP}", settings)
    ):
        return remote_ip

    if not remote_id:
        _LOGGER.info(
            "[%s] neigh - skipping unuseable address %s on port %s", device_ip, raw_ip, port
        )
        return None

    _LOGGER.info(
        "[%s] neigh - bad address %s on port %s, searching for %s instead",
        device_ip,
        raw_ip,
        port,
        remote_id,
    )
    found = recover_address(remote_id, DatabaseDeviceLookup(session))
    if found is None:
        _LOGGER.info("[%s] neigh - could not find %s, skipping", device_ip, remote_id)
        return None

    address, strategy = found
    _LOGGER.info(
        "[%s] neigh - found %s with IP %s (by %s)", device_ip, remote_id, address, strategy
    )
    return address


def _update_aggregate_master(
    session: Session,
    device_ip: str,
    portrow: DevicePort,
    remote_ip: str,
) -> None:
    """Point our aggregate master at the aggregate master on the peer device."""

    if portrow.slave_of is None or portrow.is_master:
        return

    master = get_port(session, device_ip, portrow.slave_of, for_update=True)
    if master is None or master.is_master or master.slave_of is not None or master.manual_topo:
        return

    peer_device = get_device(session, remote_ip)
    if peer_device is None:
        return

    peer_port = get_port(session, peer_device.ip, portrow.remote_port)
    if peer_port is None or peer_port.slave_of is None:
        return

    _LOGGER.debug(
        "[%s] neigh - aggregate %s linked to %s on %s",
        device_ip,
        master.port,
        peer_port.slave_of,
        peer_device.ip,
    )
    master.remote_ip = peer_device.ip
    master.remote_port = peer_port.slave_of
    master.is_uplink = True
    master.is_master = True
    master.manual_topo = False
