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
"""Device and interface ingestion, and topology CSV parsing."""

from __future__ import annotations

import csv
import ipaddress
import logging
import re
from pathlib import Path
from typing import Iterable, Sequence

from sqlalchemy import delete
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func

from nw_discover.config import Settings
from nw_discover.models import DeviceSnapshot, TopologyLink
from nw_discover.normalize import canonical_ip, parse_mac
from nw_discover.schema import Device, DeviceIp, DevicePort

_LOGGER = logging.getLogger(__name__)

_TOPOLOGY_REQUIRED_COLUMNS = ("dev1", "port1", "dev2", "port2")

COUNTER_WRAP = 2**32


def load_topology_links(path: str | Path) -> list[TopologyLink]:
    """Load manual topology CSV."""

    links: list[TopologyLink] = []
    with Path(path).open(encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        _validate_headers(path, reader.fieldnames, _TOPOLOGY_REQUIRED_COLUMNS)
        for row in reader:
            _validate_row(path, row, _TOPOLOGY_REQUIRED_COLUMNS)
            dev1 = _validate_ip(path, (row.get("dev1") or "").strip())
            dev2 = _validate_ip(path, (row.get("dev2") or "").strip())
            links.append(
                TopologyLink(
                    dev1=dev1,
                    port1=(row.get("port1") or "").strip(),
                    dev2=dev2,
                    port2=(row.get("port2") or "").strip(),
                )
            )
    return links


def store_device(
    factory: sessionmaker,
    ip: str,
    snapshot: DeviceSnapshot,
    settings: Settings,
) -> str:
    """Store device properties and aliases; return the canonical IP.

    When the device reports a root IP different from ``ip`` the row stored
    under the old address is removed together with its aliases and ports.
    """

    device_ip = _set_canonical_ip(factory, ip, snapshot)
    aliases = _build_aliases(device_ip, snapshot, settings)

    with factory.begin() as session:
        device = session.get(Device, device_ip, with_for_update=True)
        if device is None:
            device = Device(ip=device_ip)
            session.add(device)
        device.dns = snapshot.dns
        device.name = snapshot.name
        device.description = snapshot.description
        device.vendor = snapshot.vendor
        device.os = snapshot.os
        device.model = snapshot.model
        device.mac = parse_mac(snapshot.mac)
        device.serial = snapshot.serial
        device.location = snapshot.location
        device.contact = snapshot.contact
        device.uptime = snapshot.uptime
        device.snmp_class = snapshot.snmp_class
        device.last_discover = func.now()
        session.flush()

        gone = session.execute(delete(DeviceIp).where(DeviceIp.ip == device_ip)).rowcount
        _LOGGER.debug("[%s] device - removed %s aliases", device_ip, gone)
        session.add_all(aliases)
        _LOGGER.debug("[%s] device - added %d new aliases", device_ip, len(aliases))

    return device_ip


def _set_canonical_ip(factory: sessionmaker, ip: str, snapshot: DeviceSnapshot) -> str:
    new_ip = canonical_ip(snapshot.root_ip)
    if new_ip is None or new_ip == ip:
        return ip

    _LOGGER.debug("[%s] device - changing root IP to alt IP %s", ip, new_ip)
    with factory.begin() as session:
        gone = session.execute(delete(DeviceIp).where(DeviceIp.ip == ip)).rowcount
        _LOGGER.debug("[%s] device - removed %s aliases", ip, gone)
        gone = session.execute(delete(DevicePort).where(DevicePort.ip == ip)).rowcount
        _LOGGER.debug("[%s] device - removed %s ports", ip, gone)
        session.execute(delete(Device).where(Device.ip == ip))
        _LOGGER.debug("[%s] device - deleted self", ip)
    return new_ip


def _build_aliases(device_ip: str, snapshot: DeviceSnapshot, settings: Settings) -> list[DeviceIp]:
    aliases: dict[str, DeviceIp] = {}
    for raw_addr, iid in snapshot.ip_index.items():
        addr = canonical_ip(raw_addr)
        if addr is None:
            continue
        parsed = ipaddress.ip_address(addr)
        if parsed.is_unspecified or parsed.is_loopback:
            continue
        if settings.ignore_private_nets and parsed.is_private:
            continue

        interface = snapshot.interfaces.get(iid)
        mask = snapshot.ip_netmask.get(raw_addr)
        subnet = None
        if mask:
            try:
                subnet = ipaddress.ip_network(f"{addr}/{mask}", strict=False).with_prefixlen
            except ValueError:
                _LOGGER.debug("[%s] device - bad netmask %s for %s", device_ip, mask, addr)

        _LOGGER.debug("[%s] device - aliased as %s", device_ip, addr)
        aliases[addr] = DeviceIp(
            ip=device_ip,
            alias=addr,
            port=interface.port if interface else None,
            subnet=subnet,
        )
    return list(aliases.values())


def store_interfaces(
    factory: sessionmaker,
    device_ip: str,
    snapshot: DeviceSnapshot,
    settings: Settings,
) -> int:
    """Replace the device's ports with the interfaces in the snapshot."""

    uptime = snapshot.uptime
    wrapped = uptime_has_wrapped(
        uptime, (row.lastchange for row in snapshot.interfaces.values())
    )
    if wrapped:
        _LOGGER.info("[%s] interfaces - device uptime has wrapped - correcting", device_ip)

    ports: dict[str, DevicePort] = {}
    for entry, row in snapshot.interfaces.items():
        port = row.port
        if not port:
            _LOGGER.debug("[%s] interfaces - ignoring %s (no port mapping)", device_ip, entry)
            continue
        if _is_ignored(port, settings.ignore_interfaces):
            _LOGGER.debug(
                "[%s] interfaces - ignoring %s (%s) (config:ignore_interfaces)",
                device_ip,
                entry,
                port,
            )
            continue

        lastchange = row.lastchange
        if wrapped and lastchange and uptime is not None:
            corrected = correct_lastchange(lastchange, uptime, settings.uptime_wrap_window)
            if corrected != lastchange:
                _LOGGER.debug(
                    "[%s] interfaces - correcting LastChange for %s, assuming sysUptime wrap",
                    device_ip,
                    port,
                )
            lastchange = corrected

        ports[port] = DevicePort(
            ip=device_ip,
            port=port,
            descr=row.descr,
            name=row.name,
            type=row.type,
            up=row.up,
            up_admin=row.up_admin,
            speed=row.speed,
            mtu=row.mtu,
            mac=parse_mac(row.mac),
            vlan=row.vlan,
            lastchange=lastchange,
            slave_of=row.slave_of,
            is_uplink=False,
            is_master=False,
            manual_topo=False,
        )

    with factory.begin() as session:
        device = session.get(Device, device_ip, with_for_update=True)
        if device is None:
            _LOGGER.info("[%s] interfaces - device not in database, skipping", device_ip)
            return 0
        if wrapped and uptime is not None:
            device.uptime = uptime + COUNTER_WRAP
        gone = session.execute(delete(DevicePort).where(DevicePort.ip == device_ip)).rowcount
        _LOGGER.debug("[%s] interfaces - removed %s interfaces", device_ip, gone)
        session.add_all(ports.values())
        _LOGGER.debug("[%s] interfaces - added %d new interfaces", device_ip, len(ports))

    return len(ports)


def uptime_has_wrapped(uptime: int | None, lastchanges: Iterable[int | None]) -> bool:
    """Detect a wrapped 32-bit sysUpTime: some interface changed "after" now."""

    if uptime is None:
        return False
    return any(lastchange is not None and lastchange > uptime for lastchange in lastchanges)


def correct_lastchange(lastchange: int, uptime: int, window: int) -> int:
    """Shift a post-wrap LastChange value past the 32-bit boundary.

    A value below ``window`` while the device has been up for longer than
    ``window`` is taken as a change right after boot and left alone.
    """

    if lastchange >= uptime:
        return lastchange
    if uptime > window and lastchange < window:
        return lastchange
    return lastchange + COUNTER_WRAP


def _is_ignored(port: str, patterns: Sequence[str]) -> bool:
    for pattern in patterns:
        try:
            if re.fullmatch(pattern, port):
                return True
        except re.error:
            _LOGGER.warning("ignoring invalid ignore_interfaces pattern %r", pattern)
    return False


def _validate_ip(path: str | Path, value: str) -> str:
    """Ensure a topology endpoint is an IP address."""

    address = canonical_ip(value)
    if address is None:
        raise ValueError(f"{path} has invalid device address: {value}")
    return address


def _validate_headers(
    path: str | Path,
    fieldnames: Sequence[str] | None,
    required: tuple[str, ...],
) -> None:
    """Ensure required headers are present."""

    if fieldnames is None:
        raise ValueError(f"{path} is missing header row")
    missing = [name for name in required if name not in fieldnames]
    if missing:
        raise ValueError(f"{path} is missing required columns: {', '.join(missing)}")


def _validate_row(path: str | Path, row: dict[str, str], required: tuple[str, ...]) -> None:
    """Ensure required row fields are populated."""

    missing = [name for name in required if not (row.get(name) or "").strip()]
    if missing:
        raise ValueError(f"{path} has empty required fields: {', '.join(missing)}")
