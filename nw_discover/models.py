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
"""Data models for nw-discover."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union


@dataclass(frozen=True)
class DeviceRecord:
    """Detached view of a device row, used for ACL checks and job targets."""

    ip: str
    in_storage: bool = False
    name: str | None = None
    dns: str | None = None
    vendor: str | None = None
    os: str | None = None
    model: str | None = None
    snmp_class: str | None = None


@dataclass(frozen=True)
class InterfaceSnapshot:
    """Interface table row as reported by a device."""

    port: str
    descr: str | None = None
    name: str | None = None
    type: str | None = None
    up: str | None = None
    up_admin: str | None = None
    speed: str | None = None
    mtu: int | None = None
    mac: str | None = None
    vlan: str | None = None
    lastchange: int | None = None
    slave_of: str | None = None


@dataclass(frozen=True)
class SingleAddress:
    """One neighbor address reported on a local port."""

    address: str


@dataclass(frozen=True)
class MultipleAddresses:
    """Several neighbor addresses reported on one local port."""

    addresses: tuple[str, ...]


NeighborAddress = Union[SingleAddress, MultipleAddresses]


def to_neighbor_address(raw: Any) -> NeighborAddress:
    """Tag a raw neighbor address value as single or multiple."""

    if isinstance(raw, (list, tuple, set)):
        return MultipleAddresses(tuple(str(item) for item in raw))
    return SingleAddress("" if raw is None else str(raw))


@dataclass(frozen=True)
class NeighborTables:
    """Raw CDP/LLDP neighbor tables of one device.

    ``c_ip`` and ``lldp_ipv6`` are keyed by neighbor entry. The remaining
    tables are keyed by the local interface identifier of the entry, which
    some agents report differently (see ``neighbors.repair_interface_id``).
    """

    has_topo: bool = False
    c_ip: Mapping[str, NeighborAddress] = field(default_factory=dict)
    lldp_ipv6: Mapping[str, NeighborAddress | None] = field(default_factory=dict)
    c_if: Mapping[str, str] = field(default_factory=dict)
    c_port: Mapping[str, str] = field(default_factory=dict)
    c_id: Mapping[str, str] = field(default_factory=dict)
    c_platform: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DeviceSnapshot:
    """Everything the transport layer fetched from a device in one poll."""

    ip: str
    root_ip: str | None = None
    name: str | None = None
    dns: str | None = None
    description: str | None = None
    vendor: str | None = None
    os: str | None = None
    model: str | None = None
    mac: str | None = None
    serial: str | None = None
    location: str | None = None
    contact: str | None = None
    uptime: int | None = None
    snmp_class: str | None = None
    ip_index: Mapping[str, str] = field(default_factory=dict)
    ip_netmask: Mapping[str, str] = field(default_factory=dict)
    interfaces: Mapping[str, InterfaceSnapshot] = field(default_factory=dict)
    neighbors: NeighborTables = field(default_factory=NeighborTables)


@dataclass(frozen=True)
class TopologyLink:
    """Manually declared link between two device ports."""

    dev1: str
    port1: str
    dev2: str
    port2: str


@dataclass(frozen=True)
class DiscoveredNeighbor:
    """Neighbor resolved on a local port, candidate for discovery."""

    ip: str
    remote_type: str | None
    remote_id: str | None


@dataclass(frozen=True)
class DiscoveryJob:
    """Job record handed to the job queue."""

    device: str
    action: str = "discover"
    subaction: str | None = None
    device_key: str | None = None


@dataclass(frozen=True)
class PortNeighbor:
    """Resolved neighbor of a stored port, as reported."""

    device: str
    port: str
    remote_ip: str
    remote_port: str | None
    remote_type: str | None
    remote_id: str | None
    is_uplink: bool
    is_master: bool
    manual_topo: bool


@dataclass(frozen=True)
class JobResult:
    """Final status of one processed job."""

    ip: str
    action: str
    status: str
    log: str
