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
"""Device snapshot readers.

The transport layer (SNMP, CLI, NETCONF) is outside this package. It hands
over everything it fetched from a device as a ``DeviceSnapshot``; the JSON
reader here loads snapshots previously saved by such a collector.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Protocol

from nw_discover.models import (
    DeviceSnapshot,
    InterfaceSnapshot,
    NeighborTables,
    to_neighbor_address,
)

_LOGGER = logging.getLogger(__name__)


class TransportUnavailable(RuntimeError):
    """The device could not be reached or queried."""


class SnapshotReader(Protocol):
    def read(self, ip: str) -> DeviceSnapshot:
        """Return the snapshot for ``ip`` or raise ``TransportUnavailable``."""


class JsonSnapshotReader:
    """Read ``<ip>.json`` snapshot files from a directory."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def read(self, ip: str) -> DeviceSnapshot:
        path = self._directory / f"{ip}.json"
        try:
            with path.open(encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError as exc:
            raise TransportUnavailable(f"no snapshot for {ip}") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise TransportUnavailable(f"unreadable snapshot for {ip}: {exc}") from exc

        _LOGGER.debug("[%s] snapshot - loaded %s", ip, path)
        try:
            return snapshot_from_mapping(ip, data)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise TransportUnavailable(f"malformed snapshot for {ip}: {exc}") from exc


def snapshot_from_mapping(ip: str, data: Mapping[str, Any]) -> DeviceSnapshot:
    """Build a snapshot from decoded JSON."""

    interfaces = {
        str(iid): InterfaceSnapshot(
            port=str(row["port"]),
            descr=row.get("descr"),
            name=row.get("name"),
            type=row.get("type"),
            up=row.get("up"),
            up_admin=row.get("up_admin"),
            speed=_optional_str(row.get("speed")),
            mtu=_optional_int(row.get("mtu")),
            mac=row.get("mac"),
            vlan=_optional_str(row.get("vlan")),
            lastchange=_optional_int(row.get("lastchange")),
            slave_of=row.get("slave_of"),
        )
        for iid, row in (data.get("interfaces") or {}).items()
    }

    lldp_ipv6 = {
        str(entry): (None if value is None else to_neighbor_address(value))
        for entry, value in (data.get("lldp_ipv6") or {}).items()
    }
    neighbors = NeighborTables(
        has_topo=bool(data.get("has_topo")),
        c_ip={
            str(entry): to_neighbor_address(value)
            for entry, value in (data.get("c_ip") or {}).items()
        },
        lldp_ipv6=lldp_ipv6,
        c_if=_str_map(data.get("c_if")),
        c_port=_str_map(data.get("c_port")),
        c_id=_str_map(data.get("c_id")),
        c_platform=_str_map(data.get("c_platform")),
    )

    return DeviceSnapshot(
        ip=ip,
        root_ip=data.get("root_ip"),
        name=data.get("name"),
        dns=data.get("dns"),
        description=data.get("description"),
        vendor=data.get("vendor"),
        os=data.get("os"),
        model=data.get("model"),
        mac=data.get("mac"),
        serial=data.get("serial"),
        location=data.get("location"),
        contact=data.get("contact"),
        uptime=_optional_int(data.get("uptime")),
        snmp_class=data.get("snmp_class"),
        ip_index=_str_map(data.get("ip_index")),
        ip_netmask=_str_map(data.get("ip_netmask")),
        interfaces=interfaces,
        neighbors=neighbors,
    )


def _str_map(raw: Mapping[str, Any] | None) -> dict[str, str]:
    if not raw:
        return {}
    return {str(key): str(value) for key, value in raw.items() if value is not None}


def _optional_int(raw: Any) -> int | None:
    if raw is None or raw == "":
        return None
    return int(raw)


def _optional_str(raw: Any) -> str | None:
    if raw is None:
        return None
    return str(raw)
