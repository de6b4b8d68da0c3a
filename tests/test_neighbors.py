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
"""Tests for neighbor resolution."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from nw_discover.config import Settings
from nw_discover.models import (
    DeviceSnapshot,
    DiscoveredNeighbor,
    InterfaceSnapshot,
    MultipleAddresses,
    NeighborTables,
    SingleAddress,
)
from nw_discover.neighbors import merge_neighbor_addresses, repair_interface_id, resolve_neighbors
from nw_discover.schema import DevicePort
from nw_discover.snapshot import JsonSnapshotReader

DEVICE = "10.0.0.1"


def _snapshot(**tables: Any) -> DeviceSnapshot:
    tables.setdefault("has_topo", True)
    tables["c_ip"] = {
        entry: value if isinstance(value, MultipleAddresses) else SingleAddress(value)
        for entry, value in tables.get("c_ip", {}).items()
    }
    return DeviceSnapshot(
        ip=DEVICE,
        interfaces={
            "1": InterfaceSnapshot(port="Gi1/1"),
            "2": InterfaceSnapshot(port="Gi1/2"),
            "3": InterfaceSnapshot(port="Po1"),
        },
        neighbors=NeighborTables(**tables),
    )


@pytest.fixture
def switch_a(add_device: Callable[..., None], add_port: Callable[..., None]) -> None:
    add_device(DEVICE, aliases=(DEVICE,), name="switchA")
    add_port(DEVICE, "Gi1/1")
    add_port(DEVICE, "Gi1/2")


def test_merge_prefers_ipv6_and_drops_undefined() -> None:
    merged = merge_neighbor_addresses(
        {"a": SingleAddress("10.0.0.5"), "b": SingleAddress("10.0.0.6")},
        {
            "a": SingleAddress("2001:db8::5"),
            "b": None,
            "c": SingleAddress("2001:db8::7"),
            "d": SingleAddress(""),
        },
    )

    assert merged == {
        "a": SingleAddress("2001:db8::5"),
        "b": SingleAddress("10.0.0.6"),
        "c": SingleAddress("2001:db8::7"),
    }


def test_repair_interface_id() -> None:
    c_if = {"15315603.414.20": "2", "1.5": "1"}

    assert repair_interface_id("1.5", c_if) == "1.5"
    assert repair_interface_id("0.414.20", c_if) == "15315603.414.20"
    assert repair_interface_id("0.999.1", c_if) == "0.999.1"
    assert repair_interface_id("7.7", c_if) == "7.7"


@pytest.mark.usefixtures("switch_a")
def test_resolves_neighbor_onto_local_port(
    factory: sessionmaker,
    get_port_row: Callable[[str, str], DevicePort | None],
) -> None:
    snapshot = _snapshot(
        c_ip={"1.5": "10.0.0.5"},
        c_if={"1.5": "1"},
        c_port={"1.5": "Gi2/1"},
        c_id={"1.5": "switchB"},
        c_platform={"1.5": "cisco WS-C3750"},
    )

    found = resolve_neighbors(factory, DEVICE, snapshot, Settings())

    assert found == [DiscoveredNeighbor("10.0.0.5", "cisco WS-C3750", "switchB")]
    row = get_port_row(DEVICE, "Gi1/1")
    assert row is not None
    assert row.remote_ip == "10.0.0.5"
    assert row.remote_port == "Gi2/1"
    assert row.remote_type == "cisco WS-C3750"
    assert row.remote_id == "switchB"
    assert row.is_uplink is True
    assert row.manual_topo is False


def test_manual_topology_port_is_left_alone(
    factory: sessionmaker,
    add_device: Callable[..., None],
    add_port: Callable[..., None],
    get_port_row: Callable[[str, str], DevicePort | None],
) -> None:
    add_device(DEVICE)
    add_port(DEVICE, "Gi1/1", remote_ip="10.0.0.2", remote_port="Gi2/1", is_uplink=True, manual_topo=True)
    snapshot = _snapshot(
        c_ip={"1.5": "10.0.0.5"},
        c_if={"1.5": "1"},
        c_port={"1.5": "Gi9/9"},
        c_id={"1.5": "switchB"},
    )

    assert resolve_neighbors(factory, DEVICE, snapshot, Settings()) == []

    row = get_port_row(DEVICE, "Gi1/1")
    assert row is not None
    assert (row.remote_ip, row.remote_port, row.remote_type, row.remote_id, row.manual_topo) == (
        "10.0.0.2",
        "Gi2/1",
        None,
        None,
        True,
    )


@pytest.mark.usefixtures("switch_a")
def test_unspecified_address_without_identity_is_skipped(
    factory: sessionmaker,
    get_port_row: Callable[[str, str], DevicePort | None],
) -> None:
    snapshot = _snapshot(
        c_ip={"1.5": "0.0.0.0", "2.5": "169.254.3.3", "3.5": "not-an-ip"},
        c_if={"1.5": "1", "2.5": "2", "3.5": "3"},
    )

    assert resolve_neighbors(factory, DEVICE, snapshot, Settings()) == []
    assert get_port_row(DEVICE, "Gi1/1").remote_ip is None
    assert get_port_row(DEVICE, "Gi1/2").remote_ip is None


@pytest.mark.usefixtures("switch_a")
def test_unusable_address_is_recovered_from_identity(
    factory: sessionmaker,
    add_device: Callable[..., None],
    get_port_row: Callable[[str, str], DevicePort | None],
) -> None:
    add_device("10.0.0.5", name="switchB", mac="00:11:22:aa:bb:cc")
    snapshot = _snapshot(
        c_ip={"1.5": "0.0.0.0", "2.5": "127.0.0.1"},
        c_if={"1.5": "1", "2.5": "2"},
        c_id={"1.5": "switchB", "2.5": "SWITCHB.example.net"},
        c_port={"1.5": "Gi2/1", "2.5": "Gi2/2"},
    )

    found = resolve_neighbors(factory, DEVICE, snapshot, Settings())

    assert [neighbor.ip for neighbor in found] == ["10.0.0.5", "10.0.0.5"]
    assert get_port_row(DEVICE, "Gi1/1").remote_ip == "10.0.0.5"
    assert get_port_row(DEVICE, "Gi1/2").remote_ip == "10.0.0.5"


@pytest.mark.usefixtures("switch_a")
def test_unknown_identity_is_skipped(factory: sessionmaker) -> None:
    snapshot = _snapshot(c_ip={"1.5": "0.0.0.0"}, c_if={"1.5": "1"}, c_id={"1.5": "nobody"})

    assert resolve_neighbors(factory, DEVICE, snapshot, Settings()) == []


@pytest.mark.usefixtures("switch_a")
def test_multiple_neighbors_on_one_port_are_skipped(
    factory: sessionmaker,
    get_port_row: Callable[[str, str], DevicePort | None],
) -> None:
    snapshot = _snapshot(
        c_ip={"1.5": MultipleAddresses(("10.0.0.5", "10.0.0.6")), "2.5": "10.0.0.7"},
        c_if={"1.5": "1", "2.5": "2"},
    )

    found = resolve_neighbors(factory, DEVICE, snapshot, Settings())

    assert found == [DiscoveredNeighbor("10.0.0.7", "", None)]
    assert get_port_row(DEVICE, "Gi1/1").remote_ip is None


@pytest.mark.usefixtures("switch_a")
def test_ipv6_neighbor_wins_and_is_canonicalized(
    factory: sessionmaker,
    get_port_row: Callable[[str, str], DevicePort | None],
) -> None:
    snapshot = _snapshot(
        c_ip={"1.5": "10.0.0.5"},
        lldp_ipv6={"1.5": SingleAddress("2001:DB8::5")},
        c_if={"1.5": "1"},
    )

    found = resolve_neighbors(factory, DEVICE, snapshot, Settings())

    assert [neighbor.ip for neighbor in found] == ["2001:db8::5"]
    assert get_port_row(DEVICE, "Gi1/1").remote_ip == "2001:db8::5"


@pytest.mark.usefixtures("switch_a")
def test_mangled_interface_id_is_repaired(
    factory: sessionmaker,
    get_port_row: Callable[[str, str], DevicePort | None],
) -> None:
    snapshot = _snapshot(
        c_ip={"0.414.20": "10.0.0.6"},
        c_if={"15315603.414.20": "2"},
        c_port={"15315603.414.20": "eth0"},
    )

    resolve_neighbors(factory, DEVICE, snapshot, Settings())

    row = get_port_row(DEVICE, "Gi1/2")
    assert row is not None
    assert (row.remote_ip, row.remote_port) == ("10.0.0.6", "eth0")


@pytest.mark.usefixtures("switch_a")
def test_unmapped_entries_are_skipped(factory: sessionmaker) -> None:
    snapshot = _snapshot(
        c_ip={"1.5": "10.0.0.5", "8.5": "10.0.0.8", "9.5": "10.0.0.9"},
        c_if={"1.5": "1", "8.5": "8", "9.5": "3"},
    )

    found = resolve_neighbors(factory, DEVICE, snapshot, Settings())

    # "8" has no interface, and Po1 has no stored port row
    assert [neighbor.ip for neighbor in found] == ["10.0.0.5"]


@pytest.mark.usefixtures("switch_a")
def test_missing_remote_port_still_resolves(
    factory: sessionmaker,
    get_port_row: Callable[[str, str], DevicePort | None],
) -> None:
    snapshot = _snapshot(c_ip={"1.5": "10.0.0.5"}, c_if={"1.5": "1"})

    resolve_neighbors(factory, DEVICE, snapshot, Settings())

    row = get_port_row(DEVICE, "Gi1/1")
    assert row is not None
    assert row.remote_ip == "10.0.0.5"
    assert row.remote_port is None


@pytest.mark.usefixtures("switch_a")
def test_unencodable_identity_does_not_stop_the_pass(
    tmp_path: Path,
    factory: sessionmaker,
    get_port_row: Callable[[str, str], DevicePort | None],
) -> None:
    data = {
        "interfaces": {"1": {"port": "Gi1/1"}, "2": {"port": "Gi1/2"}},
        "has_topo": True,
        "c_ip": {"1.5": "10.0.0.5", "2.5": "10.0.0.6"},
        "c_if": {"1.5": "1", "2.5": "2"},
        "c_id": {"1.5": "bad\udc80id", "2.5": "good"},
        "c_platform": {"1.5": "cisco\udc80", "2.5": "cisco"},
    }
    (tmp_path / f"{DEVICE}.json").write_text(json.dumps(data), encoding="utf-8")
    snapshot = JsonSnapshotReader(tmp_path).read(DEVICE)

    found = resolve_neighbors(factory, DEVICE, snapshot, Settings())

    assert [neighbor.ip for neighbor in found] == ["10.0.0.5", "10.0.0.6"]
    assert get_port_row(DEVICE, "Gi1/1").remote_id == "bad?id"
    assert get_port_row(DEVICE, "Gi1/2").remote_id == "good"


@pytest.mark.usefixtures("switch_a")
def test_storage_failure_skips_only_that_entry(
    factory: sessionmaker,
    get_port_row: Callable[[str, str], DevicePort | None],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def fail_on_first_port(session: Any, device_ip: str, portrow: DevicePort, remote_ip: str) -> None:
        if portrow.port == "Gi1/1":
            raise OperationalError("UPDATE device_port", {}, Exception("database is locked"))

    monkeypatch.setattr("nw_discover.neighbors._update_aggregate_master", fail_on_first_port)
    snapshot = _snapshot(
        c_ip={"1.5": "10.0.0.5", "2.5": "10.0.0.6"},
        c_if={"1.5": "1", "2.5": "2"},
    )

    found = resolve_neighbors(factory, DEVICE, snapshot, Settings())

    assert [neighbor.ip for neighbor in found] == ["10.0.0.6"]
    assert get_port_row(DEVICE, "Gi1/1").remote_ip is None
    assert get_port_row(DEVICE, "Gi1/2").remote_ip == "10.0.0.6"


@pytest.mark.usefixtures("switch_a")
def test_no_protocols_and_no_entries(factory: sessionmaker) -> None:
    assert resolve_neighbors(factory, DEVICE, _snapshot(has_topo=False), Settings()) == []


def test_aggregate_master_points_at_peer_master(
    factory: sessionmaker,
    add_device: Callable[..., None],
    add_port: Callable[..., None],
    get_port_row: Callable[[str, str], DevicePort | None],
) -> None:
    add_device(DEVICE)
    add_port(DEVICE, "Gi1/1", slave_of="Po1")
    add_port(DEVICE, "Gi1/2", slave_of="Po1")
    add_port(DEVICE, "Po1")
    add_device("10.0.0.2", aliases=("10.0.0.2",))
    add_port("10.0.0.2", "Gi2/1", slave_of="Po2")
    add_port("10.0.0.2", "Po2")
    snapshot = _snapshot(
        c_ip={"1.5": "10.0.0.2"},
        c_if={"1.5": "1"},
        c_port={"1.5": "Gi2/1"},
    )

    resolve_neighbors(factory, DEVICE, snapshot, Settings())

    master = get_port_row(DEVICE, "Po1")
    assert master is not None
    assert (master.remote_ip, master.remote_port) == ("10.0.0.2", "Po2")
    assert master.is_master is True
    assert master.is_uplink is True
    assert master.manual_topo is False


def test_aggregate_master_needs_peer_member(
    factory: sessionmaker,
    add_device: Callable[..., None],
    add_port: Callable[..., None],
    get_port_row: Callable[[str, str], DevicePort | None],
) -> None:
    add_device(DEVICE)
    add_port(DEVICE, "Gi1/1", slave_of="Po1")
    add_port(DEVICE, "Po1")
    add_device("10.0.0.2")
    add_port("10.0.0.2", "Gi2/1")
    snapshot = _snapshot(c_ip={"1.5": "10.0.0.2"}, c_if={"1.5": "1"}, c_port={"1.5": "Gi2/1"})

    resolve_neighbors(factory, DEVICE, snapshot, Settings())

    master = get_port_row(DEVICE, "Po1")
    assert master is not None
    assert master.remote_ip is None
    assert master.is_master is False
