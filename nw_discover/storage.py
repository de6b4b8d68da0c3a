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
"""Device lookups against the database."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from nw_discover.models import DeviceRecord
from nw_discover.schema import Device, DeviceIp, DevicePort


def get_device(session: Session, ip: str) -> Device | None:
    """Return the stored device answering on ``ip``, resolving aliases to the root row."""

    if not ip:
        return None
    device = session.get(Device, ip)
    if device is not None:
        return device
    return session.scalars(
        select(Device)
        .join(DeviceIp, DeviceIp.ip == Device.ip)
        .where(DeviceIp.alias == ip)
        .order_by(Device.ip)
        .limit(1)
    ).first()


def get_port(
    session: Session,
    ip: str,
    port: str | None,
    for_update: bool = False,
) -> DevicePort | None:
    """Return a port row, optionally locking it for the current transaction."""

    if not port:
        return None
    statement = select(DevicePort).where(DevicePort.ip == ip, DevicePort.port == port)
    if for_update:
        statement = statement.with_for_update()
    return session.scalars(statement).first()


def to_record(device: Device) -> DeviceRecord:
    """Build a detached record from a stored device."""

    return DeviceRecord(
        ip=device.ip,
        in_storage=True,
        name=device.name,
        dns=device.dns,
        vendor=device.vendor,
        os=device.os,
        model=device.model,
        snmp_class=device.snmp_class,
    )


def describe_device(factory: sessionmaker, ip: str) -> DeviceRecord:
    """Return a record for ``ip``; ``in_storage`` is false for unknown devices."""

    with factory() as session:
        device = get_device(session, ip)
        if device is None:
            return DeviceRecord(ip=ip)
        return to_record(device)


class DatabaseDeviceLookup:
    """Known-device lookups used by identity recovery."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def by_name(self, name: str) -> str | None:
        return self._session.scalars(
            select(Device.ip).where(Device.name == name).order_by(Device.ip).limit(1)
        ).first()

    def by_mac(self, mac: str) -> str | None:
        return self._session.scalars(
            select(Device.ip).where(Device.mac == mac).order_by(Device.ip).limit(1)
        ).first()

    def by_name_prefix(self, prefix: str) -> str | None:
        return self._session.scalars(
            select(Device.ip)
            .where(Device.name.istartswith(prefix, autoescape=True))
            .order_by(Device.ip)
            .limit(1)
        ).first()
