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
"""Database schema and engine helpers."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    pass


class Device(Base):
    """A polled device, keyed by its canonical (root) IP."""

    __tablename__ = "device"

    ip: Mapped[str] = mapped_column(String(64), primary_key=True)
    dns: Mapped[str | None] = mapped_column(String(255), nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    vendor: Mapped[str | None] = mapped_column(String(100), nullable=True)
    os: Mapped[str | None] = mapped_column(String(100), nullable=True)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    mac: Mapped[str | None] = mapped_column(String(17), nullable=True, index=True)
    serial: Mapped[str | None] = mapped_column(String(100), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact: Mapped[str | None] = mapped_column(String(255), nullable=True)
    uptime: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    snmp_class: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_discover: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Device {self.ip} name={self.name!r}>"


class DeviceIp(Base):
    """Alias address a device answers on."""

    __tablename__ = "device_ip"

    ip: Mapped[str] = mapped_column(
        String(64), ForeignKey("device.ip", ondelete="CASCADE"), primary_key=True
    )
    alias: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    port: Mapped[str | None] = mapped_column(String(255), nullable=True)
    subnet: Mapped[str | None] = mapped_column(String(64), nullable=True)


class DevicePort(Base):
    """Device interface including the neighbor seen on it."""

    __tablename__ = "device_port"

    ip: Mapped[str] = mapped_column(
        String(64), ForeignKey("device.ip", ondelete="CASCADE"), primary_key=True
    )
    port: Mapped[str] = mapped_column(String(255), primary_key=True)
    descr: Mapped[str | None] = mapped_column(Text, nullable=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    up: Mapped[str | None] = mapped_column(String(20), nullable=True)
    up_admin: Mapped[str | None] = mapped_column(String(20), nullable=True)
    speed: Mapped[str | None] = mapped_column(String(30), nullable=True)
    mtu: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mac: Mapped[str | None] = mapped_column(String(17), nullable=True)
    vlan: Mapped[str | None] = mapped_column(String(20), nullable=True)
    lastchange: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    remote_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    remote_port: Mapped[str | None] = mapped_column(String(255), nullable=True)
    remote_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    remote_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_uplink: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_master: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    manual_topo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    slave_of: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<DevicePort {self.ip} {self.port}>"


class Topology(Base):
    """Manually configured link, overriding discovered neighbors."""

    __tablename__ = "topology"
    __table_args__ = (UniqueConstraint("dev1", "port1", "dev2", "port2", name="uq_topology"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dev1: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    port1: Mapped[str] = mapped_column(String(255), nullable=False)
    dev2: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    port2: Mapped[str] = mapped_column(String(255), nullable=False)


class Admin(Base):
    """Queued or completed backend job."""

    __tablename__ = "admin"

    job: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entered: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    started: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    device: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    device_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    subaction: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="queued")
    log: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Admin {self.job} {self.action} {self.device} status={self.status!r}>"


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite connections get explicit transaction control."""

    engine = create_engine(url, echo=echo)
    if engine.dialect.name == "sqlite":
        # pysqlite defers BEGIN until the first DML, which breaks SAVEPOINT
        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(connection):  # type: ignore[no-untyped-def]
            connection.exec_driver_sql("BEGIN")

    return engine


def init_db(engine: Engine) -> None:
    """Create all tables."""

    Base.metadata.create_all(engine)


def session_factory(engine: Engine) -> sessionmaker:
    """Build the session factory shared by all workers."""

    return sessionmaker(bind=engine, expire_on_commit=False)
