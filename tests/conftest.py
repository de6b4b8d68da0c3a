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
"""Shared fixtures: a throwaway SQLite database and row builders."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterator

import pytest
from sqlalchemy.orm import sessionmaker

from nw_discover.config import Settings
from nw_discover.schema import Device, DeviceIp, DevicePort, create_db_engine, init_db, session_factory


@pytest.fixture
def factory(tmp_path: Path) -> Iterator[sessionmaker]:
    engine = create_db_engine(f"sqlite:///{tmp_path / 'nd.db'}")
    init_db(engine)
    yield session_factory(engine)
    engine.dispose()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def add_device(factory: sessionmaker) -> Callable[..., None]:
    def _add(ip: str, aliases: tuple[str, ...] = (), **values: Any) -> None:
        with factory.begin() as session:
            session.add(Device(ip=ip, **values))
            session.flush()
            session.add_all(DeviceIp(ip=ip, alias=alias) for alias in aliases)

    return _add


@pytest.fixture
def add_port(factory: sessionmaker) -> Callable[..., None]:
    def _add(ip: str, port: str, **values: Any) -> None:
        with factory.begin() as session:
            session.add(DevicePort(ip=ip, port=port, **values))

    return _add


@pytest.fixture
def get_port_row(factory: sessionmaker) -> Callable[[str, str], DevicePort | None]:
    def _get(ip: str, port: str) -> DevicePort | None:
        with factory() as session:
            return session.get(DevicePort, (ip, port))

    return _get
