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
"""Settings loading and process-wide credential configuration."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Iterator

import yaml

_LOGGER = logging.getLogger(__name__)

LOCAL_ADDRESSES_GROUP = "__LOCAL_ADDRESSES__"

DEFAULT_LOCAL_ADDRESSES: tuple[str, ...] = (
    "0.0.0.0/32",
    "127.0.0.0/8",
    "169.254.0.0/16",
    "::/128",
    "::1/128",
    "fe80::/10",
)

_MANUAL_TOPO_SCOPES = ("device", "global")


@dataclass
class Settings:
    """Runtime settings shared by every worker in the process."""

    device_auth: list[dict[str, Any]] = field(default_factory=lambda: [{"tag": "default"}])
    host_groups: dict[str, list[str]] = field(default_factory=dict)
    discover_no: list[str] = field(default_factory=list)
    discover_only: list[str] = field(default_factory=list)
    discover_no_type: list[str] = field(default_factory=list)
    discover_phones: bool = False
    discover_waps: bool = True
    ignore_interfaces: list[str] = field(default_factory=list)
    ignore_private_nets: bool = False
    uptime_wrap_window: int = 30000
    manual_topo_scope: str = "device"

    def __post_init__(self) -> None:
        self.host_groups.setdefault(LOCAL_ADDRESSES_GROUP, list(DEFAULT_LOCAL_ADDRESSES))


def load_settings(path: str | Path | None) -> Settings:
    """Load settings from a YAML file; ``None`` yields the defaults."""

    if path is None:
        return Settings()

    with Path(path).open(encoding="utf-8") as handle:
        try:
            raw = yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise ValueError(f"{path} is not valid YAML: {exc}") from exc

    if raw is None:
        return Settings()
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a mapping of settings")
    return settings_from_mapping(raw, source=str(path))


def settings_from_mapping(raw: dict[str, Any], source: str = "settings") -> Settings:
    """Validate a settings mapping and build ``Settings``."""

    known = {item.name: item for item in fields(Settings)}
    unknown = sorted(set(raw) - set(known))
    if unknown:
        raise ValueError(f"{source} has unknown settings: {', '.join(unknown)}")

    values: dict[str, Any] = {}
    for key, value in raw.items():
        values[key] = _validate_value(source, key, value)

    settings = Settings(**values)
    if settings.manual_topo_scope not in _MANUAL_TOPO_SCOPES:
        raise ValueError(
            f"{source} manual_topo_scope must be one of: {', '.join(_MANUAL_TOPO_SCOPES)}"
        )
    return settings


def _validate_value(source: str, key: str, value: Any) -> Any:
    """Check the type of a single setting."""

    if key == "device_auth":
        if value is None:
            return []
        if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
            raise ValueError(f"{source} device_auth must be a list of mappings")
        return [dict(item) for item in value]

    if key == "host_groups":
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError(f"{source} host_groups must be a mapping")
        return {
            str(name): _as_rule_list(source, f"host_groups.{name}", rules)
            for name, rules in value.items()
        }

    if key in ("discover_no", "discover_only", "discover_no_type", "ignore_interfaces"):
        return _as_rule_list(source, key, value)

    if key in ("discover_phones", "discover_waps", "ignore_private_nets"):
        if not isinstance(value, bool):
            raise ValueError(f"{source} {key} must be true or false")
        return value

    if key == "uptime_wrap_window":
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"{source} uptime_wrap_window must be a non-negative integer")
        return value

    return str(value)


def _as_rule_list(source: str, key: str, value: Any) -> list[str]:
    """Accept a single rule or a list of rules."""

    if value is None:
        return []
    if isinstance(value, (str, int)):
        return [str(value)]
    if isinstance(value, list):
        return [str(item) for item in value]
    raise ValueError(f"{source} {key} must be a string or a list of strings")


@contextmanager
def scoped_device_auth(settings: Settings, stanzas: list[dict[str, Any]]) -> Iterator[None]:
    """Install ``stanzas`` as the device_auth configuration for the duration of the block."""

    saved = settings.device_auth
    settings.device_auth = stanzas
    try:
        yield
    finally:
        settings.device_auth = saved
        _LOGGER.debug("restored device_auth (%s stanzas)", len(saved))
