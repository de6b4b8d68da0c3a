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
"""Normalization utilities."""

from __future__ import annotations

import ipaddress
import re
from typing import Any

_REMOTE_PORT_UNSAFE = re.compile(r"[^\d\s/.,()\w:-]+")

_MAC_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(?:[0-9a-f]{2}[:-]){5}[0-9a-f]{2}$"),
    re.compile(r"^(?:[0-9a-f]{4}\.){2}[0-9a-f]{4}$"),
    re.compile(r"^[0-9a-f]{12}$"),
)


def canonical_ip(raw: str | None) -> str | None:
    """Return the canonical text form of an address, or None if it does not parse.

    Prefix notation is accepted and reduced to the host address
    (``10.0.0.5/32`` becomes ``10.0.0.5``).
    """

    if raw is None:
        return None
    value = str(raw).strip()
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        pass
    try:
        return str(ipaddress.ip_interface(value).ip)
    except ValueError:
        return None


def is_unspecified_or_loopback(address: str) -> bool:
    """Return True for ``0.0.0.0``, ``::`` and loopback addresses."""

    parsed = ipaddress.ip_address(address)
    return parsed.is_unspecified or parsed.is_loopback


def parse_mac(raw: str | None) -> str | None:
    """Parse a MAC address into IEEE form (``00:11:22:aa:bb:cc``)."""

    if not raw:
        return None
    value = str(raw).strip().lower()
    if not any(pattern.match(value) for pattern in _MAC_PATTERNS):
        return None
    digits = re.sub(r"[^0-9a-f]", "", value)
    return ":".join(digits[index : index + 2] for index in range(0, 12, 2))


def clean_remote_port(raw: str | None) -> str | None:
    """Strip characters that never appear in port names."""

    if raw is None:
        return None
    return _REMOTE_PORT_UNSAFE.sub("", decode_text(raw) or "")


def decode_text(raw: Any) -> str | None:
    """Decode agent strings, which may arrive as UTF-8 bytes or carry unencodable characters."""

    if raw is None:
        return None
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return str(raw).encode("utf-8", errors="replace").decode("utf-8")
