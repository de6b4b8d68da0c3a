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
"""Recover a neighbor's address from its reported identity.

Used when the neighbor advertised no usable management address. Each
strategy maps the identity string to the canonical IP of a known device, or
None; they are tried in ``IDENTITY_STRATEGIES`` order.
"""

from __future__ import annotations

import re
from typing import Callable, Optional, Protocol

from nw_discover.normalize import parse_mac

# some HP switches report "myswitchname(012345-012345)" with the MAC inside
_PARENTHESIZED_MAC = re.compile(r"\(([0-9a-f]{6})-([0-9a-f]{6})\)", re.IGNORECASE)


class DeviceLookup(Protocol):
    def by_name(self, name: str) -> str | None: ...

    def by_mac(self, mac: str) -> str | None: ...

    def by_name_prefix(self, prefix: str) -> str | None: ...


IdentityStrategy = Callable[[str, DeviceLookup], Optional[str]]


def match_exact_name(identity: str, lookup: DeviceLookup) -> str | None:
    return lookup.by_name(identity)


def match_identity_mac(identity: str, lookup: DeviceLookup) -> str | None:
    mac = parse_mac(identity)
    if mac is None:
        return None
    return lookup.by_mac(mac)


def match_parenthesized_mac(identity: str, lookup: DeviceLookup) -> str | None:
    match = _PARENTHESIZED_MAC.search(identity)
    if not match:
        return None
    mac = parse_mac(match.group(1) + match.group(2))
    if mac is None:
        return None
    return lookup.by_mac(mac)


def match_short_name(identity: str, lookup: DeviceLookup) -> str | None:
    """Case-insensitive prefix match on the name up to the first dot."""

    short_name = identity.split(".", 1)[0]
    if not short_name:
        return None
    return lookup.by_name_prefix(short_name)


IDENTITY_STRATEGIES: tuple[tuple[str, IdentityStrategy], ...] = (
    ("name", match_exact_name),
    ("mac", match_identity_mac),
    ("parenthesized mac", match_parenthesized_mac),
    ("short name", match_short_name),
)


def recover_address(
    identity: str | None,
    lookup: DeviceLookup,
    strategies: tuple[tuple[str, IdentityStrategy], ...] = IDENTITY_STRATEGIES,
) -> tuple[str, str] | None:
    """Return ``(address, strategy name)`` for the first strategy that matches."""

    if not identity:
        return None
    for name, strategy in strategies:
        address = strategy(identity, lookup)
        if address:
            return address, name
    return None
