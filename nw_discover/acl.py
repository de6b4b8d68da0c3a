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
"""Access control lists matching devices and addresses.

An ACL is a list of rules. A target matches the ACL if any rule matches, or
every rule when the list contains ``op:and``. Rule forms:

* ``10.0.0.1`` or ``10.0.0.0/8``: address or prefix match
* ``vendor:cisco``: regex match against a device attribute
* ``group:name``: match against the rules of a configured host group
* ``!rule``: negation of any of the above
* anything else: regex match against the device DNS name or sysName
"""

from __future__ import annotations

import ipaddress
import logging
import re
from typing import Any, Sequence

from nw_discover.config import Settings

_LOGGER = logging.getLogger(__name__)

_PROPERTY_RULE = re.compile(r"^(?P<prop>[a-z_]+):(?P<value>.+)$")
_AND_OPERATOR = "op:and"


def check_acl_no(target: Any, rules: Sequence[str] | str | None, settings: Settings) -> bool:
    """Return True if the target matches the ACL; an empty ACL never matches."""

    rule_list = _as_list(rules)
    if not rule_list:
        return False
    return check_acl(target, rule_list, settings)


def check_acl_only(target: Any, rules: Sequence[str] | str | None, settings: Settings) -> bool:
    """Return True if the target matches the ACL; an empty ACL always matches."""

    rule_list = _as_list(rules)
    if not rule_list:
        return True
    return check_acl(target, rule_list, settings)


def check_acl(
    target: Any,
    rules: Sequence[str],
    settings: Settings,
    _seen_groups: frozenset[str] = frozenset(),
) -> bool:
    """Match a device record or an address string against a list of rules."""

    require_all = _AND_OPERATOR in rules
    results = [
        _match_rule(target, rule, settings, _seen_groups)
        for rule in rules
        if rule and rule != _AND_OPERATOR
    ]
    if not results:
        return False
    return all(results) if require_all else any(results)


def _match_rule(target: Any, rule: str, settings: Settings, seen_groups: frozenset[str]) -> bool:
    rule = rule.strip()
    if rule.startswith("!"):
        return not _match_rule(target, rule[1:], settings, seen_groups)

    if rule.startswith("group:"):
        group = rule[len("group:") :]
        if group in seen_groups:
            _LOGGER.warning("ACL host group %s refers to itself", group)
            return False
        group_rules = settings.host_groups.get(group)
        if not group_rules:
            _LOGGER.debug("ACL host group %s is not configured", group)
            return False
        return check_acl(target, group_rules, settings, seen_groups | {group})

    network = _parse_network(rule)
    if network is not None:
        address = _parse_address(_target_ip(target))
        return address is not None and address.version == network.version and address in network

    match = _PROPERTY_RULE.match(rule)
    if match:
        if isinstance(target, str):
            return False
        value = getattr(target, match.group("prop"), None)
        if value is None:
            return False
        return _regex_fullmatch(match.group("value"), str(value))

    if isinstance(target, str):
        return False
    names = [getattr(target, "dns", None), getattr(target, "name", None)]
    return any(name and _regex_fullmatch(rule, name) for name in names)


def _regex_fullmatch(pattern: str, value: str) -> bool:
    try:
        return re.fullmatch(pattern, value, flags=re.IGNORECASE) is not None
    except re.error:
        _LOGGER.debug("ignoring invalid ACL regex %r", pattern)
        return False


def _target_ip(target: Any) -> str | None:
    if isinstance(target, str):
        return target
    return getattr(target, "ip", None)


def _parse_address(raw: str | None) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    if not raw:
        return None
    try:
        return ipaddress.ip_address(raw)
    except ValueError:
        return None


def _parse_network(rule: str) -> ipaddress.IPv4Network | ipaddress.IPv6Network | None:
    try:
        return ipaddress.ip_network(rule, strict=False)
    except ValueError:
        return None


def _as_list(rules: Sequence[str] | str | None) -> list[str]:
    if rules is None:
        return []
    if isinstance(rules, str):
        return [rules]
    return [rule for rule in rules if rule]
