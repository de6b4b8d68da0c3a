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
"""Worker registration and dispatch.

Workers are registered against an action (``discover``, ``macsuck``, ...)
and a phase of that action, optionally restricted to a driver and to
devices matching ``only``/``no`` ACLs. When a job runs, the phases of its
action execute in the order they were first registered, after the
``00init`` phase. Within a phase, primary workers run first until one
succeeds, then every other worker runs in registration order.

While a worker runs, the process-wide ``device_auth`` setting holds only the
stanzas the worker may use; the full list is restored afterwards.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from nw_discover.acl import check_acl_no, check_acl_only
from nw_discover.config import Settings, scoped_device_auth
from nw_discover.jobs import Job

_LOGGER = logging.getLogger(__name__)

INIT_PHASE = "00init"

_NAME_PATTERN = re.compile(r"^[0-9a-z_]+$")


class Action(str, enum.Enum):
    DISCOVER = "discover"
    ARPNIP = "arpnip"
    MACSUCK = "macsuck"
    EXPIRE = "expire"
    NBTSTAT = "nbtstat"


class WorkerConfigError(ValueError):
    """A worker registration is invalid."""


class StatusLevel(str, enum.Enum):
    DONE = "done"
    DEFER = "defer"
    ERROR = "error"
    SKIP = "skip"


@dataclass(frozen=True)
class Status:
    """Outcome of a worker or a whole job."""

    level: StatusLevel
    message: str = ""

    @classmethod
    def done(cls, message: str = "") -> Status:
        return cls(StatusLevel.DONE, message)

    @classmethod
    def defer(cls, message: str = "") -> Status:
        return cls(StatusLevel.DEFER, message)

    @classmethod
    def error(cls, message: str = "") -> Status:
        return cls(StatusLevel.ERROR, message)

    @classmethod
    def skip(cls, message: str = "") -> Status:
        return cls(StatusLevel.SKIP, message)

    @property
    def is_done(self) -> bool:
        return self.level is StatusLevel.DONE


@dataclass(frozen=True)
class WorkerConfig:
    """Registration descriptor for a worker."""

    action: Action
    phase: str = INIT_PHASE
    driver: str | None = None
    only: tuple[str, ...] = ()
    no: tuple[str, ...] = ()
    primary: bool = False
    name: str | None = None


WorkerCallback = Callable[[Job, WorkerConfig], Optional[Status]]


@dataclass(frozen=True)
class RegisteredWorker:
    config: WorkerConfig
    callback: WorkerCallback

    @property
    def name(self) -> str:
        return self.config.name or getattr(self.callback, "__qualname__", repr(self.callback))


@dataclass(frozen=True)
class WorkerOutcome:
    worker: str
    phase: str
    status: Status


@dataclass
class WorkerRegistry:
    """Registered workers of this process, and how to run them."""

    settings: Settings
    _hooks: dict[str, list[RegisteredWorker]] = field(default_factory=dict)
    _phase_order: dict[Action, list[str]] = field(default_factory=dict)
    _frozen: bool = False

    def register_worker(self, config: WorkerConfig | dict[str, Any], callback: WorkerCallback) -> None:
        """Register ``callback`` under the action and phase named by ``config``."""

        if self._frozen:
            raise WorkerConfigError("worker registry is frozen; register workers at startup")
        if not callable(callback):
            raise WorkerConfigError("worker callback must be callable")
        config = validate_worker_config(config)

        hook = hook_name(config.action, config.phase, config.primary)
        if hook not in self._hooks:
            self._hooks[hook] = []
            phases = self._phase_order.setdefault(config.action, [])
            if config.phase != INIT_PHASE and config.phase not in phases:
                phases.append(config.phase)

        entry = RegisteredWorker(config, callback)
        self._hooks[hook].append(entry)
        _LOGGER.debug("registered worker %s on hook %s", entry.name, hook)

    def worker(self, **config: Any) -> Callable[[WorkerCallback], WorkerCallback]:
        """Decorator form of ``register_worker``."""

        def decorator(callback: WorkerCallback) -> WorkerCallback:
            self.register_worker(config, callback)
            return callback

        return decorator

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def phases(self, action: Action | str) -> list[str]:
        """Phases of ``action`` in execution order, excluding the init phase."""

        return list(self._phase_order.get(Action(action), []))

    def hooks(self, action: Action | str, phase: str, primary: bool = False) -> list[RegisteredWorker]:
        return list(self._hooks.get(hook_name(Action(action), phase, primary), []))

    def reduce_device_auth(self, config: WorkerConfig, job: Job) -> list[dict[str, Any]]:
        """Return the device_auth stanzas this worker may use for this job."""

        device = job.device
        usable: list[dict[str, Any]] = []
        for stanza in self.settings.device_auth:
            if device is not None:
                if config.no and check_acl_no(device, config.no, self.settings):
                    continue
                if config.only and not check_acl_only(device, config.only, self.settings):
                    continue
            if (
                "driver" in stanza
                and config.driver is not None
                and (stanza.get("driver") or "") != config.driver
            ):
                continue
            usable.append(stanza)
        return usable

    def run_worker(self, entry: RegisteredWorker, job: Job) -> Status:
        """Run one worker with its reduced device_auth; never raises."""

        stanzas = self.reduce_device_auth(entry.config, job)
        if not stanzas:
            _LOGGER.debug("[%s] %s - not applicable, no usable device_auth", job.ip, entry.name)
            return Status.skip(f"{entry.name} not applicable to {job.ip}")

        with scoped_device_auth(self.settings, stanzas):
            try:
                result = entry.callback(job, entry.config)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.debug("[%s] %s - worker failed", job.ip, entry.name, exc_info=True)
                _LOGGER.error("[%s] %s - worker failed: %s", job.ip, entry.name, exc)
                return Status.error(f"{entry.name} failed: {exc}")

        if isinstance(result, Status):
            return result
        return Status.done(f"{entry.name} finished")

    def run_phase(self, action: Action | str, phase: str, job: Job) -> list[WorkerOutcome]:
        """Run the primary then the secondary workers of one phase."""

        outcomes: list[WorkerOutcome] = []
        for entry in self.hooks(action, phase, primary=True):
            status = self.run_worker(entry, job)
            outcomes.append(WorkerOutcome(entry.name, phase, status))
            if status.is_done:
                break
        for entry in self.hooks(action, phase, primary=False):
            status = self.run_worker(entry, job)
            outcomes.append(WorkerOutcome(entry.name, phase, status))
        return outcomes

    def run_action(self, job: Job) -> tuple[Status, list[WorkerOutcome]]:
        """Run every phase of the job's action and summarize the result."""

        try:
            action = Action(job.action)
        except ValueError:
            return Status.error(f"unknown action {job.action}"), []

        outcomes = self.run_phase(action, INIT_PHASE, job)
        if outcomes and not any(outcome.status.is_done for outcome in outcomes):
            _LOGGER.info("[%s] %s - init phase did not succeed, stopping", job.ip, action.value)
            return summarize(outcomes), outcomes

        for phase in self.phases(action):
            outcomes.extend(self.run_phase(action, phase, job))
        return summarize(outcomes), outcomes


def hook_name(action: Action, phase: str, primary: bool) -> str:
    return f"{action.value}_{phase}" + ("_primary" if primary else "")


def validate_worker_config(config: WorkerConfig | dict[str, Any]) -> WorkerConfig:
    """Check a registration descriptor against the known actions and naming rules."""

    raw = dict(config.__dict__) if isinstance(config, WorkerConfig) else dict(config)
    unknown = sorted(set(raw) - set(WorkerConfig.__dataclass_fields__))
    if unknown:
        raise WorkerConfigError(f"unknown worker settings: {', '.join(unknown)}")

    try:
        action = Action(raw.get("action"))
    except ValueError as exc:
        raise WorkerConfigError(f"unknown worker action: {raw.get('action')!r}") from exc

    phase = raw.get("phase") or INIT_PHASE
    if not isinstance(phase, str) or not _NAME_PATTERN.match(phase):
        raise WorkerConfigError(f"worker phase does not match naming rules: {phase!r}")

    driver = raw.get("driver")
    if driver is not None and (not isinstance(driver, str) or not _NAME_PATTERN.match(driver)):
        raise WorkerConfigError(f"worker driver does not match naming rules: {driver!r}")

    return WorkerConfig(
        action=action,
        phase=phase,
        driver=driver,
        only=_as_rules(raw.get("only")),
        no=_as_rules(raw.get("no")),
        primary=bool(raw.get("primary")),
        name=raw.get("name"),
    )


def summarize(outcomes: Sequence[WorkerOutcome]) -> Status:
    """Collapse worker outcomes into one job status."""

    for level in (StatusLevel.DEFER, StatusLevel.ERROR, StatusLevel.DONE):
        matching = [outcome.status.message for outcome in outcomes if outcome.status.level is level]
        if matching:
            return Status(level, "; ".join(message for message in matching if message))
    return Status.skip("no worker ran")


def _as_rules(raw: Any) -> tuple[str, ...]:
    if not raw:
        return ()
    if isinstance(raw, str):
        return (raw,)
    return tuple(str(rule) for rule in raw)
