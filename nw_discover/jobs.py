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
"""Job queue backed by the ``admin`` table."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import or_, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func

from nw_discover.models import DeviceRecord, DeviceSnapshot, DiscoveryJob
from nw_discover.schema import Admin

_LOGGER = logging.getLogger(__name__)

QUEUED = "queued"
STARTED = "started"


@dataclass
class Job:
    """A job being worked on; workers may update the device as they learn more."""

    job_id: int | None
    ip: str
    action: str
    subaction: str | None = None
    device_key: str | None = None
    device: DeviceRecord | None = None
    snapshot: DeviceSnapshot | None = None


class JobQueue:
    """Insert, claim and complete jobs."""

    def __init__(self, factory: sessionmaker) -> None:
        self._factory = factory

    def insert(self, job: DiscoveryJob) -> bool:
        """Queue a job unless an equivalent one is already waiting."""

        with self._factory.begin() as session:
            duplicate = select(Admin.job).where(
                Admin.status == QUEUED,
                Admin.action == job.action,
            )
            if job.device_key:
                duplicate = duplicate.where(
                    or_(Admin.device == job.device, Admin.device_key == job.device_key)
                )
            else:
                duplicate = duplicate.where(Admin.device == job.device)
            if session.scalars(duplicate.limit(1)).first() is not None:
                _LOGGER.debug("queue - %s job for %s already queued", job.action, job.device)
                return False

            session.add(
                Admin(
                    device=job.device,
                    action=job.action,
                    subaction=job.subaction,
                    device_key=job.device_key,
                    status=QUEUED,
                )
            )
        return True

    def take(self, limit: int | None = None) -> list[Job]:
        """Claim queued jobs, oldest first."""

        with self._factory.begin() as session:
            statement = (
                select(Admin).where(Admin.status == QUEUED).order_by(Admin.job).with_for_update()
            )
            if limit is not None:
                statement = statement.limit(limit)
            rows = session.scalars(statement).all()
            for row in rows:
                row.status = STARTED
                row.started = func.now()
            return [
                Job(
                    job_id=row.job,
                    ip=row.device,
                    action=row.action,
                    subaction=row.subaction,
                    device_key=row.device_key,
                )
                for row in rows
            ]

    def finish(self, job: Job, status: str, log: str | None = None) -> None:
        """Record the outcome of a claimed job."""

        if job.job_id is None:
            return
        with self._factory.begin() as session:
            row = session.get(Admin, job.job_id, with_for_update=True)
            if row is None:
                _LOGGER.warning("queue - job %s vanished before completion", job.job_id)
                return
            row.status = status
            row.log = log
            row.finished = func.now()

    def pending(self) -> int:
        """Number of jobs still waiting."""

        with self._factory() as session:
            return session.scalar(
                select(func.count()).select_from(Admin).where(Admin.status == QUEUED)
            ) or 0
