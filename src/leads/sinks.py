"""Persistence targets for captured leads.

Every call hands exactly one ``LeadRecord`` to the configured sink. Sinks wrap
their own failures in ``LeadPersistenceError``; nothing here retries.
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError

from leads.schemas import LeadRecord
from telephony.errors import LeadPersistenceError

LOGGER = logging.getLogger(__name__)

CSV_HEADER: tuple[str, ...] = (
    "timestamp",
    "call_sid",
    "caller",
    "outcome",
    "name",
    "phone",
    "year",
    "make",
    "model",
    "service",
    "zip",
    "raw_or_recording",
)


class LeadSink(Protocol):
    async def save(self, record: LeadRecord) -> None:  # pragma: no cover - protocol stub
        ...


def _csv_line(values: Sequence[str]) -> str:
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(values)
    return buffer.getvalue()


def lead_csv_row(record: LeadRecord) -> str:
    return _csv_line(
        [
            record.captured_at.isoformat(),
            record.call_sid or "",
            record.caller or "",
            record.outcome,
            record.name,
            record.phone,
            record.vehicle_year,
            record.vehicle_make,
            record.vehicle_model,
            record.service_type,
            record.postal_code,
            record.raw_line or record.recording_url or "",
        ]
    )


class CsvLeadSink:
    """Append-only CSV file shared by all concurrent calls.

    Each row goes out as a single ``os.write`` on an ``O_APPEND`` descriptor, so
    rows from simultaneous calls (or worker processes) never interleave. The
    process creating the file writes header and first row in that same write.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def save(self, record: LeadRecord) -> None:
        try:
            await asyncio.to_thread(self._append, lead_csv_row(record))
        except OSError as exc:
            raise LeadPersistenceError(f"Could not append to {self._path}: {exc}") from exc
        LOGGER.info("Lead row appended to %s (outcome=%s)", self._path, record.outcome)

    def _append(self, row: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self._path, os.O_WRONLY | os.O_APPEND | os.O_CREAT | os.O_EXCL, 0o644)
            payload = _csv_line(CSV_HEADER) + row
        except FileExistsError:
            fd = os.open(self._path, os.O_WRONLY | os.O_APPEND)
            payload = row
        try:
            os.write(fd, payload.encode("utf-8"))
        finally:
            os.close(fd)


class DatabaseLeadSink:
    """Stores leads in the relational store, linked to the business owning the dialed number."""

    def __init__(self, leads=None, businesses=None) -> None:
        from db.repository import BusinessRepository, LeadRepository

        self._leads = leads or LeadRepository()
        self._businesses = businesses or BusinessRepository()

    async def save(self, record: LeadRecord) -> None:
        try:
            business_id = None
            if record.called:
                business = await self._businesses.find_by_number(record.called)
                business_id = business.id if business else None
                if business is None:
                    LOGGER.warning("No business linked to %s; storing lead unassigned", record.called)
            await self._leads.add_lead(record, business_id=business_id)
        except SQLAlchemyError as exc:
            raise LeadPersistenceError(f"Database write failed: {exc}") from exc


class CompositeLeadSink:
    """Fans one record out to several sinks; a failing sink does not stop the others."""

    def __init__(self, sinks: Sequence[LeadSink]) -> None:
        self._sinks = list(sinks)

    @property
    def sinks(self) -> list[LeadSink]:
        return list(self._sinks)

    async def save(self, record: LeadRecord) -> None:
        failures: list[str] = []
        for sink in self._sinks:
            try:
                await sink.save(record)
            except LeadPersistenceError as exc:
                LOGGER.error("Lead sink %s failed: %s", type(sink).__name__, exc.detail)
                failures.append(exc.detail)
        if failures:
            raise LeadPersistenceError("; ".join(failures))
