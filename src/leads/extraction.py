"""Detection and parsing of the structured ``LEAD:`` line emitted by the assistant."""

from __future__ import annotations

import logging
import re
from typing import Final

from leads.schemas import LeadRecord

LOGGER = logging.getLogger(__name__)

LEAD_MARKER: Final[str] = "LEAD:"

_LINE_BREAK = re.compile(r"\r?\n")
_LEAD_FIELDS = re.compile(
    r"Name\s*=\s*(?P<name>[^;]+)"
    r".*?Phone\s*=\s*(?P<phone>[^;]+)"
    r".*?YMM\s*=\s*(?P<ymm>[^;]+)"
    r".*?Service\s*=\s*(?P<service>[^;]+)"
    r".*?ZIP\s*=\s*(?P<zip>[^;]+)",
    re.IGNORECASE,
)
_YEAR_MAKE_MODEL = re.compile(r"^(?P<year>\d{4})\s+(?P<make>[A-Za-z0-9-]+)\s+(?P<model>.+)$")


def is_lead_line(line: str, marker: str = LEAD_MARKER) -> bool:
    return line.strip().upper().startswith(marker.upper())


def split_vehicle(descriptor: str) -> tuple[str, str, str]:
    """Split ``"2019 Toyota Camry"`` into year, make and model.

    Descriptors without a leading 4-digit year are kept whole as the model.
    """

    descriptor = descriptor.strip()
    match = _YEAR_MAKE_MODEL.match(descriptor)
    if not match:
        return "", "", descriptor
    return match["year"], match["make"], match["model"].strip()


def parse_lead_line(line: str) -> LeadRecord:
    raw = (line or "").strip()
    match = _LEAD_FIELDS.search(raw)
    if not match:
        LOGGER.warning("Lead line did not match the expected layout: %s", raw)
        return LeadRecord(raw_line=raw)

    year, make, model = split_vehicle(match["ymm"])
    return LeadRecord(
        name=match["name"].strip(),
        phone=match["phone"].strip(),
        vehicle_year=year,
        vehicle_make=make,
        vehicle_model=model,
        service_type=match["service"].strip(),
        postal_code=match["zip"].strip(),
        raw_line=raw,
    )


class LeadExtractor:
    """Reassembles streamed text deltas into lines and remembers the last lead line.

    Only bookkeeping happens while the call runs; ``record()`` is read at hang-up.
    """

    def __init__(self, marker: str = LEAD_MARKER) -> None:
        self._marker = marker
        self._partial = ""
        self.last_line: str | None = None

    def feed(self, delta: str) -> None:
        if not delta:
            return
        *complete, self._partial = _LINE_BREAK.split(self._partial + delta)
        for line in complete:
            self._inspect(line)

    def end_of_text(self) -> None:
        """Treat the buffered tail as a complete line (end of one response)."""

        tail, self._partial = self._partial, ""
        if tail:
            self._inspect(tail)

    def record(self) -> LeadRecord | None:
        self.end_of_text()
        if self.last_line is None:
            return None
        return parse_lead_line(self.last_line)

    def _inspect(self, line: str) -> None:
        if not is_lead_line(line, self._marker):
            return
        if self.last_line is not None:
            LOGGER.info("Replacing earlier lead line with a newer one")
        self.last_line = line.strip()
