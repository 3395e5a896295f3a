"""Pydantic schemas for captured leads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

LeadOutcome = Literal["lead", "no_lead", "voicemail"]


class LeadRecord(BaseModel):
    """Structured lead handed to the persistence layer once per call."""

    name: str = ""
    phone: str = ""
    vehicle_year: str = ""
    vehicle_make: str = ""
    vehicle_model: str = ""
    service_type: str = ""
    postal_code: str = ""
    raw_line: str = ""

    outcome: LeadOutcome = "lead"
    call_sid: str | None = None
    caller: str | None = Field(default=None, description="Caller number as reported by Twilio.")
    called: str | None = Field(default=None, description="Dialed number, used to resolve the business.")
    recording_url: str | None = None
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def vehicle(self) -> str:
        return " ".join(part for part in (self.vehicle_year, self.vehicle_make, self.vehicle_model) if part)
