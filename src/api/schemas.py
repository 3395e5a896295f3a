"""API-facing Pydantic models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    status: str = "ok"


class LeadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    business_id: int | None
    created_at: datetime
    call_sid: str | None
    caller: str | None
    outcome: str
    name: str | None
    phone: str | None
    vehicle_year: str | None
    vehicle_make: str | None
    vehicle_model: str | None
    service_type: str | None
    postal_code: str | None
    recording_url: str | None
    raw_line: str | None


class BusinessRequest(BaseModel):
    name: str = Field(min_length=1)
    e164: str = Field(pattern=r"^\+[1-9]\d{6,14}$", description="E.164 phone number, e.g. +16055550100")
    timezone: str = Field(default="America/Chicago")


class BusinessResponse(BaseModel):
    id: int
    name: str
    timezone: str
    phone_numbers: list[str]


class DevLeadResponse(BaseModel):
    written: bool
    raw_line: str
