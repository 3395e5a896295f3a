"""FastAPI routes for health, lead review and business administration."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError

from api.dependencies import (
    get_business_repository,
    get_lead_repository,
    get_lead_sink,
    require_admin_key,
)
from api.schemas import BusinessRequest, BusinessResponse, DevLeadResponse, HealthResponse, LeadResponse
from api.twilio_routes import router as twilio_router
from config.settings import get_settings
from db.repository import BusinessRepository, LeadRepository, default_business_profile
from leads.extraction import parse_lead_line
from leads.sinks import LeadSink
from telephony.errors import LeadPersistenceError

LOGGER = logging.getLogger(__name__)

SAMPLE_LEAD_LINE = (
    "LEAD: Name=Test Caller; Phone=605-555-1212; YMM=2018 Honda Civic; Service=Lockout; ZIP=57106"
)

router = APIRouter()
router.include_router(twilio_router)


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse()


@router.get(
    "/leads",
    response_model=list[LeadResponse],
    dependencies=[Depends(require_admin_key)],
)
async def list_leads(
    limit: int = Query(default=20, ge=1, le=500),
    repo: LeadRepository = Depends(get_lead_repository),
) -> list[LeadResponse]:
    try:
        leads = await repo.list_recent(limit=limit)
    except SQLAlchemyError as exc:
        raise LeadPersistenceError(f"Could not read leads: {exc}") from exc
    return [LeadResponse.model_validate(lead) for lead in leads]


@router.post(
    "/admin/businesses",
    response_model=BusinessResponse,
    dependencies=[Depends(require_admin_key)],
)
async def add_business(
    payload: BusinessRequest,
    repo: BusinessRepository = Depends(get_business_repository),
) -> BusinessResponse:
    business = await repo.upsert_business(
        name=payload.name,
        e164=payload.e164,
        timezone=payload.timezone,
        profile=default_business_profile(business_name=payload.name),
    )
    LOGGER.info("Business %s linked to %s", business.id, payload.e164)
    return BusinessResponse(
        id=business.id,
        name=business.name,
        timezone=business.timezone,
        phone_numbers=[number.e164 for number in business.phone_numbers],
    )


@router.get("/dev/lead", response_model=DevLeadResponse)
async def write_sample_lead(lead_sink: LeadSink = Depends(get_lead_sink)) -> DevLeadResponse:
    if get_settings().environment == "prod":
        raise HTTPException(status_code=404, detail="Not found")

    record = parse_lead_line(SAMPLE_LEAD_LINE)
    await lead_sink.save(record)
    return DevLeadResponse(written=True, raw_line=record.raw_line)
