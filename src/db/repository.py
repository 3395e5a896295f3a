"""Repository utilities for businesses, phone numbers and leads."""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, desc, select
from sqlalchemy.orm import selectinload

from db.base import AsyncSessionFactory
from db.models import Business, Lead, PhoneNumber
from leads.schemas import LeadRecord


def default_business_profile(
    *,
    after_hours_surcharge: float = 40,
    included_miles: float = 10,
    per_mile: float = 2.0,
    business_name: str = "",
) -> dict[str, Any]:
    """Profile stored for a new business; edited later outside this service."""

    return {
        "hours": {
            "mon": ["08:00-22:00"],
            "tue": ["08:00-22:00"],
            "wed": ["08:00-22:00"],
            "thu": ["08:00-22:00"],
            "fri": ["08:00-22:00"],
            "sat": ["09:00-20:00"],
            "sun": ["10:00-18:00"],
        },
        "pricing": {
            "afterHoursSurcharge": after_hours_surcharge,
            "travel": {"includedMiles": included_miles, "perMileAfter": per_mile, "oneWay": True},
        },
        "voicemailGreeting": (
            f"Thank you for calling {business_name}. We are currently closed. "
            "Please leave your name, phone number, the year, make and model of your vehicle, "
            "and the service you need."
        ),
    }


class BusinessRepository:
    """Async repository for tenants and their numbers."""

    async def upsert_business(
        self,
        *,
        name: str,
        e164: str,
        timezone: str = "America/Chicago",
        profile: dict[str, Any] | None = None,
    ) -> Business:
        """Create or update a business by name and (re)link the number to it."""

        async with AsyncSessionFactory() as session:
            result = await session.execute(select(Business).where(Business.name == name))
            business = result.scalars().first()
            if business is None:
                business = Business(name=name, timezone=timezone, profile=profile or {})
                session.add(business)
            else:
                business.timezone = timezone
                if profile is not None:
                    business.profile = profile
            await session.flush()

            result = await session.execute(select(PhoneNumber).where(PhoneNumber.e164 == e164))
            number = result.scalar_one_or_none()
            if number is None:
                session.add(PhoneNumber(e164=e164, business_id=business.id))
            else:
                number.business_id = business.id

            await session.commit()
            return await self._get(session, business.id)

    async def _get(self, session, business_id: int) -> Business:
        query = (
            select(Business)
            .where(Business.id == business_id)
            .options(selectinload(Business.phone_numbers))
            .execution_options(populate_existing=True)
        )
        result = await session.execute(query)
        return result.scalar_one()

    async def find_by_number(self, e164: str) -> Business | None:
        async with AsyncSessionFactory() as session:
            query = select(Business).join(PhoneNumber).where(PhoneNumber.e164 == e164)
            result = await session.execute(query)
            return result.scalars().first()

    async def list_businesses(self) -> list[Business]:
        async with AsyncSessionFactory() as session:
            result = await session.execute(select(Business).order_by(Business.id))
            return list(result.scalars().all())

    async def delete_business(self, *, business_id: int | None = None, e164: str | None = None) -> bool:
        """Delete a business (with its numbers and leads) by id or by one of its numbers."""

        async with AsyncSessionFactory() as session:
            if business_id is None and e164 is not None:
                result = await session.execute(
                    select(PhoneNumber.business_id).where(PhoneNumber.e164 == e164)
                )
                business_id = result.scalar_one_or_none()
            if business_id is None:
                return False

            await session.execute(delete(Lead).where(Lead.business_id == business_id))
            await session.execute(delete(PhoneNumber).where(PhoneNumber.business_id == business_id))
            result = await session.execute(delete(Business).where(Business.id == business_id))
            await session.commit()
            return bool(result.rowcount)


class LeadRepository:
    """Async repository for call outcomes."""

    async def add_lead(self, record: LeadRecord, *, business_id: int | None = None) -> Lead:
        async with AsyncSessionFactory() as session:
            lead = Lead(
                business_id=business_id,
                created_at=record.captured_at,
                call_sid=record.call_sid,
                caller=record.caller,
                outcome=record.outcome,
                name=record.name or None,
                phone=record.phone or None,
                vehicle_year=record.vehicle_year or None,
                vehicle_make=record.vehicle_make or None,
                vehicle_model=record.vehicle_model or None,
                service_type=record.service_type or None,
                postal_code=record.postal_code or None,
                recording_url=record.recording_url,
                raw_line=record.raw_line or None,
            )
            session.add(lead)
            await session.commit()
            await session.refresh(lead)
            return lead

    async def list_recent(self, *, limit: int = 20) -> list[Lead]:
        async with AsyncSessionFactory() as session:
            query = select(Lead).order_by(desc(Lead.id)).limit(limit)
            result = await session.execute(query)
            return list(result.scalars().all())
