"""SQLAlchemy models for businesses, their phone numbers and captured leads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Business(Base):
    """A tenant answering calls on one or more numbers."""

    __tablename__ = "businesses"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), index=True)
    timezone: Mapped[str] = mapped_column(String(64), default="America/Chicago")
    profile: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=_utcnow, onupdate=_utcnow)

    phone_numbers: Mapped[list[PhoneNumber]] = relationship(
        back_populates="business",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    leads: Mapped[list[Lead]] = relationship(
        back_populates="business",
        cascade="all, delete-orphan",
        lazy="noload",
    )


class PhoneNumber(Base):
    """E.164 number routed to a business."""

    __tablename__ = "phone_numbers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    e164: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)

    business: Mapped[Business] = relationship(back_populates="phone_numbers")


class Lead(Base):
    """One persisted call outcome."""

    __tablename__ = "leads"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    business_id: Mapped[int | None] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)
    call_sid: Mapped[str | None] = mapped_column(String(64), index=True)
    caller: Mapped[str | None] = mapped_column(String(32))
    outcome: Mapped[str] = mapped_column(String(16), default="lead")
    name: Mapped[str | None] = mapped_column(String(200))
    phone: Mapped[str | None] = mapped_column(String(64))
    vehicle_year: Mapped[str | None] = mapped_column(String(8))
    vehicle_make: Mapped[str | None] = mapped_column(String(64))
    vehicle_model: Mapped[str | None] = mapped_column(String(128))
    service_type: Mapped[str | None] = mapped_column(String(128))
    postal_code: Mapped[str | None] = mapped_column(String(16))
    recording_url: Mapped[str | None] = mapped_column(Text())
    raw_line: Mapped[str | None] = mapped_column(Text())

    business: Mapped[Business | None] = relationship(back_populates="leads", lazy="selectin")
