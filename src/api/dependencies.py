"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Annotated

from fastapi import Header, HTTPException

from config.settings import get_settings

if TYPE_CHECKING:  # pragma: no cover
    from db.repository import BusinessRepository, LeadRepository
    from leads.sinks import LeadSink
    from telephony.bridge import RealtimeConnectorFn


@lru_cache(maxsize=1)
def _lead_sink_factory() -> LeadSink:
    from leads.factory import build_lead_sink

    return build_lead_sink()


def get_lead_sink() -> LeadSink:
    return _lead_sink_factory()


def get_realtime_connector() -> RealtimeConnectorFn:
    from integrations.openai_realtime import RealtimeConnector

    return RealtimeConnector()


def get_business_repository() -> BusinessRepository:
    from db.repository import BusinessRepository

    return BusinessRepository()


def get_lead_repository() -> LeadRepository:
    from db.repository import LeadRepository

    return LeadRepository()


def require_admin_key(x_api_key: Annotated[str | None, Header()] = None) -> None:
    settings = get_settings()
    if settings.admin_api_key and x_api_key != settings.admin_api_key:
        raise HTTPException(status_code=401, detail="Unauthorized")
