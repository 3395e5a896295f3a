"""Webhook sink notifying an external CRM about captured leads."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from config.settings import get_settings
from leads.schemas import LeadRecord
from telephony.errors import LeadPersistenceError

LOGGER = logging.getLogger(__name__)


class WebhookLeadSink:
    """POSTs each lead as JSON to a configured endpoint."""

    def __init__(
        self,
        endpoint: str | None = None,
        api_key: str | None = None,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        endpoint = endpoint or settings.lead_webhook_url
        if not endpoint:
            raise ValueError("Lead webhook endpoint is not configured.")
        self._endpoint = endpoint
        self._api_key = api_key if api_key is not None else settings.lead_webhook_api_key
        self._timeout = timeout
        self._transport = transport

    async def save(self, record: LeadRecord) -> None:
        payload: dict[str, Any] = record.model_dump(mode="json")
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._endpoint, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.error("Lead webhook dispatch failed: %s", exc)
            raise LeadPersistenceError(f"Lead webhook failed: {exc}") from exc
