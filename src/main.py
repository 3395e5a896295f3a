"""Entry point for the Twilio to OpenAI Realtime call relay service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.routes import router as api_router
from config.settings import get_settings
from db.base import init_db
from telephony.errors import BridgeError

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    LOGGER.info(
        "Relay ready (env=%s, model=%s, pacer=%s, sinks=%s)",
        settings.environment,
        settings.openai_realtime_model,
        settings.pacer_mode,
        ",".join(settings.lead_sinks),
    )
    if not settings.openai_api_key:
        LOGGER.warning("OPENAI_API_KEY is not set; calls will be hung up after the greeting TwiML")
    yield


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Realtime Call Relay",
    description="Bridges Twilio calls to an OpenAI Realtime phone assistant and captures leads.",
    lifespan=lifespan,
)
app.include_router(api_router, prefix="/api")


@app.exception_handler(BridgeError)
async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
