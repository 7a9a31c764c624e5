"""
HTTP surface for the chat widget and the appointment dashboard.

Routes:
    POST  /api/chat                      one chat turn
    GET   /api/chat/{session_id}         conversation transcript
    GET   /api/appointments?sessionId=   appointments booked in a session
    GET   /api/appointments/{id}         one appointment
    PATCH /api/appointments/{id}/status  change appointment status
    GET   /api/health                    liveness plus service statistics
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from vetchat.api.rate_limiter import RateLimiterMiddleware
from vetchat.context import AppContext, build_app_context
from vetchat.housekeeping import Housekeeper
from vetchat.schemas.appointment_schema import Appointment, AppointmentStatus
from vetchat.schemas.chat_schema import (
    ChatRequest,
    ChatResponse,
    ConversationResponse,
    StatusUpdateRequest,
)
from vetchat.tools.store import PersistenceError

logger = logging.getLogger(__name__)

STORE_UNAVAILABLE_MESSAGE = "The service is temporarily unavailable. Please try again shortly."


def create_app(context: Optional[AppContext] = None, run_housekeeping: bool = True) -> FastAPI:
    """Build the FastAPI application around ``context``."""
    ctx = context or build_app_context()
    started_at = datetime.now()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        housekeeper = Housekeeper(ctx) if run_housekeeping else None
        if housekeeper is not None:
            await housekeeper.start()
        yield
        if housekeeper is not None:
            await housekeeper.stop()

    app = FastAPI(title=ctx.config.clinic.name, version="1.0.0", lifespan=lifespan)
    app.state.context = ctx

    app.add_middleware(RateLimiterMiddleware, limiter=ctx.rate_limiter)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(ctx.config.server.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post("/api/chat", response_model=ChatResponse, response_model_by_alias=True)
    async def chat(payload: ChatRequest) -> ChatResponse:
        try:
            return await ctx.orchestrator.handle_message(
                payload.message, payload.session_id, payload.context
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from None
        except PersistenceError as exc:
            logger.error("Chat turn failed on storage: %s", exc)
            raise HTTPException(status_code=503, detail=STORE_UNAVAILABLE_MESSAGE) from None

    @app.get(
        "/api/chat/{session_id}",
        response_model=ConversationResponse,
        response_model_by_alias=True,
    )
    async def get_conversation(session_id: str) -> ConversationResponse:
        session = await ctx.orchestrator.get_conversation(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return ConversationResponse(
            session_id=session.session_id,
            messages=session.messages,
            booking_state=session.booking_state,
            created_at=session.created_at,
        )

    @app.get("/api/appointments", response_model=list[Appointment])
    async def list_appointments(session_id: str = Query(..., alias="sessionId")) -> list[Appointment]:
        return await ctx.store.find_appointments(session_id)

    @app.get("/api/appointments/{appointment_id}", response_model=Appointment)
    async def get_appointment(appointment_id: str) -> Appointment:
        appointment = await ctx.store.get_appointment(appointment_id)
        if appointment is None:
            raise HTTPException(status_code=404, detail="Appointment not found")
        return appointment

    @app.patch("/api/appointments/{appointment_id}/status", response_model=Appointment)
    async def update_status(appointment_id: str, payload: StatusUpdateRequest) -> Appointment:
        appointment = await ctx.store.update_appointment_status(appointment_id, payload.status)
        if appointment is None:
            raise HTTPException(status_code=404, detail="Appointment not found")
        if payload.status == AppointmentStatus.CANCELLED and appointment.slot_key:
            ctx.slot_manager.cancel_booking(appointment.slot_key)
        return appointment

    @app.get("/api/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "uptime_sec": round((datetime.now() - started_at).total_seconds(), 1),
            "cache": ctx.cache.get_statistics(),
            "slots": ctx.slot_manager.get_statistics(),
            "rate_limiter": ctx.rate_limiter.get_statistics(),
            "analytics": asdict(ctx.analytics.get_statistics()),
        }

    return app
