"""Twilio voice webhook endpoints."""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Form, Query, Request
from fastapi.responses import Response

from voicedesk.core.config import settings
from voicedesk.core.dependencies import (
    get_call_persistence,
    get_call_registry,
    get_transfer_coordinator,
)
from voicedesk.services.call_session.manager import PROVIDER_UNAVAILABLE
from voicedesk.services.call_session.registry import CallStateRegistry
from voicedesk.services.persistence.calls import CallPersistenceService
from voicedesk.services.telephony.twiml import TwiMLBuilder, extract_phone_from_sip
from voicedesk.services.transfer.coordinator import TransferCoordinator

router = APIRouter()
logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"completed", "failed", "busy", "no-answer", "canceled"}

ERROR_MESSAGE = "We're sorry, we are unable to take your call right now. Please try again later."
PROVIDER_UNAVAILABLE_MESSAGE = (
    "We're sorry, our assistant is not available at the moment. Please call back later. Goodbye."
)


def get_base_url(request: Request) -> str:
    """
    Get the base URL for constructing absolute URLs.

    Uses BASE_URL environment variable if set, otherwise constructs from request.
    """
    if settings.base_url:
        return settings.base_url.rstrip('/')
    return str(request.base_url).rstrip('/')


def xml_response(twiml: str) -> Response:
    return Response(content=twiml, media_type="application/xml")


@router.post("/incoming-call")
async def handle_incoming_call(
    request: Request,
    CallSid: str = Form(...),
    From: Optional[str] = Form(None),
    To: Optional[str] = Form(None),
    registry: CallStateRegistry = Depends(get_call_registry),
):
    """
    Handle incoming call from Twilio.

    Registers the call and connects it to the media stream.
    """
    caller = extract_phone_from_sip(From)
    called = extract_phone_from_sip(To)
    logger.info(
        f"[INCOMING CALL] Received incoming call webhook - CallSid: {CallSid}, "
        f"From: {caller}, To: {called}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        registry.register(CallSid, caller, called)
        twiml = TwiMLBuilder(get_base_url(request)).connect_stream(caller, called)
        logger.info(f"[INCOMING CALL] Connecting call to media stream - CallSid: {CallSid}")
        return xml_response(twiml)

    except Exception as e:
        logger.error(
            f"[INCOMING CALL] Error processing incoming call - CallSid: {CallSid}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        return xml_response(TwiMLBuilder.hangup(ERROR_MESSAGE))


@router.post("/transfer-complete")
async def handle_transfer_complete(
    CallSid: str = Form(...),
    coordinator: TransferCoordinator = Depends(get_transfer_coordinator),
    call_persistence: CallPersistenceService = Depends(get_call_persistence),
):
    """
    Handle the Connect action callback, requested when the media stream ends.

    Redirects the call if a transfer was armed, otherwise hangs up.
    """
    logger.info(f"[TRANSFER COMPLETE] Media stream ended - CallSid: {CallSid}")

    try:
        pending, call = coordinator.retire(CallSid)
    except Exception as e:
        logger.error(
            f"[TRANSFER COMPLETE] Error retiring call - CallSid: {CallSid}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        return xml_response(TwiMLBuilder.hangup())

    if pending is None:
        if call is not None and call.end_reason == PROVIDER_UNAVAILABLE:
            logger.info(f"[TRANSFER COMPLETE] Provider unavailable, apologising - CallSid: {CallSid}")
            return xml_response(TwiMLBuilder.hangup(PROVIDER_UNAVAILABLE_MESSAGE))
        logger.info(f"[TRANSFER COMPLETE] No pending transfer, hanging up - CallSid: {CallSid}")
        return xml_response(TwiMLBuilder.hangup())

    logger.info(
        f"[TRANSFER COMPLETE] Redirecting call - CallSid: {CallSid}, Target: {pending.target_address}"
    )
    try:
        await call_persistence.mark_transferred(CallSid, pending.target_address)
    except Exception as e:
        logger.error(
            f"[TRANSFER COMPLETE] Failed to record transfer - CallSid: {CallSid}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )

    return xml_response(
        TwiMLBuilder.dial(
            pending.target_address,
            timeout=settings.dial_timeout_seconds,
            byoc_trunk_sid=settings.byoc_trunk_sid,
        )
    )


@router.post("/transfer-status")
async def handle_transfer_status(
    CallSid: str = Form(...),
    ReferCallStatus: Optional[str] = Form(None),
    ReferSipResponseCode: Optional[str] = Form(None),
):
    """Log SIP REFER progress reported by Twilio."""
    logger.info(
        f"[TRANSFER STATUS] CallSid: {CallSid}, ReferCallStatus: {ReferCallStatus}, "
        f"SipResponseCode: {ReferSipResponseCode}"
    )
    return xml_response(TwiMLBuilder.empty())


@router.post("/call-status")
async def handle_call_status(
    request: Request,
    CallSid: str = Form(...),
    CallStatus: str = Form(...),
    CallDuration: Optional[str] = Form(None),
    registry: CallStateRegistry = Depends(get_call_registry),
    call_persistence: CallPersistenceService = Depends(get_call_persistence),
):
    """
    Handle call status updates from Twilio.

    Terminal statuses update the stored call and forget the live call state.
    """
    logger.info(
        f"[CALL STATUS] Received status update - CallSid: {CallSid}, "
        f"CallStatus: {CallStatus}, Duration: {CallDuration}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        if CallStatus in TERMINAL_STATUSES:
            registry.remove(CallSid)

            duration = int(CallDuration) if CallDuration and CallDuration.isdigit() else None
            record = await call_persistence.get_call_by_sid(CallSid)
            if record is not None:
                if record.status == "transferred":
                    status = "transferred"
                else:
                    status = "completed" if CallStatus == "completed" else "failed"
                await call_persistence.update_call_status(
                    CallSid, status, ended_at=record.ended_at or datetime.utcnow(), duration=duration
                )
            logger.info(
                f"[CALL STATUS] Call ended - CallSid: {CallSid}, Final status: {CallStatus}"
            )
        else:
            logger.debug(
                f"[CALL STATUS] Status update received but no action needed - "
                f"CallSid: {CallSid}, CallStatus: {CallStatus}"
            )

        return Response(content="OK", media_type="text/plain")

    except Exception as e:
        logger.error(
            f"[CALL STATUS] Error handling call status update - CallSid: {CallSid}, "
            f"CallStatus: {CallStatus}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        # Still return OK to Twilio to avoid retries
        return Response(content="OK", media_type="text/plain")


@router.post("/outbound-call")
async def handle_outbound_call(
    request: Request,
    mode: str = Query("agent"),
    CallSid: Optional[str] = Form(None),
    From: Optional[str] = Form(None),
    To: Optional[str] = Form(None),
    registry: CallStateRegistry = Depends(get_call_registry),
):
    """
    TwiML for calls we place ourselves.

    mode=agent connects the callee to the agent, mode=simple plays a test
    message and hangs up.
    """
    logger.info(f"[OUTBOUND CALL] Outbound call answered - CallSid: {CallSid}, Mode: {mode}")

    if mode != "agent":
        return xml_response(
            TwiMLBuilder.hangup(f"Hello, this is a test call from {settings.company_name}. Goodbye.")
        )

    caller = extract_phone_from_sip(From)
    called = extract_phone_from_sip(To)
    if CallSid:
        registry.register(CallSid, caller, called)
    twiml = TwiMLBuilder(get_base_url(request)).say_then_connect_stream(
        "One moment please.", caller, called, outbound=True
    )
    return xml_response(twiml)
