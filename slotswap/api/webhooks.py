from __future__ import annotations

import logging
from urllib.parse import parse_qsl
from xml.sax.saxutils import escape

from fastapi import APIRouter, Request, Response
from starlette.concurrency import run_in_threadpool

from slotswap.application.exceptions import (
    AuthenticationRequired,
    NoPendingOffer,
    OfferExpired,
    OfferNotFunded,
    PaymentCaptureFailed,
    PaymentReleaseFailed,
    ResponderMismatch,
    SlotSwapError,
    StoreUnavailable,
    UnrecognizedReply,
)
from slotswap.application.use_cases.notifications import (
    REPLY_ACK,
    REPLY_EXPIRED,
    REPLY_NO_OFFER,
    REPLY_PROMPT,
    REPLY_UNFUNDED,
)
from slotswap.core.config import settings
from slotswap.domain.entities.message import InboundReply
from slotswap.infrastructure.twilio.webhook_verify import verify_signature
from slotswap.wiring.dependencies import get_inbound_reply_use_case


router = APIRouter()
logger = logging.getLogger(__name__)


def twiml_message(text: str) -> Response:
    body = f'<?xml version="1.0" encoding="UTF-8"?><Response><Message>{escape(text)}</Message></Response>'
    return Response(content=body, media_type="text/xml")


@router.post("/webhooks/twilio")
async def twilio_webhook(request: Request) -> Response:
    body = await request.body()
    params = dict(parse_qsl(body.decode("utf-8"), keep_blank_values=True))

    url = settings.TWILIO_WEBHOOK_URL or str(request.url)
    signature = request.headers.get("X-Twilio-Signature")
    if not verify_signature(url, params, signature, settings.TWILIO_AUTH_TOKEN, settings.ENV):
        return Response(status_code=403)

    from_phone = params.get("From")
    if not from_phone:
        logger.warning("Inbound SMS without sender")
        return Response(status_code=400)

    reply = InboundReply(from_phone=from_phone, body=params.get("Body", ""), message_sid=params.get("MessageSid"))
    logger.info("Inbound SMS received", extra={"message_sid": reply.message_sid})

    try:
        use_case = get_inbound_reply_use_case()
        await run_in_threadpool(use_case.handle, reply)
    except UnrecognizedReply:
        return twiml_message(REPLY_PROMPT)
    except OfferExpired:
        return twiml_message(REPLY_EXPIRED)
    except (NoPendingOffer, ResponderMismatch):
        return twiml_message(REPLY_NO_OFFER)
    except OfferNotFunded as e:
        logger.warning("Accepted offer could not be paid", extra={"message_sid": reply.message_sid, "error": str(e)})
        return twiml_message(REPLY_UNFUNDED)
    except (PaymentCaptureFailed, PaymentReleaseFailed) as e:
        # raised after the decision is recorded; payouts and releases are followed up separately
        logger.error("Payment follow-up failed after reply", extra={"message_sid": reply.message_sid, "error": str(e)})
    except (StoreUnavailable, AuthenticationRequired) as e:
        logger.error("Record store unavailable for reply", extra={"message_sid": reply.message_sid, "error": str(e)})
        return Response(status_code=503)
    except SlotSwapError as e:
        logger.exception("Error handling inbound reply", extra={"message_sid": reply.message_sid, "error": str(e)})
        return Response(status_code=500)

    return twiml_message(REPLY_ACK)
