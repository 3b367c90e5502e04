import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from slotswap.api.errors import to_http_error
from slotswap.api.v1.schemas import (
    BookingRequestSchema,
    CaptureRequestSchema,
    CaptureResponseSchema,
    OfferRequestSchema,
    OfferResponseSchema,
    PriceResponseSchema,
    SlotSummarySchema,
    SuggestedOfferRequestSchema,
)
from slotswap.application.exceptions import NotificationFailed, SlotSwapError
from slotswap.application.slot_ledger import SlotLedger
from slotswap.application.use_cases.booking import BookingUseCase
from slotswap.application.use_cases.offers import OfferNegotiationUseCase
from slotswap.application.utils.ledger_codec import decode_ledger, ledger_to_dict
from slotswap.application.utils.pricing import get_price
from slotswap.domain.entities.slot import BookingInput, OfferInput
from slotswap.wiring.dependencies import get_booking_use_case, get_offer_use_case, get_slot_ledger

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/slots", response_model=list[SlotSummarySchema])
def list_slots(ledger: SlotLedger = Depends(get_slot_ledger)):
    try:
        records = ledger.list_slots()
    except SlotSwapError as e:
        raise to_http_error(e)

    summaries = []
    for record in records:
        slot = decode_ledger(record.description)
        summaries.append(
            SlotSummarySchema(
                id=record.id,
                summary=record.summary,
                start=record.start,
                end=record.end,
                status=slot.status.value,
                price=get_price(slot),
            )
        )
    return summaries


@router.get("/slots/{slot_id}")
def get_slot(slot_id: str, ledger: SlotLedger = Depends(get_slot_ledger)) -> dict[str, Any]:
    try:
        return ledger_to_dict(ledger.load(slot_id))
    except SlotSwapError as e:
        raise to_http_error(e)


@router.get("/slots/{slot_id}/price", response_model=PriceResponseSchema)
def get_slot_price(slot_id: str, ledger: SlotLedger = Depends(get_slot_ledger)):
    try:
        slot = ledger.load(slot_id)
    except SlotSwapError as e:
        raise to_http_error(e)
    return PriceResponseSchema(price=get_price(slot))


@router.post("/slots/{slot_id}/bookings", status_code=201)
def create_booking(
    slot_id: str,
    req: BookingRequestSchema,
    uc: BookingUseCase = Depends(get_booking_use_case),
) -> dict[str, Any]:
    booking_input = BookingInput(
        price=req.price,
        name=req.name,
        contact=req.contact,
        phone=req.phone,
        location=req.location,
        desired_offer=req.desired_offer,
        payment_id=req.payment_id,
        payout_destination=req.payout_destination,
    )
    try:
        slot = uc.create_booking(slot_id, booking_input)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SlotSwapError as e:
        raise to_http_error(e)
    return ledger_to_dict(slot)


@router.post("/slots/{slot_id}/offers", response_model=OfferResponseSchema, status_code=201)
def add_offer(
    slot_id: str,
    req: OfferRequestSchema,
    uc: OfferNegotiationUseCase = Depends(get_offer_use_case),
):
    offer_input = OfferInput(
        offer_amount=req.offer_amount,
        offer_by=req.offer_by,
        phone=req.phone,
        location=req.location,
        name=req.name,
        payment_id=req.payment_id,
    )
    try:
        result = uc.add_offer(slot_id, offer_input)
    except NotificationFailed as e:
        # the offer is recorded; the bidder needs its id to follow up
        if e.offer is None:
            raise to_http_error(e)
        raise HTTPException(status_code=502, detail={"message": str(e), "offerId": e.offer.offer_id})
    except SlotSwapError as e:
        raise to_http_error(e)
    return OfferResponseSchema(
        offer_id=result.offer.offer_id,
        delivery_id=result.delivery_id,
        slot=ledger_to_dict(result.slot),
    )


@router.put("/slots/{slot_id}/suggested-offer")
def set_suggested_offer(
    slot_id: str,
    req: SuggestedOfferRequestSchema,
    uc: OfferNegotiationUseCase = Depends(get_offer_use_case),
) -> dict[str, Any]:
    try:
        slot = uc.set_suggested_offer(slot_id, req.offer_amount)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SlotSwapError as e:
        raise to_http_error(e)
    return ledger_to_dict(slot)


@router.post("/slots/{slot_id}/capture", response_model=CaptureResponseSchema)
def capture_booking(
    slot_id: str,
    req: CaptureRequestSchema | None = None,
    uc: BookingUseCase = Depends(get_booking_use_case),
):
    try:
        slot, result = uc.capture_booking(slot_id, amount=req.amount if req else None)
    except SlotSwapError as e:
        raise to_http_error(e)
    return CaptureResponseSchema(
        intent_id=result.intent_id,
        amount_captured=result.amount_captured,
        already_captured=result.already_captured,
        slot=ledger_to_dict(slot),
    )
