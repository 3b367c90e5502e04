from __future__ import annotations

import html
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any

from slotswap.application.exceptions import LedgerInvariantViolation, MalformedLedger, NotALedger
from slotswap.domain.entities.slot import Booking, Offer, Slot, SlotStatus

DEFAULT_ORIGINAL_PRICE = 10000

_TAG_RE = re.compile(r"<[^>]*>")
_ZERO_WIDTH_RE = re.compile("[\u200b-\u200d\ufeff]")
_CLIENT_SECRET_MARKER = "_secret_"

logger = logging.getLogger(__name__)


def default_ledger() -> Slot:
    return Slot(status=SlotStatus.available, original_price=DEFAULT_ORIGINAL_PRICE)


def normalize_description(raw: str) -> str:
    """Strip the noise calendar UIs add around a JSON description."""
    text = _TAG_RE.sub("", raw)
    text = html.unescape(text)
    text = _ZERO_WIDTH_RE.sub("", text)
    text = text.replace("\u00a0", " ")
    text = text.replace("\r", "").replace("\n", "")
    return text.strip()


def decode_ledger(raw: str | None) -> Slot:
    """
    Decode a slot description for display. Never raises.

    Anything that is not a readable ledger (empty, plain text, wrong shape)
    decodes to the default empty ledger. Never write the result back: use
    read_ledger for read-modify-write.
    """
    try:
        return read_ledger(raw)
    except MalformedLedger as e:
        logger.warning("Slot ledger is unreadable, showing default", extra={"error": str(e)})
        return default_ledger()


def read_ledger(raw: str | None) -> Slot:
    """
    Decode a slot description that is about to be modified.

    Blank text and text that is not a JSON object give the default ledger,
    so slots this system never touched can still be booked. A JSON object
    with unreadable fields raises MalformedLedger: writing the default over
    it would drop every booking it holds.
    """
    if raw is None or not raw.strip():
        return default_ledger()
    try:
        return parse_ledger(raw)
    except NotALedger as e:
        logger.warning("Slot description is not a ledger, using default", extra={"error": str(e)})
        return default_ledger()


def parse_ledger(raw: str) -> Slot:
    """Strict decode. Raises NotALedger for non-object text, MalformedLedger for bad fields."""
    text = normalize_description(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise NotALedger(f"not JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise NotALedger("ledger must be a JSON object")
    return _slot_from_dict(data)


def encode_ledger(slot: Slot) -> str:
    """Validate and serialize a Slot. Raises LedgerInvariantViolation."""
    validate_ledger(slot)
    return json.dumps(ledger_to_dict(slot), ensure_ascii=False, separators=(",", ":"))


def validate_ledger(slot: Slot) -> None:
    prices = [("originalPrice", slot.original_price), ("latestBookingPrice", slot.latest_booking_price),
              ("recommendedPrice", slot.recommended_price), ("suggestedOffer", slot.suggested_offer)]
    for key, value in prices:
        if value is not None and value < 0:
            raise LedgerInvariantViolation(f"{key} cannot be negative")

    booking_ids: set[str] = set()
    for booking in slot.bookings:
        if booking.booking_id in booking_ids:
            raise LedgerInvariantViolation(f"Duplicate booking id {booking.booking_id}")
        booking_ids.add(booking.booking_id)
        if booking.price < 0 or booking.desired_offer < 0:
            raise LedgerInvariantViolation(f"Booking {booking.booking_id} has a negative amount")

        offer_ids: set[str] = set()
        for offer in booking.offers:
            if offer.offer_id in offer_ids:
                raise LedgerInvariantViolation(f"Duplicate offer id {offer.offer_id}")
            offer_ids.add(offer.offer_id)
            if offer.partial_payment_amount + offer.full_payment_amount != offer.offer_amount:
                raise LedgerInvariantViolation(f"Offer {offer.offer_id} split does not sum to the offer amount")
            if offer.partial_payment_amount < 0 or offer.full_payment_amount < 0:
                raise LedgerInvariantViolation(f"Offer {offer.offer_id} has a negative split")
            if offer.offer_accepted and offer.offer_declined:
                raise LedgerInvariantViolation(f"Offer {offer.offer_id} is both accepted and declined")


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def ledger_to_dict(slot: Slot) -> dict[str, Any]:
    return {
        "status": slot.status.value,
        "originalPrice": slot.original_price,
        "latestBookingPrice": slot.latest_booking_price,
        "recommendedPrice": slot.recommended_price,
        "suggestedOffer": slot.suggested_offer,
        "bookings": [_booking_to_dict(b) for b in slot.bookings],
    }


def _booking_to_dict(booking: Booking) -> dict[str, Any]:
    return {
        "bookingId": booking.booking_id,
        "price": booking.price,
        "paymentID": booking.payment_id,
        "name": booking.name,
        "contact": booking.contact,
        "phone": booking.phone,
        "location": booking.location,
        "amountAuthorisedForPayment": booking.amount_authorised_for_payment,
        "paymentAuthorised": booking.payment_authorised,
        "paymentFulfilled": booking.payment_fulfilled,
        "desiredOffer": booking.desired_offer,
        "bookedAt": format_timestamp(booking.booked_at),
        "payoutDestination": booking.payout_destination,
        "offers": [_offer_to_dict(o) for o in booking.offers],
    }


def _offer_to_dict(offer: Offer) -> dict[str, Any]:
    return {
        "offerId": offer.offer_id,
        "offerAmount": offer.offer_amount,
        "offerBy": offer.offer_by,
        "name": offer.name,
        "phone": offer.phone,
        "location": offer.location,
        "offerAt": format_timestamp(offer.offer_at),
        "offerValidUntil": format_timestamp(offer.offer_valid_until),
        "offerAccepted": offer.offer_accepted,
        "offerDeclined": offer.offer_declined,
        "respondedAt": format_timestamp(offer.responded_at) if offer.responded_at else None,
        "partialPaymentID": offer.partial_payment_id,
        "partialPaymentAmount": offer.partial_payment_amount,
        "partialPaymentCaptured": offer.partial_payment_captured,
        "fullPaymentID": offer.full_payment_id,
        "fullPaymentAmount": offer.full_payment_amount,
        "fullPaymentAuthorized": offer.full_payment_authorized,
        "fullPaymentFulfilled": offer.full_payment_fulfilled,
        "paymentSplit": offer.payment_split,
    }


def _slot_from_dict(data: dict[str, Any]) -> Slot:
    status_raw = data.get("status") or SlotStatus.available.value
    try:
        status = SlotStatus(status_raw)
    except ValueError as e:
        raise MalformedLedger(f"unknown status {status_raw!r}") from e

    bookings_raw = data.get("bookings") or []
    if not isinstance(bookings_raw, list):
        raise MalformedLedger("bookings must be a list")

    original_price = _optional_int(data, "originalPrice")
    return Slot(
        status=status,
        original_price=DEFAULT_ORIGINAL_PRICE if original_price is None else original_price,
        latest_booking_price=_optional_int(data, "latestBookingPrice"),
        recommended_price=_optional_int(data, "recommendedPrice"),
        suggested_offer=_optional_int(data, "suggestedOffer"),
        bookings=tuple(_booking_from_dict(b) for b in bookings_raw),
    )


def _booking_from_dict(data: Any) -> Booking:
    if not isinstance(data, dict):
        raise MalformedLedger("booking must be an object")
    offers_raw = data.get("offers") or []
    if not isinstance(offers_raw, list):
        raise MalformedLedger("offers must be a list")

    price = _required_int(data, "price")
    authorised = _optional_int(data, "amountAuthorisedForPayment")
    return Booking(
        booking_id=_required_str(data, "bookingId"),
        price=price,
        payment_id=_payment_ref(data, "paymentID"),
        name=_text(data, "name"),
        contact=_text(data, "contact"),
        phone=_text(data, "phone"),
        location=_text(data, "location"),
        amount_authorised_for_payment=price if authorised is None else authorised,
        booked_at=_required_timestamp(data, "bookedAt"),
        desired_offer=_optional_int(data, "desiredOffer") or 0,
        payment_authorised=_flag(data, "paymentAuthorised"),
        payment_fulfilled=_flag(data, "paymentFulfilled"),
        payout_destination=_optional_str(data, "payoutDestination"),
        offers=tuple(_offer_from_dict(o) for o in offers_raw),
    )


def _offer_from_dict(data: Any) -> Offer:
    if not isinstance(data, dict):
        raise MalformedLedger("offer must be an object")
    responded_at = data.get("respondedAt")
    return Offer(
        offer_id=_required_str(data, "offerId"),
        offer_amount=_required_int(data, "offerAmount"),
        offer_by=_text(data, "offerBy"),
        name=_optional_str(data, "name"),
        phone=_text(data, "phone"),
        location=_text(data, "location"),
        offer_at=_required_timestamp(data, "offerAt"),
        offer_valid_until=_required_timestamp(data, "offerValidUntil"),
        partial_payment_amount=_required_int(data, "partialPaymentAmount"),
        full_payment_amount=_required_int(data, "fullPaymentAmount"),
        offer_accepted=_flag(data, "offerAccepted"),
        offer_declined=_flag(data, "offerDeclined"),
        responded_at=_timestamp(responded_at, "respondedAt") if responded_at else None,
        partial_payment_id=_optional_str(data, "partialPaymentID"),
        partial_payment_captured=_flag(data, "partialPaymentCaptured"),
        full_payment_id=_payment_ref(data, "fullPaymentID"),
        full_payment_authorized=_flag(data, "fullPaymentAuthorized"),
        full_payment_fulfilled=_flag(data, "fullPaymentFulfilled"),
        payment_split=_flag(data, "paymentSplit", default=True),
    )


def _coerce_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise MalformedLedger(f"{key} must be an amount, got a boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(round(value))
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise MalformedLedger(f"{key} must be an integer amount")


def _optional_int(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    return _coerce_int(key, value)


def _required_int(data: dict[str, Any], key: str) -> int:
    value = _optional_int(data, key)
    if value is None:
        raise MalformedLedger(f"{key} is required")
    return value


def _flag(data: dict[str, Any], key: str, default: bool = False) -> bool:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise MalformedLedger(f"{key} must be a boolean")
    return value


def _text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return None if value is None else str(value)


def _payment_ref(data: dict[str, Any], key: str) -> str | None:
    # older ledgers stored the client secret ("pi_x_secret_y") instead of the intent id
    value = _optional_str(data, key)
    if value and _CLIENT_SECRET_MARKER in value:
        return value.split(_CLIENT_SECRET_MARKER, 1)[0]
    return value or None


def _required_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None or value == "":
        raise MalformedLedger(f"{key} is required")
    return str(value)


def _timestamp(value: Any, key: str) -> datetime:
    if not isinstance(value, str):
        raise MalformedLedger(f"{key} must be an ISO timestamp")
    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise MalformedLedger(f"{key} is not a valid timestamp") from e


def _required_timestamp(data: dict[str, Any], key: str) -> datetime:
    value = data.get(key)
    if value is None:
        raise MalformedLedger(f"{key} is required")
    return _timestamp(value, key)
