from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable

from slotswap.application.exceptions import (
    NoActiveBooking,
    NoPendingOffer,
    NotificationFailed,
    OfferExpired,
    OfferNotFunded,
    OfferTooLow,
    PaymentAuthorizationFailed,
    PaymentCaptureFailed,
    PaymentReleaseFailed,
    ResponderMismatch,
    SlotSwapError,
)
from slotswap.application.slot_ledger import SlotLedger
from slotswap.application.use_cases.notifications import NotificationGateway
from slotswap.application.use_cases.payments import PaymentOrchestrator
from slotswap.application.utils.ledger_edits import (
    new_ledger_id,
    replace_booking,
    replace_offer,
    utc_now,
)
from slotswap.application.utils.phone import same_phone
from slotswap.application.utils.pricing import OfferSplit, committed_price, compute_split, recommended_price
from slotswap.domain.entities.payment import CaptureResult, SplitSettlement
from slotswap.domain.entities.slot import Booking, Offer, OfferInput, Slot, SlotStatus

OFFER_WINDOW_MINUTES = 30
OFFER_WINDOW = timedelta(minutes=OFFER_WINDOW_MINUTES)


@dataclass(frozen=True)
class OfferResolution:
    offer: Offer
    accepted: bool
    previous_booking: Booking
    new_booking: Booking | None = None
    superseded: tuple[Offer, ...] = ()


@dataclass(frozen=True)
class AddOfferResult:
    slot: Slot
    offer: Offer
    delivery_id: str | None


@dataclass(frozen=True)
class OfferResponseResult:
    slot: Slot
    resolution: OfferResolution
    settlement: SplitSettlement | None = None


def check_offer_amount(slot: Slot, offer_amount: int) -> OfferSplit:
    if slot.active_booking is None:
        raise NoActiveBooking("No active bookings found")
    threshold = committed_price(slot)
    split = compute_split(offer_amount, threshold)
    if split.overflow <= 0:
        raise OfferTooLow(offer_amount, threshold)
    if slot.suggested_offer is not None and offer_amount < slot.suggested_offer:
        raise OfferTooLow(offer_amount, slot.suggested_offer)
    return split


def add_offer(
    slot: Slot,
    offer_input: OfferInput,
    now: datetime,
    hold_verified: bool = False,
) -> tuple[Slot, Offer]:
    """Append an offer to the active booking. Earlier offers are kept as they are."""
    split = check_offer_amount(slot, offer_input.offer_amount)
    active = slot.active_booking
    hold_id = offer_input.payment_id
    if hold_id and hold_id in _attached_holds(slot):
        raise PaymentAuthorizationFailed(f"Payment {hold_id} is already attached to this slot")
    taken = {o.offer_id for b in slot.bookings for o in b.offers}

    offer = Offer(
        offer_id=new_ledger_id("offer", now, taken),
        offer_amount=offer_input.offer_amount,
        offer_by=offer_input.offer_by,
        name=offer_input.name,
        phone=offer_input.phone,
        location=offer_input.location,
        offer_at=now,
        offer_valid_until=now + OFFER_WINDOW,
        partial_payment_amount=split.partial_payment_amount,
        full_payment_amount=split.full_payment_amount,
        full_payment_id=hold_id,
        full_payment_authorized=hold_verified and hold_id is not None,
    )
    booking = replace(active, offers=active.offers + (offer,))
    return replace(slot, bookings=slot.bookings[:-1] + (booking,)), offer


def _attached_holds(slot: Slot) -> set[str]:
    holds = {b.payment_id for b in slot.bookings if b.payment_id}
    holds.update(o.full_payment_id for b in slot.bookings for o in b.offers if o.full_payment_id)
    return holds


def set_suggested_offer(slot: Slot, amount: int) -> Slot:
    if amount <= 0:
        raise ValueError("Suggested offer must be positive")
    return replace(slot, suggested_offer=amount)


def resolve_offer_response(
    slot: Slot,
    responder_phone: str,
    accepted: bool,
    now: datetime,
    offer_id: str | None = None,
) -> tuple[Slot, OfferResolution]:
    """
    Apply the holder's yes/no to the most recent pending offer, or to
    `offer_id` when given.

    Declining is final for that offer. Accepting also declines the other
    pending offers on the booking and appends a booking for the offer maker,
    which moves the slot's prices to the accepted amount. An offer without
    an authorized hold cannot be accepted (OfferNotFunded). A response that
    arrives after the offer's deadline raises OfferExpired. Neither changes
    anything.
    """
    active = slot.active_booking
    if active is None:
        raise NoActiveBooking("No active bookings found")
    if not same_phone(responder_phone, active.phone):
        raise ResponderMismatch("Responder does not hold the active booking")

    pending = [o for o in active.offers if o.is_pending]
    if offer_id is not None:
        pending_target = [o for o in pending if o.offer_id == offer_id]
        if not pending_target:
            raise NoPendingOffer(f"Offer {offer_id} is no longer pending")
        target = pending_target[0]
    elif pending:
        target = pending[-1]
    else:
        raise NoPendingOffer("No pending offer on the active booking")
    if target.is_expired(now):
        raise OfferExpired(target.offer_id)

    if not accepted:
        declined = replace(target, offer_declined=True, responded_at=now)
        closed = replace_offer(active, target.offer_id, lambda _: declined)
        return (
            replace(slot, bookings=slot.bookings[:-1] + (closed,)),
            OfferResolution(offer=declined, accepted=False, previous_booking=closed),
        )

    if not target.full_payment_id or not target.full_payment_authorized:
        raise OfferNotFunded(f"Offer {target.offer_id} has no authorized payment")

    taken_offer = replace(target, offer_accepted=True, responded_at=now)
    superseded = {
        o.offer_id: replace(o, offer_declined=True, responded_at=now) for o in pending if o.offer_id != target.offer_id
    }
    offers = tuple(
        taken_offer if o.offer_id == target.offer_id else superseded.get(o.offer_id, o)
        for o in active.offers
    )
    closed = replace(active, offers=offers)

    new_booking = Booking(
        booking_id=new_ledger_id("booking", now, {b.booking_id for b in slot.bookings}),
        price=target.offer_amount,
        payment_id=target.full_payment_id,
        name=target.name or target.offer_by,
        contact=target.offer_by,
        phone=target.phone,
        location=target.location,
        amount_authorised_for_payment=target.offer_amount,
        booked_at=now,
        desired_offer=0,
        payment_authorised=target.full_payment_authorized,
    )
    updated = replace(
        slot,
        status=SlotStatus.booked,
        latest_booking_price=new_booking.price,
        recommended_price=recommended_price(new_booking.price, new_booking.desired_offer),
        bookings=slot.bookings[:-1] + (closed, new_booking),
    )
    return updated, OfferResolution(
        offer=taken_offer,
        accepted=True,
        previous_booking=closed,
        new_booking=new_booking,
        superseded=tuple(superseded.values()),
    )


def record_settlement(slot: Slot, resolution: OfferResolution, settlement: SplitSettlement) -> Slot:
    def settle(offer: Offer) -> Offer:
        return replace(
            offer,
            partial_payment_id=settlement.holder_transfer_id,
            partial_payment_captured=settlement.holder_paid,
            full_payment_fulfilled=True,
        )

    slot = replace_booking(
        slot,
        resolution.previous_booking.booking_id,
        lambda b: replace_offer(b, resolution.offer.offer_id, settle),
    )
    if resolution.new_booking is not None:
        slot = replace_booking(slot, resolution.new_booking.booking_id, lambda b: replace(b, payment_fulfilled=True))
    return slot


class OfferNegotiationUseCase:
    def __init__(
        self,
        ledger: SlotLedger,
        payments: PaymentOrchestrator,
        notifications: NotificationGateway,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._ledger = ledger
        self._payments = payments
        self._notifications = notifications
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def add_offer(self, slot_id: str, offer_input: OfferInput) -> AddOfferResult:
        """
        Record an offer backed by a confirmed hold and alert the holder.

        The bidder places the hold first (POST /payment-intents) and confirms
        the card; `offer_input.payment_id` names that hold. Nothing is
        written unless it is confirmed for at least the offer amount.
        """
        # Fail fast before asking the processor; re-checked inside the write.
        check_offer_amount(self._ledger.load(slot_id), offer_input.offer_amount)

        if not offer_input.payment_id:
            raise PaymentAuthorizationFailed("An offer needs a confirmed payment hold")
        self._payments.verify_hold(offer_input.payment_id, offer_input.offer_amount)

        now = self._clock()
        slot, offer = self._ledger.mutate(
            slot_id, lambda current: add_offer(current, offer_input, now, hold_verified=True)
        )
        self._logger.info(
            "Offer added",
            extra={"slot_id": slot_id, "offer_id": offer.offer_id, "amount": offer.offer_amount},
        )
        try:
            delivery_id = self._notifications.send_offer_alert(
                slot.active_booking.phone, offer.offer_amount, OFFER_WINDOW_MINUTES
            )
        except NotificationFailed as e:
            self._logger.error(
                "Offer alert failed after ledger write",
                extra={"slot_id": slot_id, "offer_id": offer.offer_id, "error": str(e)},
            )
            raise NotificationFailed(str(e), slot=slot, offer=offer) from e

        return AddOfferResult(slot=slot, offer=offer, delivery_id=delivery_id)

    def set_suggested_offer(self, slot_id: str, amount: int) -> Slot:
        slot, _ = self._ledger.mutate(slot_id, lambda current: (set_suggested_offer(current, amount), None))
        self._logger.info("Suggested offer set", extra={"slot_id": slot_id, "amount": amount})
        return slot

    def resolve_offer_response(self, slot_id: str, responder_phone: str, accepted: bool) -> OfferResponseResult:
        """
        Apply the holder's decision.

        An acceptance captures the offer's hold before anything is written:
        if the capture fails, OfferNotFunded is raised and the ledger is left
        as it was. Once the decision is written, payouts and hold releases
        run outside the ledger lock; their failures are raised but the
        decision stays committed.
        """
        now = self._clock()
        try:
            _, preview = resolve_offer_response(self._ledger.load(slot_id), responder_phone, accepted, now)
            target = preview.offer
            capture = self._take_payment(slot_id, target) if accepted else None
        except OfferExpired as e:
            self._logger.warning("Late response to offer", extra={"slot_id": slot_id, "offer_id": e.offer_id})
            raise

        try:
            slot, resolution = self._ledger.mutate(
                slot_id,
                lambda current: resolve_offer_response(
                    current, responder_phone, accepted, now, offer_id=target.offer_id
                ),
            )
        except SlotSwapError as e:
            if capture is not None:
                # a repeated "yes" finds the capture done and records the acceptance
                self._logger.error(
                    "Offer payment captured but acceptance not recorded",
                    extra={"slot_id": slot_id, "offer_id": target.offer_id, "error": str(e)},
                )
            raise

        self._logger.info(
            "Offer accepted" if resolution.accepted else "Offer declined",
            extra={"slot_id": slot_id, "offer_id": resolution.offer.offer_id, "amount": resolution.offer.offer_amount},
        )

        if not resolution.accepted:
            self._release_all([resolution.offer.full_payment_id])
            return OfferResponseResult(slot=slot, resolution=resolution)

        try:
            settlement = self._payments.pay_out_offer(
                resolution.offer, capture, resolution.previous_booking.payout_destination
            )
        except PaymentCaptureFailed:
            self._release_replaced(slot_id, resolution)
            raise
        slot, _ = self._ledger.mutate(
            slot_id, lambda current: (record_settlement(current, resolution, settlement), None)
        )
        self._release_replaced(slot_id, resolution)
        return OfferResponseResult(slot=slot, resolution=resolution, settlement=settlement)

    def _take_payment(self, slot_id: str, offer: Offer) -> CaptureResult:
        try:
            return self._payments.capture_offer(offer)
        except PaymentCaptureFailed as e:
            self._logger.warning(
                "Offer payment could not be captured, acceptance not recorded",
                extra={"slot_id": slot_id, "offer_id": offer.offer_id, "intent_id": offer.full_payment_id},
            )
            raise OfferNotFunded(f"Offer {offer.offer_id} could not be paid: {e}") from e

    def _release_replaced(self, slot_id: str, resolution: OfferResolution) -> None:
        to_release = [o.full_payment_id for o in resolution.superseded]
        if resolution.previous_booking.payment_fulfilled:
            self._logger.warning(
                "Outgoing holder was already charged; hold not released",
                extra={"slot_id": slot_id, "booking_id": resolution.previous_booking.booking_id},
            )
        else:
            to_release.append(resolution.previous_booking.payment_id)
        self._release_all(to_release)

    def _release_all(self, intent_ids: list[str | None]) -> None:
        failed: list[str] = []
        for intent_id in intent_ids:
            if not intent_id:
                continue
            try:
                self._payments.release(intent_id)
            except PaymentReleaseFailed as e:
                self._logger.error("Hold release failed", extra={"intent_id": intent_id, "error": str(e)})
                failed.append(intent_id)
        if failed:
            raise PaymentReleaseFailed(f"Could not release holds: {', '.join(failed)}")
