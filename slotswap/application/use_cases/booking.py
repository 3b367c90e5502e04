from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable

from slotswap.application.exceptions import NoActiveBooking, PaymentCaptureFailed
from slotswap.application.slot_ledger import SlotLedger
from slotswap.application.use_cases.payments import PaymentOrchestrator
from slotswap.application.utils.ledger_edits import new_ledger_id, replace_booking, utc_now
from slotswap.application.utils.pricing import recommended_price
from slotswap.domain.entities.payment import CaptureResult
from slotswap.domain.entities.slot import Booking, BookingInput, Slot, SlotStatus


def create_booking(
    slot: Slot,
    booking_input: BookingInput,
    now: datetime,
    payment_authorised: bool = False,
) -> Slot:
    """
    Append a booking and mark the slot booked.

    `payment_authorised` records whether the booking's hold was confirmed.

    Append-only: the current status is not checked, so booking an already
    booked slot adds a second booking after the first rather than replacing
    it. Earlier bookings are left untouched.
    """
    if booking_input.price <= 0:
        raise ValueError("Booking price must be positive")
    if booking_input.desired_offer < 0:
        raise ValueError("Desired offer cannot be negative")

    booking = Booking(
        booking_id=new_ledger_id("booking", now, {b.booking_id for b in slot.bookings}),
        price=booking_input.price,
        payment_id=booking_input.payment_id,
        name=booking_input.name,
        contact=booking_input.contact,
        phone=booking_input.phone,
        location=booking_input.location,
        amount_authorised_for_payment=booking_input.price,
        booked_at=now,
        desired_offer=booking_input.desired_offer,
        payment_authorised=payment_authorised and booking_input.payment_id is not None,
        payment_fulfilled=False,
        payout_destination=booking_input.payout_destination,
    )
    return replace(
        slot,
        status=SlotStatus.booked,
        latest_booking_price=booking.price,
        recommended_price=recommended_price(booking.price, booking.desired_offer),
        bookings=slot.bookings + (booking,),
    )


class BookingUseCase:
    def __init__(
        self,
        ledger: SlotLedger,
        payments: PaymentOrchestrator,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._ledger = ledger
        self._payments = payments
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def create_booking(self, slot_id: str, booking_input: BookingInput) -> Slot:
        """
        Book the slot. A `payment_id` must name a hold confirmed for the full
        price; a booking without one is recorded as not authorised.
        """
        authorised = False
        if booking_input.payment_id:
            self._payments.verify_hold(booking_input.payment_id, booking_input.price)
            authorised = True

        now = self._clock()
        slot, _ = self._ledger.mutate(
            slot_id, lambda current: (create_booking(current, booking_input, now, authorised), None)
        )
        booking = slot.active_booking
        self._logger.info(
            "Booking created",
            extra={"slot_id": slot_id, "booking_id": booking.booking_id, "amount": booking.price},
        )
        return slot

    def capture_booking(self, slot_id: str, amount: int | None = None) -> tuple[Slot, CaptureResult]:
        """Capture the active booking's hold now (normally scheduled 3 hours before the service)."""
        booking = self._ledger.load(slot_id).active_booking
        if booking is None:
            raise NoActiveBooking(f"Slot {slot_id} has no active booking")
        if not booking.payment_id:
            raise PaymentCaptureFailed(f"Booking {booking.booking_id} has no authorization hold")

        result = self._payments.capture_now(
            booking.payment_id,
            amount=amount or self._payments.amount_to_capture(booking),
            idempotency_key=f"capture_{booking.booking_id}",
        )

        def mark_fulfilled(current: Slot) -> tuple[Slot, None]:
            return replace_booking(current, booking.booking_id, lambda b: replace(b, payment_fulfilled=True)), None

        slot, _ = self._ledger.mutate(slot_id, mark_fulfilled)
        return slot, result
