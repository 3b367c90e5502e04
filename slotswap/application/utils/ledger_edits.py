from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

from slotswap.domain.entities.slot import Booking, Offer, Slot


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_ledger_id(prefix: str, now: datetime, taken: set[str]) -> str:
    """Time-derived id (epoch milliseconds), suffixed when two land on the same millisecond."""
    base = f"{prefix}_{int(now.timestamp() * 1000)}"
    candidate = base
    n = 1
    while candidate in taken:
        candidate = f"{base}_{n}"
        n += 1
    return candidate


def replace_booking(slot: Slot, booking_id: str, change: Callable[[Booking], Booking]) -> Slot:
    bookings = tuple(change(b) if b.booking_id == booking_id else b for b in slot.bookings)
    return replace(slot, bookings=bookings)


def replace_offer(booking: Booking, offer_id: str, change: Callable[[Offer], Offer]) -> Booking:
    offers = tuple(change(o) if o.offer_id == offer_id else o for o in booking.offers)
    return replace(booking, offers=offers)
