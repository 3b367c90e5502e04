from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class SlotStatus(str, Enum):
    available = "available"
    booked = "booked"


@dataclass(frozen=True)
class Offer:
    offer_id: str
    offer_amount: int
    offer_by: str
    phone: str
    location: str
    offer_at: datetime
    offer_valid_until: datetime
    partial_payment_amount: int  # owed to the original holder
    full_payment_amount: int  # owed to the provider
    name: str | None = None
    offer_accepted: bool = False
    offer_declined: bool = False
    responded_at: datetime | None = None
    partial_payment_id: str | None = None  # holder payout transfer
    partial_payment_captured: bool = False
    full_payment_id: str | None = None  # authorization hold (payment intent)
    full_payment_authorized: bool = False
    full_payment_fulfilled: bool = False
    payment_split: bool = True

    @property
    def is_pending(self) -> bool:
        return not self.offer_accepted and not self.offer_declined

    def is_expired(self, now: datetime) -> bool:
        return now > self.offer_valid_until


@dataclass(frozen=True)
class Booking:
    booking_id: str
    price: int
    payment_id: str | None
    name: str
    contact: str
    phone: str
    location: str
    amount_authorised_for_payment: int
    booked_at: datetime
    desired_offer: int = 0
    payment_authorised: bool = False
    payment_fulfilled: bool = False
    payout_destination: str | None = None
    offers: tuple[Offer, ...] = ()


@dataclass(frozen=True)
class Slot:
    status: SlotStatus = SlotStatus.available
    original_price: int = 10000
    latest_booking_price: int | None = None
    recommended_price: int | None = None
    suggested_offer: int | None = None
    bookings: tuple[Booking, ...] = ()

    @property
    def active_booking(self) -> Booking | None:
        """The last appended booking; earlier ones are history."""
        return self.bookings[-1] if self.bookings else None


@dataclass(frozen=True)
class BookingInput:
    price: int
    name: str
    contact: str
    phone: str
    location: str
    desired_offer: int = 0
    payment_id: str | None = None
    payout_destination: str | None = None


@dataclass(frozen=True)
class OfferInput:
    offer_amount: int
    offer_by: str
    phone: str
    location: str
    name: str | None = None
    payment_id: str | None = None  # confirmed authorization hold for the offer amount
