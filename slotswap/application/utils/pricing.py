from __future__ import annotations

from dataclasses import dataclass

from slotswap.domain.entities.slot import Slot, SlotStatus


@dataclass(frozen=True)
class OfferSplit:
    overflow: int
    partial_payment_amount: int  # to the original holder
    full_payment_amount: int  # to the provider


def recommended_price(price: int, desired_offer: int) -> int:
    """Price a newcomer has to beat before the holder profits from giving the slot up."""
    return price + desired_offer * 2


def get_price(slot: Slot) -> int:
    """Effective price shown for a slot: recommended price once booked, original price otherwise."""
    if slot.status == SlotStatus.booked:
        return committed_price(slot)
    return slot.original_price


def committed_price(slot: Slot) -> int:
    if slot.recommended_price is not None:
        return slot.recommended_price
    if slot.latest_booking_price is not None:
        return slot.latest_booking_price
    active = slot.active_booking
    if active is not None:
        return active.price
    return slot.original_price


def compute_split(offer_amount: int, threshold: int) -> OfferSplit:
    """
    Split an offer between the holder and the provider.

    The holder gets half of what the offer clears the threshold by (rounded
    down); the provider gets the rest. Callers must reject overflow <= 0.
    """
    overflow = offer_amount - threshold
    partial = overflow // 2
    return OfferSplit(
        overflow=overflow,
        partial_payment_amount=partial,
        full_payment_amount=offer_amount - partial,
    )


def format_amount(amount: int) -> str:
    return f"${amount / 100:.2f}"
