from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from slotswap.domain.entities.slot import Offer, Slot


class SlotSwapError(RuntimeError):
    """Base class for errors raised by the ledger, engines and adapters."""
    pass


class StoreUnavailable(SlotSwapError):
    """Raised when the record store cannot be reached (after bounded retries)."""
    pass


class SlotNotFound(SlotSwapError):
    """Raised when the record store has no slot with the given id."""

    def __init__(self, slot_id: str) -> None:
        super().__init__(f"Slot not found: {slot_id}")
        self.slot_id = slot_id


class AuthenticationRequired(SlotSwapError):
    """Raised when record store credentials are missing or cannot be refreshed."""
    pass


class MalformedLedger(ValueError):
    """Raised while decoding a ledger document whose fields cannot be read."""
    pass


class NotALedger(MalformedLedger):
    """Raised when a description is not a JSON object at all; such text reads as the default ledger."""
    pass


class LedgerInvariantViolation(SlotSwapError):
    """Raised when a ledger would be written in a state that breaks an invariant."""
    pass


class NoActiveBooking(SlotSwapError):
    """Raised when an operation needs an active booking and the slot has none."""
    pass


class NoPendingOffer(SlotSwapError):
    """Raised when a reply arrives and there is no undecided offer to apply it to."""
    pass


class OfferTooLow(SlotSwapError):
    def __init__(self, offer_amount: int, threshold: int) -> None:
        super().__init__(f"Offer of {offer_amount} must be higher than {threshold}")
        self.offer_amount = offer_amount
        self.threshold = threshold


class OfferExpired(SlotSwapError):
    def __init__(self, offer_id: str) -> None:
        super().__init__(f"Offer {offer_id} expired before a response was received")
        self.offer_id = offer_id


class ResponderMismatch(SlotSwapError):
    """Raised when a reply comes from a phone that does not hold the active booking."""
    pass


class UnrecognizedReply(SlotSwapError):
    """Raised when an inbound reply is neither "yes" nor "no"."""
    pass


class PaymentAuthorizationFailed(SlotSwapError):
    pass


class PaymentCaptureFailed(SlotSwapError):
    pass


class OfferNotFunded(PaymentCaptureFailed):
    """Raised when an offer is accepted but has no capturable hold behind it."""
    pass


class PaymentReleaseFailed(SlotSwapError):
    pass


class NotificationFailed(SlotSwapError):
    """
    Raised when an SMS cannot be delivered.

    When raised by an engine after its ledger write, `slot` and `offer` carry
    the committed state: the write is not rolled back.
    """

    def __init__(self, message: str, slot: "Slot | None" = None, offer: "Offer | None" = None) -> None:
        super().__init__(f"ledger updated, notification failed: {message}" if slot is not None else message)
        self.slot = slot
        self.offer = offer
