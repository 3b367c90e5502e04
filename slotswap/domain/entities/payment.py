from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PaymentHold:
    intent_id: str
    client_secret: str
    amount: int
    currency: str


@dataclass(frozen=True)
class HoldStatus:
    """Live state of a hold as the processor reports it."""

    intent_id: str
    status: str
    amount: int
    amount_capturable: int = 0

    @property
    def capturable(self) -> bool:
        return self.status == "requires_capture"


@dataclass(frozen=True)
class CaptureResult:
    intent_id: str
    amount_captured: int
    already_captured: bool = False


@dataclass(frozen=True)
class SplitSettlement:
    offer_id: str
    captured_total: int
    holder_amount: int
    provider_amount: int
    holder_transfer_id: str | None = None  # None while the holder payout is still owed
    provider_transfer_id: str | None = None
    already_captured: bool = False

    @property
    def holder_paid(self) -> bool:
        return self.holder_amount == 0 or self.holder_transfer_id is not None
