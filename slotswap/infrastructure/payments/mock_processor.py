from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass

from slotswap.application.exceptions import (
    PaymentAuthorizationFailed,
    PaymentCaptureFailed,
    PaymentReleaseFailed,
)
from slotswap.application.ports.payment_processor import PaymentProcessorPort
from slotswap.domain.entities.payment import CaptureResult, HoldStatus, PaymentHold


@dataclass
class MockIntent:
    intent_id: str
    amount: int
    currency: str
    metadata: dict[str, str]
    status: str = "requires_payment_method"
    amount_received: int = 0


@dataclass(frozen=True)
class MockTransfer:
    transfer_id: str
    amount: int
    currency: str
    destination: str
    transfer_group: str | None


class MockPaymentProcessor(PaymentProcessorPort):
    """
    In-memory processor with the same state rules as manual-capture intents.

    Holds start unconfirmed; `confirm` stands in for the payer confirming
    the card with the client secret.
    """

    def __init__(self, decline_authorizations: bool = False) -> None:
        self.decline_authorizations = decline_authorizations
        self.intents: dict[str, MockIntent] = {}
        self.transfers: dict[str, MockTransfer] = {}  # keyed by idempotency key
        self.captures: list[str] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def authorize(self, amount: int, currency: str, metadata: dict[str, str]) -> PaymentHold:
        if self.decline_authorizations:
            raise PaymentAuthorizationFailed("Card declined")
        with self._lock:
            intent_id = f"pi_mock_{next(self._ids)}"
            self.intents[intent_id] = MockIntent(intent_id, amount, currency, dict(metadata))
        self._logger.info("Mock authorization", extra={"intent_id": intent_id, "amount": amount})
        return PaymentHold(intent_id=intent_id, client_secret=f"{intent_id}_secret", amount=amount, currency=currency)

    def confirm(self, intent_id: str) -> None:
        with self._lock:
            intent = self.intents.get(intent_id)
            if intent is None:
                raise PaymentAuthorizationFailed(f"No such payment intent: {intent_id}")
            if intent.status != "requires_payment_method":
                raise PaymentAuthorizationFailed(f"Payment intent {intent_id} is {intent.status}")
            intent.status = "requires_capture"

    def retrieve(self, intent_id: str) -> HoldStatus:
        with self._lock:
            intent = self.intents.get(intent_id)
            if intent is None:
                raise PaymentAuthorizationFailed(f"No such payment intent: {intent_id}")
            capturable = intent.amount if intent.status == "requires_capture" else 0
            return HoldStatus(intent_id, intent.status, intent.amount, amount_capturable=capturable)

    def capture(
        self,
        intent_id: str,
        amount: int | None = None,
        idempotency_key: str | None = None,
    ) -> CaptureResult:
        with self._lock:
            intent = self.intents.get(intent_id)
            if intent is None:
                raise PaymentCaptureFailed(f"No such payment intent: {intent_id}")
            if intent.status == "succeeded":
                return CaptureResult(intent_id, intent.amount_received, already_captured=True)
            if intent.status != "requires_capture":
                raise PaymentCaptureFailed(f"Payment intent {intent_id} is {intent.status}")
            to_capture = intent.amount if amount is None else amount
            if to_capture > intent.amount:
                raise PaymentCaptureFailed(f"Cannot capture {to_capture}, only {intent.amount} authorized")
            intent.status = "succeeded"
            intent.amount_received = to_capture
            self.captures.append(intent_id)
        return CaptureResult(intent_id, to_capture)

    def cancel(self, intent_id: str, idempotency_key: str | None = None) -> None:
        with self._lock:
            intent = self.intents.get(intent_id)
            if intent is None:
                raise PaymentReleaseFailed(f"No such payment intent: {intent_id}")
            if intent.status == "canceled":
                return
            if intent.status not in ("requires_payment_method", "requires_capture"):
                raise PaymentReleaseFailed(f"Payment intent {intent_id} is {intent.status}")
            intent.status = "canceled"

    def transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        idempotency_key: str,
        transfer_group: str | None = None,
    ) -> str:
        with self._lock:
            existing = self.transfers.get(idempotency_key)
            if existing is not None:
                return existing.transfer_id
            transfer = MockTransfer(f"tr_mock_{next(self._ids)}", amount, currency, destination, transfer_group)
            self.transfers[idempotency_key] = transfer
        return transfer.transfer_id

    def status_of(self, intent_id: str) -> str:
        return self.intents[intent_id].status

    def transfers_to(self, destination: str) -> list[MockTransfer]:
        return [t for t in self.transfers.values() if t.destination == destination]
