from __future__ import annotations

import logging
from datetime import datetime, timedelta

from slotswap.application.exceptions import PaymentAuthorizationFailed, PaymentCaptureFailed
from slotswap.application.ports.payment_processor import PaymentProcessorPort
from slotswap.domain.entities.payment import CaptureResult, HoldStatus, PaymentHold, SplitSettlement
from slotswap.domain.entities.slot import Booking, Offer

CAPTURE_LEAD_TIME = timedelta(hours=3)


class PaymentOrchestrator:
    """
    Two-phase payments: a hold is authorized when a booking or offer is made
    and captured later, either shortly before the service or as soon as an
    offer is accepted.

    An accepted offer is settled with one capture of the full offer amount,
    taken before the acceptance is recorded, followed by transfers: the
    holder's share to their payout destination and, when a provider account
    is configured, the provider's share to it.
    Otherwise the provider share stays on the platform balance. Every call
    carries an idempotency key derived from the offer, so retries never
    charge or pay out twice.
    """

    def __init__(
        self,
        processor: PaymentProcessorPort,
        currency: str = "aud",
        provider_account: str | None = None,
    ) -> None:
        self._processor = processor
        self._currency = currency.lower()
        self._provider_account = provider_account
        self._logger = logging.getLogger(__name__)

    @property
    def currency(self) -> str:
        return self._currency

    def authorize(self, amount: int, metadata: dict[str, str]) -> PaymentHold:
        if amount <= 0:
            raise PaymentAuthorizationFailed("Authorization amount must be positive")
        hold = self._processor.authorize(amount, self._currency, metadata)
        self._logger.info(
            "Payment authorized",
            extra={"intent_id": hold.intent_id, "amount": amount, "slot_id": metadata.get("slotID")},
        )
        return hold

    def amount_to_capture(self, booking: Booking) -> int:
        return booking.amount_authorised_for_payment

    def capture_due_at(self, service_start: datetime) -> datetime:
        return service_start - CAPTURE_LEAD_TIME

    def capture_now(
        self,
        intent_id: str,
        amount: int | None = None,
        idempotency_key: str | None = None,
    ) -> CaptureResult:
        result = self._processor.capture(
            intent_id,
            amount=amount,
            idempotency_key=idempotency_key or f"capture_{intent_id}",
        )
        self._logger.info(
            "Payment captured",
            extra={
                "intent_id": intent_id,
                "amount": result.amount_captured,
                "already_captured": result.already_captured,
            },
        )
        return result

    def release(self, intent_id: str) -> None:
        self._processor.cancel(intent_id, idempotency_key=f"cancel_{intent_id}")
        self._logger.info("Payment hold released", extra={"intent_id": intent_id})

    def verify_hold(self, intent_id: str, amount: int) -> HoldStatus:
        """
        Check that a hold is confirmed and covers `amount`.

        Raises PaymentAuthorizationFailed otherwise: an unconfirmed hold
        guarantees nothing.
        """
        hold = self._processor.retrieve(intent_id)
        if not hold.capturable:
            self._logger.warning("Hold not confirmed", extra={"intent_id": intent_id, "status": hold.status})
            raise PaymentAuthorizationFailed(f"Payment {intent_id} is {hold.status}, not confirmed")
        if hold.amount_capturable < amount:
            raise PaymentAuthorizationFailed(
                f"Payment {intent_id} holds {hold.amount_capturable}, {amount} is required"
            )
        return hold

    def capture_offer(self, offer: Offer) -> CaptureResult:
        """Capture the whole offer amount from the offer's hold, once per offer."""
        if not offer.full_payment_id:
            raise PaymentCaptureFailed(f"Offer {offer.offer_id} has no authorization hold")
        if offer.partial_payment_amount + offer.full_payment_amount != offer.offer_amount:
            raise PaymentCaptureFailed(f"Offer {offer.offer_id} split does not sum to the offer amount")

        capture = self.capture_now(
            offer.full_payment_id,
            amount=offer.offer_amount,
            idempotency_key=f"capture_{offer.offer_id}",
        )
        if capture.amount_captured != offer.offer_amount:
            raise PaymentCaptureFailed(
                f"Captured {capture.amount_captured} for offer {offer.offer_id}, expected {offer.offer_amount}"
            )
        return capture

    def pay_out_offer(
        self,
        offer: Offer,
        capture: CaptureResult,
        holder_destination: str | None,
    ) -> SplitSettlement:
        """Transfer the captured offer: the holder's share, then the provider's."""
        holder_transfer_id = None
        if offer.partial_payment_amount > 0:
            if holder_destination:
                holder_transfer_id = self._processor.transfer(
                    offer.partial_payment_amount,
                    self._currency,
                    holder_destination,
                    idempotency_key=f"transfer_holder_{offer.offer_id}",
                    transfer_group=offer.offer_id,
                )
            else:
                self._logger.warning(
                    "Holder payout owed but no payout destination on booking",
                    extra={"offer_id": offer.offer_id, "amount": offer.partial_payment_amount},
                )

        provider_transfer_id = None
        if self._provider_account and offer.full_payment_amount > 0:
            provider_transfer_id = self._processor.transfer(
                offer.full_payment_amount,
                self._currency,
                self._provider_account,
                idempotency_key=f"transfer_provider_{offer.offer_id}",
                transfer_group=offer.offer_id,
            )

        settlement = SplitSettlement(
            offer_id=offer.offer_id,
            captured_total=capture.amount_captured,
            holder_amount=offer.partial_payment_amount,
            provider_amount=offer.full_payment_amount,
            holder_transfer_id=holder_transfer_id,
            provider_transfer_id=provider_transfer_id,
            already_captured=capture.already_captured,
        )
        self._logger.info(
            "Offer settled",
            extra={
                "offer_id": offer.offer_id,
                "amount": settlement.captured_total,
                "holder_amount": settlement.holder_amount,
                "provider_amount": settlement.provider_amount,
            },
        )
        return settlement
