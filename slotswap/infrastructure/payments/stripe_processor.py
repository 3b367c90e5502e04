from __future__ import annotations

import logging

import stripe

from slotswap.application.exceptions import (
    PaymentAuthorizationFailed,
    PaymentCaptureFailed,
    PaymentReleaseFailed,
)
from slotswap.application.ports.payment_processor import PaymentProcessorPort
from slotswap.domain.entities.payment import CaptureResult, HoldStatus, PaymentHold

UNEXPECTED_STATE = "payment_intent_unexpected_state"


class StripePaymentProcessor(PaymentProcessorPort):
    """Manual-capture PaymentIntents plus Connect transfers for payouts."""

    def __init__(self, api_key: str) -> None:
        if not api_key:
            raise ValueError("STRIPE_SECRET_KEY is required for Stripe payments")
        self._api_key = api_key
        self._logger = logging.getLogger(__name__)

    def authorize(self, amount: int, currency: str, metadata: dict[str, str]) -> PaymentHold:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency,
                capture_method="manual",
                payment_method_types=["card"],
                metadata=metadata,
                api_key=self._api_key,
            )
        except stripe.StripeError as e:
            self._logger.error("Stripe authorization failed", extra={"amount": amount, "error": str(e)})
            raise PaymentAuthorizationFailed(f"Stripe refused the hold: {e.user_message or e}") from e
        return PaymentHold(
            intent_id=intent.id,
            client_secret=intent.client_secret,
            amount=amount,
            currency=currency,
        )

    def retrieve(self, intent_id: str) -> HoldStatus:
        intent = self._retrieve(intent_id, PaymentAuthorizationFailed)
        return HoldStatus(
            intent_id=intent.id,
            status=intent.status,
            amount=intent.amount,
            amount_capturable=intent.amount_capturable or 0,
        )

    def capture(
        self,
        intent_id: str,
        amount: int | None = None,
        idempotency_key: str | None = None,
    ) -> CaptureResult:
        params: dict[str, object] = {"api_key": self._api_key}
        if amount is not None:
            params["amount_to_capture"] = amount
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        try:
            intent = stripe.PaymentIntent.capture(intent_id, **params)
        except stripe.InvalidRequestError as e:
            if e.code == UNEXPECTED_STATE:
                current = self._retrieve(intent_id, PaymentCaptureFailed)
                if current.status == "succeeded":
                    self._logger.info("Payment already captured", extra={"intent_id": intent_id})
                    return CaptureResult(
                        intent_id=intent_id,
                        amount_captured=current.amount_received,
                        already_captured=True,
                    )
            self._logger.error("Stripe capture rejected", extra={"intent_id": intent_id, "error": str(e)})
            raise PaymentCaptureFailed(f"Capture of {intent_id} rejected: {e}") from e
        except stripe.StripeError as e:
            self._logger.error("Stripe capture failed", extra={"intent_id": intent_id, "error": str(e)})
            raise PaymentCaptureFailed(f"Capture of {intent_id} failed: {e}") from e
        return CaptureResult(intent_id=intent.id, amount_captured=intent.amount_received)

    def cancel(self, intent_id: str, idempotency_key: str | None = None) -> None:
        params: dict[str, object] = {"api_key": self._api_key}
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        try:
            stripe.PaymentIntent.cancel(intent_id, **params)
        except stripe.InvalidRequestError as e:
            if e.code == UNEXPECTED_STATE:
                current = self._retrieve(intent_id, PaymentReleaseFailed)
                if current.status == "canceled":
                    return
            raise PaymentReleaseFailed(f"Release of {intent_id} rejected: {e}") from e
        except stripe.StripeError as e:
            raise PaymentReleaseFailed(f"Release of {intent_id} failed: {e}") from e

    def transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        idempotency_key: str,
        transfer_group: str | None = None,
    ) -> str:
        params: dict[str, object] = {
            "amount": amount,
            "currency": currency,
            "destination": destination,
            "api_key": self._api_key,
            "idempotency_key": idempotency_key,
        }
        if transfer_group:
            params["transfer_group"] = transfer_group
        try:
            transfer = stripe.Transfer.create(**params)
        except stripe.StripeError as e:
            self._logger.error(
                "Stripe transfer failed",
                extra={"amount": amount, "destination": destination, "error": str(e)},
            )
            raise PaymentCaptureFailed(f"Transfer to {destination} failed: {e}") from e
        return transfer.id

    def _retrieve(self, intent_id: str, error_type: type[Exception]):
        try:
            return stripe.PaymentIntent.retrieve(intent_id, api_key=self._api_key)
        except stripe.StripeError as e:
            raise error_type(f"Could not read payment {intent_id}: {e}") from e
