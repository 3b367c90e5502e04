from __future__ import annotations

from abc import ABC, abstractmethod

from slotswap.domain.entities.payment import CaptureResult, HoldStatus, PaymentHold


class PaymentProcessorPort(ABC):
    @abstractmethod
    def authorize(self, amount: int, currency: str, metadata: dict[str, str]) -> PaymentHold:
        """
        Create an unconfirmed authorization hold (manual capture) for `amount` minor units.

        The payer confirms it with the returned client secret.

        Raises:
            PaymentAuthorizationFailed: the processor refused the hold.
        """
        raise NotImplementedError

    @abstractmethod
    def retrieve(self, intent_id: str) -> HoldStatus:
        """
        Read a hold's current status and capturable amount.

        A hold only guarantees funds once the card is confirmed, which moves
        it to `requires_capture`.

        Raises:
            PaymentAuthorizationFailed: the hold does not exist or cannot be read.
        """
        raise NotImplementedError

    @abstractmethod
    def capture(
        self,
        intent_id: str,
        amount: int | None = None,
        idempotency_key: str | None = None,
    ) -> CaptureResult:
        """
        Capture some (`amount`) or all of a hold.

        Capturing a hold that was already captured is reported with
        `already_captured=True`, never charged twice.

        Raises:
            PaymentCaptureFailed: any other failure.
        """
        raise NotImplementedError

    @abstractmethod
    def cancel(self, intent_id: str, idempotency_key: str | None = None) -> None:
        """Release an uncaptured hold. Releasing an already cancelled hold is a no-op."""
        raise NotImplementedError

    @abstractmethod
    def transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        idempotency_key: str,
        transfer_group: str | None = None,
    ) -> str:
        """Move captured funds to a payout destination. Returns the transfer id."""
        raise NotImplementedError
