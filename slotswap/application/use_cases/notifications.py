from __future__ import annotations

import logging

from slotswap.application.exceptions import UnrecognizedReply
from slotswap.application.ports.message_platform import MessagePlatformPort
from slotswap.application.utils.pricing import format_amount

REPLY_ACK = "Thank you for your response."
REPLY_PROMPT = "Please reply YES to accept or NO to decline the offer."
REPLY_EXPIRED = "Sorry, this offer has expired."
REPLY_NO_OFFER = "There is no pending offer for your booking."
REPLY_UNFUNDED = "The payment for this offer could not be taken, so your booking is unchanged. Reply NO to dismiss it."


def build_offer_alert(offer_amount: int, window_minutes: int) -> str:
    return (
        f"You have received a new offer of {format_amount(offer_amount)} for your booking. "
        f"Respond within the next {window_minutes} minutes to accept or decline."
    )


def parse_reply(body: str) -> bool:
    """True for "yes", False for "no" (trimmed, any case)."""
    answer = (body or "").strip().lower()
    if answer == "yes":
        return True
    if answer == "no":
        return False
    raise UnrecognizedReply(f"Expected YES or NO, got {body!r}")


class NotificationGateway:
    def __init__(self, platform: MessagePlatformPort, enabled: bool = True) -> None:
        self._platform = platform
        self._enabled = enabled
        self._logger = logging.getLogger(__name__)

    def send_offer_alert(self, to_phone: str, offer_amount: int, window_minutes: int) -> str | None:
        """Send the offer alert. Returns the delivery id, or None if SMS is switched off."""
        text = build_offer_alert(offer_amount, window_minutes)
        if not self._enabled:
            self._logger.info("WOULD_SEND_SMS", extra={"to_phone": to_phone, "text": text})
            self._logger.info("SMS_ENABLED=false -> skipping send")
            return None
        delivery_id = self._platform.send_text(to_phone=to_phone, text=text)
        self._logger.info("Offer alert sent", extra={"delivery_id": delivery_id, "amount": offer_amount})
        return delivery_id
