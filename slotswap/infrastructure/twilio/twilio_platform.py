from __future__ import annotations

from slotswap.application.ports.message_platform import MessagePlatformPort
from slotswap.infrastructure.twilio.twilio_client import TwilioClient


class TwilioPlatform(MessagePlatformPort):
    def __init__(self, client: TwilioClient) -> None:
        self._client = client

    def send_text(self, to_phone: str, text: str) -> str:
        return self._client.send_text(to_phone=to_phone, text=text)
