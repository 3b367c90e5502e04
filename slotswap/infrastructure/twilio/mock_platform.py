from __future__ import annotations

import logging

from slotswap.application.exceptions import NotificationFailed
from slotswap.application.ports.message_platform import MessagePlatformPort


class MockSmsPlatform(MessagePlatformPort):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str]] = []
        self._logger = logging.getLogger(__name__)

    def send_text(self, to_phone: str, text: str) -> str:
        if self.fail:
            raise NotificationFailed("Mock SMS delivery failure")
        self.sent.append((to_phone, text))
        self._logger.info("Mock send SMS", extra={"to_phone": to_phone, "text": text})
        return f"mock_sms_{len(self.sent)}"
