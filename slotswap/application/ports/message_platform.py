from abc import ABC, abstractmethod


class MessagePlatformPort(ABC):
    @abstractmethod
    def send_text(self, to_phone: str, text: str) -> str:
        """Send an SMS. Returns the delivery id."""
        raise NotImplementedError
