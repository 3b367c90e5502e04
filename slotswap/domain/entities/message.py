from dataclasses import dataclass


@dataclass(frozen=True)
class InboundReply:
    from_phone: str
    body: str
    message_sid: str | None = None
