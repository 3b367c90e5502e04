import logging

from fastapi import FastAPI

from slotswap.api.auth import router as auth_router
from slotswap.api.v1.payments import router as payments_router
from slotswap.api.v1.slots import router as slots_router
from slotswap.api.webhooks import router as webhooks_router
from slotswap.core.config import settings

CONTEXT_KEYS = (
    "slot_id",
    "booking_id",
    "offer_id",
    "status",
    "intent_id",
    "amount",
    "holder_amount",
    "provider_amount",
    "already_captured",
    "message_sid",
    "delivery_id",
    "to_phone",
    "operation",
    "attempt",
    "attempts",
    "error",
)
PHONE_KEYS = ("to_phone",)


class ContextFormatter(logging.Formatter):
    """Appends the `extra=` context of a record as key=value pairs; phone numbers are masked."""

    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value in (None, ""):
                continue
            if key in PHONE_KEYS:
                value = mask_phone(str(value))
            extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


def mask_phone(phone: str) -> str:
    return "***" + phone[-4:] if len(phone) > 4 else "***"


def configure_logging(level: str) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(ContextFormatter("%(asctime)s %(levelname)s:%(name)s:%(message)s"))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)


configure_logging(settings.LOG_LEVEL)

app = FastAPI(title="Slot Swap", version="1.0.0")

app.include_router(slots_router, prefix="/api/v1", tags=["slots"])
app.include_router(payments_router, prefix="/api/v1", tags=["payments"])
app.include_router(webhooks_router, tags=["webhooks"])
app.include_router(auth_router, tags=["auth"])


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
