from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class BookingRequestSchema(CamelModel):
    price: int = Field(gt=0)
    name: str
    contact: str
    phone: str
    location: str
    desired_offer: int = Field(default=0, ge=0, alias="desiredOffer")
    payment_id: str | None = Field(default=None, alias="paymentID")
    payout_destination: str | None = Field(default=None, alias="payoutDestination")


class OfferRequestSchema(CamelModel):
    offer_amount: int = Field(gt=0, alias="offerAmount")
    offer_by: str = Field(alias="offerBy")
    phone: str
    location: str
    name: str | None = None
    payment_id: str | None = Field(default=None, alias="paymentID")


class OfferResponseSchema(CamelModel):
    offer_id: str = Field(alias="offerId")
    delivery_id: str | None = Field(default=None, alias="deliveryId")
    slot: dict[str, Any]


class SuggestedOfferRequestSchema(CamelModel):
    offer_amount: int = Field(gt=0, alias="offerAmount")


class CaptureRequestSchema(CamelModel):
    amount: int | None = Field(default=None, gt=0)


class CaptureResponseSchema(CamelModel):
    intent_id: str = Field(alias="intentId")
    amount_captured: int = Field(alias="amountCaptured")
    already_captured: bool = Field(alias="alreadyCaptured")
    slot: dict[str, Any]


class PriceResponseSchema(BaseModel):
    price: int


class SlotSummarySchema(CamelModel):
    id: str
    summary: str
    start: datetime | None = None
    end: datetime | None = None
    status: str
    price: int


class PaymentIntentRequestSchema(CamelModel):
    amount: int = Field(gt=0)
    currency: str | None = None
    slot_id: str = Field(alias="slotID")
    purpose: Literal["booking", "offer"] = "booking"


class PaymentIntentResponseSchema(CamelModel):
    client_secret: str = Field(alias="clientSecret")
    payment_intent_id: str = Field(alias="paymentIntentId")
