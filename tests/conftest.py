from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from slotswap.application.slot_ledger import SlotLedger
from slotswap.application.use_cases.booking import BookingUseCase
from slotswap.application.use_cases.handle_inbound_reply import HandleInboundReplyUseCase
from slotswap.application.use_cases.notifications import NotificationGateway
from slotswap.application.use_cases.offers import OfferNegotiationUseCase
from slotswap.application.use_cases.payments import PaymentOrchestrator
from slotswap.domain.entities.slot import BookingInput, OfferInput
from slotswap.infrastructure.calendar.memory_store import InMemoryRecordStore
from slotswap.infrastructure.payments.mock_processor import MockPaymentProcessor
from slotswap.infrastructure.twilio.mock_platform import MockSmsPlatform

SLOT_ID = "slot_1"
HOLDER_PHONE = "+61400000001"
BIDDER_PHONE = "+61400000002"


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


def holder_booking(**overrides) -> BookingInput:
    fields = dict(
        price=10000,
        name="Alice",
        contact="alice@example.com",
        phone=HOLDER_PHONE,
        location="Sydney",
        desired_offer=2000,
        payment_id=None,
        payout_destination="acct_holder",
    )
    fields.update(overrides)
    return BookingInput(**fields)


def bidder_offer(amount: int = 15000, **overrides) -> OfferInput:
    fields = dict(
        offer_amount=amount,
        offer_by="bob@example.com",
        phone=BIDDER_PHONE,
        location="Sydney",
        name="Bob",
    )
    fields.update(overrides)
    return OfferInput(**fields)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def store() -> InMemoryRecordStore:
    store = InMemoryRecordStore()
    store.add_slot(SLOT_ID, start=datetime(2025, 3, 2, 10, 0, tzinfo=timezone.utc))
    return store


@pytest.fixture
def ledger(store) -> SlotLedger:
    return SlotLedger(store, max_attempts=3, backoff_seconds=0)


@pytest.fixture
def processor() -> MockPaymentProcessor:
    return MockPaymentProcessor()


@pytest.fixture
def platform() -> MockSmsPlatform:
    return MockSmsPlatform()


@pytest.fixture
def payments(processor) -> PaymentOrchestrator:
    return PaymentOrchestrator(processor, currency="aud", provider_account="acct_provider")


@pytest.fixture
def booking_uc(ledger, payments, clock) -> BookingUseCase:
    return BookingUseCase(ledger, payments, clock=clock)


@pytest.fixture
def offers_uc(ledger, payments, platform, clock) -> OfferNegotiationUseCase:
    return OfferNegotiationUseCase(ledger, payments, NotificationGateway(platform), clock=clock)


@pytest.fixture
def inbound_uc(ledger, offers_uc) -> HandleInboundReplyUseCase:
    return HandleInboundReplyUseCase(ledger, offers_uc)


def confirmed_hold(payments, processor, amount: int, purpose: str = "offer") -> str:
    """Place a hold and confirm it the way the payer's card confirmation would."""
    hold = payments.authorize(amount, {"slotID": SLOT_ID, "purpose": purpose})
    processor.confirm(hold.intent_id)
    return hold.intent_id


@pytest.fixture
def booked_slot(booking_uc, payments, processor):
    """Slot booked by the holder at 100.00 with a desired offer of 20.00 and a confirmed hold."""
    hold_id = confirmed_hold(payments, processor, 10000, purpose="booking")
    return booking_uc.create_booking(SLOT_ID, holder_booking(payment_id=hold_id))


@pytest.fixture
def make_offer(offers_uc, payments, processor):
    """Make an offer backed by a freshly confirmed hold for its amount."""

    def make(amount: int = 15000, slot_id: str = SLOT_ID, **overrides):
        hold_id = confirmed_hold(payments, processor, amount)
        return offers_uc.add_offer(slot_id, bidder_offer(amount, payment_id=hold_id, **overrides))

    return make
