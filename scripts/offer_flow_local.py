#!/usr/bin/env python3
"""
Local offer flow harness (no HTTP, no Google, no Stripe, no Twilio).

Usage:
  python3 scripts/offer_flow_local.py

What it does:
- Books an empty slot at $100.00 with a desired offer of $20.00
- Makes a $150.00 offer against a confirmed hold and shows the split
- Tries a $130.00 offer, which is rejected
- Replies YES from the holder's phone and shows the settlement
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from slotswap.application.exceptions import OfferTooLow
from slotswap.application.slot_ledger import SlotLedger
from slotswap.application.use_cases.booking import BookingUseCase
from slotswap.application.use_cases.handle_inbound_reply import HandleInboundReplyUseCase
from slotswap.application.use_cases.notifications import NotificationGateway
from slotswap.application.use_cases.offers import OfferNegotiationUseCase
from slotswap.application.use_cases.payments import PaymentOrchestrator
from slotswap.application.utils.pricing import format_amount, get_price
from slotswap.domain.entities.message import InboundReply
from slotswap.domain.entities.slot import BookingInput, OfferInput
from slotswap.infrastructure.calendar.memory_store import InMemoryRecordStore
from slotswap.infrastructure.payments.mock_processor import MockPaymentProcessor
from slotswap.infrastructure.twilio.mock_platform import MockSmsPlatform

SLOT_ID = "local_slot"
HOLDER_PHONE = "+61400000001"


def _print_step(title: str) -> None:
    print(f"\n--- {title} ---")


def main() -> None:
    store = InMemoryRecordStore()
    store.add_slot(SLOT_ID)
    ledger = SlotLedger(store, backoff_seconds=0)
    processor = MockPaymentProcessor()
    platform = MockSmsPlatform()
    payments = PaymentOrchestrator(processor, provider_account="acct_provider")
    booking = BookingUseCase(ledger, payments)
    offers = OfferNegotiationUseCase(ledger, payments, NotificationGateway(platform))
    replies = HandleInboundReplyUseCase(ledger, offers)

    _print_step("Book")
    hold = payments.authorize(10000, {"slotID": SLOT_ID, "purpose": "booking"})
    processor.confirm(hold.intent_id)
    slot = booking.create_booking(
        SLOT_ID,
        BookingInput(
            price=10000,
            name="Alice",
            contact="alice@example.com",
            phone=HOLDER_PHONE,
            location="Sydney",
            desired_offer=2000,
            payment_id=hold.intent_id,
            payout_destination="acct_holder",
        ),
    )
    print(f"status: {slot.status.value}  price: {format_amount(get_price(slot))}")

    _print_step("Offer $150.00")
    offer_hold = payments.authorize(15000, {"slotID": SLOT_ID, "purpose": "offer"})
    processor.confirm(offer_hold.intent_id)
    result = offers.add_offer(
        SLOT_ID,
        OfferInput(
            offer_amount=15000,
            offer_by="bob@example.com",
            phone="+61400000002",
            location="Sydney",
            name="Bob",
            payment_id=offer_hold.intent_id,
        ),
    )
    print(f"offer: {result.offer.offer_id}")
    print(f"holder share: {format_amount(result.offer.partial_payment_amount)}")
    print(f"provider share: {format_amount(result.offer.full_payment_amount)}")
    for to_phone, text in platform.sent:
        print(f"(sms to {to_phone}) {text}")

    _print_step("Offer $130.00")
    try:
        offers.add_offer(
            SLOT_ID,
            OfferInput(offer_amount=13000, offer_by="carol@example.com", phone="+61400000003", location="Sydney"),
        )
    except OfferTooLow as e:
        print(f"rejected: {e}")

    _print_step("Holder replies YES")
    response = replies.handle(InboundReply(from_phone=HOLDER_PHONE, body="YES"))
    settlement = response.settlement
    print(f"new holder: {response.slot.active_booking.name}")
    print(f"captured: {format_amount(settlement.captured_total)}")
    print(f"paid to holder: {format_amount(settlement.holder_amount)} ({settlement.holder_transfer_id})")
    print(f"paid to provider: {format_amount(settlement.provider_amount)} ({settlement.provider_transfer_id})")
    print(f"price now: {format_amount(get_price(response.slot))}")


if __name__ == "__main__":
    main()
