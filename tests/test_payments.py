"""
Tests for payment holds, captures and split settlement.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from slotswap.application.exceptions import PaymentAuthorizationFailed, PaymentCaptureFailed, PaymentReleaseFailed
from slotswap.application.use_cases.payments import PaymentOrchestrator
from slotswap.application.utils.pricing import compute_split
from slotswap.domain.entities.slot import Offer
from slotswap.infrastructure.payments.mock_processor import MockPaymentProcessor

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def _offer(hold_id: str | None, amount: int = 15000, threshold: int = 14000) -> Offer:
    split = compute_split(amount, threshold)
    return Offer(
        offer_id="offer_1",
        offer_amount=amount,
        offer_by="bob@example.com",
        phone="+61400000002",
        location="Sydney",
        offer_at=NOW,
        offer_valid_until=NOW + timedelta(minutes=30),
        partial_payment_amount=split.partial_payment_amount,
        full_payment_amount=split.full_payment_amount,
        full_payment_id=hold_id,
        full_payment_authorized=hold_id is not None,
    )


@pytest.mark.parametrize(
    "amount, threshold, partial, full",
    [(15000, 14000, 500, 14500), (14001, 14000, 0, 14001), (14003, 14000, 1, 14002)],
)
def test_split_sums_to_offer(amount, threshold, partial, full):
    split = compute_split(amount, threshold)

    assert (split.partial_payment_amount, split.full_payment_amount) == (partial, full)
    assert split.partial_payment_amount + split.full_payment_amount == amount


def test_authorize_rejects_non_positive_amount():
    payments = PaymentOrchestrator(MockPaymentProcessor())

    with pytest.raises(PaymentAuthorizationFailed):
        payments.authorize(0, {"slotID": "slot_1"})


def test_declined_card():
    payments = PaymentOrchestrator(MockPaymentProcessor(decline_authorizations=True))

    with pytest.raises(PaymentAuthorizationFailed):
        payments.authorize(10000, {"slotID": "slot_1"})


def test_capture_due_three_hours_before_service():
    payments = PaymentOrchestrator(MockPaymentProcessor())
    start = datetime(2025, 3, 2, 10, 0, tzinfo=timezone.utc)

    assert payments.capture_due_at(start) == datetime(2025, 3, 2, 7, 0, tzinfo=timezone.utc)


def test_release_twice_is_a_no_op():
    processor = MockPaymentProcessor()
    payments = PaymentOrchestrator(processor)
    hold = payments.authorize(10000, {"slotID": "slot_1"})

    payments.release(hold.intent_id)
    payments.release(hold.intent_id)

    assert processor.status_of(hold.intent_id) == "canceled"


def _confirmed(processor: MockPaymentProcessor, payments: PaymentOrchestrator, amount: int) -> str:
    hold = payments.authorize(amount, {"slotID": "slot_1"})
    processor.confirm(hold.intent_id)
    return hold.intent_id


def _settle(payments: PaymentOrchestrator, offer: Offer, holder_destination: str | None):
    return payments.pay_out_offer(offer, payments.capture_offer(offer), holder_destination)


def test_release_after_capture_fails():
    processor = MockPaymentProcessor()
    payments = PaymentOrchestrator(processor)
    intent_id = _confirmed(processor, payments, 10000)
    payments.capture_now(intent_id)

    with pytest.raises(PaymentReleaseFailed):
        payments.release(intent_id)


def test_new_hold_is_unconfirmed_until_payer_confirms():
    processor = MockPaymentProcessor()
    payments = PaymentOrchestrator(processor)
    hold = payments.authorize(15000, {"slotID": "slot_1"})

    assert processor.retrieve(hold.intent_id).status == "requires_payment_method"
    with pytest.raises(PaymentCaptureFailed):
        payments.capture_now(hold.intent_id)


def test_verify_hold_accepts_confirmed_hold():
    processor = MockPaymentProcessor()
    payments = PaymentOrchestrator(processor)
    intent_id = _confirmed(processor, payments, 15000)

    hold = payments.verify_hold(intent_id, 15000)

    assert hold.capturable
    assert hold.amount_capturable == 15000


def test_verify_hold_rejects_unconfirmed_hold():
    processor = MockPaymentProcessor()
    payments = PaymentOrchestrator(processor)
    hold = payments.authorize(15000, {"slotID": "slot_1"})

    with pytest.raises(PaymentAuthorizationFailed):
        payments.verify_hold(hold.intent_id, 15000)


def test_verify_hold_rejects_hold_below_amount():
    processor = MockPaymentProcessor()
    payments = PaymentOrchestrator(processor)
    intent_id = _confirmed(processor, payments, 14000)

    with pytest.raises(PaymentAuthorizationFailed):
        payments.verify_hold(intent_id, 15000)


def test_verify_hold_rejects_unknown_hold():
    payments = PaymentOrchestrator(MockPaymentProcessor())

    with pytest.raises(PaymentAuthorizationFailed):
        payments.verify_hold("pi_missing", 15000)


def test_settle_offer_pays_both_parties():
    processor = MockPaymentProcessor()
    payments = PaymentOrchestrator(processor, provider_account="acct_provider")
    intent_id = _confirmed(processor, payments, 15000)

    settlement = _settle(payments, _offer(intent_id), "acct_holder")

    assert settlement.captured_total == 15000
    assert settlement.holder_amount == 500
    assert settlement.provider_amount == 14500
    assert settlement.holder_paid
    holder = processor.transfers_to("acct_holder")[0]
    assert holder.amount == 500
    assert holder.transfer_group == "offer_1"
    assert processor.transfers_to("acct_provider")[0].amount == 14500


def test_settle_offer_is_idempotent():
    """Retrying a settlement neither captures nor pays out twice."""
    processor = MockPaymentProcessor()
    payments = PaymentOrchestrator(processor, provider_account="acct_provider")
    intent_id = _confirmed(processor, payments, 15000)
    offer = _offer(intent_id)

    first = _settle(payments, offer, "acct_holder")
    second = _settle(payments, offer, "acct_holder")

    assert second.already_captured is True
    assert second.holder_transfer_id == first.holder_transfer_id
    assert len(processor.transfers) == 2
    assert processor.captures == [intent_id]


def test_settle_offer_without_provider_account_keeps_share():
    processor = MockPaymentProcessor()
    payments = PaymentOrchestrator(processor)
    intent_id = _confirmed(processor, payments, 15000)

    settlement = _settle(payments, _offer(intent_id), "acct_holder")

    assert settlement.provider_transfer_id is None
    assert list(processor.transfers) == ["transfer_holder_offer_1"]


def test_capture_offer_without_hold():
    payments = PaymentOrchestrator(MockPaymentProcessor())

    with pytest.raises(PaymentCaptureFailed):
        payments.capture_offer(_offer(None))


def test_capture_offer_on_released_hold():
    processor = MockPaymentProcessor()
    payments = PaymentOrchestrator(processor)
    intent_id = _confirmed(processor, payments, 15000)
    payments.release(intent_id)

    with pytest.raises(PaymentCaptureFailed):
        payments.capture_offer(_offer(intent_id))


def test_capture_offer_on_unconfirmed_hold_moves_no_money():
    processor = MockPaymentProcessor()
    payments = PaymentOrchestrator(processor, provider_account="acct_provider")
    hold = payments.authorize(15000, {"slotID": "slot_1"})

    with pytest.raises(PaymentCaptureFailed):
        payments.capture_offer(_offer(hold.intent_id))

    assert processor.captures == []
    assert processor.transfers == {}
