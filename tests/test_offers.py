"""
Tests for making, accepting and declining offers on a booked slot.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from conftest import BIDDER_PHONE, HOLDER_PHONE, SLOT_ID, bidder_offer, confirmed_hold, holder_booking
from slotswap.application.exceptions import (
    NoActiveBooking,
    NoPendingOffer,
    NotificationFailed,
    OfferExpired,
    OfferNotFunded,
    OfferTooLow,
    PaymentAuthorizationFailed,
    ResponderMismatch,
)
from slotswap.application.use_cases.booking import create_booking
from slotswap.application.use_cases.offers import add_offer, resolve_offer_response, set_suggested_offer
from slotswap.application.utils.ledger_codec import default_ledger
from slotswap.application.utils.ledger_edits import replace_offer
from slotswap.domain.entities.slot import SlotStatus

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def booked():
    """Scenario 1: empty slot booked at 100.00 with a desired offer of 20.00."""
    return create_booking(default_ledger(), holder_booking(payment_id="pi_holder"), NOW, payment_authorised=True)


def funded(slot, amount, now, hold_id="pi_offer", **overrides):
    return add_offer(slot, bidder_offer(amount, payment_id=hold_id, **overrides), now, hold_verified=True)


def test_scenario_booking_sets_recommended_price(booked):
    assert booked.status == SlotStatus.booked
    assert booked.recommended_price == 14000


def test_scenario_offer_above_threshold_is_split(booked):
    """Scenario 2: 150.00 against 140.00 leaves 10.00 over, half to the holder."""
    slot, offer = funded(booked, 15000, NOW)

    assert offer.partial_payment_amount == 500
    assert offer.full_payment_amount == 14500
    assert offer.offer_valid_until == NOW + timedelta(minutes=30)
    assert offer.is_pending
    assert offer.full_payment_authorized is True
    assert slot.active_booking.offers == (offer,)


def test_scenario_offer_below_threshold_is_rejected(booked):
    """Scenario 3: 130.00 does not beat 140.00; nothing changes."""
    slot, _ = funded(booked, 15000, NOW)

    with pytest.raises(OfferTooLow) as exc:
        funded(slot, 13000, NOW, hold_id="pi_low")

    assert exc.value.threshold == 14000
    assert len(slot.active_booking.offers) == 1


def test_offer_equal_to_threshold_is_rejected(booked):
    with pytest.raises(OfferTooLow):
        funded(booked, 14000, NOW)


def test_offer_one_cent_over_threshold_goes_to_provider(booked):
    _, offer = funded(booked, 14001, NOW)

    assert offer.partial_payment_amount == 0
    assert offer.full_payment_amount == 14001


def test_offer_on_empty_slot():
    with pytest.raises(NoActiveBooking):
        add_offer(default_ledger(), bidder_offer(), NOW)


def test_offer_without_verified_hold_is_not_authorized(booked):
    _, offer = add_offer(booked, bidder_offer(15000, payment_id="pi_unchecked"), NOW)

    assert offer.full_payment_id == "pi_unchecked"
    assert offer.full_payment_authorized is False


def test_offer_cannot_reuse_a_hold_already_on_the_slot(booked):
    slot, _ = funded(booked, 15000, NOW)

    with pytest.raises(PaymentAuthorizationFailed):
        funded(slot, 16000, NOW, hold_id="pi_offer")
    with pytest.raises(PaymentAuthorizationFailed):
        funded(slot, 16000, NOW, hold_id="pi_holder")


def test_suggested_offer_is_a_floor(booked):
    slot = set_suggested_offer(booked, 16000)

    with pytest.raises(OfferTooLow) as exc:
        funded(slot, 15000, NOW)

    assert exc.value.threshold == 16000


def test_suggested_offer_must_be_positive(booked):
    with pytest.raises(ValueError):
        set_suggested_offer(booked, 0)


def test_accepting_moves_booking_to_offer_maker(booked):
    slot, offer = funded(booked, 15000, NOW)

    slot, resolution = resolve_offer_response(slot, HOLDER_PHONE, True, NOW + timedelta(minutes=5))

    assert resolution.accepted
    assert len(slot.bookings) == 2
    closed = slot.bookings[0]
    assert closed.offers[0].offer_accepted is True
    new = slot.active_booking
    assert new.phone == BIDDER_PHONE
    assert new.price == 15000
    assert new.payment_id == "pi_offer"
    assert new.payment_authorised is True
    assert new.desired_offer == 0
    assert slot.latest_booking_price == 15000
    assert slot.recommended_price == 15000


def test_accepting_declines_other_pending_offers(booked):
    slot, first = funded(booked, 15000, NOW)
    slot, second = funded(slot, 16000, NOW + timedelta(minutes=1), hold_id="pi_second", phone="+61400000003")

    slot, resolution = resolve_offer_response(slot, HOLDER_PHONE, True, NOW + timedelta(minutes=2))

    assert resolution.offer.offer_id == second.offer_id
    assert [o.offer_id for o in resolution.superseded] == [first.offer_id]
    offers = slot.bookings[0].offers
    assert offers[0].offer_declined is True
    assert offers[1].offer_accepted is True


def test_accepting_a_named_offer_declines_newer_ones(booked):
    slot, first = funded(booked, 15000, NOW)
    slot, second = funded(slot, 16000, NOW + timedelta(minutes=1), hold_id="pi_second")

    slot, resolution = resolve_offer_response(slot, HOLDER_PHONE, True, NOW, offer_id=first.offer_id)

    assert resolution.offer.offer_id == first.offer_id
    assert [o.offer_id for o in resolution.superseded] == [second.offer_id]


def test_accepting_an_offer_without_hold_id_changes_nothing(booked):
    """Offers written with a null fullPaymentID cannot take the slot."""
    slot, offer = funded(booked, 15000, NOW)
    unpaid = replace_offer(
        slot.active_booking, offer.offer_id, lambda o: replace(o, full_payment_id=None, full_payment_authorized=False)
    )
    slot = replace(slot, bookings=(unpaid,))

    with pytest.raises(OfferNotFunded):
        resolve_offer_response(slot, HOLDER_PHONE, True, NOW)


def test_accepting_an_unauthorized_hold_changes_nothing(booked):
    slot, _ = add_offer(booked, bidder_offer(15000, payment_id="pi_unchecked"), NOW)

    with pytest.raises(OfferNotFunded):
        resolve_offer_response(slot, HOLDER_PHONE, True, NOW)


def test_unfunded_offer_can_still_be_declined(booked):
    slot, _ = add_offer(booked, bidder_offer(15000), NOW)

    slot, resolution = resolve_offer_response(slot, HOLDER_PHONE, False, NOW)

    assert resolution.offer.offer_declined is True


def test_declining_is_final(booked):
    slot, offer = funded(booked, 15000, NOW)

    slot, resolution = resolve_offer_response(slot, HOLDER_PHONE, False, NOW)

    declined = slot.active_booking.offers[0]
    assert declined.offer_declined is True
    assert declined.offer_accepted is False
    assert len(slot.bookings) == 1
    with pytest.raises(NoPendingOffer):
        resolve_offer_response(slot, HOLDER_PHONE, True, NOW)


def test_late_response_changes_nothing(booked):
    slot, offer = funded(booked, 15000, NOW)

    with pytest.raises(OfferExpired):
        resolve_offer_response(slot, HOLDER_PHONE, True, offer.offer_valid_until + timedelta(seconds=1))


def test_response_exactly_at_deadline_counts(booked):
    slot, offer = funded(booked, 15000, NOW)

    _, resolution = resolve_offer_response(slot, HOLDER_PHONE, True, offer.offer_valid_until)

    assert resolution.accepted


def test_only_holder_can_respond(booked):
    slot, _ = funded(booked, 15000, NOW)

    with pytest.raises(ResponderMismatch):
        resolve_offer_response(slot, BIDDER_PHONE, True, NOW)


def test_holder_phone_is_normalized(booked):
    slot, _ = funded(booked, 15000, NOW)

    _, resolution = resolve_offer_response(slot, "+61 400 000 001", False, NOW)

    assert resolution.accepted is False


def test_add_offer_against_confirmed_hold_alerts_holder(make_offer, booked_slot, processor, platform, ledger):
    result = make_offer(15000)

    hold_id = result.offer.full_payment_id
    assert processor.status_of(hold_id) == "requires_capture"
    assert result.offer.full_payment_authorized is True
    assert result.delivery_id == "mock_sms_1"
    assert platform.sent == [
        (
            HOLDER_PHONE,
            "You have received a new offer of $150.00 for your booking. "
            "Respond within the next 30 minutes to accept or decline.",
        )
    ]
    assert ledger.load(SLOT_ID).active_booking.offers == (result.offer,)


def test_add_offer_too_low_is_rejected_before_payment_check(offers_uc, booked_slot, platform):
    with pytest.raises(OfferTooLow):
        offers_uc.add_offer(SLOT_ID, bidder_offer(13000, payment_id="pi_unknown"))

    assert platform.sent == []


def test_add_offer_without_hold_writes_nothing(offers_uc, booked_slot, platform, ledger):
    before = ledger.load(SLOT_ID)

    with pytest.raises(PaymentAuthorizationFailed):
        offers_uc.add_offer(SLOT_ID, bidder_offer(15000))

    assert ledger.load(SLOT_ID) == before
    assert platform.sent == []


def test_add_offer_with_unconfirmed_hold_writes_nothing(offers_uc, payments, booked_slot, platform, ledger):
    hold = payments.authorize(15000, {"slotID": SLOT_ID, "purpose": "offer"})
    before = ledger.load(SLOT_ID)

    with pytest.raises(PaymentAuthorizationFailed):
        offers_uc.add_offer(SLOT_ID, bidder_offer(15000, payment_id=hold.intent_id))

    assert ledger.load(SLOT_ID) == before
    assert platform.sent == []


def test_add_offer_with_hold_smaller_than_offer_writes_nothing(
    offers_uc, payments, processor, booked_slot, ledger
):
    hold_id = confirmed_hold(payments, processor, 14500)
    before = ledger.load(SLOT_ID)

    with pytest.raises(PaymentAuthorizationFailed):
        offers_uc.add_offer(SLOT_ID, bidder_offer(15000, payment_id=hold_id))

    assert ledger.load(SLOT_ID) == before


def test_add_offer_sms_failure_keeps_offer(make_offer, booked_slot, platform, ledger):
    platform.fail = True

    with pytest.raises(NotificationFailed) as exc:
        make_offer(15000)

    assert str(exc.value).startswith("ledger updated, notification failed")
    assert exc.value.offer is not None
    assert ledger.load(SLOT_ID).active_booking.offers == (exc.value.offer,)


def test_accept_settles_split_payment(offers_uc, make_offer, booked_slot, processor, ledger):
    holder_hold = booked_slot.active_booking.payment_id
    offer = make_offer(15000).offer

    result = offers_uc.resolve_offer_response(SLOT_ID, HOLDER_PHONE, True)

    settlement = result.settlement
    assert settlement.captured_total == 15000
    assert settlement.holder_amount + settlement.provider_amount == 15000
    assert processor.status_of(offer.full_payment_id) == "succeeded"
    assert processor.status_of(holder_hold) == "canceled"
    assert [t.amount for t in processor.transfers_to("acct_holder")] == [500]
    assert [t.amount for t in processor.transfers_to("acct_provider")] == [14500]

    stored = ledger.load(SLOT_ID)
    settled = stored.bookings[0].offers[0]
    assert settled.offer_accepted is True
    assert settled.partial_payment_captured is True
    assert settled.partial_payment_id == settlement.holder_transfer_id
    assert settled.full_payment_fulfilled is True
    assert stored.active_booking.phone == BIDDER_PHONE
    assert stored.active_booking.payment_fulfilled is True


def test_accept_with_uncapturable_hold_writes_nothing(offers_uc, make_offer, booked_slot, processor, ledger):
    holder_hold = booked_slot.active_booking.payment_id
    offer = make_offer(15000).offer
    # the bidder's hold was cancelled after the offer was made
    processor.cancel(offer.full_payment_id)
    before = ledger.load(SLOT_ID)

    with pytest.raises(OfferNotFunded):
        offers_uc.resolve_offer_response(SLOT_ID, HOLDER_PHONE, True)

    assert ledger.load(SLOT_ID) == before
    assert processor.status_of(holder_hold) == "requires_capture"
    assert processor.transfers == {}


def test_accept_of_offer_stored_without_hold_writes_nothing(offers_uc, booked_slot, store, ledger, processor, clock):
    """A pending offer as older clients stored it, with fullPaymentID null."""
    holder_hold = booked_slot.active_booking.payment_id
    ledger.mutate(SLOT_ID, lambda current: add_offer(current, bidder_offer(15000), clock()))
    before = store.get(SLOT_ID)

    with pytest.raises(OfferNotFunded):
        offers_uc.resolve_offer_response(SLOT_ID, HOLDER_PHONE, True)

    assert store.get(SLOT_ID) == before
    assert processor.captures == []
    assert processor.status_of(holder_hold) == "requires_capture"
    assert ledger.load(SLOT_ID).active_booking.offers[0].full_payment_id is None


def test_accept_releases_superseded_holds(offers_uc, make_offer, booked_slot, processor, clock):
    first = make_offer(15000).offer
    clock.advance(minutes=1)
    second = make_offer(16000, phone="+61400000003").offer

    offers_uc.resolve_offer_response(SLOT_ID, HOLDER_PHONE, True)

    assert processor.status_of(first.full_payment_id) == "canceled"
    assert processor.status_of(second.full_payment_id) == "succeeded"


def test_decline_releases_offer_hold(offers_uc, make_offer, booked_slot, processor, ledger):
    holder_hold = booked_slot.active_booking.payment_id
    offer = make_offer(15000).offer

    result = offers_uc.resolve_offer_response(SLOT_ID, HOLDER_PHONE, False)

    assert result.settlement is None
    assert processor.status_of(offer.full_payment_id) == "canceled"
    assert processor.status_of(holder_hold) == "requires_capture"
    assert ledger.load(SLOT_ID).active_booking.offers[0].offer_declined is True


def test_expired_response_leaves_ledger_and_hold(offers_uc, make_offer, booked_slot, processor, ledger, clock):
    offer = make_offer(15000).offer
    before = ledger.load(SLOT_ID)
    clock.advance(minutes=31)

    with pytest.raises(OfferExpired):
        offers_uc.resolve_offer_response(SLOT_ID, HOLDER_PHONE, True)

    assert ledger.load(SLOT_ID) == before
    assert processor.status_of(offer.full_payment_id) == "requires_capture"


def test_holder_without_payout_destination_is_owed(offers_uc, make_offer, booking_uc, payments, processor, ledger):
    hold_id = confirmed_hold(payments, processor, 10000, purpose="booking")
    booking_uc.create_booking(SLOT_ID, holder_booking(payment_id=hold_id, payout_destination=None))
    make_offer(15000)

    result = offers_uc.resolve_offer_response(SLOT_ID, HOLDER_PHONE, True)

    assert result.settlement.holder_transfer_id is None
    assert result.settlement.holder_paid is False
    assert ledger.load(SLOT_ID).bookings[0].offers[0].partial_payment_captured is False


def test_outgoing_hold_kept_when_already_captured(offers_uc, make_offer, booking_uc, booked_slot, processor):
    booking_uc.capture_booking(SLOT_ID)
    make_offer(15000)

    offers_uc.resolve_offer_response(SLOT_ID, HOLDER_PHONE, True)

    assert processor.status_of(booked_slot.active_booking.payment_id) == "succeeded"


def test_set_suggested_offer_persists(offers_uc, booked_slot, ledger):
    offers_uc.set_suggested_offer(SLOT_ID, 20000)

    assert ledger.load(SLOT_ID).suggested_offer == 20000
