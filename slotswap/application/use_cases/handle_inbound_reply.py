from __future__ import annotations

import logging
from datetime import datetime

from slotswap.application.exceptions import NoPendingOffer
from slotswap.application.slot_ledger import SlotLedger
from slotswap.application.use_cases.notifications import parse_reply
from slotswap.application.use_cases.offers import OfferNegotiationUseCase, OfferResponseResult
from slotswap.application.utils.ledger_codec import decode_ledger
from slotswap.application.utils.phone import same_phone
from slotswap.domain.entities.message import InboundReply


class HandleInboundReplyUseCase:
    """Route a YES/NO text from a booking holder to the offer it answers."""

    def __init__(self, ledger: SlotLedger, offers: OfferNegotiationUseCase) -> None:
        self._ledger = ledger
        self._offers = offers
        self._logger = logging.getLogger(__name__)

    def handle(self, reply: InboundReply) -> OfferResponseResult:
        accepted = parse_reply(reply.body)
        slot_id = self.find_slot_for_responder(reply.from_phone)
        if slot_id is None:
            self._logger.info("Reply with no pending offer", extra={"message_sid": reply.message_sid})
            raise NoPendingOffer("No pending offer for this phone number")
        self._logger.info(
            "Reply matched to slot",
            extra={"slot_id": slot_id, "message_sid": reply.message_sid, "accepted": accepted},
        )
        return self._offers.resolve_offer_response(slot_id, reply.from_phone, accepted)

    def find_slot_for_responder(self, phone: str) -> str | None:
        """Slot whose active holder has this phone, preferring the most recent pending offer."""
        best_id: str | None = None
        best_at: datetime | None = None
        for record in self._ledger.list_slots():
            active = decode_ledger(record.description).active_booking
            if active is None or not same_phone(active.phone, phone):
                continue
            pending = [o for o in active.offers if o.is_pending]
            if not pending:
                continue
            offered_at = pending[-1].offer_at
            if best_at is None or offered_at > best_at:
                best_id, best_at = record.id, offered_at
        return best_id
