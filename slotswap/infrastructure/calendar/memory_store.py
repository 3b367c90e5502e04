from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime

from slotswap.application.exceptions import SlotNotFound
from slotswap.application.ports.record_store import RecordStorePort
from slotswap.domain.entities.slot_record import SlotRecord


class InMemoryRecordStore(RecordStorePort):
    def __init__(self) -> None:
        self._slots: dict[str, SlotRecord] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def add_slot(
        self,
        slot_id: str,
        summary: str = "Complete Barber Services",
        start: datetime | None = None,
        end: datetime | None = None,
        description: str | None = None,
    ) -> SlotRecord:
        record = SlotRecord(id=slot_id, summary=summary, start=start, end=end, description=description)
        with self._lock:
            self._slots[slot_id] = record
        return record

    def get(self, slot_id: str) -> str | None:
        with self._lock:
            record = self._slots.get(slot_id)
        if record is None:
            raise SlotNotFound(slot_id)
        return record.description

    def put(self, slot_id: str, text: str) -> None:
        with self._lock:
            record = self._slots.get(slot_id)
            if record is None:
                raise SlotNotFound(slot_id)
            self._slots[slot_id] = replace(record, description=text)
        self._logger.debug("Mock slot description written", extra={"slot_id": slot_id})

    def list_slots(self) -> list[SlotRecord]:
        with self._lock:
            records = list(self._slots.values())
        return sorted(records, key=lambda r: (r.start is None, r.start or datetime.min))
