from __future__ import annotations

import logging
import threading
import time
import weakref
from typing import Callable, TypeVar

from slotswap.application.exceptions import LedgerInvariantViolation, MalformedLedger, StoreUnavailable
from slotswap.application.ports.record_store import RecordStorePort
from slotswap.application.utils.ledger_codec import encode_ledger, read_ledger
from slotswap.domain.entities.slot import Slot
from slotswap.domain.entities.slot_record import SlotRecord

T = TypeVar("T")


class _SlotLock:
    """A lock that can be weakly referenced (threading.Lock cannot)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def __enter__(self) -> "_SlotLock":
        self._lock.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self._lock.release()


class SlotLedger:
    """
    Read-modify-write access to the ledger kept in each slot's record.

    The record store has no compare-and-swap. Two writers that read the same
    ledger both succeed and the later put wins, silently dropping the other
    change. Mutations going through one SlotLedger instance are serialized
    per slot with an in-process lock; writers in other processes (or other
    instances) still race.
    """

    def __init__(
        self,
        store: RecordStorePort,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
    ) -> None:
        self._store = store
        self._max_attempts = max(1, max_attempts)
        self._backoff_seconds = backoff_seconds
        # entries go away once no mutate holds them
        self._locks: weakref.WeakValueDictionary[str, _SlotLock] = weakref.WeakValueDictionary()
        self._lock_lock = threading.Lock()  # guards _locks
        self._logger = logging.getLogger(__name__)

    def _get_lock(self, slot_id: str) -> _SlotLock:
        with self._lock_lock:
            lock = self._locks.get(slot_id)
            if lock is None:
                lock = _SlotLock()
                self._locks[slot_id] = lock
            return lock

    def load(self, slot_id: str) -> Slot:
        raw = self._with_retry("get", slot_id, lambda: self._store.get(slot_id))
        try:
            return read_ledger(raw)
        except MalformedLedger as e:
            self._logger.error("Stored ledger is unreadable", extra={"slot_id": slot_id, "error": str(e)})
            raise LedgerInvariantViolation(f"Stored ledger for slot {slot_id} is unreadable: {e}") from e

    def save(self, slot_id: str, slot: Slot) -> None:
        text = encode_ledger(slot)
        self._with_retry("put", slot_id, lambda: self._store.put(slot_id, text))

    def mutate(self, slot_id: str, change: Callable[[Slot], tuple[Slot, T]]) -> tuple[Slot, T]:
        """
        Load the slot, apply `change` and write the result back.

        `change` returns the new slot plus a value handed back to the caller.
        If it raises, nothing is written. No network calls other than the
        store's may happen inside `change`: the slot lock is held throughout.
        """
        lock = self._get_lock(slot_id)
        with lock:
            current = self.load(slot_id)
            updated, result = change(current)
            self.save(slot_id, updated)
        self._logger.info(
            "Ledger updated",
            extra={"slot_id": slot_id, "status": updated.status.value, "bookings": len(updated.bookings)},
        )
        return updated, result

    def list_slots(self) -> list[SlotRecord]:
        return self._with_retry("list", "*", self._store.list_slots)

    def _with_retry(self, operation: str, slot_id: str, call: Callable[[], T]) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return call()
            except StoreUnavailable as e:
                if attempt >= self._max_attempts:
                    self._logger.error(
                        "Record store unavailable, giving up",
                        extra={"slot_id": slot_id, "operation": operation, "attempts": attempt, "error": str(e)},
                    )
                    raise
                self._logger.warning(
                    "Record store unavailable, retrying",
                    extra={"slot_id": slot_id, "operation": operation, "attempt": attempt, "error": str(e)},
                )
                if self._backoff_seconds > 0:
                    time.sleep(self._backoff_seconds * attempt)
