from __future__ import annotations

from abc import ABC, abstractmethod

from slotswap.domain.entities.slot_record import SlotRecord


class RecordStorePort(ABC):
    """One opaque text field per slot. No versioning, no compare-and-swap: put overwrites."""

    @abstractmethod
    def get(self, slot_id: str) -> str | None:
        """Return the raw ledger text for a slot (None if the field is empty).

        Raises:
            SlotNotFound: the slot does not exist.
            StoreUnavailable: transient failure, safe to retry.
            AuthenticationRequired: credentials must be renewed upstream.
        """
        raise NotImplementedError

    @abstractmethod
    def put(self, slot_id: str, text: str) -> None:
        """Overwrite the raw ledger text for a slot. Same failure modes as get."""
        raise NotImplementedError

    @abstractmethod
    def list_slots(self) -> list[SlotRecord]:
        """List upcoming slots ordered by start time."""
        raise NotImplementedError
