from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class SlotRecord:
    """A calendar event as the record store lists it; description is the raw ledger text."""

    id: str
    summary: str
    start: datetime | None
    end: datetime | None
    description: str | None = None
