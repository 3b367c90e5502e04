from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable
from urllib.parse import quote

import httpx

from slotswap.application.exceptions import (
    AuthenticationRequired,
    SlotNotFound,
    SlotSwapError,
    StoreUnavailable,
)
from slotswap.application.ports.record_store import RecordStorePort
from slotswap.core.config import settings
from slotswap.domain.entities.slot_record import SlotRecord
from slotswap.infrastructure.calendar.google_credentials import GoogleCredentials


class GoogleCalendarRecordStore(RecordStorePort):
    """Slots are calendar events; the ledger lives in each event's description."""

    def __init__(
        self,
        credentials: GoogleCredentials,
        calendar_id: str | None = None,
        base_url: str | None = None,
        search_query: str | None = None,
        list_limit: int | None = None,
        http_client: httpx.Client | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._credentials = credentials
        self._calendar_id = calendar_id or settings.GOOGLE_CALENDAR_ID
        self._base_url = (base_url or settings.GOOGLE_CALENDAR_BASE_URL).rstrip("/")
        self._search_query = search_query or settings.SLOT_SEARCH_QUERY
        self._list_limit = list_limit or settings.SLOT_LIST_LIMIT
        self._client = http_client or httpx.Client(timeout=10.0)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logging.getLogger(__name__)

    def get(self, slot_id: str) -> str | None:
        response = self._request("GET", self._event_url(slot_id), slot_id)
        return response.json().get("description")

    def put(self, slot_id: str, text: str) -> None:
        self._request("PATCH", self._event_url(slot_id), slot_id, json={"description": text})
        self._logger.info("Slot description updated", extra={"slot_id": slot_id})

    def list_slots(self) -> list[SlotRecord]:
        params = {
            "timeMin": self._clock().isoformat(),
            "maxResults": self._list_limit,
            "singleEvents": "true",
            "orderBy": "startTime",
            "q": self._search_query,
        }
        response = self._request("GET", self._events_url(), "*", params=params)
        records: list[SlotRecord] = []
        for item in response.json().get("items", []):
            summary = item.get("summary") or ""
            if self._search_query not in summary:
                continue
            records.append(
                SlotRecord(
                    id=str(item["id"]),
                    summary=summary,
                    start=_event_time(item.get("start")),
                    end=_event_time(item.get("end")),
                    description=item.get("description"),
                )
            )
        return records

    def _events_url(self) -> str:
        return f"{self._base_url}/calendars/{quote(self._calendar_id, safe='')}/events"

    def _event_url(self, slot_id: str) -> str:
        return f"{self._events_url()}/{quote(slot_id, safe='')}"

    def _request(self, method: str, url: str, slot_id: str, **kwargs: Any) -> httpx.Response:
        response = self._send(method, url, **kwargs)
        if response.status_code == 401:
            # token may have been revoked or expired early; one refresh, then give up
            self._credentials.refresh()
            response = self._send(method, url, **kwargs)
            if response.status_code == 401:
                raise AuthenticationRequired("Calendar rejected refreshed credentials")

        status = response.status_code
        if status in (404, 410):
            raise SlotNotFound(slot_id)
        if status == 429 or status >= 500:
            self._logger.warning(
                "Calendar API unavailable",
                extra={"slot_id": slot_id, "status": status, "method": method},
            )
            raise StoreUnavailable(f"Calendar API returned {status}")
        if status >= 400:
            self._logger.error(
                "Calendar API rejected request",
                extra={"slot_id": slot_id, "status": status, "error": response.text},
            )
            raise SlotSwapError(f"Calendar API rejected {method} with {status}")
        return response

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._credentials.access_token()}"}
        try:
            return self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as e:
            raise StoreUnavailable(f"Calendar API unreachable: {e}") from e


def _event_time(value: dict[str, Any] | None) -> datetime | None:
    if not value:
        return None
    raw = value.get("dateTime") or value.get("date")
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
