from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable

import httpx

from slotswap.application.exceptions import AuthenticationRequired

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"

# refresh a little before Google would reject the token
EXPIRY_MARGIN_SECONDS = 60


class GoogleCredentials:
    """
    OAuth tokens for the calendar that holds the slots.

    Handed to the record store at construction. Tokens are persisted to a
    JSON file (same shape as the OAuth token response, plus `expiry_date`
    in epoch milliseconds) and refreshed when they expire or when the store
    reports a 401.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        tokens_path: str = "tokens.json",
        http_client: httpx.Client | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not client_id or not client_secret:
            raise ValueError("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are required for Google Calendar")
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._tokens_path = Path(tokens_path)
        self._client = http_client or httpx.Client(timeout=10.0)
        self._clock = clock
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)
        self._tokens: dict[str, Any] = self._load_tokens()

    def authorization_url(self) -> str:
        params = {
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "response_type": "code",
            "access_type": "offline",
            "prompt": "consent",
            "scope": CALENDAR_SCOPE,
        }
        return str(httpx.URL(GOOGLE_AUTH_URL, params=params))

    def exchange_code(self, code: str) -> None:
        tokens = self._token_request(
            {
                "code": code,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "redirect_uri": self._redirect_uri,
                "grant_type": "authorization_code",
            }
        )
        with self._lock:
            self._store_tokens(tokens)
        self._logger.info("Google Calendar authorized")

    def access_token(self) -> str:
        with self._lock:
            if not self._tokens.get("access_token"):
                raise AuthenticationRequired("Not authenticated. Please authorize the application.")
            if self._is_expired():
                self._refresh_locked()
            return self._tokens["access_token"]

    def refresh(self) -> str:
        with self._lock:
            self._refresh_locked()
            return self._tokens["access_token"]

    def _is_expired(self) -> bool:
        expiry_ms = self._tokens.get("expiry_date")
        if not expiry_ms:
            return False
        return expiry_ms <= (self._clock() + EXPIRY_MARGIN_SECONDS) * 1000

    def _refresh_locked(self) -> None:
        refresh_token = self._tokens.get("refresh_token")
        if not refresh_token:
            raise AuthenticationRequired("No refresh token stored. Please re-authenticate.")
        self._logger.info("Google Calendar token expired, refreshing")
        tokens = self._token_request(
            {
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            }
        )
        tokens.setdefault("refresh_token", refresh_token)
        self._store_tokens(tokens)

    def _token_request(self, data: dict[str, str]) -> dict[str, Any]:
        try:
            response = self._client.post(GOOGLE_TOKEN_URL, data=data)
        except httpx.HTTPError as e:
            self._logger.error("Token request failed", extra={"error": str(e)})
            raise AuthenticationRequired("Authentication error: token endpoint unreachable") from e
        if response.status_code != 200:
            self._logger.error("Token request rejected", extra={"status": response.status_code, "error": response.text})
            raise AuthenticationRequired("Authentication error: Please re-authenticate.")
        tokens = response.json()
        if not tokens.get("access_token"):
            raise AuthenticationRequired("No access token in token response")
        return tokens

    def _store_tokens(self, tokens: dict[str, Any]) -> None:
        expires_in = int(tokens.get("expires_in", 3600))
        tokens["expiry_date"] = int((self._clock() + expires_in) * 1000)
        self._tokens = tokens
        self._save_tokens()

    def _load_tokens(self) -> dict[str, Any]:
        if not self._tokens_path.exists():
            self._logger.info("No stored tokens found. Please authenticate.")
            return {}
        try:
            with open(self._tokens_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            self._logger.warning("Stored tokens unreadable", extra={"error": str(e)})
            return {}
        return data if isinstance(data, dict) else {}

    def _save_tokens(self) -> None:
        temp_path = self._tokens_path.with_suffix(".json.tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(self._tokens, f)
        temp_path.replace(self._tokens_path)
