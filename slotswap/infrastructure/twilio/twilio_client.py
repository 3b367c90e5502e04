from __future__ import annotations

import logging

import httpx

from slotswap.application.exceptions import NotificationFailed


class TwilioClient:
    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        base_url: str = "https://api.twilio.com/2010-04-01",
        http_client: httpx.Client | None = None,
    ) -> None:
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._messages_url = f"{base_url.rstrip('/')}/Accounts/{account_sid}/Messages.json"
        self._client = http_client or httpx.Client(timeout=10.0)
        self._logger = logging.getLogger(__name__)

    def send_text(self, to_phone: str, text: str) -> str:
        data = {"To": to_phone, "From": self._from_number, "Body": text}
        try:
            resp = self._client.post(self._messages_url, auth=(self._account_sid, self._auth_token), data=data)
        except httpx.HTTPError as e:
            self._logger.error("Twilio unreachable", extra={"to_phone": to_phone, "error": str(e)})
            raise NotificationFailed(f"Twilio unreachable: {e}") from e

        if resp.status_code >= 400:
            try:
                error_json = resp.json()
                error_code = error_json.get("code")
                error_message = error_json.get("message")
            except ValueError:
                error_code = None
                error_message = resp.text

            self._logger.error(
                "Twilio send failed",
                extra={
                    "status": resp.status_code,
                    "error_code": error_code,
                    "error_message": error_message,
                    "to_phone": to_phone,
                    "text_length": len(text),
                },
            )
            raise NotificationFailed(f"Twilio rejected message ({resp.status_code}): {error_message}")

        return resp.json().get("sid", "")
