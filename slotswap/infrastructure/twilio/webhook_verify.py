from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from typing import Mapping


logger = logging.getLogger(__name__)


def compute_signature(url: str, params: Mapping[str, str], auth_token: str) -> str:
    """Twilio request signature: HMAC-SHA1 of the URL followed by each sorted param name and value."""
    payload = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), payload.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(
    url: str,
    params: Mapping[str, str],
    signature_header: str | None,
    auth_token: str | None,
    env: str,
) -> bool:
    if not signature_header:
        if env.lower() in {"dev", "local"}:
            logger.warning("Missing signature header; accepting in dev mode")
            return True
        return False

    if not auth_token:
        logger.error("Missing auth token for signature verification")
        return False

    expected = compute_signature(url, params, auth_token)
    return hmac.compare_digest(expected, signature_header)
