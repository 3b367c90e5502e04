from __future__ import annotations

import re

_NON_DIGIT_RE = re.compile(r"\D")


def normalize_phone(phone: str | None) -> str:
    """Digits only, keeping a leading "+" so E.164 numbers compare equal to spaced ones."""
    if not phone:
        return ""
    phone = phone.strip()
    prefix = "+" if phone.startswith("+") else ""
    return prefix + _NON_DIGIT_RE.sub("", phone)


def same_phone(a: str | None, b: str | None) -> bool:
    na, nb = normalize_phone(a), normalize_phone(b)
    return bool(na) and na == nb
