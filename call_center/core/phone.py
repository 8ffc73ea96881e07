"""Phone number normalization and lookup helpers."""

from __future__ import annotations

import re
from typing import Dict, List

_NON_DIALABLE = re.compile(r"[^\d+]")

COUNTRY_CODES: Dict[str, str] = {
    "+1": "US",
    "+44": "GB",
    "+91": "IN",
    "+33": "FR",
    "+49": "DE",
    "+81": "JP",
    "+86": "CN",
    "+61": "AU",
    "+55": "BR",
    "+52": "MX",
    "+34": "ES",
    "+39": "IT",
    "+7": "RU",
    "+82": "KR",
    "+31": "NL",
    "+46": "SE",
    "+47": "NO",
    "+45": "DK",
    "+48": "PL",
    "+90": "TR",
}


def normalize_phone_number(phone: str) -> str:
    """Strip everything except digits and ``+``."""
    return _NON_DIALABLE.sub("", phone or "")


def toggle_plus(phone: str) -> str:
    return phone[1:] if phone.startswith("+") else f"+{phone}"


def phone_lookup_candidates(phone: str) -> List[str]:
    """Return the keys to try, in order, when looking a customer up by phone.

    Exact value first, then the normalized form, then both with the leading
    ``+`` added or removed. Duplicates and empty keys are dropped.
    """
    normalized = normalize_phone_number(phone)
    ordered = [phone, normalized]
    if phone:
        ordered.append(toggle_plus(phone))
    if normalized:
        ordered.append(toggle_plus(normalized))

    candidates: List[str] = []
    for key in ordered:
        if key and key != "+" and key not in candidates:
            candidates.append(key)
    return candidates


def extract_country_code(phone: str) -> str:
    """Best-effort ISO country for an E.164 number, defaulting to US."""
    cleaned = re.sub(r"\s", "", phone or "")
    for code, country in COUNTRY_CODES.items():
        if cleaned.startswith(code):
            return country
    return "US"


def format_phone_number_for_retell(phone: str) -> Dict[str, str]:
    cleaned = re.sub(r"\s", "", phone or "")
    return {"number": cleaned, "country_code": extract_country_code(cleaned)}
