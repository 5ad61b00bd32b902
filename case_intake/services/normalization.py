from __future__ import annotations

import logging

import phonenumbers

"""Value normalization helpers shared by the validator and the correction engine."""

__all__ = [
    "DEFAULT_PHONE_REGION",
    "normalize_phone",
    "title_case",
]

logger = logging.getLogger(__name__)

DEFAULT_PHONE_REGION = "IN"


def _to_e164(text: str, region: str | None) -> str | None:
    try:
        parsed = phonenumbers.parse(text, region)
    except phonenumbers.NumberParseException as exc:
        logger.debug("normalize_phone: unable to parse '%s' region=%s: %s", text, region, exc)
        return None
    if not phonenumbers.is_valid_number(parsed):
        return None
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def normalize_phone(value: str | None, region: str = DEFAULT_PHONE_REGION) -> str | None:
    """Normalize a phone number to E.164.

    The number is first read as a number of ``region`` (domestic user base),
    then as an international number. Returns None for empty input and for
    input that neither reading accepts.

    >>> normalize_phone("9876543210")
    '+919876543210'
    >>> normalize_phone("12345") is None
    True
    """
    if not value:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    return _to_e164(cleaned, region) or _to_e164(cleaned, None)


def title_case(name: str) -> str:
    """Trim, collapse whitespace runs, capitalize each token and lower the rest.

    >>> title_case("  john   doe  ")
    'John Doe'
    """
    return " ".join(word[:1].upper() + word[1:].lower() for word in name.split())
