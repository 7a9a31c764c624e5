"""Shared utilities used across the chat backend."""

import re


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits.

    Examples:
        >>> normalize_phone("555-123-4567")
        '5551234567'
        >>> normalize_phone("(555) 123 4567")
        '5551234567'
    """
    return re.sub(r"\D", "", value)


def format_phone(digits: str) -> str:
    """Format a 10-digit number for display, leaving anything else untouched.

    Examples:
        >>> format_phone("5551234567")
        '(555) 123-4567'
    """
    if len(digits) != 10 or not digits.isdigit():
        return digits
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def collapse_whitespace(text: str) -> str:
    """Trim and collapse internal runs of whitespace to a single space."""
    return re.sub(r"\s+", " ", text).strip()
