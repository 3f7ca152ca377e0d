"""Per-organization sender ("from") allowlist."""

from __future__ import annotations

import re
from typing import Any, Iterable, List

from flowcore.errors import ValidationError
from flowcore.settings import MAX_ALLOWED_FROM_EMAILS

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def sanitize_allowed_from_emails(value: Any) -> List[str]:
    """Lenient cleanup of stored values: strings only, trimmed, lower-cased, deduplicated."""
    if not isinstance(value, list):
        return []
    seen: List[str] = []
    for item in value:
        if not isinstance(item, str):
            continue
        email = item.strip().lower()
        if email and email not in seen:
            seen.append(email)
    return seen


def normalize_allowed_from_emails(value: Any) -> List[str]:
    """Strict validation of a settings update.

    Raises:
        ValidationError: not a list, too many entries, or a malformed address.
    """
    if not isinstance(value, list):
        raise ValidationError("allowed_from_emails must be a list of email strings")

    emails = sanitize_allowed_from_emails(value)
    if len(emails) > MAX_ALLOWED_FROM_EMAILS:
        raise ValidationError(
            f"allowed_from_emails cannot contain more than {MAX_ALLOWED_FROM_EMAILS} addresses"
        )
    for email in emails:
        if not _EMAIL_PATTERN.match(email):
            raise ValidationError(f"Invalid sender email address: {email}")
    return emails


def is_allowed_from_email(allowed: Iterable[str], candidate: str) -> bool:
    return candidate.strip().lower() in set(allowed)
