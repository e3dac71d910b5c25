# gradelink/core/identifiers.py

"""
Tenant identifiers.

A school's display name is turned into the name of its database (or schema).
Database and schema names cannot be bound as query parameters, so every
statement that interpolates one must pass it through `validate_identifier`
right before use, even if it was validated earlier in the call chain.
"""

import re
from typing import Optional
from gradelink.core.config import settings
from gradelink.services.exceptions import InvalidIdentifier

SAFE_IDENTIFIER = re.compile(r"^[a-z0-9_]+$")
# PostgreSQL truncates identifiers longer than this
MAX_IDENTIFIER_LENGTH = 63

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^a-z0-9_]")
_REPEATED_SEPARATOR = re.compile(r"_+")


def normalize(display_name: Optional[str], prefix: Optional[str] = None) -> str:
    """
    Derives the canonical tenant identifier from a display name.

    "Green   Valley School" -> "tenant_green_valley_school"

    Names that already carry the prefix are returned unchanged apart from
    cleanup, so normalize(normalize(x)) == normalize(x).
    """
    prefix = settings.TENANT_PREFIX if prefix is None else prefix
    if display_name is None:
        raise InvalidIdentifier("School name is required.")

    text = display_name.strip().lower()
    text = _WHITESPACE.sub("_", text)
    text = _DISALLOWED.sub("", text)
    text = _REPEATED_SEPARATOR.sub("_", text).strip("_")
    if not text:
        raise InvalidIdentifier(f"School name '{display_name}' does not contain any usable characters.")

    identifier = text if text.startswith(prefix) and len(text) > len(prefix) else f"{prefix}{text}"
    return validate_identifier(identifier, prefix=prefix)


def validate_identifier(identifier: Optional[str], prefix: Optional[str] = None) -> str:
    """Gate for any identifier about to be interpolated into a statement. Returns it unchanged."""
    prefix = settings.TENANT_PREFIX if prefix is None else prefix
    if not isinstance(identifier, str) or not identifier:
        raise InvalidIdentifier("Tenant identifier is missing.")
    if not SAFE_IDENTIFIER.match(identifier):
        raise InvalidIdentifier(f"Tenant identifier '{identifier}' contains unsafe characters.")
    if not identifier.startswith(prefix) or len(identifier) == len(prefix):
        raise InvalidIdentifier(f"Tenant identifier '{identifier}' is outside the '{prefix}' namespace.")
    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifier(f"Tenant identifier '{identifier}' is longer than {MAX_IDENTIFIER_LENGTH} characters.")
    return identifier


def is_identifier(value: Optional[str], prefix: Optional[str] = None) -> bool:
    try:
        validate_identifier(value, prefix=prefix)
        return True
    except InvalidIdentifier:
        return False
