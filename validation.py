"""
Field patterns, normalization and validation-error formatting.

Request shapes themselves live in ``schemas``; this module holds the pieces
they share with the store layer: the regexes, the normalizers used to build
lookup keys, and the conversion of pydantic errors into the API's
``{"error": "Validation error", "details": [...]}`` body.
"""

import os
import re
from typing import Any, Dict, List, Optional, Sequence

from bson import ObjectId

DEFAULT_PHONE_PATTERN = r"^(\+?\d{1,3}[- ]?)?\(?\d{3}\)?[- ]?\d{3}[- ]?\d{2}[- ]?\d{2}$"

PHONE_REGEX = re.compile(os.getenv("PHONE_PATTERN") or DEFAULT_PHONE_PATTERN)
# [^\W\d_] is a Unicode letter.
NAME_REGEX = re.compile(r"^(?:[^\W\d_]|[\s'’\-]){2,100}$")
ADDRESS_REGEX = re.compile(r"^(?:[^\W\d_]|[0-9\s.,'’\-()]){5,200}$")

NAME_MESSAGE = "Name can only contain letters, spaces, apostrophes and hyphens"
PHONE_MESSAGE = "Enter a valid phone number (e.g., 063 123 45 67)"
ADDRESS_MESSAGE = (
    "Address can only contain letters, numbers, spaces, and basic punctuation"
)
OBJECT_ID_MESSAGE = "must be a 24-character hex identifier"

# Request sections in the order they are checked.
SECTIONS = ("body", "query", "path")


def is_object_id(value: Any) -> bool:
    return isinstance(value, str) and len(value) == 24 and ObjectId.is_valid(value)


def check_object_id(value: str) -> str:
    if not is_object_id(value):
        raise ValueError(OBJECT_ID_MESSAGE)
    return value.lower()


def check_name(value: str) -> str:
    if not NAME_REGEX.match(value):
        raise ValueError(NAME_MESSAGE)
    return value


def check_phone(value: str) -> str:
    if not PHONE_REGEX.match(value):
        raise ValueError(PHONE_MESSAGE)
    return value


def check_address(value: str) -> str:
    if not ADDRESS_REGEX.match(value):
        raise ValueError(ADDRESS_MESSAGE)
    return value


def normalize_email(value: Optional[str]) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def normalize_phone(value: Optional[str]) -> str:
    if not isinstance(value, str):
        return ""
    return re.sub(r"[\s-]+", "", value)


def normalize_name(value: Optional[str]) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _error_message(err: Dict[str, Any]) -> str:
    ctx = err.get("ctx") or {}
    if err.get("type") == "value_error" and "error" in ctx:
        return str(ctx["error"])
    return err.get("msg", "Invalid value")


def format_validation_errors(errors: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Build the 400 body from pydantic errors.

    Sections are checked body, query, path; only the first section that has
    errors is reported, with every failed field of that section.
    """
    by_section: Dict[str, List[Dict[str, Any]]] = {}
    for err in errors:
        loc = tuple(err.get("loc") or ())
        section = loc[0] if loc else "body"
        by_section.setdefault(section, []).append(err)

    chosen: List[Dict[str, Any]] = []
    for section in SECTIONS:
        if section in by_section:
            chosen = by_section[section]
            break
    else:
        for errs in by_section.values():
            chosen = errs
            break

    details = []
    for err in chosen:
        loc = tuple(err.get("loc") or ())
        path = ".".join(str(p) for p in loc[1:])
        details.append({"path": path, "message": _error_message(err)})

    return {"error": "Validation error", "details": details}
