"""Customer identity: find-or-create on (email, phone) and prefill lookup."""

from typing import Any, Dict, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import utcnow
from logger import get_logger
from schemas import DEFAULT_TIMEZONE
from validation import normalize_email, normalize_name, normalize_phone

_logger = get_logger(__name__)


def upsert_customer(
    db: Database,
    email: str,
    phone: str,
    address: str,
    name: Optional[str] = None,
    session=None,
) -> Dict[str, Any]:
    """Create the customer keyed by normalized (email, phone) or refresh it.

    One atomic find_one_and_update against the unique (email, phone) index.
    A stored name is only replaced by a non-empty one.
    """
    email = normalize_email(email)
    phone = normalize_phone(phone)
    name = normalize_name(name)
    now = utcnow()

    to_set: Dict[str, Any] = {
        "default_address": address,
        "last_seen_at": now,
        "updated_at": now,
    }
    if name:
        to_set["name"] = name

    update = {
        "$set": to_set,
        "$setOnInsert": {
            "email": email,
            "phone": phone,
            "timezone": DEFAULT_TIMEZONE,
            "created_at": now,
        },
    }
    key = {"email": email, "phone": phone}

    try:
        return _find_and_upsert(db, key, update, session)
    except DuplicateKeyError:
        # A concurrent request inserted the same key first; this pass matches it.
        _logger.debug("Customer insert raced on %s, retrying as update", email)
        return _find_and_upsert(db, key, update, session)


def _find_and_upsert(db: Database, key, update, session) -> Dict[str, Any]:
    return db["customer"].find_one_and_update(
        key,
        update,
        upsert=True,
        return_document=ReturnDocument.AFTER,
        session=session,
    )


def find_prefill(db: Database, email: str, phone: str) -> Optional[Dict[str, Any]]:
    customer = db["customer"].find_one(
        {"email": normalize_email(email), "phone": normalize_phone(phone)}
    )
    if not customer:
        return None
    return {
        "name": customer.get("name"),
        "email": customer["email"],
        "phone": customer["phone"],
        "defaultAddress": customer.get("default_address"),
        "timezone": customer.get("timezone") or DEFAULT_TIMEZONE,
    }
