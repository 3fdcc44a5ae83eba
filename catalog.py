"""Shop and product reads: listings and the cart's product resolution."""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from fastapi import HTTPException
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from database import get_documents, to_object_id, to_object_ids
from schemas import DEFAULT_PRODUCT_IMAGE
from validation import is_object_id


def _is_cents(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


@dataclass(frozen=True)
class CatalogEntry:
    """Product fields an order line snapshots."""

    product_id: str
    shop_id: str
    name: str
    price_cents: int


def resolve_products(
    db: Database, product_ids: Iterable[str], session=None
) -> Dict[str, CatalogEntry]:
    """Fetch every referenced product in one query.

    Fails with 400 when an id is malformed, when any id matches no product,
    or when a product has no owning shop or no whole, non-negative price.
    """
    ids = list(product_ids)
    if any(not is_object_id(pid) for pid in ids):
        raise HTTPException(status_code=400, detail="Invalid productId in items")

    unique_ids = list(dict.fromkeys(pid.lower() for pid in ids))
    docs = get_documents(
        db,
        "product",
        {"_id": {"$in": to_object_ids(unique_ids)}},
        {"shop_id": 1, "name": 1, "price_cents": 1},
        session=session,
    )
    if len(docs) != len(unique_ids):
        raise HTTPException(status_code=400, detail="One or more products not found")

    entries: Dict[str, CatalogEntry] = {}
    for doc in docs:
        pid = str(doc["_id"])
        shop_id = doc.get("shop_id")
        if not shop_id:
            raise HTTPException(status_code=400, detail=f"Product missing shopId: {pid}")
        price_cents = doc.get("price_cents")
        if not _is_cents(price_cents):
            raise HTTPException(
                status_code=400, detail=f"Product has invalid priceCents: {pid}"
            )
        entries[pid] = CatalogEntry(
            product_id=pid,
            shop_id=str(shop_id),
            name=doc.get("name", ""),
            price_cents=price_cents,
        )
    return entries


def list_shops(db: Database) -> List[Dict[str, Any]]:
    docs = get_documents(db, "shop", projection={"name": 1, "address": 1})
    return [
        {"_id": str(d["_id"]), "name": d.get("name"), "address": d.get("address")}
        for d in docs
    ]


def _product_out(doc: Dict[str, Any]) -> Dict[str, Any]:
    shop_id: Optional[ObjectId] = doc.get("shop_id")
    return {
        "_id": str(doc["_id"]),
        "shopId": str(shop_id) if shop_id else None,
        "name": doc.get("name"),
        "description": doc.get("description"),
        "priceCents": doc.get("price_cents"),
        "imageUrl": doc.get("image_url") or DEFAULT_PRODUCT_IMAGE,
        "isBouquet": bool(doc.get("is_bouquet", False)),
        "createdAt": doc.get("created_at"),
    }


def list_shop_products(
    db: Database, shop_id: str, sort: str = "date", order: str = "desc"
) -> List[Dict[str, Any]]:
    direction = ASCENDING if order == "asc" else DESCENDING
    field = "price_cents" if sort == "price" else "created_at"
    docs = get_documents(
        db,
        "product",
        {"shop_id": to_object_id(shop_id)},
        sort=[(field, direction)],
    )
    return [_product_out(d) for d in docs]
