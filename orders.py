"""
Order placement and bulk order retrieval.

Placement splits a cart into one order per owning shop. The customer upsert
runs before the order inserts and the inserts are independent, so a failure
part-way leaves earlier writes in place unless ``place_order_in_transaction``
is used.
"""

from typing import Any, Dict, List

from fastapi import HTTPException
from pymongo import MongoClient
from pymongo.database import Database

from catalog import CatalogEntry, resolve_products
from customers import upsert_customer
from database import create_document, get_documents, to_object_ids
from logger import get_logger
from schemas import (
    DEFAULT_TIMEZONE,
    CartLine,
    Delivery,
    Order,
    OrderCustomer,
    OrderItem,
    PlaceOrderRequest,
)
from validation import normalize_email, normalize_name, normalize_phone

_logger = get_logger(__name__)

PLACEHOLDER_IMAGE = "https://placehold.co/100x100"


def group_by_shop(
    lines: List[CartLine], products: Dict[str, CatalogEntry]
) -> Dict[str, List[CartLine]]:
    """Partition cart lines by owning shop, keyed in first-seen order."""
    groups: Dict[str, List[CartLine]] = {}
    for line in lines:
        product = products.get(line.product_id)
        if product is None:
            raise HTTPException(
                status_code=400, detail=f"Product not found: {line.product_id}"
            )
        groups.setdefault(product.shop_id, []).append(line)
    return groups


def check_shop_hint(shop_hint, groups: Dict[str, List[CartLine]]) -> None:
    # A list hint is format-checked by the request schema only.
    if isinstance(shop_hint, str):
        if not (len(groups) == 1 and shop_hint in groups):
            raise HTTPException(
                status_code=400, detail="Items do not belong to the provided shopId"
            )


def build_order(
    payload: PlaceOrderRequest,
    shop_id: str,
    lines: List[CartLine],
    products: Dict[str, CatalogEntry],
) -> Order:
    items = []
    total_cents = 0
    for line in lines:
        product = products[line.product_id]
        items.append(
            OrderItem(
                product_id=product.product_id,
                name=product.name,
                qty=line.qty,
                price_cents=product.price_cents,
            )
        )
        total_cents += product.price_cents * line.qty

    return Order(
        customer=OrderCustomer(
            name=normalize_name(payload.name),
            email=normalize_email(payload.email),
            phone=normalize_phone(payload.phone),
            timezone=payload.customer_timezone or DEFAULT_TIMEZONE,
        ),
        shop_id=shop_id,
        delivery=Delivery(address=payload.address),
        items=items,
        total_cents=total_cents,
        client_created_at=payload.client_created_at,
        customer_time_zone=payload.customer_timezone,
        customer_offset_minutes=payload.customer_offset_minutes,
    )


def place_order(db: Database, payload: PlaceOrderRequest, session=None) -> List[str]:
    """Create one order per shop in the cart and return their ids."""
    if not payload.items:
        raise HTTPException(status_code=400, detail="Order must contain at least one item")

    products = resolve_products(
        db, [line.product_id for line in payload.items], session=session
    )
    groups = group_by_shop(payload.items, products)
    check_shop_hint(payload.shop_id, groups)

    upsert_customer(
        db,
        payload.email,
        payload.phone,
        payload.address,
        payload.name,
        session=session,
    )

    order_ids = []
    for shop_id, lines in groups.items():
        order = build_order(payload, shop_id, lines, products)
        order_ids.append(create_document(db, "order", order, session=session))

    _logger.info(
        "Placed %d order(s) for %s across %d shop(s)",
        len(order_ids),
        normalize_email(payload.email),
        len(groups),
    )
    return order_ids


def place_order_in_transaction(
    client: MongoClient, db: Database, payload: PlaceOrderRequest
) -> List[str]:
    """``place_order`` with the customer upsert and every insert in one transaction.

    Needs a replica set or sharded cluster.
    """
    with client.start_session() as session:
        return session.with_transaction(lambda s: place_order(db, payload, session=s))


def _order_out(
    order: Dict[str, Any],
    shops: Dict[str, Dict[str, Any]],
    products: Dict[str, Dict[str, Any]],
) -> Dict[str, Any]:
    shop = shops.get(str(order.get("shop_id")))
    customer = order.get("customer") or {}
    delivery = order.get("delivery") or {}

    items = []
    for item in order.get("items") or []:
        product_id = item.get("product_id")
        product = products.get(str(product_id)) if product_id else None
        qty = item.get("qty") or 0
        price_cents = item.get("price_cents") or 0
        items.append(
            {
                "productId": str(product_id) if product_id else None,
                "name": product.get("name") if product else item.get("name"),
                "image": (product or {}).get("image_url") or PLACEHOLDER_IMAGE,
                "quantity": qty,
                "priceCents": price_cents,
                "lineTotalCents": price_cents * qty,
            }
        )

    return {
        "orderId": str(order["_id"]),
        "shop": (
            {"id": str(shop["_id"]), "name": shop.get("name"), "address": shop.get("address")}
            if shop
            else None
        ),
        "customer": {
            "name": customer.get("name"),
            "email": customer.get("email"),
            "phone": customer.get("phone"),
            "timezone": customer.get("timezone") or DEFAULT_TIMEZONE,
        },
        "delivery": {"address": delivery.get("address")},
        "items": items,
        "totalCents": order.get("total_cents", 0),
        "status": order.get("status"),
        "createdAt": order.get("created_at"),
        "updatedAt": order.get("updated_at"),
        "clientCreatedAt": order.get("client_created_at"),
        "customerTimeZone": order.get("customer_time_zone"),
        "customerOffsetMinutes": order.get("customer_offset_minutes"),
    }


def _by_id(docs: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {str(d["_id"]): d for d in docs}


def get_bulk_info(db: Database, order_ids: List[str]) -> Dict[str, Any]:
    """Orders with shop and product display data joined in.

    Raises 404 listing the requested ids that were not found.
    """
    requested = list(dict.fromkeys(oid.lower() for oid in order_ids))
    found = get_documents(db, "order", {"_id": {"$in": to_object_ids(requested)}})

    if len(found) < len(requested):
        found_ids = {str(o["_id"]) for o in found}
        missing = [oid for oid in requested if oid not in found_ids]
        _logger.info("Bulk info: %d order(s) not found", len(missing))
        raise HTTPException(
            status_code=404,
            detail={"error": "Some orders not found", "missingOrderIds": missing},
        )

    by_id = _by_id(found)
    ordered = [by_id[oid] for oid in requested]

    shop_ids = {o["shop_id"] for o in ordered if o.get("shop_id")}
    product_ids = {
        item["product_id"]
        for o in ordered
        for item in o.get("items") or []
        if item.get("product_id")
    }
    shops = _by_id(
        get_documents(
            db,
            "shop",
            {"_id": {"$in": list(shop_ids)}},
            {"name": 1, "address": 1},
        )
    )
    products = _by_id(
        get_documents(
            db,
            "product",
            {"_id": {"$in": list(product_ids)}},
            {"name": 1, "image_url": 1},
        )
    )

    response: Dict[str, Any] = {
        "orders": [_order_out(o, shops, products) for o in ordered]
    }
    if len(ordered) > 1:
        response["grandTotalCents"] = sum(o["totalCents"] or 0 for o in response["orders"])
    return response
