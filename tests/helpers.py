def order_body(items, shop_id=None, **overrides):
    body = {
        "name": "Olena Petrenko",
        "email": "olena@example.com",
        "phone": "063 123 45 67",
        "address": "Sadova St, 12, Lviv",
        "shopId": shop_id if shop_id is not None else [],
        "items": items,
    }
    body.update(overrides)
    return body


def line(product_id, qty=1):
    return {"productId": product_id, "qty": qty}
