from __future__ import annotations

import json
from decimal import InvalidOperation

from ..errors import ValidationError
from ..utils.money import D, Money, round_money


def cart_key(product_id, options: dict | None = None) -> str:
    """Line identity: product id + its selected options, key order independent."""
    opts = json.dumps(options or {}, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return f"{product_id}-{opts}"


def _quantity(raw) -> int:
    if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
        raise ValidationError("quantity must be a whole number >= 1", code="invalid_quantity")
    try:
        qty = int(raw)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be a whole number >= 1", code="invalid_quantity")
    if qty < 1:
        raise ValidationError("quantity must be a whole number >= 1", code="invalid_quantity")
    return qty


def _discount(raw):
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValidationError("discountAmount must be a number")
    try:
        amount = D(raw)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("discountAmount must be a number")
    if not amount.is_finite():
        raise ValidationError("discountAmount must be a number")
    return amount


class Cart:
    """
    Client-owned cart. It is rebuilt from the client's stored payload on every
    request (Cart.load) and handed back with dump(); nothing is kept server side
    between requests.
    """

    def __init__(self, items=None, applied_coupon=None, discount_amount=None):
        self.items: list[dict] = []
        self.applied_coupon = applied_coupon
        self.discount_amount = _discount(discount_amount)
        for item in items or []:
            self._merge(item)

    # ---- storage -----------------------------------------------------------
    @classmethod
    def load(cls, data: dict | None) -> "Cart":
        data = data or {}
        items = data.get("items") or []
        if not isinstance(items, list):
            raise ValidationError("items must be a list", code="invalid_items")
        return cls(
            items=items,
            applied_coupon=data.get("appliedCoupon"),
            discount_amount=data.get("discountAmount"),
        )

    def dump(self) -> dict:
        return {
            "items": [dict(i) for i in self.items],
            "appliedCoupon": self.applied_coupon,
            "discountAmount": float(self.discount_amount) if self.discount_amount is not None else None,
        }

    # ---- line items --------------------------------------------------------
    def _find(self, key):
        return next((i for i in self.items if i["cartKey"] == key), None)

    def _merge(self, raw: dict):
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object", code="invalid_items")
        product_id = raw.get("productId", raw.get("id"))
        if product_id in (None, ""):
            raise ValidationError("each item needs a product id", code="invalid_items")
        options = raw.get("selectedOptions") or {}
        if not isinstance(options, dict):
            raise ValidationError("selectedOptions must be an object", code="invalid_items")
        if raw.get("price") is None:
            raise ValidationError("each item needs a price", code="invalid_items")
        try:
            price = D(raw.get("price"))
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError("item price must be a number", code="invalid_items")
        if not price.is_finite():
            raise ValidationError("item price must be a number", code="invalid_items")
        if price < 0:
            raise ValidationError("item price must be >= 0", code="invalid_items")
        qty = _quantity(raw.get("quantity", 1))

        key = cart_key(product_id, options)
        existing = self._find(key)
        if existing:
            existing["quantity"] += qty
            return existing
        item = {
            **raw,
            "id": product_id,
            "productId": product_id,
            "price": float(round_money(price)),
            "quantity": qty,
            "selectedOptions": options,
            "cartKey": key,
        }
        self.items.append(item)
        return item

    def add_item(self, product, options: dict | None = None, quantity: int = 1) -> dict:
        """product is a Product row or an already snapshotted dict."""
        snapshot = product.as_snapshot() if hasattr(product, "as_snapshot") else dict(product)
        return self._merge({**snapshot, "selectedOptions": options or {}, "quantity": quantity})

    def remove_item(self, key: str):
        self.items = [i for i in self.items if i["cartKey"] != key]

    def update_quantity(self, key: str, quantity: int):
        if quantity <= 0:
            self.remove_item(key)
            return
        item = self._find(key)
        if item:
            item["quantity"] = _quantity(quantity)

    def clear(self):
        self.items = []
        self.clear_coupon()

    # ---- totals / coupon ---------------------------------------------------
    def total_items(self) -> int:
        return sum(i["quantity"] for i in self.items)

    def total_price(self) -> Money:
        return round_money(sum((D(i["price"]) * i["quantity"] for i in self.items), D(0)))

    def apply_coupon(self, coupon: dict, discount_amount):
        self.applied_coupon = coupon
        self.discount_amount = _discount(discount_amount)

    def clear_coupon(self):
        self.applied_coupon = None
        self.discount_amount = None

    def is_empty(self) -> bool:
        return not self.items
