# storefront/services/order_service.py
from datetime import datetime, timedelta
from decimal import Decimal
from io import BytesIO

import pandas as pd
from flask import current_app
from sqlalchemy import or_

from ..errors import Forbidden, NotFound, ValidationError
from ..extensions import db
from ..model import ArchivedOrder, Coupon, Order, OrderStatusHistory, to_uuid
from ..utils.dates import iso, parse_iso8601, utcnow
from ..utils.logger import log
from ..utils.money import D, round_money
from ..utils.side_effects import run_best_effort
from . import coupon_service
from .cart_service import Cart

TAX_RATE = Decimal("0.08")
PAYMENT_METHODS = ("card", "cash", "online")
SYSTEM_ACTOR = "system"

STATUSES = ("pending", "confirmed", "preparing", "ready", "out_for_delivery", "delivered", "cancelled")
TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"preparing", "cancelled"},
    "preparing": {"ready"},
    "ready": {"out_for_delivery"},
    "out_for_delivery": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
}
CANCELLABLE = {"pending", "confirmed"}
TERMINAL = {"delivered", "cancelled"}


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, set())


def _order_number(created_at: datetime) -> str:
    millis = int((created_at - datetime(1970, 1, 1)).total_seconds() * 1000)
    return f"ORD-{str(millis)[-6:]}"


# ---- totals ----------------------------------------------------------------

def compute_totals(items, discount_amount=None) -> dict:
    """
    subtotal = sum(price * quantity)
    tax      = subtotal * 0.08
    total    = max(0, subtotal + tax - discount)
    """
    subtotal = round_money(sum((D(i["price"]) * int(i["quantity"]) for i in items), D(0)))
    tax = round_money(subtotal * TAX_RATE)
    total = subtotal + tax
    discount = D(0)
    if discount_amount is not None:
        discount = round_money(discount_amount)
        total = total - discount
    return {"subtotal": subtotal, "tax": tax, "total": round_money(max(D(0), total)), "discount_amount": discount}


# ---- lookups ---------------------------------------------------------------

def get_order(order_id) -> Order:
    oid = to_uuid(order_id)
    order = db.session.get(Order, oid) if oid else None
    if not order:
        raise NotFound("Order not found", code="order_not_found")
    return order


def _owns(order: Order, user) -> bool:
    return (order.user_email or "").lower() == (user.email or "").lower()


def get_order_for(order_id, user) -> Order:
    order = get_order(order_id)
    if not user.is_admin and not _owns(order, user):
        raise Forbidden("You do not have access to this order")
    return order


def list_orders(user, user_id=None, status=None):
    q = Order.query
    if not user.is_admin:
        q = q.filter(Order.user_email == user.email)
    elif user_id:
        q = q.filter(Order.user_id == str(user_id))
    if status:
        q = q.filter(Order.status == status)
    return q.order_by(Order.created_at.desc()).all()


def admin_query(status=None, search=""):
    q = Order.query
    if status:
        q = q.filter(Order.status == status)
    term = (search or "").strip()
    if term:
        like = f"%{term}%"
        q = q.filter(or_(
            Order.order_number.ilike(like),
            Order.user_name.ilike(like),
            Order.user_email.ilike(like),
            Order.phone.ilike(like),
        ))
    return q.order_by(Order.created_at.desc())


# ---- create ----------------------------------------------------------------

def _resolve_coupon(applied_coupon):
    if not isinstance(applied_coupon, dict):
        raise ValidationError("appliedCoupon must be an object", code="invalid_coupon")
    coupon = None
    if applied_coupon.get("id") is not None:
        try:
            coupon = db.session.get(Coupon, int(applied_coupon["id"]))
        except (TypeError, ValueError):
            coupon = None
    if coupon is None and applied_coupon.get("code"):
        coupon = coupon_service.find_by_code(applied_coupon["code"])
    if coupon is None:
        raise ValidationError("Invalid coupon code", code="invalid_coupon")
    return coupon


def create_order(user, items, payment_method, delivery_address=None, phone=None,
                 order_note=None, applied_coupon=None, discount_amount=None) -> Order:
    if not items:
        raise ValidationError("Your cart is empty", code="empty_cart")
    if not payment_method:
        raise ValidationError("Please choose a payment method", code="missing_payment_method")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"paymentMethod must be one of: {', '.join(PAYMENT_METHODS)}", code="invalid_payment_method"
        )

    # price >= 0, quantity >= 1, duplicate lines merged by cart key
    items = Cart(items=items).items

    coupon = None
    if applied_coupon and discount_amount is not None:
        coupon = _resolve_coupon(applied_coupon)
        discount_amount = coupon_service.parse_amount(discount_amount, "discountAmount")
        if discount_amount < 0:
            raise ValidationError("discountAmount must be >= 0")
    else:
        discount_amount = None

    totals = compute_totals(items, discount_amount)
    now = utcnow()
    eta = timedelta(minutes=current_app.config.get("ORDER_ETA_MINUTES", 30))

    order = Order(
        order_number=_order_number(now),
        status="pending",
        user_id=str(user.id),
        user_email=user.email,
        user_name=user.name or "",
        items=[dict(i) for i in items],
        subtotal=totals["subtotal"],
        tax=totals["tax"],
        total=totals["total"],
        discount_amount=totals["discount_amount"],
        applied_coupon=coupon.snapshot() if coupon else None,
        payment_method=payment_method,
        payment_status="pending",
        order_note=order_note,
        delivery_address=delivery_address,
        phone=phone,
        estimated_delivery_time=now + eta,
        created_at=now,
        updated_at=now,
    )
    order.status_history.append(
        OrderStatusHistory(status="pending", timestamp=now, updated_by=SYSTEM_ACTOR, note="order received")
    )
    db.session.add(order)
    db.session.commit()
    log.info("order {} created for {} total={}", order.order_number, user.email, order.total)

    if coupon:
        run_best_effort(
            "coupon redeem",
            coupon_service.redeem,
            coupon, user.email, order.id, order.total, order.discount_amount,
        )
    return order


# ---- status lifecycle ------------------------------------------------------

def _rollback_coupon(order: Order):
    coupon = order.applied_coupon or {}
    if coupon.get("id") is None:
        return
    run_best_effort("coupon rollback", coupon_service.rollback, coupon["id"], order.id, order.user_email)


def _mark_cancelled(order: Order, actor, reason, now):
    order.cancelled_at = now
    order.cancelled_by = actor
    order.cancel_reason = reason


def update_status(order_id, new_status, actor=None, location=None, estimated_delivery_time=None, note=None) -> Order:
    if new_status not in STATUSES:
        raise ValidationError("Invalid status", code="invalid_status")
    eta = None
    if estimated_delivery_time:
        eta = parse_iso8601(estimated_delivery_time)
        if eta is None:
            raise ValidationError("Invalid datetime format for estimatedDeliveryTime")

    order = get_order(order_id)
    previous = order.status
    if not can_transition(previous, new_status):
        raise ValidationError(
            f"Cannot move an order from '{previous}' to '{new_status}'", code="invalid_transition"
        )

    actor = actor or "Admin"
    now = utcnow()
    order.status = new_status
    order.updated_at = now
    order.updated_by = actor
    if location:
        order.courier_location = location
    if eta:
        order.estimated_delivery_time = eta
    if new_status == "delivered":
        order.delivered_at = now
    if new_status == "cancelled":
        _mark_cancelled(order, actor, note or "cancelled by admin", now)

    order.status_history.append(OrderStatusHistory(
        status=new_status,
        timestamp=now,
        updated_by=actor,
        note=note or f"{previous} -> {new_status}",
        location=location,
    ))
    db.session.commit()
    log.info("order {} status {} -> {} by {}", order.order_number, previous, new_status, actor)

    if new_status == "cancelled":
        _rollback_coupon(order)
    return order


def cancel_order(order_id, user, reason=None) -> Order:
    order = get_order(order_id)
    if not user.is_admin and not _owns(order, user):
        raise Forbidden("You are not allowed to cancel this order")
    if order.status not in CANCELLABLE:
        raise ValidationError("This order can no longer be cancelled", code="not_cancellable")

    now = utcnow()
    actor = user.email or "User"
    reason = reason or "cancelled by customer"
    order.status = "cancelled"
    order.updated_at = now
    _mark_cancelled(order, actor, reason, now)
    order.status_history.append(OrderStatusHistory(
        status="cancelled", timestamp=now, updated_by=user.name or actor, note=reason,
    ))
    db.session.commit()
    log.info("order {} cancelled by {}", order.order_number, actor)

    _rollback_coupon(order)
    return order


# ---- archive ---------------------------------------------------------------

def move_to_history(order_ids, actor, target_date=None) -> dict:
    """
    Copy terminal orders into order_history and delete them from orders,
    all in one commit. Unknown or still-active orders are skipped.
    """
    if not isinstance(order_ids, (list, tuple)) or not order_ids:
        raise ValidationError("orderIds must be a non-empty list", code="invalid_order_ids")

    now = utcnow()
    history_date = target_date or now.date().isoformat()
    moved, skipped = [], []
    for raw_id in order_ids:
        oid = to_uuid(raw_id)
        order = db.session.get(Order, oid) if oid else None
        if not order or order.status not in TERMINAL:
            skipped.append(str(raw_id))
            continue
        db.session.add(ArchivedOrder(
            original_order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            user_email=order.user_email,
            user_name=order.user_name,
            total=order.total,
            snapshot=order.as_api(with_history=True),
            original_created_at=order.created_at,
            moved_to_history_at=now,
            moved_by=actor,
            history_date=history_date,
        ))
        db.session.delete(order)
        moved.append(str(order.id))

    db.session.commit()
    log.info("moved {} orders to history ({} skipped) by {}", len(moved), len(skipped), actor)
    return {"movedCount": len(moved), "movedIds": moved, "skippedIds": skipped}


def is_closed(now: datetime, opening_hour: int, closing_hour: int) -> bool:
    return now.hour >= closing_hour or now.hour < opening_hour


def auto_cleanup(actor, now=None) -> dict:
    # local wall-clock time, matching the restaurant's opening hours
    now = now or datetime.now()
    opening = current_app.config.get("STORE_OPENING_HOUR", 9)
    closing = current_app.config.get("STORE_CLOSING_HOUR", 23)
    if not is_closed(now, opening, closing):
        return {"cleaned": False, "reason": "store is open", "movedCount": 0}

    ids = [o.id for o in Order.query.filter(Order.status.in_(TERMINAL)).all()]
    if not ids:
        return {"cleaned": True, "movedCount": 0, "movedIds": [], "skippedIds": []}
    result = move_to_history(ids, actor, target_date=now.date().isoformat())
    return {"cleaned": True, **result}


def history_query(date=None, date_from=None, date_to=None, status=None, search=""):
    q = ArchivedOrder.query
    if date:
        q = q.filter(ArchivedOrder.history_date == date)
    if date_from:
        q = q.filter(ArchivedOrder.history_date >= date_from)
    if date_to:
        q = q.filter(ArchivedOrder.history_date <= date_to)
    if status:
        q = q.filter(ArchivedOrder.status == status)
    term = (search or "").strip()
    if term:
        like = f"%{term}%"
        q = q.filter(or_(
            ArchivedOrder.order_number.ilike(like),
            ArchivedOrder.user_name.ilike(like),
            ArchivedOrder.user_email.ilike(like),
        ))
    return q.order_by(ArchivedOrder.moved_to_history_at.desc(), ArchivedOrder.id.desc())


def export_history(rows) -> BytesIO:
    df = pd.DataFrame([{
        "Order No": r.order_number,
        "Customer": r.user_name,
        "Email": r.user_email,
        "Items": sum(int(i.get("quantity", 0)) for i in (r.snapshot or {}).get("items", [])),
        "Total": float(r.total or 0),
        "Status": r.status,
        "Payment": (r.snapshot or {}).get("paymentMethod"),
        "Created At": iso(r.original_created_at),
        "Archived At": iso(r.moved_to_history_at),
        "History Date": r.history_date,
    } for r in rows], columns=[
        "Order No", "Customer", "Email", "Items", "Total", "Status",
        "Payment", "Created At", "Archived At", "History Date",
    ])

    # Create an in-memory buffer
    output = BytesIO()
    df.to_excel(output, index=False)
    output.seek(0)
    return output
