# storefront/order/routes.py
from flask import request
from ..services import order_service
from ..services.cart_service import Cart
from ..utils.api import ok
from ..utils.decorators import current_user, login_required
from . import bp


@bp.post("")
@login_required
def create_order():
    """
    Body (camelCase, as stored by the client cart):
      items, paymentMethod, deliveryAddress, phone, orderNote,
      appliedCoupon {id, code, ...}, discountAmount
    """
    data = request.get_json(silent=True) or {}
    cart = Cart.load(data)
    order = order_service.create_order(
        current_user(),
        cart.items,
        (data.get("paymentMethod") or "").strip(),
        delivery_address=data.get("deliveryAddress"),
        phone=(data.get("phone") or "").strip() or None,
        order_note=(data.get("orderNote") or "").strip() or None,
        applied_coupon=cart.applied_coupon,
        discount_amount=cart.discount_amount,
    )
    return ok("Order placed", {"order": order.as_api(with_history=True)}, 201)


@bp.get("")
@login_required
def list_orders():
    """
    Query params (admin only, ignored for customers):
      - userId=<id>
      - status=pending|confirmed|...
    """
    user = current_user()
    orders = order_service.list_orders(
        user,
        user_id=request.args.get("userId"),
        status=request.args.get("status"),
    )
    return ok(data={"orders": [o.as_api() for o in orders], "total": len(orders)})


@bp.get("/<uuid:order_id>")
@login_required
def get_order(order_id):
    order = order_service.get_order_for(order_id, current_user())
    return ok(data={"order": order.as_api(with_history=True)})


@bp.post("/<uuid:order_id>/cancel")
@login_required
def cancel_order(order_id):
    data = request.get_json(silent=True) or {}
    order = order_service.cancel_order(order_id, current_user(), reason=(data.get("reason") or "").strip() or None)
    return ok("Order cancelled", {"order": order.as_api(with_history=True)})
