# storefront/coupon/routes.py
from flask import request
from ..services import coupon_service
from ..utils.api import ok
from ..utils.decorators import current_user, login_required
from ..utils.money import to_float
from . import bp


@bp.post("/validate")
@login_required
def validate_coupon():
    data = request.get_json(silent=True) or {}
    coupon, discount = coupon_service.validate(data.get("code"), data.get("orderTotal"), current_user())
    return ok("Coupon applied", {
        "coupon": {**coupon.as_api(), "discountAmount": to_float(discount)},
        "discountAmount": to_float(discount),
    })
