# storefront/admin/coupon_routes.py
from flask import request
from ..services import coupon_service
from ..utils.api import ok
from ..utils.decorators import admin_required
from . import bp


def _parse_bool(v):
    if v is None or v == "":
        return None
    return str(v).strip().lower() in ("1", "true", "yes", "on")


@bp.get("/coupons")
@admin_required
def list_coupons():
    coupons = coupon_service.list_coupons(
        is_active=_parse_bool(request.args.get("isActive")),
        search=request.args.get("search", ""),
    )
    return ok(data={"coupons": [c.as_api() for c in coupons], "total": len(coupons)})


@bp.post("/coupons")
@admin_required
def create_coupon():
    coupon = coupon_service.create_coupon(request.get_json(silent=True) or {})
    return ok("Coupon created", {"coupon": coupon.as_api()}, 201)


@bp.get("/coupons/<int:coupon_id>")
@admin_required
def get_coupon(coupon_id):
    return ok(data={"coupon": coupon_service.get_coupon(coupon_id).as_api()})


@bp.patch("/coupons/<int:coupon_id>")
@admin_required
def update_coupon(coupon_id):
    coupon = coupon_service.update_coupon(coupon_id, request.get_json(silent=True) or {})
    return ok("Coupon updated", {"coupon": coupon.as_api()})


@bp.delete("/coupons/<int:coupon_id>")
@admin_required
def delete_coupon(coupon_id):
    coupon_service.delete_coupon(coupon_id)
    return ok("Coupon deleted")
