from flask import Blueprint

bp = Blueprint("admin", __name__, url_prefix="/admin")

from . import order_routes, coupon_routes  # noqa: E402,F401
