# storefront/admin/order_routes.py
from flask import request, send_file
from ..errors import ValidationError
from ..services import order_service
from ..utils.api import ok, paginate
from ..utils.dates import utcnow
from ..utils.decorators import admin_required, current_user
from ..utils.net import parse_location
from . import bp

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _actor():
    u = current_user()
    return u.name or u.email


@bp.get("/orders")
@admin_required
def list_orders():
    """
    Query params:
      - page, per_page
      - status=pending|confirmed|...
      - search=order number / customer name / email / phone
    """
    q = order_service.admin_query(
        status=request.args.get("status"),
        search=request.args.get("search", ""),
    )
    paged = paginate(q, request.args.get("page"), request.args.get("per_page"))
    return ok(data={"orders": [o.as_api() for o in paged["items"]], "meta": paged["meta"]})


@bp.patch("/orders/<uuid:order_id>/status")
@admin_required
def update_status(order_id):
    data = request.get_json(silent=True) or {}
    status = (data.get("status") or "").strip()
    if not status:
        raise ValidationError("status is required", code="invalid_status")

    location = None
    if data.get("location") is not None:
        location = parse_location(data.get("location"))
        if location is None:
            raise ValidationError("location needs valid lat and lng")

    order = order_service.update_status(
        order_id,
        status,
        actor=_actor(),
        location=location,
        estimated_delivery_time=data.get("estimatedDeliveryTime"),
        note=(data.get("note") or "").strip() or None,
    )
    return ok(f"Order status updated to {status}", {"order": order.as_api(with_history=True)})


@bp.post("/orders/move-to-history")
@admin_required
def move_to_history():
    data = request.get_json(silent=True) or {}
    result = order_service.move_to_history(
        data.get("orderIds"),
        _actor(),
        target_date=data.get("targetDate") or utcnow().date().isoformat(),
    )
    return ok(f"Moved {result['movedCount']} orders to history", result)


@bp.get("/orders/move-to-history")
@admin_required
def auto_cleanup():
    if request.args.get("action") != "auto-cleanup":
        raise ValidationError("Unsupported action, expected action=auto-cleanup")
    result = order_service.auto_cleanup(_actor())
    if not result["cleaned"]:
        return ok(f"Skipped: {result['reason']}", result)
    return ok(f"Auto-cleanup moved {result['movedCount']} orders to history", result)


def _history_filters():
    return dict(
        date=request.args.get("date"),
        date_from=request.args.get("dateFrom"),
        date_to=request.args.get("dateTo"),
        status=request.args.get("status"),
        search=request.args.get("search", ""),
    )


@bp.get("/orders/history")
@admin_required
def order_history():
    q = order_service.history_query(**_history_filters())
    paged = paginate(q, request.args.get("page"), request.args.get("per_page"))
    return ok(data={"orders": [r.as_api() for r in paged["items"]], "meta": paged["meta"]})


@bp.get("/orders/history/export")
@admin_required
def export_history():
    rows = order_service.history_query(**_history_filters()).all()
    output = order_service.export_history(rows)
    return send_file(
        output,
        as_attachment=True,
        download_name="order_history.xlsx",
        mimetype=XLSX_MIMETYPE,
    )
