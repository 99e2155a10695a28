from datetime import datetime
from decimal import Decimal

import pytest

from conftest import line
from storefront.errors import Forbidden, NotFound, ValidationError
from storefront.extensions import db
from storefront.model import ArchivedOrder, Coupon, CouponUsage, Order, OrderStatusHistory
from storefront.services import order_service
from storefront.utils.side_effects import run_best_effort


# ---- totals ----------------------------------------------------------------

def test_totals_with_discount():
    totals = order_service.compute_totals([line(price=50, quantity=2)], Decimal("10"))
    assert totals == {
        "subtotal": Decimal("100.00"),
        "tax": Decimal("8.00"),
        "total": Decimal("98.00"),
        "discount_amount": Decimal("10.00"),
    }


def test_totals_without_coupon():
    totals = order_service.compute_totals([line(price="12.99", quantity=3), line(price=4, quantity=1, product_id=2)])
    assert totals["subtotal"] == Decimal("42.97")
    assert totals["tax"] == Decimal("3.44")
    assert totals["total"] == Decimal("46.41")
    assert totals["discount_amount"] == Decimal("0")


def test_total_never_goes_negative():
    totals = order_service.compute_totals([line(price=5, quantity=1)], Decimal("50"))
    assert totals["total"] == Decimal("0")
    assert order_service.compute_totals([line(price=10, quantity=-5)])["total"] == Decimal("0")


# ---- transition table ------------------------------------------------------

ALLOWED = [
    ("pending", "confirmed"), ("pending", "cancelled"),
    ("confirmed", "preparing"), ("confirmed", "cancelled"),
    ("preparing", "ready"), ("ready", "out_for_delivery"),
    ("out_for_delivery", "delivered"),
]


def test_transition_table():
    for current in order_service.STATUSES:
        for new in order_service.STATUSES:
            assert order_service.can_transition(current, new) == ((current, new) in ALLOWED), (current, new)


# ---- create ----------------------------------------------------------------

def test_create_order_records_pending_history(place_order, customer):
    order = place_order(customer)

    assert order.status == "pending"
    assert order.payment_status == "pending"
    assert order.order_number.startswith("ORD-")
    assert order.user_email == customer.email
    assert order.total == Decimal("108.00")
    assert order.estimated_delivery_time > order.created_at
    assert [(h.status, h.updated_by) for h in order.status_history] == [("pending", "system")]


@pytest.mark.parametrize("items,payment,reason", [
    ([], "card", "empty_cart"),
    ([line()], "", "missing_payment_method"),
    ([line()], "bitcoin", "invalid_payment_method"),
])
def test_create_order_rejects(place_order, customer, items, payment, reason):
    with pytest.raises(ValidationError) as e:
        place_order(customer, items=items, payment_method=payment)
    assert e.value.code == reason
    assert Order.query.count() == 0


def test_create_order_redeems_coupon(place_order, make_coupon, customer):
    coupon = make_coupon(code="SAVE10", usage_limit=10)
    order = place_order(customer, coupon=coupon, discount_amount=10)

    assert order.total == Decimal("98.00")
    assert order.applied_coupon == {"id": coupon.id, "code": "SAVE10", "type": "percentage", "value": 10.0}
    assert db.session.get(Coupon, coupon.id).usage_count == 1
    usage = CouponUsage.query.one()
    assert (usage.order_id, usage.user_email) == (order.id, customer.email)


def test_create_order_survives_exhausted_coupon(place_order, make_coupon, customer):
    coupon = make_coupon(code="ONCE", usage_limit=1, usage_count=1)
    order = place_order(customer, coupon=coupon, discount_amount=10)

    assert db.session.get(Order, order.id) is not None
    assert db.session.get(Coupon, coupon.id).usage_count == 1
    assert CouponUsage.query.count() == 0


def test_cancel_after_failed_redeem_keeps_count(place_order, make_coupon, customer, other_customer):
    coupon = make_coupon(code="ONCE", usage_limit=1, usage_count=1)
    order = place_order(customer, coupon=coupon, discount_amount=10)

    order_service.cancel_order(order.id, customer)

    assert db.session.get(Coupon, coupon.id).usage_count == 1
    fresh = place_order(other_customer, coupon=coupon, discount_amount=10)
    assert db.session.get(Coupon, coupon.id).usage_count == 1
    assert CouponUsage.query.filter_by(order_id=fresh.id).count() == 0


@pytest.mark.parametrize("items", [
    [{"id": 1, "price": 10, "quantity": -5}],
    [{"id": 1, "price": 10, "quantity": 0}],
    [{"id": 1, "quantity": 1}],
    [{"id": 1, "price": -3, "quantity": 1}],
    [{"id": 1, "price": "NaN", "quantity": 1}],
    [{"price": 10, "quantity": 1}],
])
def test_create_order_checks_item_shape(customer, items):
    with pytest.raises(ValidationError) as e:
        order_service.create_order(customer, items, "cash")
    assert e.value.code in ("invalid_items", "invalid_quantity")
    assert Order.query.count() == 0


def test_create_order_merges_duplicate_lines(place_order, customer):
    order = place_order(customer, items=[line(price=10, quantity=1), line(price=10, quantity=2)])
    assert len(order.items) == 1
    assert order.items[0]["quantity"] == 3
    assert order.subtotal == Decimal("30.00")


@pytest.mark.parametrize("discount", ["NaN", "Infinity"])
def test_create_order_rejects_non_finite_discount(make_coupon, customer, discount):
    coupon = make_coupon(code="SAVE10")
    with pytest.raises(ValidationError):
        order_service.create_order(customer, [line()], "cash",
                                   applied_coupon={"id": coupon.id}, discount_amount=discount)
    assert Order.query.count() == 0


def test_create_order_with_unknown_coupon(place_order, customer):
    with pytest.raises(ValidationError) as e:
        order_service.create_order(customer, [line()], "cash", applied_coupon={"code": "GHOST"}, discount_amount=5)
    assert e.value.code == "invalid_coupon"


# ---- status lifecycle ------------------------------------------------------

def test_full_lifecycle(place_order, customer):
    order = place_order(customer)
    for status in ("confirmed", "preparing", "ready", "out_for_delivery"):
        order_service.update_status(order.id, status, actor="Kitchen")
    order = order_service.update_status(
        order.id, "delivered", actor="Courier",
        location={"lat": 11.55, "lng": 104.92}, estimated_delivery_time="2026-01-01T12:00:00Z",
    )

    assert order.status == "delivered"
    assert order.delivered_at is not None
    assert order.courier_location == {"lat": 11.55, "lng": 104.92}
    assert order.estimated_delivery_time == datetime(2026, 1, 1, 12, 0)
    assert [h.status for h in order.status_history] == [
        "pending", "confirmed", "preparing", "ready", "out_for_delivery", "delivered",
    ]
    assert order.status_history[-1].updated_by == "Courier"


def test_illegal_transition(place_order, customer):
    order = place_order(customer)
    with pytest.raises(ValidationError) as e:
        order_service.update_status(order.id, "delivered")
    assert e.value.code == "invalid_transition"
    assert db.session.get(Order, order.id).status == "pending"


def test_unknown_status_and_missing_order(place_order, customer):
    order = place_order(customer)
    with pytest.raises(ValidationError) as e:
        order_service.update_status(order.id, "teleported")
    assert e.value.code == "invalid_status"
    with pytest.raises(NotFound):
        order_service.update_status("9b2e4a4c-0000-4000-8000-000000000000", "confirmed")


def test_admin_cancel_through_status_rolls_back_coupon(place_order, make_coupon, customer):
    coupon = make_coupon(code="SAVE10")
    order = place_order(customer, coupon=coupon, discount_amount=10)

    order_service.update_status(order.id, "cancelled", actor="Admin")

    order = db.session.get(Order, order.id)
    assert order.cancelled_at is not None
    assert order.cancelled_by == "Admin"
    assert db.session.get(Coupon, coupon.id).usage_count == 0
    assert CouponUsage.query.count() == 0


# ---- cancel ----------------------------------------------------------------

def test_cannot_cancel_while_preparing(place_order, customer):
    order = place_order(customer)
    order_service.update_status(order.id, "confirmed")
    order_service.update_status(order.id, "preparing")

    with pytest.raises(ValidationError) as e:
        order_service.cancel_order(order.id, customer)
    assert e.value.code == "not_cancellable"


def test_cancel_rolls_back_coupon(place_order, make_coupon, customer):
    coupon = make_coupon(code="SAVE10", usage_count=4)
    order = place_order(customer, coupon=coupon, discount_amount=10)
    assert db.session.get(Coupon, coupon.id).usage_count == 5

    order = order_service.cancel_order(order.id, customer, reason="changed my mind")

    assert order.status == "cancelled"
    assert order.cancel_reason == "changed my mind"
    assert order.status_history[-1].status == "cancelled"
    assert db.session.get(Coupon, coupon.id).usage_count == 4
    assert CouponUsage.query.filter_by(order_id=order.id).count() == 0


def test_cancel_twice(place_order, customer):
    order = place_order(customer)
    order_service.cancel_order(order.id, customer)
    with pytest.raises(ValidationError) as e:
        order_service.cancel_order(order.id, customer)
    assert e.value.code == "not_cancellable"


def test_cancel_someone_elses_order(place_order, customer, other_customer):
    order = place_order(customer)
    with pytest.raises(Forbidden):
        order_service.cancel_order(order.id, other_customer)


def test_admin_cancel_removes_owners_usage(place_order, make_coupon, customer, admin):
    coupon = make_coupon(code="SAVE10")
    order = place_order(customer, coupon=coupon, discount_amount=10)

    order = order_service.cancel_order(order.id, admin)

    assert order.cancelled_by == admin.email
    assert CouponUsage.query.count() == 0
    assert db.session.get(Coupon, coupon.id).usage_count == 0


# ---- queries ---------------------------------------------------------------

def test_list_orders_scopes_to_owner(place_order, customer, other_customer, admin):
    mine = place_order(customer)
    place_order(other_customer)

    assert [o.id for o in order_service.list_orders(customer)] == [mine.id]
    assert len(order_service.list_orders(admin)) == 2
    assert [o.id for o in order_service.list_orders(admin, user_id=customer.id)] == [mine.id]
    assert order_service.list_orders(admin, status="delivered") == []


def test_get_order_for(place_order, customer, other_customer, admin):
    order = place_order(customer)
    assert order_service.get_order_for(str(order.id), customer) is order
    assert order_service.get_order_for(order.id, admin) is order
    with pytest.raises(Forbidden):
        order_service.get_order_for(order.id, other_customer)
    with pytest.raises(NotFound):
        order_service.get_order_for("not-a-uuid", admin)


# ---- archive ---------------------------------------------------------------

def _deliver(order):
    for status in ("confirmed", "preparing", "ready", "out_for_delivery", "delivered"):
        order_service.update_status(order.id, status)


def test_move_to_history(place_order, customer):
    done = place_order(customer)
    _deliver(done)
    active = place_order(customer)
    done_id = done.id

    result = order_service.move_to_history([str(done_id), str(active.id), "bogus"], "Admin", target_date="2026-03-01")

    assert result["movedCount"] == 1
    assert result["movedIds"] == [str(done_id)]
    assert set(result["skippedIds"]) == {str(active.id), "bogus"}
    assert db.session.get(Order, done_id) is None
    assert OrderStatusHistory.query.filter_by(order_id=done_id).count() == 0

    archived = ArchivedOrder.query.one()
    assert archived.history_date == "2026-03-01"
    assert archived.moved_by == "Admin"
    assert archived.snapshot["status"] == "delivered"
    assert len(archived.snapshot["statusHistory"]) == 6
    assert archived.as_api()["isArchived"] is True


def test_move_to_history_requires_ids(app):
    with pytest.raises(ValidationError) as e:
        order_service.move_to_history([], "Admin")
    assert e.value.code == "invalid_order_ids"


def test_auto_cleanup_waits_for_closing(place_order, customer):
    order = place_order(customer)
    order_service.cancel_order(order.id, customer)

    result = order_service.auto_cleanup("system", now=datetime(2026, 3, 1, 12, 0))

    assert result["cleaned"] is False
    assert Order.query.count() == 1


@pytest.mark.parametrize("hour", [23, 2])
def test_auto_cleanup_after_hours(place_order, customer, hour):
    cancelled = place_order(customer)
    order_service.cancel_order(cancelled.id, customer)
    delivered = place_order(customer)
    _deliver(delivered)
    place_order(customer)

    now = datetime(2026, 3, 1, hour, 30)
    result = order_service.auto_cleanup("system", now=now)

    assert result["cleaned"] is True
    assert result["movedCount"] == 2
    assert [o.status for o in Order.query.all()] == ["pending"]
    assert {a.history_date for a in ArchivedOrder.query.all()} == {"2026-03-01"}

    again = order_service.auto_cleanup("system", now=now)
    assert again["movedCount"] == 0


def test_history_query_filters(place_order, customer):
    first, second = place_order(customer), place_order(customer)
    order_service.cancel_order(first.id, customer)
    _deliver(second)
    order_service.move_to_history([first.id], "Admin", target_date="2026-03-01")
    order_service.move_to_history([second.id], "Admin", target_date="2026-03-05")

    assert order_service.history_query(date="2026-03-01").count() == 1
    assert order_service.history_query(date_from="2026-03-02", date_to="2026-03-31").count() == 1
    assert order_service.history_query(status="cancelled").one().status == "cancelled"
    assert order_service.history_query(search="sam").count() == 2


def test_export_history_is_xlsx(place_order, customer):
    order = place_order(customer)
    order_service.cancel_order(order.id, customer)
    order_service.move_to_history([order.id], "Admin")

    output = order_service.export_history(order_service.history_query().all())
    assert output.read(2) == b"PK"


# ---- side effects ----------------------------------------------------------

def test_best_effort_swallows_failures(app):
    def boom():
        raise RuntimeError("downstream unavailable")

    assert run_best_effort("boom", boom) is None
    assert run_best_effort("ok", lambda x: x * 2, 21) == 42
