# storefront/services/coupon_service.py
from datetime import timedelta
from decimal import InvalidOperation

from sqlalchemy import case, or_, update

from ..errors import Conflict, NotFound, ValidationError
from ..extensions import db
from ..model import Coupon, CouponUsage
from ..utils.dates import parse_iso8601, utcnow
from ..utils.logger import log
from ..utils.money import D, floor_money

COUPON_TYPES = ("percentage", "fixed")
DEFAULT_VALIDITY = timedelta(days=30)

# camelCase payload key -> column
_FIELD_MAP = {
    "name": "name",
    "code": "code",
    "type": "type",
    "value": "value",
    "minOrderAmount": "min_order_amount",
    "maxDiscountAmount": "max_discount_amount",
    "usageLimit": "usage_limit",
    "userUsageLimit": "user_usage_limit",
    "validFrom": "valid_from",
    "validUntil": "valid_until",
    "isActive": "is_active",
    "applicableProducts": "applicable_products",
    "applicableCategories": "applicable_categories",
    "description": "description",
}


def normalize_code(code) -> str:
    return (code or "").strip().upper() if isinstance(code, str) else ""


def find_by_code(code):
    return Coupon.query.filter(Coupon.code == normalize_code(code)).first()


def get_coupon(coupon_id):
    coupon = db.session.get(Coupon, coupon_id)
    if not coupon:
        raise NotFound("Coupon not found", code="coupon_not_found")
    return coupon


def parse_amount(value, field):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = D(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    return amount


# ---- discount / validation -------------------------------------------------

def compute_discount(coupon: Coupon, subtotal):
    """
    percentage: subtotal * value / 100, capped at max_discount_amount
    fixed:      min(value, subtotal), so a total can never go negative
    """
    subtotal = D(subtotal)
    if subtotal <= 0:
        return D(0)
    value = D(coupon.value)
    if coupon.type == "percentage":
        amount = subtotal * value / D(100)
        if coupon.max_discount_amount is not None:
            amount = min(amount, D(coupon.max_discount_amount))
    else:
        amount = min(value, subtotal)
    return floor_money(max(amount, D(0)))


def validate(code, order_subtotal, user, now=None):
    """
    Read-only pre-check of a coupon for a user's subtotal.
    Checks run in a fixed order and the first failure wins.
    Returns (coupon, discount_amount); never touches usage_count.
    """
    if not normalize_code(code):
        raise ValidationError("Coupon code and order total are required", code="missing_code")
    subtotal = parse_amount(order_subtotal, "orderTotal")
    if subtotal <= 0:
        raise ValidationError("Coupon code and order total are required", code="invalid_order_total")

    coupon = find_by_code(code)
    if not coupon:
        raise ValidationError("Invalid coupon code", code="invalid_coupon")

    if not coupon.is_active:
        raise ValidationError("This coupon is not active", code="coupon_inactive")

    now = now or utcnow()
    if now < coupon.valid_from or now > coupon.valid_until:
        raise ValidationError("This coupon has expired", code="coupon_expired")

    if coupon.min_order_amount is not None and subtotal < D(coupon.min_order_amount):
        raise ValidationError(
            f"This coupon requires a minimum order of {D(coupon.min_order_amount):.2f}",
            code="below_minimum_order",
        )

    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        raise ValidationError("This coupon has reached its usage limit", code="usage_limit_reached")

    if coupon.user_usage_limit is not None:
        used = CouponUsage.query.filter_by(coupon_id=coupon.id, user_email=user.email).count()
        if used >= coupon.user_usage_limit:
            raise ValidationError(
                f"You can use this coupon at most {coupon.user_usage_limit} times",
                code="user_usage_limit_reached",
            )

    return coupon, compute_discount(coupon, subtotal)


# ---- redemption ledger -----------------------------------------------------

def redeem(coupon: Coupon, user_email, order_id, order_total, discount_amount):
    """
    Consume one unit of the coupon's allowance for an order.
    The increment is a single conditional UPDATE, so concurrent redemptions
    cannot push usage_count past usage_limit.
    """
    result = db.session.execute(
        update(Coupon)
        .where(Coupon.id == coupon.id)
        .where(or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit))
        .values(usage_count=Coupon.usage_count + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        raise Conflict("This coupon has reached its usage limit", code="usage_limit_race")

    usage = CouponUsage(
        coupon_id=coupon.id,
        coupon_code=coupon.code,
        user_email=user_email,
        order_id=order_id,
        order_total=D(order_total),
        discount_amount=D(discount_amount),
    )
    db.session.add(usage)
    db.session.commit()
    db.session.expire(coupon)
    log.info("coupon {} redeemed for order {} by {}", coupon.code, order_id, user_email)
    return usage


def rollback(coupon_id, order_id, user_email):
    """
    Undo a redemption: drop the order's ledger rows and give back one unit
    (usage_count - 1, floored at 0). No ledger row means the redeem never
    landed, so usage_count is left alone.
    """
    removed = (
        CouponUsage.query
        .filter(
            CouponUsage.coupon_id == coupon_id,
            CouponUsage.order_id == order_id,
            CouponUsage.user_email == user_email,
        )
        .delete(synchronize_session=False)
    )
    if removed:
        db.session.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .values(
                usage_count=case((Coupon.usage_count > 0, Coupon.usage_count - 1), else_=0),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
    db.session.commit()
    log.info("coupon {} usage rolled back for order {} ({} ledger rows)", coupon_id, order_id, removed)
    return removed


# ---- admin CRUD ------------------------------------------------------------

def _opt_amount(value, field):
    if value is None or value == "":
        return None
    amount = parse_amount(value, field)
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    return amount


def _opt_count(value, field):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a whole number")
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a whole number")
    if n < 1:
        raise ValidationError(f"{field} must be >= 1")
    return n


def _check_type_value(ctype, value):
    if ctype not in COUPON_TYPES:
        raise ValidationError("type must be 'percentage' or 'fixed'", code="invalid_coupon_type")
    if ctype == "percentage" and (value <= 0 or value > 100):
        raise ValidationError("Percentage discount must be between 1 and 100", code="invalid_coupon_value")
    if ctype == "fixed" and value <= 0:
        raise ValidationError("Fixed discount must be greater than 0", code="invalid_coupon_value")


def _parse_date(value, field):
    dt = parse_iso8601(value)
    if value and dt is None:
        raise ValidationError(f"Invalid datetime format for {field}")
    return dt


def _ensure_unique_code(code, exclude_id=None):
    q = Coupon.query.filter(Coupon.code == code)
    if exclude_id is not None:
        q = q.filter(Coupon.id != exclude_id)
    if q.first():
        raise Conflict("This coupon code is already in use", code="duplicate_code")


def _clean_fields(data: dict) -> dict:
    fields = {}
    for key, column in _FIELD_MAP.items():
        if key not in data:
            continue
        value = data[key]
        if column in ("name", "description"):
            value = (value or "").strip()
        elif column == "code":
            value = normalize_code(value)
        elif column == "type":
            value = (value or "").strip().lower()
        elif column == "value":
            value = parse_amount(value, "value")
        elif column in ("min_order_amount", "max_discount_amount"):
            value = _opt_amount(value, key)
        elif column in ("usage_limit", "user_usage_limit"):
            value = _opt_count(value, key)
        elif column in ("valid_from", "valid_until"):
            value = _parse_date(value, key)
        elif column == "is_active":
            value = bool(value)
        elif column in ("applicable_products", "applicable_categories"):
            value = list(value) if isinstance(value, (list, tuple)) else []
        fields[column] = value
    return fields


def create_coupon(data: dict) -> Coupon:
    fields = _clean_fields(data)
    if not fields.get("name") or not fields.get("code") or not fields.get("type") or "value" not in fields:
        raise ValidationError("Required fields are missing (name, code, type, value)")
    _check_type_value(fields["type"], fields["value"])
    _ensure_unique_code(fields["code"])

    now = utcnow()
    fields.setdefault("is_active", True)
    fields["valid_from"] = fields.get("valid_from") or now
    fields["valid_until"] = fields.get("valid_until") or now + DEFAULT_VALIDITY
    if fields["valid_until"] < fields["valid_from"]:
        raise ValidationError("validUntil must be after validFrom")

    coupon = Coupon(usage_count=0, **fields)
    db.session.add(coupon)
    db.session.commit()
    log.info("coupon {} created", coupon.code)
    return coupon


def update_coupon(coupon_id, data: dict) -> Coupon:
    coupon = get_coupon(coupon_id)
    fields = _clean_fields(data)  # usage_count is not in the field map, clients cannot set it

    if "name" in fields and not fields["name"]:
        raise ValidationError("name cannot be empty")
    if "code" in fields:
        if not fields["code"]:
            raise ValidationError("code cannot be empty")
        _ensure_unique_code(fields["code"], exclude_id=coupon.id)
    if "value" in fields and fields["value"] is None:
        raise ValidationError("value cannot be empty")
    if "type" in fields or "value" in fields:
        _check_type_value(fields.get("type", coupon.type), fields.get("value", D(coupon.value)))
    for column in ("valid_from", "valid_until"):
        if column in fields and fields[column] is None:
            fields.pop(column)

    for column, value in fields.items():
        setattr(coupon, column, value)
    if coupon.valid_until < coupon.valid_from:
        db.session.rollback()
        raise ValidationError("validUntil must be after validFrom")
    coupon.updated_at = utcnow()
    db.session.commit()
    log.info("coupon {} updated ({})", coupon.code, ", ".join(sorted(fields)))
    return coupon


def delete_coupon(coupon_id):
    coupon = get_coupon(coupon_id)
    code = coupon.code
    db.session.delete(coupon)
    db.session.commit()
    log.info("coupon {} deleted", code)


def list_coupons(is_active=None, search=""):
    q = Coupon.query
    if is_active is not None:
        q = q.filter(Coupon.is_active == is_active)
    coupons = q.order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()
    term = (search or "").strip().lower()
    if term:
        coupons = [
            c for c in coupons
            if term in (c.name or "").lower()
            or term in (c.code or "").lower()
            or term in (c.description or "").lower()
        ]
    return coupons
