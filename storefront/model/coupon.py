# --- storefront/model/coupon.py ---

from ..extensions import db
from ..utils.dates import utcnow, iso
from ..utils.money import to_float
from .types import GUID


class Coupon(db.Model):
    __tablename__ = "coupons"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(64), unique=True, nullable=False, index=True)  # stored upper-cased

    # "percentage" or "fixed"
    type = db.Column(db.String(16), nullable=False, default="percentage")
    value = db.Column(db.Numeric(12, 2), nullable=False)

    # Optional constraints
    min_order_amount = db.Column(db.Numeric(12, 2), nullable=True)
    max_discount_amount = db.Column(db.Numeric(12, 2), nullable=True)  # caps percentage discounts
    usage_limit = db.Column(db.Integer, nullable=True)       # total redemptions
    user_usage_limit = db.Column(db.Integer, nullable=True)  # redemptions per user email
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    valid_from = db.Column(db.DateTime, nullable=False, default=utcnow)
    valid_until = db.Column(db.DateTime, nullable=False)
    is_active = db.Column(db.Boolean, default=True, index=True)

    # stored for the admin UI, not enforced on validation
    applicable_products = db.Column(db.JSON, nullable=False, default=list)
    applicable_categories = db.Column(db.JSON, nullable=False, default=list)
    description = db.Column(db.Text, default="")

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def snapshot(self):
        """What an order keeps of the coupon it was placed with."""
        return {"id": self.id, "code": self.code, "type": self.type, "value": to_float(self.value)}

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "type": self.type,
            "value": to_float(self.value),
            "minOrderAmount": to_float(self.min_order_amount),
            "maxDiscountAmount": to_float(self.max_discount_amount),
            "usageLimit": self.usage_limit,
            "userUsageLimit": self.user_usage_limit,
            "usageCount": self.usage_count,
            "validFrom": iso(self.valid_from),
            "validUntil": iso(self.valid_until),
            "isActive": self.is_active,
            "applicableProducts": self.applicable_products or [],
            "applicableCategories": self.applicable_categories or [],
            "description": self.description or "",
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class CouponUsage(db.Model):
    """Append-only redemption ledger; rows are removed only by a cancellation rollback."""
    __tablename__ = "coupon_usage"

    id = db.Column(db.Integer, primary_key=True)
    # no FK: the ledger outlives a deleted coupon
    coupon_id = db.Column(db.Integer, nullable=False, index=True)
    coupon_code = db.Column(db.String(64), nullable=False)
    user_email = db.Column(db.String(255), nullable=False, index=True)
    order_id = db.Column(GUID(), nullable=False, index=True)
    used_at = db.Column(db.DateTime, default=utcnow)
    order_total = db.Column(db.Numeric(12, 2))
    discount_amount = db.Column(db.Numeric(12, 2))

    def as_api(self):
        return {
            "id": self.id,
            "couponId": self.coupon_id,
            "couponCode": self.coupon_code,
            "userEmail": self.user_email,
            "orderId": str(self.order_id),
            "usedAt": iso(self.used_at),
            "orderTotal": to_float(self.order_total),
            "discountAmount": to_float(self.discount_amount),
        }
