import uuid

from ..extensions import db
from ..utils.dates import utcnow, iso
from ..utils.money import to_float
from .types import GUID


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(GUID(), primary_key=True, default=uuid.uuid4)
    order_number = db.Column(db.String(32), index=True)  # e.g. "ORD-482913"
    status = db.Column(db.String(20), default="pending", nullable=False, index=True)

    # Customer snapshot, not a live reference
    user_id = db.Column(db.String(64), index=True)
    user_email = db.Column(db.String(255), index=True)
    user_name = db.Column(db.String(180))
    phone = db.Column(db.String(50))
    delivery_address = db.Column(db.JSON)
    order_note = db.Column(db.Text)

    # Line item snapshots (product fields + quantity + selectedOptions + cartKey)
    items = db.Column(db.JSON, nullable=False, default=list)

    # Money snapshot
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    tax = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    applied_coupon = db.Column(db.JSON)  # {"id", "code", "type", "value"} at order time

    payment_method = db.Column(db.String(20), nullable=False)
    payment_status = db.Column(db.String(20), default="pending")

    estimated_delivery_time = db.Column(db.DateTime)
    courier_location = db.Column(db.JSON)  # {"lat", "lng"}
    updated_by = db.Column(db.String(180))
    delivered_at = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)
    cancelled_by = db.Column(db.String(255))
    cancel_reason = db.Column(db.String(255))

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow)

    status_history = db.relationship(
        "OrderStatusHistory",
        backref="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderStatusHistory.id.asc()",
    )

    def as_api(self, with_history=False):
        data = {
            "id": str(self.id),
            "orderNumber": self.order_number,
            "userId": self.user_id,
            "userEmail": self.user_email,
            "userName": self.user_name,
            "items": self.items or [],
            "subtotal": to_float(self.subtotal),
            "tax": to_float(self.tax),
            "total": to_float(self.total),
            "discountAmount": to_float(self.discount_amount),
            "appliedCoupon": self.applied_coupon,
            "status": self.status,
            "paymentMethod": self.payment_method,
            "paymentStatus": self.payment_status,
            "orderNote": self.order_note,
            "deliveryAddress": self.delivery_address,
            "phone": self.phone,
            "estimatedDeliveryTime": iso(self.estimated_delivery_time),
            "courierLocation": self.courier_location,
            "updatedBy": self.updated_by,
            "deliveredAt": iso(self.delivered_at),
            "cancelledAt": iso(self.cancelled_at),
            "cancelledBy": self.cancelled_by,
            "cancelReason": self.cancel_reason,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }
        if with_history:
            data["statusHistory"] = [h.as_api() for h in self.status_history]
        return data


class OrderStatusHistory(db.Model):
    __tablename__ = "order_status_history"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(GUID(), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False)
    timestamp = db.Column(db.DateTime, default=utcnow)
    updated_by = db.Column(db.String(180))
    note = db.Column(db.String(255))
    location = db.Column(db.JSON)

    def as_api(self):
        return {
            "status": self.status,
            "timestamp": iso(self.timestamp),
            "updatedBy": self.updated_by,
            "note": self.note,
            "location": self.location,
        }


class ArchivedOrder(db.Model):
    """Delivered/cancelled orders moved out of the active table."""
    __tablename__ = "order_history"

    id = db.Column(db.Integer, primary_key=True)
    original_order_id = db.Column(GUID(), nullable=False, unique=True, index=True)
    order_number = db.Column(db.String(32), index=True)
    status = db.Column(db.String(20), index=True)
    user_email = db.Column(db.String(255), index=True)
    user_name = db.Column(db.String(180))
    total = db.Column(db.Numeric(12, 2))
    snapshot = db.Column(db.JSON, nullable=False)  # full order incl. statusHistory

    original_created_at = db.Column(db.DateTime)
    moved_to_history_at = db.Column(db.DateTime, default=utcnow)
    moved_by = db.Column(db.String(180))
    history_date = db.Column(db.String(10), index=True)  # YYYY-MM-DD

    def as_api(self):
        return {
            **(self.snapshot or {}),
            "historyId": self.id,
            "originalOrderId": str(self.original_order_id),
            "movedToHistoryAt": iso(self.moved_to_history_at),
            "movedBy": self.moved_by,
            "historyDate": self.history_date,
            "originalDate": iso(self.original_created_at),
            "isArchived": True,
        }
