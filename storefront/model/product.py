# storefront/model/product.py
from ..extensions import db
from ..utils.dates import utcnow, iso
from ..utils.money import D, to_float


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text, default="")
    image = db.Column(db.String(1024))

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    original_price = db.Column(db.Numeric(12, 2), nullable=True)

    # category slugs; the first one doubles as the legacy single category
    categories = db.Column(db.JSON, nullable=False, default=list)
    tags = db.Column(db.JSON, nullable=False, default=list)
    # [{"key": "spice", "name": "Spice level", "values": [{"value": "hot", "label": "Hot"}]}]
    options = db.Column(db.JSON, nullable=False, default=list)

    stock = db.Column(db.Integer, nullable=True)  # None = unlimited
    is_active = db.Column(db.Boolean, default=True, index=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @property
    def category(self):
        return self.categories[0] if self.categories else None

    @property
    def discount_percent(self) -> int:
        if self.original_price is None:
            return 0
        original, price = D(self.original_price), D(self.price)
        if original <= 0 or price >= original:
            return 0
        return min(100, int(round((original - price) / original * 100)))

    def in_category(self, slug) -> bool:
        return slug in (self.categories or [])

    def as_snapshot(self):
        """Fields copied into a cart line / order item."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description or "",
            "image": self.image,
            "price": to_float(self.price),
            "originalPrice": to_float(self.original_price),
            "discount": self.discount_percent,
            "categories": list(self.categories or []),
            "tags": list(self.tags or []),
        }

    def as_api(self):
        return {
            **self.as_snapshot(),
            "category": self.category,
            "options": self.options or [],
            "hasOptions": bool(self.options),
            "stock": self.stock,
            "isActive": self.is_active,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }
