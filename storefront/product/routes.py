from flask import request
from sqlalchemy import or_
from ..model import Product, Category
from ..utils.api import ok
from . import bp


def _parse_bool(v, default=None):
    if v is None or v == "":
        return default
    return str(v).strip().lower() in ("1", "true", "yes", "on")


@bp.get("")
def list_products():
    """
    Query params:
      - category=<slug>   matches any entry of the product's categories
      - active=true|false (default: active only)
      - search=...        name / description
    """
    q = Product.query

    active = _parse_bool(request.args.get("active"), default=True)
    q = q.filter(Product.is_active == active)

    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Product.name.ilike(like), Product.description.ilike(like)))

    products = q.order_by(Product.created_at.desc(), Product.id.desc()).all()

    # categories is a JSON list, filtered here so every backend behaves the same
    category = (request.args.get("category") or "").strip()
    if category and category != "all":
        products = [p for p in products if p.in_category(category)]

    return ok(data={"products": [p.as_api() for p in products], "total": len(products)})


@bp.get("/categories")
def list_categories():
    rows = (Category.query
            .filter(Category.is_active.is_(True))
            .order_by(Category.sort_order.asc(), Category.name.asc())
            .all())
    return ok(data={"categories": [c.as_dict() for c in rows]})
