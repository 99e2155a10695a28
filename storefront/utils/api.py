# storefront/utils/api.py
from flask import jsonify


def api_ok(message=None, data=None):
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def api_error(message, code=None, data=None):
    body = {"success": False, "error": message}
    if code:
        body["code"] = code
    if data is not None:
        body["data"] = data
    return body


# ---- standard API response format ------------------------------------------
def ok(msg=None, data=None, status=200):
    r = jsonify(api_ok(msg, data)); r.status_code = status; return r


def _to_int(v, default=None):
    try:
        return int(v)
    except (TypeError, ValueError):
        return default

def paginate(query, page, per_page):
    page = max(_to_int(page, 1), 1)
    per_page = min(max(_to_int(per_page, 20), 1), 100)
    items = query.paginate(page=page, per_page=per_page, error_out=False)
    return {
        "meta": {
            "page": items.page,
            "pages": items.pages or 1,
            "per_page": per_page,
            "total": items.total,
        },
        "items": items.items,
    }
