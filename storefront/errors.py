# storefront/errors.py
from flask import jsonify
from sqlalchemy.exc import DisconnectionError, OperationalError
from werkzeug.exceptions import HTTPException

from .extensions import db, jwt
from .utils.api import api_error
from .utils.logger import log


class StorefrontError(Exception):
    """Base for errors that carry their own HTTP status and user-facing message."""
    status_code = 500
    code = "internal_error"
    message = "Unexpected error"

    def __init__(self, message=None, code=None, data=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        if code:
            self.code = code
        self.data = data

    def to_dict(self):
        return api_error(self.message, self.code, self.data)


class Unauthorized(StorefrontError):
    status_code = 401
    code = "unauthorized"
    message = "Login required"


class Forbidden(StorefrontError):
    status_code = 403
    code = "forbidden"
    message = "You are not allowed to do this"


class NotFound(StorefrontError):
    status_code = 404
    code = "not_found"
    message = "Not found"


class ValidationError(StorefrontError):
    status_code = 400
    code = "validation_error"
    message = "Invalid request"


class Conflict(StorefrontError):
    status_code = 409
    code = "conflict"
    message = "Conflict"


class StoreUnavailable(StorefrontError):
    status_code = 503
    code = "store_unavailable"
    message = "Store is temporarily unavailable, please try again later"


class InternalError(StorefrontError):
    pass


def _respond(e: StorefrontError):
    r = jsonify(e.to_dict()); r.status_code = e.status_code; return r


def register_error_handlers(app):
    @app.errorhandler(StorefrontError)
    def handle_storefront_error(e):
        return _respond(e)

    @app.errorhandler(OperationalError)
    @app.errorhandler(DisconnectionError)
    def handle_store_unavailable(e):
        db.session.rollback()
        log.opt(exception=e).error("store unavailable: {}", e.__class__.__name__)
        return _respond(StoreUnavailable())

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        r = jsonify(api_error(e.description, e.name.lower().replace(" ", "_")))
        r.status_code = e.code
        return r

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        db.session.rollback()
        log.opt(exception=e).error("unhandled error")
        return _respond(InternalError())

    @jwt.unauthorized_loader
    def missing_token_callback(reason):
        return _respond(Unauthorized())

    @jwt.invalid_token_loader
    def invalid_token_callback(reason):
        return _respond(Unauthorized("Invalid token"))

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return _respond(Unauthorized("The token has expired"))
