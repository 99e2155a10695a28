from flask import request
from werkzeug.security import generate_password_hash, check_password_hash
from flask_jwt_extended import create_access_token
from . import bp
from ..model import User
from ..extensions import db
from ..errors import Conflict, Unauthorized, ValidationError
from ..utils.api import ok
from ..utils.decorators import current_user, login_required
from ..utils.logger import log


@bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    name = (data.get("name") or "").strip()

    if not email:
        raise ValidationError("Email required")
    if not password or len(password) < 6:
        raise ValidationError("Password required, min 6 chars")
    if not name:
        raise ValidationError("Name required")
    if User.query.filter_by(email=email).first():
        raise Conflict("Email already registered", code="duplicate_email")

    # Bootstrap: very first account becomes admin
    is_first_user = db.session.query(User.id).count() == 0
    role = "admin" if is_first_user else "user"

    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        name=name,
        phone=(data.get("phone") or "").strip() or None,
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    log.info("user {} registered as {}", user.email, user.role)

    token = create_access_token(identity=str(user.id))
    return ok("Account created successfully", {"user": user.as_dict(), "token": token}, 201)


@bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        raise ValidationError("Email and password are required")

    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, password):
        raise Unauthorized("Invalid email or password")

    token = create_access_token(identity=str(user.id))
    return ok("You've logged in successfully", {"user": user.as_dict(), "token": token})


@bp.get("/me")
@login_required
def me():
    return ok(data={"user": current_user().as_dict()})
