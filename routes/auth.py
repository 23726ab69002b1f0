import re

from flask import Blueprint, request, jsonify, current_app, g
from sqlalchemy.exc import IntegrityError

from models import db
from models.user import User, Role
from security.csrf import CSRF_COOKIE, set_csrf_cookie
from security.password import hash_password, validate_password, verify_password
from security.rbac import ROLE_PLAYER
from security.session import create_session, revoke_session, session_cookie_name
from utils.audit import log_event
from utils.auth_context import login_required

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _user_json(user: User):
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "roles": user.role_names,
    }


def _signed_in(user: User, status: int, **extra):
    """Open a session for `user` and attach the session and CSRF cookies."""
    raw_token = create_session(user.id)
    resp = jsonify(user=_user_json(user), **extra)
    resp.set_cookie(
        session_cookie_name(),
        raw_token,
        max_age=current_app.config.get("SESSION_LIFETIME_SECONDS", 28800),
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        path="/",
    )
    set_csrf_cookie(resp, raw_token)
    return resp, status


# ---------- sign up: every new account is a PLAYER ----------
@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    full_name = (data.get("full_name") or "").strip()[:120] or None

    if len(email) > 255 or not EMAIL_RE.match(email):
        return jsonify(error="Invalid email"), 400
    problem = validate_password(password)
    if problem:
        return jsonify(error=problem), 400

    user = User(email=email, password_hash=hash_password(password), full_name=full_name)
    user.roles.append(Role.query.filter_by(name=ROLE_PLAYER).one())
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        log_event("REGISTER_DUPLICATE", metadata={"email": email})
        return jsonify(error="Email already registered"), 409

    log_event("REGISTER", user_id=user.id, entity="user", entity_id=user.id)
    return _signed_in(user, 201, message="Registered")


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()

    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(data.get("password") or "", user.password_hash):
        log_event("LOGIN_FAIL", user_id=user.id if user else None, metadata={"email": email})
        return jsonify(error="Invalid credentials"), 401

    log_event("LOGIN_SUCCESS", user_id=user.id)
    return _signed_in(user, 200, message="Logged in")


@auth_bp.post("/logout")
@login_required
def logout():
    revoke_session(request.cookies.get(session_cookie_name()))
    log_event("LOGOUT", user_id=g.user.id)

    resp = jsonify(message="Logged out")
    resp.delete_cookie(session_cookie_name(), path="/")
    resp.delete_cookie(CSRF_COOKIE, path="/")
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(_user_json(g.user)), 200


@auth_bp.patch("/me")
@login_required
def update_me():
    data = request.get_json(silent=True) or {}
    new_password = data.get("password")
    if new_password is not None:
        if not verify_password(data.get("current_password") or "", g.user.password_hash):
            return jsonify(error="Current password is incorrect"), 400
        problem = validate_password(new_password)
        if problem:
            return jsonify(error=problem), 400
        g.user.password_hash = hash_password(new_password)
    if "full_name" in data:
        g.user.full_name = (data.get("full_name") or "").strip()[:120] or None

    db.session.commit()
    log_event("PROFILE_UPDATE", user_id=g.user.id, entity="user", entity_id=g.user.id,
              metadata={"fields": sorted(k for k in data if k in ("full_name", "password"))})
    return jsonify(_user_json(g.user)), 200
