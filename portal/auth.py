from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request, session

from portal.application.auth_service import AuthService
from portal.db import get_db
from portal.domain.contracts import ROLE_ADMIN, AuthLoginInput, AuthRegisterInput, AuthUser, Principal
from portal.errors import AuthorizationError, ValidationError
from portal.policies import normalize_role, require_roles


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")
_auth_service = AuthService()

_OPEN_PREFIXES = ("/api/auth/", "/api/public/")
LOCAL_PRINCIPAL_ID = "local-admin"


def register_auth(app) -> None:
    app.register_blueprint(auth_bp)
    _auth_service.configure_retry(
        app.config.get("AUTH_RETRY_ATTEMPTS", 3),
        app.config.get("AUTH_RETRY_BACKOFF_MS", 200),
    )

    @app.before_request
    def _require_login():
        if not app.config.get("AUTH_ENABLED", True):
            return None

        path = request.path or "/"
        if not path.startswith("/api/") or path.startswith(_OPEN_PREFIXES):
            return None
        if session.get("user_id"):
            return None
        raise AuthorizationError(reason="auth_required", http_status=401)


def current_principal() -> Principal | None:
    user_id = str(session.get("user_id") or "").strip()
    if user_id:
        return Principal(
            user_id=user_id,
            role=normalize_role(session.get("user_role")),
            email=session.get("user_email"),
            display_name=session.get("display_name"),
        )
    if not current_app.config.get("AUTH_ENABLED", True):
        # Single-user local mode.
        return Principal(user_id=LOCAL_PRINCIPAL_ID, role=ROLE_ADMIN, display_name="Local administrator")
    return None


def _start_session(user: AuthUser) -> None:
    session.clear()
    session["user_id"] = user.user_id
    session["user_email"] = user.email
    session["display_name"] = user.display_name
    session["user_role"] = normalize_role(user.role)


def _user_payload(principal: Principal) -> dict:
    return {
        "user_id": principal.user_id,
        "email": principal.email,
        "display_name": principal.display_name,
        "role": principal.role,
    }


@auth_bp.route("/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or {}
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    if not email or not password:
        raise ValidationError(code="auth_missing_credentials")

    db = get_db()
    user = _auth_service.login(db, AuthLoginInput(email=email, password=password), current_app.config.get("APP_USERS"))
    if user is None:
        current_app.logger.info("login_failed", extra={"email": email})
        raise AuthorizationError(reason="auth_required", http_status=401, message_key="auth_invalid_credentials")
    db.commit()
    _start_session(user)
    return jsonify({"user": _user_payload(user.to_principal())})


@auth_bp.route("/register", methods=["POST"])
def register():
    payload = request.get_json(silent=True) or {}
    db = get_db()
    user = _auth_service.register(
        db,
        AuthRegisterInput(
            email=str(payload.get("email") or ""),
            password=str(payload.get("password") or ""),
            display_name=payload.get("display_name"),
        ),
    )
    db.commit()
    _start_session(user)
    return jsonify({"user": _user_payload(user.to_principal())}), 201


@auth_bp.route("/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify({"ok": True})


@auth_bp.route("/me", methods=["GET"])
def me():
    principal = require_roles(current_principal())
    return jsonify({"user": _user_payload(principal)})
