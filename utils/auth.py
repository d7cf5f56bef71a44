"""
Auth helpers - JWT issue/verify and route decorators
"""
import re
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import current_app, g, jsonify, request

from database import get_db
from db_backend import QueryError
from utils.logger import get_logger

logger = get_logger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
JWT_ALGORITHM = "HS256"


def is_valid_email(value):
    return isinstance(value, str) and bool(EMAIL_RE.match(value.strip()))


def normalize_email(value):
    return value.strip().lower()


def generate_token(user):
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user["id"],
        "email": user["email"],
        "role": user["role"],
        "iat": now,
        "exp": now + timedelta(hours=current_app.config["JWT_EXPIRES_HOURS"]),
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=JWT_ALGORITHM)


def decode_token(token):
    return jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=[JWT_ALGORITHM])


def current_user():
    return g.current_user


def is_admin():
    return g.current_user["role"] == "admin"


def token_required(f):
    """Require `Authorization: Bearer <token>` for an active user; sets g.current_user."""

    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get("Authorization", "")
        parts = auth_header.split(" ")
        token = parts[1] if len(parts) == 2 and parts[0].lower() == "bearer" else None
        if not token:
            return jsonify({"error": "Access token required"}), 401

        try:
            payload = decode_token(token)
        except jwt.ExpiredSignatureError:
            return jsonify({"error": "Token expired"}), 401
        except jwt.InvalidTokenError:
            return jsonify({"error": "Invalid token"}), 403

        try:
            user = get_db().fetch_one(
                "SELECT id, name, email, role, is_active FROM users WHERE id = ?",
                [payload.get("userId")],
            )
        except QueryError as err:
            logger.error(f"Auth lookup failed: {err}")
            return jsonify({"error": "Authentication failed"}), 500

        if not user:
            return jsonify({"error": "User not found"}), 401
        if not user["is_active"]:
            return jsonify({"error": "Account is deactivated"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated


def admin_required(f):
    """Use below @token_required."""

    @wraps(f)
    def decorated(*args, **kwargs):
        if not is_admin():
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated


def validate_required(fields, text_fields=()):
    """400 unless every field is present; `text_fields` must also be strings."""

    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            data = request.get_json(silent=True) or {}
            errors = [
                f"{field} is required"
                for field in fields
                if data.get(field) is None or str(data.get(field)).strip() == ""
            ]
            errors += [
                f"{field} must be a string"
                for field in text_fields
                if data.get(field) is not None and not isinstance(data.get(field), str)
            ]
            if errors:
                return jsonify({"error": "Validation failed", "details": errors}), 400
            return f(*args, **kwargs)

        return decorated

    return decorator
