#=======================================================================================================
#   JWT session credentials, request authentication and the admin guard
#=======================================================================================================
import logging
from datetime import timedelta
from functools import wraps
from typing import Any, Dict

from flask import current_app, request
from flask_login import current_user, login_required
from jose import jwt, JWTError, ExpiredSignatureError

from errors import Unauthenticated, Forbidden, error_response
from extensions import db, login_manager
from models import User
from utils import utcnow


logger = logging.getLogger(__name__)


def issue_token(user: User) -> str:
    """Signed credential carrying id, email and role; expires after JWT_EXPIRES_DAYS."""
    now = utcnow()
    payload = {
        "sub": str(user.id),
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "googleId": user.google_id,
        "iat": now,
        "exp": now + timedelta(days=current_app.config["JWT_EXPIRES_DAYS"]),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config["JWT_ALGORITHM"],
    )


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(
            token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
        )
    except ExpiredSignatureError:
        raise Unauthenticated("Token has expired")
    except JWTError:
        raise Unauthenticated("Invalid or expired token")


def token_from_request(req) -> str:
    """Bearer header first, then the HTTP-only cookie."""
    header = req.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        token = header[len("Bearer "):].strip()
        if token:
            return token
    return req.cookies.get(current_app.config["AUTH_COOKIE_NAME"])


def authenticate(token: str) -> User:
    """Resolve a credential to its user or raise Unauthenticated."""
    if not token:
        raise Unauthenticated("Authentication required")

    payload = decode_token(token)
    user_id = payload.get("id") or payload.get("sub")
    try:
        user = db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        raise Unauthenticated("Invalid or expired token")

    if not user:
        raise Unauthenticated("User not found")
    return user


def require_admin(user: User) -> User:
    if user is None or not user.is_admin:
        raise Forbidden("Admin access required")
    return user


def set_auth_cookie(response, token: str):
    response.set_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        token,
        httponly=True,
        secure=current_app.config.get("FLASK_ENV") == "production",
        samesite="Lax",
        max_age=current_app.config["JWT_EXPIRES_DAYS"] * 24 * 60 * 60,
    )
    return response


def clear_auth_cookie(response):
    response.delete_cookie(current_app.config["AUTH_COOKIE_NAME"])
    return response


# ------------------------------------------------------------------------------------------------------
# Flask-Login wiring: the credential is read from every request, no server session
# ------------------------------------------------------------------------------------------------------
@login_manager.request_loader
def load_user_from_request(req):
    token = token_from_request(req)
    if not token:
        return None
    try:
        return authenticate(token)
    except Unauthenticated as e:
        logger.debug(f"Rejected credential: {e.message}")
        return None


@login_manager.unauthorized_handler
def unauthorized():
    token = token_from_request(request)
    if not token:
        return error_response("Authentication required", 401)
    try:
        authenticate(token)
    except Unauthenticated as e:
        return error_response(e.message, 401)
    return error_response("Authentication required", 401)


def admin_required(f):
    """
    Decorator to restrict access to admin-only routes.
    - Requires a valid credential (401 otherwise).
    - Aborts with 403 Forbidden if the resolved user is not an admin.
    """
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        require_admin(current_user)
        return f(*args, **kwargs)

    return decorated_function


def optional_user():
    """The authenticated user, or None for an anonymous caller."""
    return current_user if current_user.is_authenticated else None
