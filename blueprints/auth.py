from flask import Blueprint, jsonify, request, redirect, url_for, current_app
from flask_login import login_required, current_user
import logging

from blueprints.google_oauth import build_auth_url, complete_login
from errors import AppError, ValidationError, NotFound
from extensions import db
from models import User, Role, AuditLog
import utils
from security import (
    issue_token, set_auth_cookie, clear_auth_cookie, admin_required, optional_user
)


logger = logging.getLogger(__name__)
#==================================================================================================================

bp = Blueprint("auth", __name__, url_prefix="/api/auth")

PROFILE_FIELDS = {
    "displayName": "display_name",
    "bankName": "bank_name",
    "bankAccountNumber": "bank_account_number",
    "bankAccountName": "bank_account_name",
    "whatsappNumber": "whatsapp_number",
}


def _callback_url():
    return current_app.config.get("GOOGLE_CALLBACK_URL") or url_for("auth.google_callback", _external=True)


def _frontend_redirect(query):
    frontend = current_app.config.get("FRONTEND_URL", "").rstrip("/")
    return redirect(f"{frontend}/?{query}")


#===========================================================================
#      GOOGLE OAUTH
#==============================================================================
@bp.route("/google/url", methods=["GET"])
def google_url():
    return jsonify({"success": True, "authUrl": build_auth_url(_callback_url())}), 200


@bp.route("/google/callback", methods=["GET"])
def google_callback():
    """
    Finish the OAuth dance. Never answers with an API error: every failure
    redirects back to the frontend with an `error` query flag.
    """
    code = request.args.get("code")
    if not code:
        return _frontend_redirect("error=no_code")

    try:
        user, created = complete_login(code, _callback_url())
    except AppError as e:
        db.session.rollback()
        current_app.logger.warning(f"Google OAuth callback failed: {e.message}")
        return _frontend_redirect("error=oauth_failed")
    except Exception:
        db.session.rollback()
        current_app.logger.error("Google OAuth callback error", exc_info=True)
        return _frontend_redirect("error=oauth_failed")

    token = issue_token(user)
    current_app.logger.info(f"User {user.id} logged in with Google (new={created})")

    response = _frontend_redirect(f"auth=success&token={token}")
    return set_auth_cookie(response, token)


#===========================================================================
#      SESSION
#==============================================================================
@bp.route("/me", methods=["GET"])
def me():
    user = optional_user()
    return jsonify({"success": True, "user": user.to_dict() if user else None}), 200


@bp.route("/logout", methods=["POST"])
def logout():
    response = jsonify({"success": True, "message": "Logged out successfully"})
    return clear_auth_cookie(response)


#===========================================================================
#      PROFILE
#==============================================================================
@bp.route("/profile", methods=["GET"])
@login_required
def get_profile():
    return jsonify({"success": True, "user": current_user.to_dict()}), 200


@bp.route("/profile", methods=["PUT"])
@login_required
def update_profile():
    """Update display name and payout metadata."""
    data = request.get_json(silent=True)
    if not data:
        raise ValidationError("Invalid or missing JSON body")

    changed = []
    for key, attr in PROFILE_FIELDS.items():
        if key in data:
            value = utils.clean_text(data.get(key), key)
            setattr(current_user, attr, value or None)
            changed.append(key)

    if not changed:
        raise ValidationError("No profile fields supplied")

    db.session.commit()
    logger.info(f"User {current_user.id} updated profile fields {changed}")
    return jsonify({"success": True, "user": current_user.to_dict()}), 200


#===========================================================================
#      ADMIN: USERS
#==============================================================================
@bp.route("/admin/users", methods=["GET"])
@admin_required
def list_users():
    users = User.query.order_by(User.created_at.desc()).all()
    return jsonify({
        "success": True,
        "count": len(users),
        "data": [u.to_dict() for u in users],
    }), 200


@bp.route("/users/<int:user_id>/role", methods=["PUT"])
@admin_required
def update_role(user_id):
    data = request.get_json(silent=True) or {}
    role = data.get("role")
    if role not in (Role.USER.value, Role.ADMIN.value):
        raise ValidationError('Invalid role. Must be "user" or "admin"')

    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    previous = user.role
    user.role = role
    AuditLog.record(current_user, "user.role", user, {"from": previous, "to": role}, request.remote_addr)
    db.session.commit()

    return jsonify({
        "success": True,
        "data": {"id": user.id, "email": user.email, "role": user.role},
        "message": f"User role updated to {role}",
    }), 200
