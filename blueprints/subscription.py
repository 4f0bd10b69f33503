#======================================================================================
#
#   SUBSCRIPTIONS ("stocks"): user requests, admin approval workflow, dashboard
#
#=======================================================================================
import os
import logging

from flask import Blueprint, jsonify, request, current_app, send_from_directory
from flask_login import login_required, current_user
from werkzeug.utils import secure_filename

from blueprints.subscription_helpers import SubscriptionLedger
from errors import NotFound, ValidationError
from extensions import db
from logger import approvals_logger
from models import User, Role, AuditLog
from security import admin_required


logger = logging.getLogger(__name__)

subscription_bp = Blueprint("subscription", __name__, url_prefix="/api/subscription")

UPLOAD_KINDS = ("payment-proofs", "withdraw-receipts")


def _json_body():
    return request.get_json(silent=True) or {}


#===========================================================================
#      USER
#==============================================================================
@subscription_bp.route("/request", methods=["POST"])
@login_required
def request_subscription():
    subscription = SubscriptionLedger.request(
        current_user,
        request.files.get("paymentProof"),
        request.form.get("continuedFrom"),
    )
    return jsonify({
        "success": True,
        "message": "Subscription request submitted. Awaiting admin approval.",
        "subscription": subscription.owner_view(),
    }), 201


@subscription_bp.route("/my", methods=["GET"])
@login_required
def my_subscriptions():
    return jsonify({"success": True, "subscriptions": SubscriptionLedger.list_own(current_user)}), 200


@subscription_bp.route("/dashboard", methods=["GET"])
@login_required
def dashboard():
    return jsonify({"success": True, "dashboard": SubscriptionLedger.dashboard(current_user)}), 200


#===========================================================================
#      ADMIN: LISTINGS
#==============================================================================
@subscription_bp.route("/admin/subscriptions/pending", methods=["GET"])
@admin_required
def pending_subscriptions():
    return jsonify({"success": True, "subscriptions": SubscriptionLedger.list_pending()}), 200


@subscription_bp.route("/admin/subscriptions/active", methods=["GET"])
@admin_required
def active_subscriptions():
    return jsonify({"success": True, "subscriptions": SubscriptionLedger.list_active()}), 200


@subscription_bp.route("/admin/subscriptions/all", methods=["GET"])
@admin_required
def all_subscriptions():
    return jsonify({"success": True, "subscriptions": SubscriptionLedger.list_all()}), 200


@subscription_bp.route("/admin/subscriptions/expired", methods=["GET"])
@admin_required
def expired_subscriptions():
    return jsonify({"success": True, "subscriptions": SubscriptionLedger.list_expired()}), 200


@subscription_bp.route("/admin/users/stats", methods=["GET"])
@admin_required
def users_stats():
    return jsonify({"success": True, "users": SubscriptionLedger.user_stats()}), 200


#===========================================================================
#      ADMIN: APPROVAL WORKFLOW
#==============================================================================
@subscription_bp.route("/admin/subscriptions/<int:subscription_id>/approve", methods=["POST"])
@admin_required
def approve_subscription(subscription_id):
    subscription = SubscriptionLedger.approve(
        current_user, subscription_id, _json_body().get("apiToken"), request.remote_addr
    )
    return jsonify({
        "success": True,
        "message": "Subscription approved",
        "subscription": subscription.admin_view(),
    }), 200


@subscription_bp.route("/admin/subscriptions/<int:subscription_id>/reject", methods=["POST"])
@admin_required
def reject_subscription(subscription_id):
    subscription = SubscriptionLedger.reject(
        current_user, subscription_id, _json_body().get("reason"), request.remote_addr
    )
    return jsonify({
        "success": True,
        "message": "Subscription rejected",
        "subscription": subscription.admin_view(),
    }), 200


@subscription_bp.route("/admin/subscriptions/<int:subscription_id>/toggle", methods=["POST"])
@admin_required
def toggle_subscription(subscription_id):
    subscription = SubscriptionLedger.toggle(current_user, subscription_id, request.remote_addr)
    return jsonify({
        "success": True,
        "message": "Subscription enabled" if subscription.is_active else "Subscription disabled",
        "subscription": subscription.admin_view(),
    }), 200


@subscription_bp.route("/admin/subscriptions/<int:subscription_id>/token", methods=["PUT"])
@admin_required
def update_token(subscription_id):
    subscription = SubscriptionLedger.set_token(
        current_user, subscription_id, _json_body().get("apiToken"), request.remote_addr
    )
    return jsonify({
        "success": True,
        "message": "API token updated",
        "subscription": subscription.admin_view(),
    }), 200


@subscription_bp.route("/admin/subscriptions/<int:subscription_id>/expire", methods=["POST"])
@admin_required
def expire_subscription(subscription_id):
    subscription = SubscriptionLedger.mark_expired(current_user, subscription_id, request.remote_addr)
    return jsonify({
        "success": True,
        "message": "Subscription marked as expired",
        "subscription": subscription.admin_view(),
    }), 200


@subscription_bp.route("/admin/users/<int:user_id>/toggle-role", methods=["POST"])
@admin_required
def toggle_role(user_id):
    if user_id == current_user.id:
        raise ValidationError("You cannot change your own role")

    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    previous = user.role
    user.role = Role.USER.value if user.is_admin else Role.ADMIN.value
    AuditLog.record(current_user, "user.toggle_role", user, {"from": previous, "to": user.role}, request.remote_addr)
    db.session.commit()

    approvals_logger.info(f"Admin {current_user.id} changed role of user {user.id} {previous} -> {user.role}")
    return jsonify({
        "success": True,
        "message": f"User role changed to {user.role}",
        "user": {"id": user.id, "email": user.email, "role": user.role},
    }), 200


#===========================================================================
#      UPLOADED FILES (admin only)
#==============================================================================
@subscription_bp.route("/uploads/<kind>/<path:filename>", methods=["GET"])
@admin_required
def uploaded_file(kind, filename):
    if kind not in UPLOAD_KINDS:
        raise NotFound("File not found")

    directory = os.path.join(current_app.config["UPLOAD_FOLDER"], kind)
    safe_name = secure_filename(filename)
    if not safe_name or not os.path.isfile(os.path.join(directory, safe_name)):
        raise NotFound("File not found")
    return send_from_directory(directory, safe_name)
