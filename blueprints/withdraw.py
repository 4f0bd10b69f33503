from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
import logging

from blueprints.withdraw_helpers import WithdrawalProcessor, WithdrawalValidator
from security import admin_required


logger = logging.getLogger(__name__)

withdraw_bp = Blueprint("withdraw", __name__, url_prefix="/api/subscription")


#===========================================================================
#      USER
#==============================================================================
@withdraw_bp.route("/withdraw/request", methods=["POST"])
@login_required
def request_withdraw():
    data = request.get_json(silent=True) or {}
    withdrawal = WithdrawalProcessor.request_withdrawal(current_user, data.get("amount"))
    return jsonify({
        "success": True,
        "message": "Withdraw request submitted",
        "withdraw": withdrawal.to_dict(),
    }), 201


@withdraw_bp.route("/withdraw/history", methods=["GET"])
@login_required
def withdraw_history():
    withdrawals = WithdrawalProcessor.history(current_user)
    return jsonify({"success": True, "withdraws": [w.to_dict() for w in withdrawals]}), 200


@withdraw_bp.route("/withdraw/limits", methods=["GET"])
@login_required
def withdraw_limits():
    return jsonify({"success": True, "limits": WithdrawalValidator.limits(current_user)}), 200


#===========================================================================
#      ADMIN
#==============================================================================
@withdraw_bp.route("/admin/withdraw/requests", methods=["GET"])
@admin_required
def withdraw_requests():
    withdrawals = WithdrawalProcessor.list_requests(request.args.get("status"))
    return jsonify({
        "success": True,
        "withdraws": [w.to_dict(include_user=True) for w in withdrawals],
    }), 200


@withdraw_bp.route("/admin/withdraw/<int:withdrawal_id>/approve", methods=["POST"])
@admin_required
def approve_withdraw(withdrawal_id):
    withdrawal = WithdrawalProcessor.approve(
        current_user,
        withdrawal_id,
        request.files.get("receipt"),
        request.form.get("note"),
        request.remote_addr,
    )
    return jsonify({
        "success": True,
        "message": "Withdraw approved and receipt uploaded",
        "withdraw": withdrawal.to_dict(),
    }), 200


@withdraw_bp.route("/admin/withdraw/<int:withdrawal_id>/reject", methods=["POST"])
@admin_required
def reject_withdraw(withdrawal_id):
    data = request.get_json(silent=True) or {}
    withdrawal = WithdrawalProcessor.reject(current_user, withdrawal_id, data.get("reason"), request.remote_addr)
    return jsonify({
        "success": True,
        "message": "Withdraw request rejected",
        "withdraw": withdrawal.to_dict(),
    }), 200
