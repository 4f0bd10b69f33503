from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from bonus.referral_graph import ReferralGraphHelper


referral_bp = Blueprint("referral", __name__, url_prefix="/api/subscription/referral")


@referral_bp.route("/code", methods=["GET", "POST"])
@login_required
def referral_code():
    code = ReferralGraphHelper.get_or_create_code(current_user)
    return jsonify({"success": True, "referralCode": code}), 200


@referral_bp.route("/insert", methods=["POST"])
@login_required
def insert_referral_code():
    data = request.get_json(silent=True) or {}
    referral = ReferralGraphHelper.redeem_code(current_user, data.get("referralCode"))
    return jsonify({
        "success": True,
        "message": "Referral code applied successfully",
        "referral": {
            "id": referral.id,
            "referrer": referral.referrer.brief(),
            "referralCode": referral.referral_code,
        },
        "referralCodeUsed": current_user.referral_code_used,
    }), 201


@referral_bp.route("/stats", methods=["GET"])
@login_required
def referral_stats():
    return jsonify({"success": True, "stats": ReferralGraphHelper.stats_of(current_user)}), 200


@referral_bp.route("/active", methods=["GET"])
@login_required
def active_referrals():
    active = ReferralGraphHelper.active_referrals_of(current_user)
    total_profit = sum(float(r.profit_per_month) for r in active)
    return jsonify({
        "success": True,
        "activeReferrals": [ReferralGraphHelper.serialize_edge(r) for r in active],
        "count": len(active),
        "totalProfit": round(total_profit, 2),
    }), 200
