#======================================================================================
#
# THIS IS ADMIN overview: summary counts, user search and the audit trail
#
#=======================================================================================
from flask import jsonify, request, Blueprint
from sqlalchemy import or_
import logging

from blueprints.subscription_helpers import count_by_status
from errors import ValidationError
from extensions import db
from models import User, Role, Withdrawal, WithdrawalStatus, ReferralEarning, AuditLog
from security import admin_required
from utils import money, money_out, iso, utcnow

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


@admin_bp.route("/data", methods=["GET"])
@admin_required
def admin_data():
    today_start = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)

    total_users = User.query.count()
    admin_users = User.query.filter_by(role=Role.ADMIN.value).count()
    daily_new_users = User.query.filter(User.created_at >= today_start).count()

    pending_withdrawals = Withdrawal.query.filter_by(status=WithdrawalStatus.PENDING.value).count()
    total_paid_out = db.session.query(
        db.func.coalesce(db.func.sum(Withdrawal.amount), 0)
    ).filter(Withdrawal.status == WithdrawalStatus.APPROVED.value).scalar()
    total_referral_bonus = db.session.query(
        db.func.coalesce(db.func.sum(ReferralEarning.amount), 0)
    ).scalar()
    outstanding_balance = db.session.query(
        db.func.coalesce(db.func.sum(User.withdrawable_balance), 0)
    ).scalar()

    return jsonify({
        "success": True,
        "data": {
            "total_users": total_users,
            "admin_users": admin_users,
            "daily_new_users": daily_new_users,
            "subscriptions": count_by_status(),
            "pending_withdrawals": pending_withdrawals,
            "total_paid_out": money_out(money(total_paid_out)),
            "total_referral_bonus": money_out(money(total_referral_bonus)),
            "outstanding_balance": money_out(money(outstanding_balance)),
        },
    }), 200


#============================================================================================================
#
#     ----------------------------ADMIN SEARCH FUNCTIONALITY-------------------------------------------
#
#============================================================================================================

@admin_bp.route('/search', methods=['GET'])
@admin_required
def admin_search():
    """Search users by email, display name, referral code or id"""
    query = request.args.get('q', '').strip()
    if not query:
        raise ValidationError('Please provide a search query')

    filters = [
        User.email.ilike(f'%{query}%'),
        User.display_name.ilike(f'%{query}%'),
        User.referral_code.ilike(f'%{query}%'),
    ]
    if query.isdigit():
        filters.append(User.id == int(query))

    users = User.query.filter(or_(*filters)).order_by(User.email.asc()).limit(50).all()
    return jsonify({
        'success': True,
        'users': [u.to_dict() for u in users],
        'total_results': len(users),
    }), 200


@admin_bp.route('/audit-logs', methods=['GET'])
@admin_required
def audit_logs():
    try:
        limit = min(int(request.args.get('limit', 100)), 500)
    except ValueError:
        raise ValidationError('limit must be an integer')

    query = AuditLog.query
    action = request.args.get('action')
    if action:
        query = query.filter(AuditLog.action == action)

    entries = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
    return jsonify({
        'success': True,
        'logs': [
            {
                'id': e.id,
                'actorId': e.actor_id,
                'action': e.action,
                'targetType': e.target_type,
                'targetId': e.target_id,
                'details': e.details,
                'ipAddress': e.ip_address,
                'createdAt': iso(e.created_at),
            }
            for e in entries
        ],
    }), 200
