# bonus/referral_graph.py
import logging
from datetime import timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from errors import ValidationError, NotFound, Conflict, IdGenerationExhausted
from extensions import db
from models import User, Referral, ReferralEarning, Subscription, SubscriptionStatus
import utils


logger = logging.getLogger(__name__)

REFERRAL_CODE_MAX_ATTEMPTS = 10


class ReferralGraphHelper:
    """Referral codes, referrer → referred edges and the earnings read side."""

    # ==========================================================
    #                  CODES
    # ==========================================================
    @staticmethod
    def get_or_create_code(user: User) -> str:
        if user.referral_code:
            return user.referral_code

        for _ in range(REFERRAL_CODE_MAX_ATTEMPTS):
            code = utils.generate_referral_code()
            if not User.query.filter_by(referral_code=code).first():
                user.referral_code = code
                db.session.commit()
                logger.info(f"Generated referral code {code} for user {user.id}")
                return code

        raise IdGenerationExhausted("Could not generate a unique referral code")

    @staticmethod
    def redeem_code(user: User, code) -> Referral:
        """
        Attach `user` under the owner of `code`. A user can be referred once;
        referral_code_used is write-once.
        """
        if user.referral_code_used:
            raise Conflict("You have already used a referral code")

        code = utils.clean_text(code, "Referral code", required=True).upper()
        if user.referral_code and code == user.referral_code:
            raise ValidationError("Cannot use your own referral code")

        referrer = User.query.filter_by(referral_code=code).first()
        if not referrer:
            raise NotFound("Invalid referral code")
        if referrer.id == user.id:
            raise ValidationError("Cannot use your own referral code")

        if Referral.query.filter_by(referred_user_id=user.id).first():
            raise Conflict("You have already been referred")

        referral = Referral(
            referrer_id=referrer.id,
            referred_user_id=user.id,
            referral_code=code,
            profit_per_month=current_app.config["REFERRAL_PROFIT_PER_MONTH"],
        )
        user.referred_by_id = referrer.id
        user.referral_code_used = code
        db.session.add(referral)
        db.session.commit()

        logger.info(f"User {user.id} redeemed referral code {code} of user {referrer.id}")
        return referral

    # ==========================================================
    #                  READ SIDE
    # ==========================================================
    @staticmethod
    def _actively_paying_user_ids(user_ids, now):
        """Ids among `user_ids` owning at least one actively paying subscription."""
        if not user_ids:
            return set()
        grace_days = current_app.config["ACTIVE_PAYING_GRACE_DAYS"]
        cutoff = now - timedelta(days=grace_days)
        rows = (
            db.session.query(Subscription.user_id)
            .filter(
                Subscription.user_id.in_(user_ids),
                Subscription.status == SubscriptionStatus.ACTIVE,
                Subscription.active_until.isnot(None),
                Subscription.active_until >= cutoff,
            )
            .distinct()
            .all()
        )
        return {row[0] for row in rows}

    @staticmethod
    def active_referrals_of(user: User, now=None):
        now = now or utils.utcnow()
        edges = Referral.query.filter_by(referrer_id=user.id).order_by(Referral.created_at.desc()).all()
        paying = ReferralGraphHelper._actively_paying_user_ids([e.referred_user_id for e in edges], now)
        return [e for e in edges if e.referred_user_id in paying]

    @staticmethod
    def serialize_edge(edge: Referral):
        referred = edge.referred_user
        return {
            "id": edge.id,
            "referredUser": referred.brief() if referred else None,
            "referralCode": edge.referral_code,
            "profitPerMonth": utils.money_out(edge.profit_per_month),
            "firstActiveDate": utils.iso(edge.first_active_date),
            "createdAt": utils.iso(edge.created_at),
        }

    @staticmethod
    def historical_earnings(user: User):
        """Credited bonuses grouped by month, newest first."""
        rows = (
            db.session.query(
                ReferralEarning.month,
                func.count(ReferralEarning.id),
                func.coalesce(func.sum(ReferralEarning.amount), 0),
            )
            .filter(ReferralEarning.referrer_id == user.id)
            .group_by(ReferralEarning.month)
            .order_by(ReferralEarning.month.desc())
            .all()
        )
        return [
            {"month": month, "count": count, "total": utils.money_out(utils.money(total))}
            for month, count, total in rows
        ]

    @staticmethod
    def stats_of(user: User, now=None):
        now = now or utils.utcnow()
        total = Referral.query.filter_by(referrer_id=user.id).count()
        active = ReferralGraphHelper.active_referrals_of(user, now)
        current_month = sum((Decimal(str(e.profit_per_month)) for e in active), Decimal("0.00"))

        return {
            "totalReferrals": total,
            "activeReferralsCount": len(active),
            "activeReferrals": [ReferralGraphHelper.serialize_edge(e) for e in active],
            "currentMonthEarnings": utils.money_out(utils.money(current_month)),
            "historicalEarnings": ReferralGraphHelper.historical_earnings(user),
            "referralCode": user.referral_code,
        }
