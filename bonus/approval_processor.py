# bonus/approval_processor.py
import logging
from decimal import Decimal

from extensions import db
from models import Referral, ReferralEarning, Subscription, User
from logger import approvals_logger


logger = logging.getLogger(__name__)


def credit_referrer_on_first_activation(subscription: Subscription, now):
    """
    Credit the referrer of the subscription owner, once per referred user.

    Runs inside the caller's unit of work: rows are added to the session and
    the referrer is locked, but nothing is committed here. Returns the
    ReferralEarning created, or None when no credit applies.
    """
    referral = (
        Referral.query
        .filter_by(referred_user_id=subscription.user_id)
        .with_for_update()
        .first()
    )
    if not referral:
        return None

    if referral.first_active_date is not None:
        logger.info(f"Referral {referral.id} already credited on {referral.first_active_date}; skipping")
        return None

    referrer = (
        db.session.query(User)
        .filter(User.id == referral.referrer_id)
        .with_for_update()
        .first()
    )
    if not referrer:
        logger.warning(f"Referral {referral.id} points at missing referrer {referral.referrer_id}")
        return None

    amount = Decimal(str(referral.profit_per_month))
    referral.first_active_date = now
    referrer.withdrawable_balance = referrer.balance + amount

    earning = ReferralEarning(
        referral_id=referral.id,
        referrer_id=referrer.id,
        subscription_id=subscription.id,
        month=now.strftime("%Y-%m"),
        amount=amount,
        created_at=now,
    )
    db.session.add(earning)

    approvals_logger.info(
        f"Referral bonus {amount} credited to user {referrer.id} "
        f"for first activation of user {subscription.user_id} (stock {subscription.stock_id})"
    )
    return earning
