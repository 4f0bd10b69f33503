from decimal import Decimal
from datetime import timedelta
import logging

from flask import current_app
from sqlalchemy import func

from bonus.approval_processor import credit_referrer_on_first_activation
from bonus.referral_graph import ReferralGraphHelper
from errors import ValidationError, NotFound, Conflict, IdGenerationExhausted
from extensions import db
from logger import approvals_logger
from models import User, Subscription, SubscriptionStatus, AuditLog
import utils


logger = logging.getLogger(__name__)

PROOF_UPLOAD_KIND = "payment-proofs"

# ==========================================================
#                  CONFIGURATION
# ==========================================================
class SubscriptionConfig:

    @staticmethod
    def monthly_fee() -> Decimal:
        return current_app.config["SUBSCRIPTION_MONTHLY_FEE"]

    @staticmethod
    def period_days() -> int:
        return current_app.config["ACTIVE_PERIOD_DAYS"]

    @staticmethod
    def max_id_attempts() -> int:
        return current_app.config["STOCK_ID_MAX_ATTEMPTS"]


# ==========================================================
#                  SUBSCRIPTION LEDGER
# ==========================================================
class SubscriptionLedger:
    """
    Subscription ("stock") lifecycle. Admin mutations run as one unit of work:
    load, mutate, audit, commit once. Any error before the commit leaves the
    session to be rolled back by the error handler.
    """

    # ---------------- user side ----------------
    @staticmethod
    def _unique_stock_id() -> str:
        for attempt in range(1, SubscriptionConfig.max_id_attempts() + 1):
            stock_id = utils.generate_stock_id()
            if not Subscription.query.filter_by(stock_id=stock_id).first():
                return stock_id
            logger.warning(f"Stock id collision on attempt {attempt}: {stock_id}")
        raise IdGenerationExhausted("Could not generate a unique stock id, please try again")

    @staticmethod
    def _continuation_target(user: User, continued_from):
        if continued_from in (None, ""):
            return None
        try:
            target_id = int(continued_from)
        except (TypeError, ValueError):
            raise ValidationError("Invalid continuedFrom value")

        target = db.session.get(Subscription, target_id)
        if not target or target.user_id != user.id:
            raise NotFound("Subscription to continue was not found")
        if target.status == SubscriptionStatus.PENDING:
            raise ValidationError("Cannot continue a subscription that is still pending")
        return target

    @staticmethod
    def request(user: User, proof_file, continued_from=None) -> Subscription:
        if proof_file is None or not proof_file.filename:
            raise ValidationError("Payment proof is required")

        target = SubscriptionLedger._continuation_target(user, continued_from)
        stock_id = SubscriptionLedger._unique_stock_id()
        proof_path = utils.save_upload(
            proof_file,
            PROOF_UPLOAD_KIND,
            "proof",
            current_app.config["PROOF_EXTENSIONS"],
        )

        subscription = Subscription(
            user_id=user.id,
            stock_id=stock_id,
            status=SubscriptionStatus.PENDING,
            monthly_fee=SubscriptionConfig.monthly_fee(),
            payment_proof=proof_path,
            continued_from_id=target.id if target else None,
        )
        db.session.add(subscription)
        db.session.commit()

        logger.info(f"User {user.id} requested subscription {stock_id}")
        return subscription

    @staticmethod
    def list_own(user: User, now=None):
        now = now or utils.utcnow()
        subscriptions = (
            Subscription.query.filter_by(user_id=user.id)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .all()
        )
        return [s.owner_view(now) for s in subscriptions]

    @staticmethod
    def dashboard(user: User, now=None):
        now = now or utils.utcnow()
        active = (
            Subscription.query
            .filter_by(user_id=user.id, status=SubscriptionStatus.ACTIVE)
            .order_by(Subscription.active_until.desc())
            .all()
        )
        paying = [s for s in active if s.is_actively_paying(now)]
        current = paying[0] if paying else (active[0] if active else None)

        total_referrals = len(user.referrals_made)
        active_referrals = ReferralGraphHelper.active_referrals_of(user, now)
        monthly_profit = sum((Decimal(str(r.profit_per_month)) for r in active_referrals), Decimal("0.00"))
        stocks_fee = sum((Decimal(str(s.monthly_fee)) for s in paying), Decimal("0.00"))

        return {
            "hasActiveSubscription": bool(paying),
            "activeUntil": utils.iso(current.active_until) if current else None,
            "stockCount": user.subscriptions.count(),
            "activeStocksCount": len(paying),
            "totalReferrals": total_referrals,
            "activeReferrals": len(active_referrals),
            "monthlyProfit": utils.money_out(utils.money(monthly_profit)),
            "netCost": utils.money_out(utils.money(stocks_fee - monthly_profit)),
            "withdrawableBalance": utils.money_out(user.withdrawable_balance),
        }

    # ---------------- admin listings ----------------
    @staticmethod
    def list_by_status(*statuses, order_by=None, now=None):
        now = now or utils.utcnow()
        query = Subscription.query.filter(Subscription.status.in_(statuses))
        query = query.order_by(order_by if order_by is not None else Subscription.created_at.desc())
        return [s.admin_view(now) for s in query.all()]

    @staticmethod
    def list_pending():
        return SubscriptionLedger.list_by_status(SubscriptionStatus.PENDING)

    @staticmethod
    def list_active():
        return SubscriptionLedger.list_by_status(
            SubscriptionStatus.ACTIVE, order_by=Subscription.active_until.desc()
        )

    @staticmethod
    def list_expired():
        return SubscriptionLedger.list_by_status(
            SubscriptionStatus.EXPIRED, order_by=Subscription.updated_at.desc()
        )

    @staticmethod
    def list_all(now=None):
        """Active and cancelled records, each with its owner's read-time totals."""
        now = now or utils.utcnow()
        records = SubscriptionLedger.list_by_status(
            SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED,
            order_by=Subscription.updated_at.desc(), now=now,
        )
        owner_stats = {}
        for record in records:
            owner = record.get("user") or {}
            owner_id = owner.get("id")
            if owner_id is None:
                continue
            if owner_id not in owner_stats:
                owner_stats[owner_id] = SubscriptionLedger._owner_totals(db.session.get(User, owner_id), now)
            record.update(owner_stats[owner_id])
        return records

    @staticmethod
    def _owner_totals(user: User, now):
        paying = [
            s for s in user.subscriptions.filter_by(status=SubscriptionStatus.ACTIVE).all()
            if s.is_actively_paying(now)
        ]
        stocks_fee = sum((Decimal(str(s.monthly_fee)) for s in paying), Decimal("0.00"))
        active_referrals = ReferralGraphHelper.active_referrals_of(user, now)
        bonus = sum((Decimal(str(r.profit_per_month)) for r in active_referrals), Decimal("0.00"))
        return {
            "activeStocks": len(paying),
            "stocksFee": utils.money_out(utils.money(stocks_fee)),
            "activeReferralsCount": len(active_referrals),
            "activeReferrals": [ReferralGraphHelper.serialize_edge(r) for r in active_referrals],
            "bonus": utils.money_out(utils.money(bonus)),
            "netValue": utils.money_out(utils.money(stocks_fee - bonus)),
        }

    @staticmethod
    def user_stats(now=None):
        now = now or utils.utcnow()
        subscriber_ids = db.select(Subscription.user_id).distinct()
        users = User.query.filter(User.id.in_(subscriber_ids)).order_by(User.email.asc()).all()

        stats = []
        for user in users:
            row = {"id": user.id, "email": user.email, "displayName": user.display_name, "role": user.role}
            row.update(SubscriptionLedger._owner_totals(user, now))
            stats.append(row)
        return stats

    # ---------------- admin mutations ----------------
    @staticmethod
    def _load(subscription_id) -> Subscription:
        subscription = (
            Subscription.query
            .filter(Subscription.id == subscription_id)
            .with_for_update()
            .first()
        )
        if not subscription:
            raise NotFound("Subscription not found")
        return subscription

    @staticmethod
    def _require_transition(subscription: Subscription, new_status: SubscriptionStatus):
        if not subscription.can_transition_to(new_status):
            raise Conflict(
                f"Cannot change subscription from {subscription.status.value} to {new_status.value}"
            )

    @staticmethod
    def _clean_token(api_token) -> str:
        return utils.clean_text(api_token, "API token", required=True)

    @staticmethod
    def approve(admin: User, subscription_id, api_token, ip_address=None) -> Subscription:
        token = SubscriptionLedger._clean_token(api_token)
        subscription = SubscriptionLedger._load(subscription_id)
        SubscriptionLedger._require_transition(subscription, SubscriptionStatus.ACTIVE)

        now = utils.utcnow()
        previous = subscription.status.value
        subscription.api_token = token
        subscription.rejection_reason = None
        subscription.activate(now, SubscriptionConfig.period_days())

        earning = credit_referrer_on_first_activation(subscription, now)

        AuditLog.record(admin, "subscription.approve", subscription, {
            "stockId": subscription.stock_id,
            "from": previous,
            "activeUntil": utils.iso(subscription.active_until),
            "referralCredit": utils.money_out(earning.amount) if earning else None,
        }, ip_address)
        db.session.commit()

        approvals_logger.info(f"Admin {admin.id} approved subscription {subscription.stock_id} (was {previous})")
        return subscription

    @staticmethod
    def reject(admin: User, subscription_id, reason=None, ip_address=None) -> Subscription:
        reason = utils.clean_text(reason, "Rejection reason") or "Payment proof rejected"
        subscription = SubscriptionLedger._load(subscription_id)
        SubscriptionLedger._require_transition(subscription, SubscriptionStatus.REJECTED)

        subscription.status = SubscriptionStatus.REJECTED
        subscription.rejection_reason = reason

        AuditLog.record(admin, "subscription.reject", subscription,
                        {"stockId": subscription.stock_id, "reason": reason}, ip_address)
        db.session.commit()

        approvals_logger.info(f"Admin {admin.id} rejected subscription {subscription.stock_id}: {reason}")
        return subscription

    @staticmethod
    def toggle(admin: User, subscription_id, ip_address=None) -> Subscription:
        """Active → cancelled; cancelled or expired → active."""
        subscription = SubscriptionLedger._load(subscription_id)
        previous = subscription.status
        now = utils.utcnow()

        if previous == SubscriptionStatus.ACTIVE:
            subscription.status = SubscriptionStatus.CANCELLED
        elif previous in (SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED):
            subscription.status = SubscriptionStatus.ACTIVE
            if subscription.active_until is None or subscription.active_until < now:
                subscription.active_until = now + timedelta(days=SubscriptionConfig.period_days())
                subscription.last_activated_at = now
        else:
            raise Conflict(f"Cannot toggle a {previous.value} subscription")

        AuditLog.record(admin, "subscription.toggle", subscription, {
            "stockId": subscription.stock_id,
            "from": previous.value,
            "to": subscription.status.value,
        }, ip_address)
        db.session.commit()

        approvals_logger.info(
            f"Admin {admin.id} toggled subscription {subscription.stock_id} "
            f"{previous.value} -> {subscription.status.value}"
        )
        return subscription

    @staticmethod
    def set_token(admin: User, subscription_id, api_token, ip_address=None) -> Subscription:
        token = SubscriptionLedger._clean_token(api_token)
        subscription = SubscriptionLedger._load(subscription_id)
        subscription.api_token = token

        AuditLog.record(admin, "subscription.set_token", subscription,
                        {"stockId": subscription.stock_id}, ip_address)
        db.session.commit()

        approvals_logger.info(f"Admin {admin.id} updated the API token of {subscription.stock_id}")
        return subscription

    @staticmethod
    def mark_expired(admin: User, subscription_id, ip_address=None) -> Subscription:
        subscription = SubscriptionLedger._load(subscription_id)
        SubscriptionLedger._require_transition(subscription, SubscriptionStatus.EXPIRED)

        previous = subscription.status.value
        subscription.status = SubscriptionStatus.EXPIRED

        AuditLog.record(admin, "subscription.expire", subscription,
                        {"stockId": subscription.stock_id, "from": previous}, ip_address)
        db.session.commit()

        approvals_logger.info(f"Admin {admin.id} marked subscription {subscription.stock_id} expired")
        return subscription


def count_by_status():
    """Subscription totals keyed by status value, for the admin summary."""
    rows = db.session.query(Subscription.status, func.count(Subscription.id)).group_by(Subscription.status).all()
    counts = {status.value: 0 for status in SubscriptionStatus}
    for status, total in rows:
        counts[status.value] = total
    return counts
