# models.py - Flask-SQLAlchemy models
from decimal import Decimal
import enum
from datetime import timedelta
from flask import current_app
from flask_login import UserMixin
from sqlalchemy import UniqueConstraint, Index, text
from extensions import db
from bonus.activity import is_expired, is_actively_paying, DEFAULT_GRACE_DAYS
from utils import utcnow, money_out, iso

# ===========================================================
# ENUM DEFINITIONS
# ===========================================================

class Role(enum.Enum):
    USER = "user"
    ADMIN = "admin"


class SubscriptionStatus(enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


# Allowed admin transitions; anything else is a conflict.
SUBSCRIPTION_TRANSITIONS = {
    SubscriptionStatus.PENDING: {SubscriptionStatus.ACTIVE, SubscriptionStatus.REJECTED},
    SubscriptionStatus.REJECTED: {SubscriptionStatus.ACTIVE},
    SubscriptionStatus.ACTIVE: {SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED},
    SubscriptionStatus.CANCELLED: {SubscriptionStatus.ACTIVE, SubscriptionStatus.EXPIRED},
    SubscriptionStatus.EXPIRED: {SubscriptionStatus.ACTIVE},
}


class WithdrawalStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ===========================================================
# BASE MIXIN FOR COMMON FIELDS
# ===========================================================

class BaseMixin:
    """Provides created_at and updated_at timestamps to inheriting models."""
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

# ===========================================================
# USER MODELS
# ===========================================================

class User(UserMixin, db.Model, BaseMixin):
    """Identity and balance holder, one account per Google identity / email."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    google_id = db.Column(db.String(64), unique=True, nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    first_name = db.Column(db.String(120))
    last_name = db.Column(db.String(120))
    display_name = db.Column(db.String(255))
    picture = db.Column(db.String(512))
    role = db.Column(db.String(20), nullable=False, default=Role.USER.value, index=True)
    email_verified = db.Column(db.Boolean, default=False)
    last_login = db.Column(db.DateTime, nullable=True)

    referral_code = db.Column(db.String(20), unique=True, nullable=True)      # User's own referral code
    referral_code_used = db.Column(db.String(20), nullable=True)              # Code this user redeemed (write-once)
    referred_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    withdrawable_balance = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"),
                                     server_default=text("0.00"))

    # Payout / contact metadata
    bank_name = db.Column(db.String(120))
    bank_account_number = db.Column(db.String(64))
    bank_account_name = db.Column(db.String(120))
    whatsapp_number = db.Column(db.String(32))

    subscriptions = db.relationship('Subscription', back_populates='user', lazy='dynamic',
                                    foreign_keys='Subscription.user_id')
    withdrawals = db.relationship('Withdrawal', back_populates='user', lazy='dynamic',
                                  foreign_keys='Withdrawal.user_id')
    referred_by = db.relationship('User', remote_side=[id])

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    @property
    def balance(self) -> Decimal:
        return Decimal(str(self.withdrawable_balance or "0.00"))

    def brief(self):
        """Owner fields joined into admin listings."""
        return {
            "id": self.id,
            "email": self.email,
            "displayName": self.display_name,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "displayName": self.display_name,
            "picture": self.picture,
            "role": self.role,
            "isAdmin": self.is_admin,
            "emailVerified": self.email_verified,
            "referralCode": self.referral_code,
            "referralCodeUsed": self.referral_code_used,
            "withdrawableBalance": money_out(self.withdrawable_balance),
            "bankName": self.bank_name,
            "bankAccountNumber": self.bank_account_number,
            "bankAccountName": self.bank_account_name,
            "whatsappNumber": self.whatsapp_number,
            "createdAt": iso(self.created_at),
            "lastLogin": iso(self.last_login),
        }

    def __repr__(self):
        return f'<User {self.id} {self.email}>'

# ===========================================================
# SUBSCRIPTIONS ("stocks")
# ===========================================================

class Subscription(db.Model, BaseMixin):
    __tablename__ = 'subscriptions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    stock_id = db.Column(db.String(64), unique=True, nullable=False)
    status = db.Column(db.Enum(SubscriptionStatus, name='subscriptionstatus'),
                       nullable=False, default=SubscriptionStatus.PENDING)
    monthly_fee = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("10.00"))
    payment_proof = db.Column(db.String(255), nullable=True)
    api_token = db.Column(db.String(512), nullable=True)
    last_activated_at = db.Column(db.DateTime, nullable=True)
    active_until = db.Column(db.DateTime, nullable=True)
    rejection_reason = db.Column(db.String(500), nullable=True)
    continued_from_id = db.Column(db.Integer, db.ForeignKey('subscriptions.id'), nullable=True, index=True)

    user = db.relationship('User', back_populates='subscriptions', foreign_keys=[user_id])
    continued_from = db.relationship('Subscription', remote_side=[id])

    __table_args__ = (
        Index('idx_subscription_user_status', 'user_id', 'status'),
    )

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    def can_transition_to(self, new_status: SubscriptionStatus) -> bool:
        return new_status in SUBSCRIPTION_TRANSITIONS.get(self.status, set())

    def is_expired(self, now=None) -> bool:
        return is_expired(self.is_active, self.active_until, now or utcnow())

    def is_actively_paying(self, now=None) -> bool:
        grace_days = current_app.config.get("ACTIVE_PAYING_GRACE_DAYS", DEFAULT_GRACE_DAYS)
        return is_actively_paying(self.is_active, self.active_until, now or utcnow(), grace_days)

    def activate(self, now, period_days: int):
        self.status = SubscriptionStatus.ACTIVE
        self.active_until = now + timedelta(days=period_days)
        self.last_activated_at = now

    def owner_view(self, now=None):
        """What the owning user sees; the token is withheld unless usable."""
        expired = self.is_expired(now)
        show_token = self.is_active and not expired
        return {
            "id": self.id,
            "stockId": self.stock_id,
            "status": self.status.value,
            "isActive": self.is_active,
            "activeUntil": iso(self.active_until),
            "monthlyFee": money_out(self.monthly_fee),
            "isExpired": expired,
            "apiToken": self.api_token if show_token else None,
            "hasApiToken": bool(self.api_token),
            "paymentProof": self.payment_proof,
            "rejectionReason": self.rejection_reason,
            "continuedFrom": self.continued_from_id,
            "requestedAt": iso(self.created_at),
        }

    def admin_view(self, now=None):
        return {
            "id": self.id,
            "user": self.user.brief() if self.user else None,
            "stockId": self.stock_id,
            "status": self.status.value,
            "apiToken": self.api_token,
            "paymentProof": self.payment_proof,
            "activeSince": iso(self.last_activated_at),
            "activeUntil": iso(self.active_until),
            "isActive": self.is_active,
            "isActivelyPaying": self.is_actively_paying(now),
            "rejectionReason": self.rejection_reason,
            "continuedFrom": self.continued_from_id,
            "requestedAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }

    def __repr__(self):
        return f'<Subscription {self.stock_id} {self.status.value}>'

# ===========================================================
# REFERRALS
# ===========================================================

class Referral(db.Model, BaseMixin):
    __tablename__ = 'referrals'

    id = db.Column(db.Integer, primary_key=True)
    referrer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)   # who referred
    referred_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, unique=True)  # who was referred
    referral_code = db.Column(db.String(20), nullable=False)
    profit_per_month = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("2.50"))
    first_active_date = db.Column(db.DateTime, nullable=True)

    referrer = db.relationship('User', foreign_keys=[referrer_id], backref='referrals_made')
    referred_user = db.relationship('User', foreign_keys=[referred_user_id])
    earnings = db.relationship('ReferralEarning', back_populates='referral', lazy='dynamic')

    __table_args__ = (
        UniqueConstraint('referrer_id', 'referred_user_id', name='uq_referral_pair'),
    )


class ReferralEarning(db.Model):
    """One row per referral bonus actually credited to a referrer's balance."""
    __tablename__ = 'referral_earnings'

    id = db.Column(db.Integer, primary_key=True)
    referral_id = db.Column(db.Integer, db.ForeignKey('referrals.id'), nullable=False, index=True)
    referrer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    subscription_id = db.Column(db.Integer, db.ForeignKey('subscriptions.id'), nullable=True)
    month = db.Column(db.String(7), nullable=False)  # "2024-02"
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    referral = db.relationship('Referral', back_populates='earnings')

    __table_args__ = (
        Index('idx_earning_referrer_month', 'referrer_id', 'month'),
    )

# ===========================================================
# WITHDRAWALS
# ===========================================================

class Withdrawal(db.Model, BaseMixin):
    __tablename__ = 'withdrawals'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    fee = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("1.00"))
    net_amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=WithdrawalStatus.PENDING.value, index=True)
    receipt = db.Column(db.String(255), nullable=True)
    admin_note = db.Column(db.String(500), nullable=True)
    processed_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    requested_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    processed_at = db.Column(db.DateTime, nullable=True)

    user = db.relationship('User', back_populates='withdrawals', foreign_keys=[user_id])
    processed_by = db.relationship('User', foreign_keys=[processed_by_id])

    @property
    def is_processed(self) -> bool:
        return self.status != WithdrawalStatus.PENDING.value

    def to_dict(self, include_user=False):
        data = {
            "id": self.id,
            "amount": money_out(self.amount),
            "fee": money_out(self.fee),
            "netAmount": money_out(self.net_amount),
            "status": self.status,
            "receipt": self.receipt,
            "adminNote": self.admin_note,
            "requestedAt": iso(self.requested_at),
            "processedAt": iso(self.processed_at),
        }
        if include_user:
            data["user"] = self.user.brief() if self.user else None
        return data

# ===========================================================
# AUDITING
# ===========================================================

class AuditLog(db.Model, BaseMixin):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)
    action = db.Column(db.String(255), nullable=False)
    target_type = db.Column(db.String(50))
    target_id = db.Column(db.Integer)
    details = db.Column(db.JSON)
    ip_address = db.Column(db.String(50))

    @staticmethod
    def record(actor, action, target=None, details=None, ip_address=None):
        """Add an audit row to the current session; the caller commits."""
        entry = AuditLog(
            actor_id=actor.id if actor else None,
            action=action,
            target_type=target.__tablename__ if target is not None else None,
            target_id=target.id if target is not None else None,
            details=details,
            ip_address=ip_address,
        )
        db.session.add(entry)
        return entry
