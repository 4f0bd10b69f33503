from decimal import Decimal
import logging
from typing import Tuple

from flask import current_app

from errors import ValidationError, NotFound, Conflict
from extensions import db
from logger import approvals_logger
from models import User, Withdrawal, WithdrawalStatus, AuditLog
import utils


logger = logging.getLogger(__name__)

RECEIPT_UPLOAD_KIND = "withdraw-receipts"

# ==========================================================
#                  CONFIGURATION
# ==========================================================
class WithdrawalConfig:

    @staticmethod
    def fee() -> Decimal:
        return utils.money(current_app.config["WITHDRAW_FEE"])

    @staticmethod
    def min_withdrawal() -> Decimal:
        return utils.money(current_app.config["MIN_WITHDRAWAL"])

    @staticmethod
    def max_withdrawable(balance: Decimal) -> Decimal:
        """The fee is charged on top of the amount, so it is reserved from the balance."""
        return utils.money(balance - WithdrawalConfig.fee())

# ==========================================================
#                  WITHDRAWAL VALIDATOR
# ==========================================================
class WithdrawalValidator:
    @staticmethod
    def validate_withdrawal_request(user: User, amount: Decimal) -> Tuple[bool, str]:
        maximum = WithdrawalConfig.max_withdrawable(user.balance)
        if amount > maximum:
            return False, f"Maximum withdrawable is ${max(maximum, Decimal('0.00'))} (after ${WithdrawalConfig.fee()} fee)"

        minimum = WithdrawalConfig.min_withdrawal()
        if amount < minimum:
            return False, f"Minimum withdraw amount is ${minimum}"

        return True, "Validation passed"

    @staticmethod
    def limits(user: User):
        maximum = WithdrawalConfig.max_withdrawable(user.balance)
        return {
            "withdrawableBalance": utils.money_out(user.balance),
            "fee": utils.money_out(WithdrawalConfig.fee()),
            "minWithdrawal": utils.money_out(WithdrawalConfig.min_withdrawal()),
            "maxWithdrawable": utils.money_out(max(maximum, Decimal("0.00"))),
        }

# ==========================================================
#                  WITHDRAWAL PROCESSOR
# ==========================================================
class WithdrawalProcessor:

    @staticmethod
    def request_withdrawal(user: User, raw_amount) -> Withdrawal:
        amount = utils.parse_amount(raw_amount)

        is_valid, message = WithdrawalValidator.validate_withdrawal_request(user, amount)
        if not is_valid:
            raise ValidationError(message)

        amount = utils.money(amount)
        withdrawal = Withdrawal(
            user_id=user.id,
            amount=amount,
            fee=WithdrawalConfig.fee(),
            net_amount=amount,
            status=WithdrawalStatus.PENDING.value,
            requested_at=utils.utcnow(),
        )
        db.session.add(withdrawal)
        db.session.commit()

        logger.info(f"User {user.id} requested withdrawal {withdrawal.id} of {amount}")
        return withdrawal

    @staticmethod
    def history(user: User):
        return (
            Withdrawal.query.filter_by(user_id=user.id)
            .order_by(Withdrawal.requested_at.desc(), Withdrawal.id.desc())
            .all()
        )

    @staticmethod
    def list_requests(status=None):
        query = Withdrawal.query
        if status:
            valid = {s.value for s in WithdrawalStatus}
            if status not in valid:
                raise ValidationError(f"Invalid status filter. Use one of: {', '.join(sorted(valid))}")
            query = query.filter(Withdrawal.status == status)
        return query.order_by(Withdrawal.requested_at.desc(), Withdrawal.id.desc()).all()

    @staticmethod
    def _load_pending(withdrawal_id) -> Withdrawal:
        withdrawal = (
            Withdrawal.query
            .filter(Withdrawal.id == withdrawal_id)
            .with_for_update()
            .first()
        )
        if not withdrawal:
            raise NotFound("Withdraw request not found")
        if withdrawal.is_processed:
            raise Conflict("Withdraw request already processed")
        return withdrawal

    @staticmethod
    def approve(admin: User, withdrawal_id, receipt_file, note=None, ip_address=None) -> Withdrawal:
        """
        Debit amount + fee from the owner's balance and attach the receipt.
        The balance is re-read under a row lock; the request-time check is not trusted.
        """
        withdrawal = WithdrawalProcessor._load_pending(withdrawal_id)

        if receipt_file is None or not receipt_file.filename:
            raise ValidationError("Receipt is required")

        user = (
            db.session.query(User)
            .filter(User.id == withdrawal.user_id)
            .with_for_update()
            .first()
        )
        total_deduction = utils.money(Decimal(str(withdrawal.amount)) + Decimal(str(withdrawal.fee)))
        if user is None or user.balance < total_deduction:
            raise ValidationError("User has insufficient withdrawable balance")

        receipt_path = utils.save_upload(
            receipt_file,
            RECEIPT_UPLOAD_KIND,
            "receipt",
            current_app.config["RECEIPT_EXTENSIONS"],
        )

        user.withdrawable_balance = user.balance - total_deduction
        withdrawal.status = WithdrawalStatus.APPROVED.value
        withdrawal.receipt = receipt_path
        withdrawal.admin_note = utils.clean_text(note, "Note") or None
        withdrawal.processed_by_id = admin.id
        withdrawal.processed_at = utils.utcnow()

        AuditLog.record(admin, "withdrawal.approve", withdrawal, {
            "userId": user.id,
            "debited": utils.money_out(total_deduction),
            "balanceAfter": utils.money_out(user.withdrawable_balance),
        }, ip_address)
        db.session.commit()

        approvals_logger.info(
            f"Admin {admin.id} approved withdrawal {withdrawal.id}: debited {total_deduction} from user {user.id}"
        )
        return withdrawal

    @staticmethod
    def reject(admin: User, withdrawal_id, reason=None, ip_address=None) -> Withdrawal:
        note = utils.clean_text(reason, "Rejection reason") or None
        withdrawal = WithdrawalProcessor._load_pending(withdrawal_id)

        withdrawal.status = WithdrawalStatus.REJECTED.value
        withdrawal.admin_note = note
        withdrawal.processed_by_id = admin.id
        withdrawal.processed_at = utils.utcnow()

        AuditLog.record(admin, "withdrawal.reject", withdrawal, {"reason": withdrawal.admin_note}, ip_address)
        db.session.commit()

        approvals_logger.info(f"Admin {admin.id} rejected withdrawal {withdrawal.id}: {withdrawal.admin_note}")
        return withdrawal
