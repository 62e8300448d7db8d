# storefront/services/wallet_service.py
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..model import User, WalletTransaction
from ..utils.errors import (
    ValidationError, BusinessRuleViolation, NotFound, StateConflict, IntegrityFailure,
    ServiceResult, service_operation,
)
from ..utils.money import D, round_money, to_minor_units, from_minor_units, to_float
from .gateway import get_gateway, verify_signature

logger = logging.getLogger(__name__)

CREDIT = "credit"
DEBIT = "debit"
MIN_TOPUP = Decimal("10")
HISTORY_PAGE_SIZE = 10


def _amount(value) -> Decimal:
    try:
        amount = round_money(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("Amount must be numeric")
    if amount <= 0:
        raise ValidationError("Amount must be greater than 0")
    return amount


def _require_user(user_id) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User not found", code="USER_NOT_FOUND")
    return user


def post_credit(user_id, amount, description, reference=None) -> WalletTransaction:
    """Ledger row first, then the cached balance. Caller owns the transaction."""
    amount = _amount(amount)
    user = _require_user(user_id)
    txn = WalletTransaction(
        user_id=user_id, amount=amount, type=CREDIT,
        description=description, reference=reference,
    )
    db.session.add(txn)
    try:
        db.session.flush()
    except IntegrityError:
        raise StateConflict("This payment has already been credited", code="DUPLICATE_WALLET_REFERENCE")
    db.session.execute(
        update(User)
        .where(User.id == user_id)
        .values(wallet=User.wallet + amount)
        .execution_options(synchronize_session=False)
    )
    db.session.expire(user, ["wallet"])
    logger.info("wallet credit user=%s amount=%s (%s)", user_id, amount, description)
    return txn


def post_debit(user_id, amount, description) -> WalletTransaction:
    """Conditional balance update; raises before commit when the balance is short.

    Caller owns the transaction.
    """
    amount = _amount(amount)
    user = _require_user(user_id)
    txn = WalletTransaction(user_id=user_id, amount=amount, type=DEBIT, description=description)
    db.session.add(txn)
    db.session.flush()
    res = db.session.execute(
        update(User)
        .where(User.id == user_id, User.wallet >= amount)
        .values(wallet=User.wallet - amount)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise BusinessRuleViolation("Insufficient wallet balance", code="INSUFFICIENT_BALANCE")
    db.session.expire(user, ["wallet"])
    logger.info("wallet debit user=%s amount=%s (%s)", user_id, amount, description)
    return txn


@service_operation("wallet_credit")
def credit(user_id, amount, description, reference=None) -> ServiceResult:
    txn = post_credit(user_id, amount, description, reference)
    return ServiceResult.success(txn, "Wallet credited")


@service_operation("wallet_debit")
def debit(user_id, amount, description) -> ServiceResult:
    txn = post_debit(user_id, amount, description)
    return ServiceResult.success(txn, "Wallet debited")


def recompute_balance(user_id) -> Decimal:
    """Sum of credits minus sum of debits from the ledger."""
    signed = case((WalletTransaction.type == CREDIT, WalletTransaction.amount), else_=-WalletTransaction.amount)
    total = (
        db.session.query(func.coalesce(func.sum(signed), 0))
        .filter(WalletTransaction.user_id == user_id)
        .scalar()
    )
    return round_money(D(total))


@service_operation("reconcile_wallet")
def reconcile_balance(user_id) -> ServiceResult:
    user = _require_user(user_id)
    ledger = recompute_balance(user_id)
    cached = round_money(D(user.wallet))
    fixed = cached != ledger
    if fixed:
        logger.warning("wallet mismatch user=%s cached=%s ledger=%s; resetting", user_id, cached, ledger)
        user.wallet = ledger
    return ServiceResult.success(
        {"user_id": user_id, "cached": cached, "ledger": ledger, "fixed": fixed},
        "Wallet reconciled",
    )


def wallet_history(user_id, page=1, per_page=HISTORY_PAGE_SIZE) -> dict:
    user = _require_user(user_id)
    page = max(int(page or 1), 1)
    q = WalletTransaction.query.filter(WalletTransaction.user_id == user_id)
    total = q.count()
    rows = (
        q.order_by(WalletTransaction.date.desc(), WalletTransaction.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "balance": to_float(user.wallet),
        "transactions": [t.as_api() for t in rows],
        "page": page,
        "per_page": per_page,
        "total": total,
        "total_pages": (total + per_page - 1) // per_page,
    }


# ---- top-up -----------------------------------------------------------------

@service_operation("create_wallet_topup")
def create_topup(user_id, amount) -> ServiceResult:
    try:
        amount = round_money(amount)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("Amount must be numeric")
    if amount < MIN_TOPUP:
        raise ValidationError(f"Minimum amount is ₹{MIN_TOPUP}", code="TOPUP_BELOW_MINIMUM")
    _require_user(user_id)

    gateway = get_gateway()
    provider_order = gateway.create_order(
        to_minor_units(amount), receipt=f"wallet_topup_{user_id}", notes={"purpose": "wallet_topup"})
    return ServiceResult.success({
        "provider_order_id": provider_order["id"],
        "amount": provider_order.get("amount", to_minor_units(amount)),
        "currency": provider_order.get("currency", gateway.currency),
        "key_id": gateway.key_id,
    }, "Top-up order created")


@service_operation("verify_wallet_topup")
def verify_topup(user_id, provider_order_id, provider_payment_id, signature) -> ServiceResult:
    """Credit a completed top-up, once per provider payment id.

    The credited amount is what the provider reports as paid, never a
    client-supplied figure.
    """
    if not (provider_order_id and provider_payment_id and signature):
        raise ValidationError("Missing payment data")
    gateway = get_gateway()
    if not verify_signature(provider_order_id, provider_payment_id, signature, gateway.key_secret):
        logger.warning("wallet top-up signature mismatch user=%s payment=%s", user_id, provider_payment_id)
        raise IntegrityFailure("Invalid signature", code="SIGNATURE_INVALID")

    existing = WalletTransaction.query.filter_by(reference=provider_payment_id).first()
    if existing:
        if existing.user_id != user_id:
            raise IntegrityFailure("Order/payment mismatch", code="PAYMENT_MISMATCH")
        return ServiceResult.success(existing, "Payment already credited")

    payment = gateway.fetch_payment(provider_payment_id)
    if payment.get("order_id") != provider_order_id:
        logger.warning("top-up payment %s belongs to order %s, not %s",
                       provider_payment_id, payment.get("order_id"), provider_order_id)
        raise IntegrityFailure("Order/payment mismatch", code="PAYMENT_MISMATCH")

    paid = from_minor_units(int(payment.get("amount") or 0))
    txn = post_credit(user_id, paid, "Wallet top-up via Razorpay", reference=provider_payment_id)
    return ServiceResult.success(txn, f"₹{paid} added to your wallet")
