"""
Transaction lifecycle: status changes and the bank balance compensation
they require.

A transaction linked to a bank account moves that account's stored balance
exactly when it crosses the PAID boundary: by ``balance_delta`` on the way
in, by its negation on the way out. Whatever path a transaction takes between
statuses, its net effect on the account is one delta if it ends PAID and
nothing otherwise.

Every public function here runs as a single database transaction. The
transaction row (and the bank account row, when the funds check needs it) is
read ``FOR UPDATE`` and transactions carry a version counter, so two requests
racing on the same row cannot both apply a delta.
"""

from decimal import Decimal

import structlog
from sqlalchemy.orm import Session

from . import crud, errors, models, permissions, schemas
from .balances import signed_amount
from .config import get_settings
from .database import atomic

logger = structlog.get_logger(__name__)

APPLY = 1
REVERT = -1


def balance_delta(transaction: models.Transaction) -> Decimal:
    return signed_amount(transaction.type, transaction.amount)


def _adjust_bank_balance(db: Session, transaction: models.Transaction, direction: int):
    delta = balance_delta(transaction) * direction
    db.query(models.BankAccount).filter(models.BankAccount.id == transaction.bank_account_id).update(
        {models.BankAccount.balance: models.BankAccount.balance + delta},
        synchronize_session=False,
    )
    logger.info(
        "bank_balance_adjusted",
        account_id=transaction.bank_account_id,
        transaction_id=transaction.id,
        delta=str(delta),
    )


def _set_status(db: Session, transaction: models.Transaction, new_status: models.TransactionStatus):
    """Move to ``new_status``, compensating the bank account only on a PAID crossing."""
    was_paid = transaction.is_paid
    will_be_paid = new_status == models.TransactionStatus.PAID
    transaction.status = new_status

    if transaction.bank_account_id is None or was_paid == will_be_paid:
        return
    _adjust_bank_balance(db, transaction, APPLY if will_be_paid else REVERT)


def _load_for_update(db: Session, transaction_id: int) -> models.Transaction:
    transaction = (
        db.query(models.Transaction)
        .filter(models.Transaction.id == transaction_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if transaction is None:
        raise errors.NotFound("Transaction not found")
    return transaction


def _load_managed(db: Session, transaction_id: int, user_id: int, action: str) -> models.Transaction:
    transaction = _load_for_update(db, transaction_id)
    permissions.require_transaction_reader(transaction, user_id)
    permissions.require_transaction_manager(transaction, user_id, action)
    return transaction


def _set_category(db: Session, transaction: models.Transaction, ref, user_id: int):
    user_category, group_category = crud.resolve_category(db, ref, user_id, transaction.group_id)
    transaction.user_category = user_category
    transaction.group_category = group_category


def get_transaction(db: Session, transaction_id: int, user_id: int) -> models.Transaction:
    transaction = crud.get_transaction(db, transaction_id)
    if transaction is None:
        raise errors.NotFound("Transaction not found")
    permissions.require_transaction_reader(transaction, user_id)
    return transaction


def create_transaction(db: Session, data: schemas.TransactionCreate, user_id: int) -> models.Transaction:
    group = crud.get_member_group(db, data.group_id, user_id)
    if group is None:
        raise errors.NotFound("Group not found")

    user_category, group_category = crud.resolve_category(db, data.category, user_id, group.id)

    if data.bank_account_id is not None:
        account = crud.get_bank_account(db, data.bank_account_id, user_id)
        if account is None or not account.is_active:
            raise errors.NotFound("Bank account not found")

    with atomic(db):
        transaction = models.Transaction(
            amount=data.amount,
            type=data.type,
            status=data.status or models.TransactionStatus.PENDING,
            description=data.description,
            payment_method=data.payment_method or get_settings().default_payment_method,
            created_by_id=user_id,
            group_id=group.id,
            user_category=user_category,
            group_category=group_category,
            bank_account_id=data.bank_account_id,
        )
        db.add(transaction)
        db.flush()
        if transaction.is_paid and transaction.bank_account_id is not None:
            _adjust_bank_balance(db, transaction, APPLY)

    db.refresh(transaction)
    logger.info("transaction_created", transaction_id=transaction.id, user_id=user_id, group_id=group.id)
    return transaction


def mark_paid(db: Session, transaction_id: int, user_id: int) -> models.Transaction:
    with atomic(db):
        transaction = _load_managed(db, transaction_id, user_id, "pay")
        if transaction.is_paid:
            raise errors.Conflict("Transaction is already paid")

        if transaction.bank_account_id is not None and transaction.type == models.TransactionType.EXPENSE:
            account = (
                db.query(models.BankAccount)
                .filter(models.BankAccount.id == transaction.bank_account_id)
                .with_for_update()
                .populate_existing()
                .one()
            )
            if account.balance < transaction.amount:
                logger.info(
                    "payment_rejected_insufficient_funds",
                    transaction_id=transaction_id,
                    account_id=account.id,
                )
                raise errors.InsufficientFunds(account.name, account.balance, transaction.amount)

        _set_status(db, transaction, models.TransactionStatus.PAID)

    db.refresh(transaction)
    logger.info("transaction_paid", transaction_id=transaction_id, user_id=user_id)
    return transaction


def mark_pending(db: Session, transaction_id: int, user_id: int) -> models.Transaction:
    with atomic(db):
        transaction = _load_managed(db, transaction_id, user_id, "update")
        _set_status(db, transaction, models.TransactionStatus.PENDING)

    db.refresh(transaction)
    logger.info("transaction_marked_pending", transaction_id=transaction_id, user_id=user_id)
    return transaction


def update_status(
    db: Session, transaction_id: int, user_id: int, new_status: models.TransactionStatus
) -> models.Transaction:
    with atomic(db):
        transaction = _load_managed(db, transaction_id, user_id, "update")
        _set_status(db, transaction, new_status)

    db.refresh(transaction)
    logger.info("transaction_status_updated", transaction_id=transaction_id, status=new_status.value)
    return transaction


def update_category(db: Session, transaction_id: int, user_id: int, ref) -> models.Transaction:
    with atomic(db):
        transaction = _load_managed(db, transaction_id, user_id, "update")
        _set_category(db, transaction, ref, user_id)

    db.refresh(transaction)
    logger.info("transaction_category_updated", transaction_id=transaction_id, user_id=user_id)
    return transaction


def update_transaction(
    db: Session, transaction_id: int, user_id: int, data: schemas.TransactionUpdate
) -> models.Transaction:
    """Apply the fields present in ``data``; status goes through the same PAID bookkeeping."""
    fields = data.model_fields_set

    with atomic(db):
        transaction = _load_managed(db, transaction_id, user_id, "edit")
        if "category" in fields:
            _set_category(db, transaction, data.category, user_id)
        if "description" in fields:
            transaction.description = data.description
        if "payment_method" in fields and data.payment_method:
            transaction.payment_method = data.payment_method
        if "status" in fields and data.status is not None:
            _set_status(db, transaction, data.status)

    db.refresh(transaction)
    logger.info("transaction_updated", transaction_id=transaction_id, user_id=user_id, fields=sorted(fields))
    return transaction


def delete_transaction(db: Session, transaction_id: int, user_id: int):
    with atomic(db):
        transaction = _load_managed(db, transaction_id, user_id, "delete")
        if transaction.is_paid and transaction.bank_account_id is not None:
            _adjust_bank_balance(db, transaction, REVERT)
        db.delete(transaction)

    logger.info("transaction_deleted", transaction_id=transaction_id, user_id=user_id)
