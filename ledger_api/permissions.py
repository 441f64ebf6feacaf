"""
Who may act on what.

Every check takes the acting user's id explicitly and evaluates it against
relations loaded for the current request.
"""

from . import errors, models


def is_group_member(group: models.FinancialGroup, user_id: int) -> bool:
    return group.owner_id == user_id or group.has_member(user_id)


def can_manage_transaction(transaction: models.Transaction, user_id: int) -> bool:
    return transaction.created_by_id == user_id or transaction.group.owner_id == user_id


def can_read_transaction(transaction: models.Transaction, user_id: int) -> bool:
    return can_manage_transaction(transaction, user_id) or transaction.group.has_member(user_id)


def require_transaction_manager(transaction: models.Transaction, user_id: int, action: str = "modify"):
    if not can_manage_transaction(transaction, user_id):
        raise errors.Forbidden(f"Not allowed to {action} this transaction")


def require_transaction_reader(transaction: models.Transaction, user_id: int):
    # outsiders learn nothing about the transaction's existence
    if not can_read_transaction(transaction, user_id):
        raise errors.NotFound("Transaction not found")


def require_group_member(group: models.FinancialGroup, user_id: int):
    if not is_group_member(group, user_id):
        raise errors.Forbidden("Access to this group denied")


def require_group_owner(group: models.FinancialGroup, user_id: int):
    if group.owner_id != user_id:
        raise errors.Forbidden("Only the group owner can do this")


def require_invitation_receiver(invitation: models.GroupInvitation, user_id: int):
    if invitation.receiver_id != user_id:
        raise errors.Forbidden("Only the invited user can respond to this invitation")
