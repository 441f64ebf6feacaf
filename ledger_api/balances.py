"""
Read-side balance aggregation.

Everything here is a pure function over already loaded rows: nothing is
queried and nothing is written, so calling any of them twice over the same
input gives the same answer.

A bank account's stored ``balance`` already includes every PAID transaction
linked to it (the lifecycle engine keeps it in step), so it is reported as is
and never re-summed from transaction history.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List

from .models import TransactionStatus, TransactionType

ZERO = Decimal("0")


def signed_amount(type_, amount) -> Decimal:
    """+amount for income, -amount for expense."""
    amount = Decimal(amount)
    return amount if type_ == TransactionType.INCOME else -amount


def paid_total(transactions: Iterable) -> Decimal:
    return sum(
        (signed_amount(t.type, t.amount) for t in transactions if t.status == TransactionStatus.PAID),
        ZERO,
    )


def group_balance(group) -> Decimal:
    return paid_total(group.transactions)


def account_effective_balance(account) -> Decimal:
    return Decimal(account.balance)


@dataclass
class GroupBalance:
    group_id: int
    group_name: str
    balance: Decimal
    transaction_count: int


@dataclass
class AccountBalance:
    id: int
    name: str
    bank: str
    balance: Decimal


@dataclass
class BalanceSummary:
    total_groups: int
    total_bank_accounts: int
    last_updated: datetime


@dataclass
class ConsolidatedBalance:
    total_balance: Decimal
    total_bank_balance: Decimal
    consolidated_balance: Decimal
    balance_by_group: List[GroupBalance] = field(default_factory=list)
    bank_accounts: List[AccountBalance] = field(default_factory=list)
    summary: BalanceSummary = None


@dataclass
class PersonalBalance:
    cash_balance: Decimal
    bank_balance: Decimal

    @property
    def total(self) -> Decimal:
        return self.cash_balance + self.bank_balance


def unique_groups(groups: Iterable) -> list:
    """Drop repeated groups (a user both owning and belonging to one), keeping first-seen order."""
    seen = set()
    result = []
    for group in groups:
        if group.id in seen:
            continue
        seen.add(group.id)
        result.append(group)
    return result


def consolidated_balance(groups: Iterable, accounts: Iterable, now: datetime = None) -> ConsolidatedBalance:
    groups = unique_groups(groups)
    accounts = [a for a in accounts if a.is_active]

    by_group = [
        GroupBalance(
            group_id=g.id,
            group_name=g.name,
            balance=group_balance(g),
            transaction_count=len(g.transactions),
        )
        for g in groups
    ]
    by_account = [
        AccountBalance(id=a.id, name=a.name, bank=a.bank, balance=account_effective_balance(a))
        for a in accounts
    ]

    total_balance = sum((g.balance for g in by_group), ZERO)
    total_bank_balance = sum((a.balance for a in by_account), ZERO)

    return ConsolidatedBalance(
        total_balance=total_balance,
        total_bank_balance=total_bank_balance,
        consolidated_balance=total_balance + total_bank_balance,
        balance_by_group=by_group,
        bank_accounts=by_account,
        summary=BalanceSummary(
            total_groups=len(by_group),
            total_bank_accounts=len(by_account),
            last_updated=now or datetime.utcnow(),
        ),
    )


def personal_group_balance(group, accounts: Iterable) -> PersonalBalance:
    # bank-linked transactions are already inside the account balances
    cash = paid_total(t for t in group.transactions if t.bank_account_id is None)
    bank = sum((account_effective_balance(a) for a in accounts if a.is_active), ZERO)
    return PersonalBalance(cash_balance=cash, bank_balance=bank)
