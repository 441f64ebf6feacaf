"""Tests for the read-side balance functions (no database involved)."""

from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

from ledger_api import balances
from ledger_api.models import TransactionStatus, TransactionType

INCOME = TransactionType.INCOME
EXPENSE = TransactionType.EXPENSE
PAID = TransactionStatus.PAID
PENDING = TransactionStatus.PENDING


def tx(type_, amount, status, bank_account_id=None):
    return SimpleNamespace(type=type_, amount=Decimal(amount), status=status, bank_account_id=bank_account_id)


def group(id_, name, transactions):
    return SimpleNamespace(id=id_, name=name, transactions=transactions)


def account(id_, balance, is_active=True):
    return SimpleNamespace(id=id_, name=f"Account {id_}", bank="Acme", balance=Decimal(balance), is_active=is_active)


class TestSignedAmount:
    """Tests for the single sign convention."""

    def test_income_is_positive(self):
        assert balances.signed_amount(INCOME, Decimal("12.50")) == Decimal("12.50")

    def test_expense_is_negative(self):
        assert balances.signed_amount(EXPENSE, Decimal("12.50")) == Decimal("-12.50")


class TestGroupBalance:
    """Tests for per-group balances."""

    def test_only_paid_transactions_count(self):
        g = group(1, "House", [tx(INCOME, "100", PAID), tx(EXPENSE, "40", PENDING), tx(INCOME, "20", PAID)])
        assert balances.group_balance(g) == Decimal("120")

    def test_overdue_and_cancelled_contribute_nothing(self):
        g = group(1, "House", [
            tx(EXPENSE, "30", PAID),
            tx(EXPENSE, "500", TransactionStatus.OVERDUE),
            tx(INCOME, "900", TransactionStatus.CANCELLED),
        ])
        assert balances.group_balance(g) == Decimal("-30")

    def test_empty_group_is_zero(self):
        assert balances.group_balance(group(1, "Empty", [])) == Decimal("0")


class TestConsolidatedBalance:
    """Tests for the consolidated balance of a user."""

    def test_sums_groups_and_active_accounts(self):
        groups = [
            group(1, "Personal", [tx(INCOME, "100", PAID)]),
            group(2, "House", [tx(EXPENSE, "25", PAID), tx(EXPENSE, "10", PENDING)]),
        ]
        accounts = [account(1, "300"), account(2, "50", is_active=False)]

        result = balances.consolidated_balance(groups, accounts)

        assert result.total_balance == Decimal("75")
        assert result.total_bank_balance == Decimal("300")
        assert result.consolidated_balance == Decimal("375")
        assert [g.balance for g in result.balance_by_group] == [Decimal("100"), Decimal("-25")]
        assert [g.transaction_count for g in result.balance_by_group] == [1, 2]
        assert result.summary.total_groups == 2
        assert result.summary.total_bank_accounts == 1

    def test_group_listed_twice_counts_once(self):
        house = group(2, "House", [tx(INCOME, "40", PAID)])

        result = balances.consolidated_balance([house, house], [])

        assert result.total_balance == Decimal("40")
        assert len(result.balance_by_group) == 1

    def test_account_balance_is_not_resummed(self):
        """A PAID transaction on an account is already inside the stored balance."""
        linked = tx(EXPENSE, "50", PAID, bank_account_id=1)
        result = balances.consolidated_balance([group(1, "Personal", [linked])], [account(1, "50")])

        assert result.bank_accounts[0].balance == Decimal("50")
        assert result.total_bank_balance == Decimal("50")

    def test_is_idempotent(self):
        groups = [group(1, "Personal", [tx(INCOME, "10", PAID)])]
        accounts = [account(1, "5")]
        now = datetime(2024, 1, 1)

        assert balances.consolidated_balance(groups, accounts, now) == balances.consolidated_balance(
            groups, accounts, now
        )


class TestPersonalGroupBalance:
    """Tests for the cash/bank split of the personal group."""

    def test_bank_linked_transactions_are_not_cash(self):
        g = group(1, "Personal", [
            tx(INCOME, "200", PAID),
            tx(EXPENSE, "30", PAID),
            tx(EXPENSE, "70", PAID, bank_account_id=1),
            tx(INCOME, "1000", PENDING),
        ])

        result = balances.personal_group_balance(g, [account(1, "430"), account(2, "99", is_active=False)])

        assert result.cash_balance == Decimal("170")
        assert result.bank_balance == Decimal("430")
        assert result.total == Decimal("600")
