"""
Statistics Aggregator Module

Read-only rollups over the account and transaction stores backing the
dashboard, financial summary and analytics reports. Nothing here mutates
either store.
"""

from decimal import Decimal
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, Iterable, List, Optional

from .accounts import Account, AccountStatus, AccountStore, AccountType
from .money import ZERO, round_amount
from .transactions import Transaction, TransactionStatus, TransactionStore, TransactionType


# (label, lower bound inclusive, upper bound exclusive)
BALANCE_BUCKETS = [
    ("under_1000", None, Decimal('1000')),
    ("1000_to_10000", Decimal('1000'), Decimal('10000')),
    ("10000_to_50000", Decimal('10000'), Decimal('50000')),
    ("over_50000", Decimal('50000'), None),
]

PERIODS = ("day", "week", "month", "all")


def _sum_amounts(transactions: Iterable[Transaction]) -> Decimal:
    return sum((t.amount for t in transactions), ZERO)


def _average(total: Decimal, count: int) -> Decimal:
    if not count:
        return ZERO
    return round_amount(total / count)


def _transaction_dict(transaction: Transaction) -> Dict[str, Any]:
    return {
        "id": transaction.id,
        "account_id": transaction.account_id,
        "type": transaction.transaction_type.value,
        "amount": transaction.amount,
        "description": transaction.description,
        "status": transaction.status.value,
        "timestamp": transaction.created_at.isoformat(),
        "from_account": transaction.from_account,
        "to_account": transaction.to_account
    }


class StatisticsAggregator:
    """Read-only reporting over the ledger stores"""

    def __init__(self, accounts: AccountStore, transactions: TransactionStore):
        self.accounts = accounts
        self.transactions = transactions

    def count_by_type(self, transactions: List[Transaction]) -> Dict[str, int]:
        return {t.value: sum(1 for x in transactions if x.transaction_type == t) for t in TransactionType}

    def count_by_status(self, transactions: List[Transaction]) -> Dict[str, int]:
        return {s.value: sum(1 for x in transactions if x.status == s) for s in TransactionStatus}

    def volume_by_type(self, transactions: List[Transaction]) -> Dict[str, Decimal]:
        return {
            t.value: _sum_amounts(x for x in transactions if x.transaction_type == t)
            for t in TransactionType
        }

    def total_balance(self, accounts: Optional[List[Account]] = None) -> Decimal:
        if accounts is None:
            accounts = self.accounts.list_accounts()
        return sum((a.balance for a in accounts), ZERO)

    def dashboard_overview(self, recent_limit: int = 10) -> Dict[str, Any]:
        """Totals, breakdowns and the most recent transactions"""
        accounts = self.accounts.list_accounts()
        transactions = self.transactions.all()

        return {
            "total_accounts": len(accounts),
            "active_accounts": sum(1 for a in accounts if a.status == AccountStatus.ACTIVE),
            "total_balance": self.total_balance(accounts),
            "total_transactions": len(transactions),
            "recent_transactions": [_transaction_dict(t) for t in transactions[:recent_limit]],
            "accounts_by_type": {
                t.value: sum(1 for a in accounts if a.account_type == t) for t in AccountType
            },
            "transactions_by_type": self.count_by_type(transactions)
        }

    def financial_summary(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Money moved per type within an optional date range, plus balances"""
        transactions = self.transactions.list_transactions(start_date=start_date, end_date=end_date)
        accounts = self.accounts.list_accounts()
        volumes = self.volume_by_type(transactions)
        total_balance = self.total_balance(accounts)
        total_amount = _sum_amounts(transactions)

        return {
            "total_deposits": volumes[TransactionType.DEPOSIT.value],
            "total_withdrawals": volumes[TransactionType.WITHDRAWAL.value],
            "total_transfers": volumes[TransactionType.TRANSFER.value],
            "total_fees": volumes[TransactionType.FEE.value],
            "net_flow": volumes[TransactionType.DEPOSIT.value] - volumes[TransactionType.WITHDRAWAL.value],
            "total_balance": total_balance,
            "average_account_balance": _average(total_balance, len(accounts)),
            "transaction_count": len(transactions),
            "average_transaction_amount": _average(total_amount, len(transactions))
        }

    def transaction_summary(self) -> Dict[str, Any]:
        """Totals and counts by type and status across all transactions"""
        transactions = self.transactions.all()
        volumes = self.volume_by_type(transactions)

        return {
            "total_transactions": len(transactions),
            "total_deposits": volumes[TransactionType.DEPOSIT.value],
            "total_withdrawals": volumes[TransactionType.WITHDRAWAL.value],
            "total_transfers": volumes[TransactionType.TRANSFER.value],
            "total_fees": volumes[TransactionType.FEE.value],
            "total_balance": self.total_balance(),
            "transactions_by_type": self.count_by_type(transactions),
            "transactions_by_status": self.count_by_status(transactions)
        }

    def balance_distribution(self, accounts: List[Account]) -> Dict[str, int]:
        distribution = {}
        for label, lower, upper in BALANCE_BUCKETS:
            distribution[label] = sum(
                1 for a in accounts
                if (lower is None or a.balance >= lower) and (upper is None or a.balance < upper)
            )
        return distribution

    def top_accounts_by_balance(self, n: int = 10) -> List[Account]:
        accounts = self.accounts.list_accounts()
        accounts.sort(key=lambda a: a.balance, reverse=True)
        return accounts[:n]

    def top_accounts_by_activity(self, n: int = 10) -> List[Dict[str, Any]]:
        """Accounts ranked by the number of transactions they own"""
        transactions = self.transactions.all()
        rows = []
        for account in self.accounts.list_accounts():
            owned = [t for t in transactions if t.account_id == account.id]
            rows.append({
                "id": account.id,
                "account_number": account.account_number,
                "account_type": account.account_type.value,
                "balance": account.balance,
                "transaction_count": len(owned),
                "last_transaction_date": max(t.created_at for t in owned).isoformat() if owned else None
            })
        rows.sort(key=lambda r: r["transaction_count"], reverse=True)
        return rows[:n]

    def account_analytics(self, top_n: int = 10) -> Dict[str, Any]:
        accounts = self.accounts.list_accounts()
        total_balance = self.total_balance(accounts)

        return {
            "total_accounts": len(accounts),
            "accounts_by_type": {
                t.value: sum(1 for a in accounts if a.account_type == t) for t in AccountType
            },
            "accounts_by_status": {
                s.value: sum(1 for a in accounts if a.status == s) for s in AccountStatus
            },
            "balance_distribution": self.balance_distribution(accounts),
            "total_balance": total_balance,
            "average_balance": _average(total_balance, len(accounts)),
            "most_active_accounts": self.top_accounts_by_activity(top_n)
        }

    def transaction_analytics(self, period: str = "month", now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Breakdown of transactions within a period

        Args:
            period: day (same calendar day), week (last 7 days), month (same
                calendar month) or all
            now: Reference time, defaults to the current UTC time
        """
        if period not in PERIODS:
            raise ValueError(f"Unknown period: {period}")
        now = now or datetime.now(timezone.utc)

        transactions = self.transactions.all()
        if period == "day":
            transactions = [t for t in transactions if t.created_at.date() == now.date()]
        elif period == "week":
            week_ago = now - timedelta(days=7)
            transactions = [t for t in transactions if t.created_at >= week_ago]
        elif period == "month":
            transactions = [
                t for t in transactions
                if (t.created_at.year, t.created_at.month) == (now.year, now.month)
            ]

        amounts = [t.amount for t in transactions]
        return {
            "period": period,
            "total_transactions": len(transactions),
            "transactions_by_type": self.count_by_type(transactions),
            "transactions_by_status": self.count_by_status(transactions),
            "volume_by_type": self.volume_by_type(transactions),
            "average_transaction_amount": _average(_sum_amounts(transactions), len(transactions)),
            "largest_transaction": max(amounts) if amounts else ZERO,
            "smallest_transaction": min(amounts) if amounts else ZERO
        }

    def customer_rollup(self, top_n: int = 10) -> Dict[str, Any]:
        """Per-customer account counts and balances, ranked by balance"""
        accounts = self.accounts.list_accounts()
        transactions = self.transactions.all()

        by_customer: Dict[str, Dict[str, Any]] = {}
        for account in accounts:
            row = by_customer.setdefault(account.customer_id, {
                "customer_id": account.customer_id,
                "account_count": 0,
                "total_balance": ZERO,
                "transaction_count": 0
            })
            row["account_count"] += 1
            row["total_balance"] += account.balance
            row["transaction_count"] += sum(1 for t in transactions if t.account_id == account.id)

        rows = sorted(by_customer.values(), key=lambda r: r["total_balance"], reverse=True)
        return {
            "total_customers": len(rows),
            "customers_with_multiple_accounts": sum(1 for r in rows if r["account_count"] > 1),
            "average_accounts_per_customer": _average(Decimal(len(accounts)), len(rows)),
            "top_customers_by_balance": rows[:top_n]
        }
