"""
Test suite for the statistics aggregator
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone, timedelta

from bank_ledger.storage import InMemoryStorage
from bank_ledger.audit import AuditTrail
from bank_ledger.accounts import AccountStore, AccountType
from bank_ledger.transactions import TransactionStore
from bank_ledger.ledger import LedgerEngine
from bank_ledger.reporting import StatisticsAggregator


class TestStatisticsAggregator:
    """Test read-only reports"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.accounts = AccountStore(self.storage, self.audit_trail)
        self.transactions = TransactionStore(self.storage, self.audit_trail)
        self.engine = LedgerEngine(self.storage, self.accounts, self.transactions, self.audit_trail)
        self.statistics = StatisticsAggregator(self.accounts, self.transactions)

        self.checking = self.accounts.create_account("CUST001", AccountType.CHECKING, "500.00")
        self.savings = self.accounts.create_account("CUST001", AccountType.SAVINGS, "20000.00")
        self.business = self.accounts.create_account("CUST002", AccountType.BUSINESS, "75000.00")

        self.engine.deposit(self.checking.id, "100.00", "Salary")
        self.engine.withdraw(self.checking.id, "40.00", "Groceries")
        self.engine.transfer(self.savings.id, self.checking.id, "250.00", "Top up")
        self.engine.charge_fee(self.business.id, "10.00", "Wire fee")

    def test_dashboard_overview(self):
        overview = self.statistics.dashboard_overview(recent_limit=2)

        assert overview["total_accounts"] == 3
        assert overview["active_accounts"] == 3
        assert overview["total_balance"] == Decimal('95550.00')
        assert overview["total_transactions"] == 4
        assert len(overview["recent_transactions"]) == 2
        assert overview["recent_transactions"][0]["type"] == "fee"
        assert overview["accounts_by_type"] == {"checking": 1, "savings": 1, "business": 1}
        assert overview["transactions_by_type"] == {"deposit": 1, "withdrawal": 1, "transfer": 1, "fee": 1}

    def test_financial_summary(self):
        summary = self.statistics.financial_summary()

        assert summary["total_deposits"] == Decimal('100.00')
        assert summary["total_withdrawals"] == Decimal('40.00')
        assert summary["total_transfers"] == Decimal('250.00')
        assert summary["total_fees"] == Decimal('10.00')
        assert summary["net_flow"] == Decimal('60.00')
        assert summary["transaction_count"] == 4
        assert summary["average_transaction_amount"] == Decimal('100.00')
        assert summary["average_account_balance"] == Decimal('31850.00')

    def test_financial_summary_date_range(self):
        future = datetime.now(timezone.utc) + timedelta(days=1)
        summary = self.statistics.financial_summary(start_date=future)

        assert summary["transaction_count"] == 0
        assert summary["total_deposits"] == Decimal('0.00')
        assert summary["average_transaction_amount"] == Decimal('0.00')

    def test_transaction_summary(self):
        summary = self.statistics.transaction_summary()

        assert summary["total_transactions"] == 4
        assert summary["transactions_by_status"] == {"completed": 4, "pending": 0, "failed": 0}
        assert summary["total_balance"] == Decimal('95550.00')

    def test_balance_distribution(self):
        analytics = self.statistics.account_analytics()

        # checking 810, savings 19750, business 74990
        assert analytics["balance_distribution"] == {
            "under_1000": 1,
            "1000_to_10000": 0,
            "10000_to_50000": 1,
            "over_50000": 1
        }
        assert analytics["accounts_by_status"]["active"] == 3

    def test_bucket_boundaries(self):
        empty = StatisticsAggregator(
            AccountStore(InMemoryStorage(), AuditTrail(InMemoryStorage())),
            self.transactions
        )
        for balance in ("999.99", "1000.00", "10000.00", "50000.00"):
            empty.accounts.create_account("CUST009", AccountType.CHECKING, balance)

        assert empty.balance_distribution(empty.accounts.list_accounts()) == {
            "under_1000": 1,
            "1000_to_10000": 1,
            "10000_to_50000": 1,
            "over_50000": 1
        }

    def test_most_active_accounts(self):
        top = self.statistics.top_accounts_by_activity(1)
        assert top[0]["id"] == self.checking.id
        assert top[0]["transaction_count"] == 2

    def test_top_accounts_by_balance(self):
        top = self.statistics.top_accounts_by_balance(2)
        assert [a.id for a in top] == [self.business.id, self.savings.id]

    def test_transaction_analytics(self):
        analytics = self.statistics.transaction_analytics("week")

        assert analytics["total_transactions"] == 4
        assert analytics["largest_transaction"] == Decimal('250.00')
        assert analytics["smallest_transaction"] == Decimal('10.00')
        assert analytics["volume_by_type"]["transfer"] == Decimal('250.00')

    def test_transaction_analytics_period_window(self):
        later = datetime.now(timezone.utc) + timedelta(days=40)
        assert self.statistics.transaction_analytics("week", now=later)["total_transactions"] == 0
        assert self.statistics.transaction_analytics("all", now=later)["total_transactions"] == 4

    def test_transaction_analytics_unknown_period(self):
        with pytest.raises(ValueError):
            self.statistics.transaction_analytics("decade")

    def test_customer_rollup(self):
        rollup = self.statistics.customer_rollup()

        assert rollup["total_customers"] == 2
        assert rollup["customers_with_multiple_accounts"] == 1
        assert rollup["average_accounts_per_customer"] == Decimal('1.50')
        top = rollup["top_customers_by_balance"][0]
        assert top["customer_id"] == "CUST002"
        assert top["total_balance"] == Decimal('74990.00')

    def test_reports_do_not_mutate(self):
        before = [(a.id, a.balance) for a in self.accounts.list_accounts()]
        events = self.audit_trail.count_events()

        self.statistics.dashboard_overview()
        self.statistics.account_analytics()
        self.statistics.customer_rollup()

        assert [(a.id, a.balance) for a in self.accounts.list_accounts()] == before
        assert self.audit_trail.count_events() == events
