"""
Test suite for the account store

Tests account creation, lookups, the field allow-list and the balance
adjustment contract.
"""

import uuid
import pytest
from decimal import Decimal
from datetime import datetime, timezone

from bank_ledger.storage import InMemoryStorage
from bank_ledger.audit import AuditTrail, AuditEventType
from bank_ledger.accounts import Account, AccountStore, AccountType, AccountStatus
from bank_ledger.config import LedgerConfig
from bank_ledger.errors import (
    AccountNotFound, ImmutableFieldError, InsufficientFunds,
    InvalidAccountData, InvalidAmount, InvalidStatus
)


class TestAccount:
    """Test Account record validation"""

    def test_savings_account_with_rate(self):
        now = datetime.now(timezone.utc)
        account = Account(
            id="ACC001",
            created_at=now,
            updated_at=now,
            account_number="****1234",
            customer_id="CUST001",
            account_type=AccountType.SAVINGS,
            interest_rate=Decimal('0.02')
        )
        assert account.balance == Decimal('0.00')
        assert account.status == AccountStatus.ACTIVE
        assert account.is_active

    def test_rate_only_on_savings(self):
        now = datetime.now(timezone.utc)
        with pytest.raises(InvalidAccountData, match="savings"):
            Account(
                id="ACC002",
                created_at=now,
                updated_at=now,
                account_number="****5678",
                customer_id="CUST001",
                account_type=AccountType.CHECKING,
                interest_rate=Decimal('0.02')
            )


class TestAccountStore:
    """Test AccountStore operations"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.accounts = AccountStore(self.storage, self.audit_trail, LedgerConfig())

    def test_create_account(self):
        account = self.accounts.create_account("CUST001", AccountType.CHECKING, "100")

        assert account.balance == Decimal('100.00')
        assert account.status == AccountStatus.ACTIVE
        assert account.account_number.startswith("****")
        assert len(account.account_number) == 8
        assert account.account_number[4:].isdigit()

        stored = self.accounts.get(account.id)
        assert stored.balance == Decimal('100.00')
        assert stored.account_type == AccountType.CHECKING

        events = self.audit_trail.get_events_for_entity("account", account.id)
        assert events[0].event_type == AuditEventType.ACCOUNT_CREATED

    def test_create_rejects_negative_deposit(self):
        with pytest.raises(InvalidAccountData):
            self.accounts.create_account("CUST001", AccountType.CHECKING, "-1")

    def test_create_requires_customer(self):
        with pytest.raises(InvalidAccountData):
            self.accounts.create_account("", AccountType.CHECKING)

    def test_create_rejects_duplicate_number(self):
        self.accounts.create_account("CUST001", AccountType.CHECKING, account_number="****1111")
        with pytest.raises(InvalidAccountData, match="already in use"):
            self.accounts.create_account("CUST002", AccountType.CHECKING, account_number="****1111")

    def test_generated_numbers_are_unique(self):
        numbers = {self.accounts.create_account("CUST001", AccountType.CHECKING).account_number
                   for _ in range(50)}
        assert len(numbers) == 50

    def test_number_space_exhausted(self):
        accounts = AccountStore(
            self.storage, self.audit_trail,
            LedgerConfig(account_number_digits=1, account_number_attempts=200)
        )
        for _ in range(10):
            accounts.create_account("CUST001", AccountType.CHECKING)
        with pytest.raises(InvalidAccountData, match="unique account number"):
            accounts.create_account("CUST001", AccountType.CHECKING)

    def test_lookup_by_number(self):
        account = self.accounts.create_account("CUST001", AccountType.CHECKING, account_number="****4321")
        assert self.accounts.get_by_number("****4321").id == account.id
        assert self.accounts.get_by_number("****0000") is None

    def test_list_accounts_filters(self):
        self.accounts.create_account("CUST001", AccountType.CHECKING)
        savings = self.accounts.create_account("CUST001", AccountType.SAVINGS)
        self.accounts.create_account("CUST002", AccountType.BUSINESS)
        self.accounts.update_fields(savings.id, {"status": "frozen"})

        assert len(self.accounts.list_accounts()) == 3
        assert len(self.accounts.list_accounts(customer_id="CUST001")) == 2
        assert [a.id for a in self.accounts.list_accounts(status=AccountStatus.FROZEN)] == [savings.id]
        assert len(self.accounts.list_accounts(account_type=AccountType.BUSINESS)) == 1

    def test_adjust_balance(self):
        account = self.accounts.create_account("CUST001", AccountType.CHECKING, "100")

        updated = self.accounts.adjust_balance(account.id, Decimal('-40.00'), floor=Decimal('0.00'))

        assert updated.balance == Decimal('60.00')
        assert self.accounts.get(account.id).balance == Decimal('60.00')
        adjustments = self.audit_trail.get_events_by_type(AuditEventType.BALANCE_ADJUSTED)
        assert adjustments[-1].metadata["new_balance"] == "60.00"

    def test_adjust_balance_floor(self):
        account = self.accounts.create_account("CUST001", AccountType.CHECKING, "100")
        with pytest.raises(InsufficientFunds):
            self.accounts.adjust_balance(account.id, Decimal('-100.01'), floor=Decimal('0.00'))
        assert self.accounts.get(account.id).balance == Decimal('100.00')

    def test_adjust_balance_without_floor(self):
        account = self.accounts.create_account("CUST001", AccountType.CHECKING, "10")
        self.accounts.adjust_balance(account.id, Decimal('-25.00'))
        assert self.accounts.get(account.id).balance == Decimal('-15.00')

    def test_adjust_missing_account(self):
        with pytest.raises(AccountNotFound):
            self.accounts.adjust_balance("missing", Decimal('1.00'))

    def test_update_status(self):
        account = self.accounts.create_account("CUST001", AccountType.CHECKING, "100")

        updated = self.accounts.update_fields(account.id, {"status": "frozen"})

        assert updated.status == AccountStatus.FROZEN
        assert not self.accounts.get(account.id).is_active
        assert updated.balance == Decimal('100.00')

    def test_update_interest_rate_on_savings(self):
        account = self.accounts.create_account("CUST001", AccountType.SAVINGS)
        updated = self.accounts.update_fields(account.id, {"interest_rate": "0.035"})
        assert updated.interest_rate == Decimal('0.035')

    def test_update_interest_rate_on_checking(self):
        account = self.accounts.create_account("CUST001", AccountType.CHECKING)
        with pytest.raises(InvalidAccountData):
            self.accounts.update_fields(account.id, {"interest_rate": "0.035"})

    @pytest.mark.parametrize("field", ["balance", "account_number", "customer_id", "account_type", "id"])
    def test_update_rejects_immutable_fields(self, field):
        account = self.accounts.create_account("CUST001", AccountType.CHECKING, "100")

        with pytest.raises(ImmutableFieldError):
            self.accounts.update_fields(account.id, {field: "999", "status": "frozen"})

        stored = self.accounts.get(account.id)
        assert stored.balance == Decimal('100.00')
        assert stored.status == AccountStatus.ACTIVE

    def test_update_invalid_status(self):
        account = self.accounts.create_account("CUST001", AccountType.CHECKING)
        with pytest.raises(InvalidStatus):
            self.accounts.update_fields(account.id, {"status": "dormant"})

    def test_update_missing_account(self):
        with pytest.raises(AccountNotFound):
            self.accounts.update_fields("missing", {"status": "frozen"})

    def test_delete_account(self):
        account = self.accounts.create_account("CUST001", AccountType.CHECKING)
        assert self.accounts.delete_account(account.id)
        assert self.accounts.get(account.id) is None
        assert not self.accounts.delete_account(account.id)

    @pytest.mark.parametrize("rate", ["NaN", "Infinity", float("nan"), float("inf"), "-0.01", "abc", True])
    def test_create_rejects_bad_interest_rate(self, rate):
        with pytest.raises(InvalidAccountData):
            self.accounts.create_account("CUST001", AccountType.SAVINGS, interest_rate=rate)
        assert self.accounts.list_accounts() == []

    @pytest.mark.parametrize("rate", ["NaN", "-Infinity", float("nan")])
    def test_update_rejects_bad_interest_rate(self, rate):
        account = self.accounts.create_account("CUST001", AccountType.SAVINGS, interest_rate="0.02")
        with pytest.raises(InvalidAccountData):
            self.accounts.update_fields(account.id, {"interest_rate": rate})
        assert self.accounts.get(account.id).interest_rate == Decimal('0.02')

    @pytest.mark.parametrize("deposit", ["1e30", "10.005"])
    def test_create_rejects_bad_initial_deposit(self, deposit):
        with pytest.raises(InvalidAccountData):
            self.accounts.create_account("CUST001", AccountType.CHECKING, deposit)

    def test_adjust_balance_out_of_range(self):
        account = self.accounts.create_account("CUST001", AccountType.CHECKING, "100")
        with pytest.raises(InvalidAmount):
            self.accounts.adjust_balance(account.id, Decimal('1e30'))
        assert self.accounts.get(account.id).balance == Decimal('100.00')

    def test_lock_pool_does_not_grow(self):
        for _ in range(1000):
            with self.accounts.lock(str(uuid.uuid4())):
                pass
        assert len(self.accounts._locks) == LedgerConfig().lock_stripes

    def test_lock_shared_stripe_is_reentrant(self):
        accounts = AccountStore(self.storage, self.audit_trail, LedgerConfig(lock_stripes=1))
        with accounts.lock("A", "B"):
            with accounts.lock("B"):
                pass
