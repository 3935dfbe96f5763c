"""
Account Store Module

Holds account records (balance, type, status) and exposes lookup,
administrative field updates and the atomic balance adjustment used by the
ledger engine. Balance is never written through any other path.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional
from enum import Enum
from contextlib import contextmanager, ExitStack
import secrets
import threading
import uuid
import zlib

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .config import LedgerConfig, get_config
from .errors import (
    AccountNotFound, ImmutableFieldError, InsufficientFunds,
    InvalidAccountData, InvalidAmount, InvalidStatus
)
from .logging_config import get_logger, log_action
from .money import ZERO, AmountLike, mask_account_number, parse_amount, round_amount


class AccountType(Enum):
    """Banking product types"""
    CHECKING = "checking"
    SAVINGS = "savings"
    BUSINESS = "business"


class AccountStatus(Enum):
    """Account lifecycle states"""
    ACTIVE = "active"    # Normal operation
    FROZEN = "frozen"    # Temporarily suspended
    CLOSED = "closed"    # Permanently closed


def parse_interest_rate(value: Any) -> Optional[Decimal]:
    """Convert an annual rate to Decimal; None clears it"""
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidAccountData(f"Invalid interest rate: {value!r}")
    try:
        rate = Decimal(str(value))
    except ArithmeticError:
        raise InvalidAccountData(f"Invalid interest rate: {value!r}")
    if not rate.is_finite() or rate < 0:
        raise InvalidAccountData("Interest rate must be a non-negative number")
    return rate


@dataclass
class Account(StorageRecord):
    """
    Bank account. ``balance`` changes only through AccountStore.adjust_balance.
    """
    account_number: str
    customer_id: str
    account_type: AccountType
    balance: Decimal = ZERO
    status: AccountStatus = AccountStatus.ACTIVE
    interest_rate: Optional[Decimal] = None  # Savings accounts only

    def __post_init__(self):
        if self.interest_rate is not None:
            if self.account_type != AccountType.SAVINGS:
                raise InvalidAccountData("Interest rate is only allowed on savings accounts")
            if not self.interest_rate.is_finite() or self.interest_rate < 0:
                raise InvalidAccountData("Interest rate must be a non-negative number")

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE


class AccountStore:
    """
    Account persistence plus the balance adjustment contract.

    Every account id maps onto one of a fixed pool of reentrant locks.
    ``adjust_balance`` holds it for the read-modify-write, and the ledger
    engine holds it for the whole validate-and-apply sequence, so concurrent
    debits cannot both pass the funds check.
    """

    UPDATABLE_FIELDS = frozenset({"status", "interest_rate"})

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        config: Optional[LedgerConfig] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.config = config or get_config()
        self.table_name = "accounts"
        self.logger = get_logger("bank_ledger.accounts")
        # Striped so unknown ids never grow the pool
        self._locks = [threading.RLock() for _ in range(max(1, self.config.lock_stripes))]

    def _stripe(self, account_id: str) -> int:
        return zlib.crc32(account_id.encode("utf-8")) % len(self._locks)

    @contextmanager
    def lock(self, *account_ids: str) -> Iterator[None]:
        """Hold the locks of the given accounts, acquired in stripe order"""
        with ExitStack() as stack:
            for stripe in sorted({self._stripe(account_id) for account_id in account_ids}):
                stack.enter_context(self._locks[stripe])
            yield

    def create_account(
        self,
        customer_id: str,
        account_type: AccountType,
        initial_deposit: AmountLike = ZERO,
        interest_rate: Optional[AmountLike] = None,
        account_number: Optional[str] = None
    ) -> Account:
        """
        Create a new active account

        Args:
            customer_id: ID of account owner
            account_type: checking, savings or business
            initial_deposit: Opening balance (must not be negative)
            interest_rate: Annual rate, savings accounts only
            account_number: Specific masked number (generated if not provided)

        Returns:
            Created Account object
        """
        if not customer_id:
            raise InvalidAccountData("Customer ID is required")

        try:
            balance = parse_amount(initial_deposit)
        except ValueError as e:
            raise InvalidAccountData(f"Invalid initial deposit: {e}")
        rate = parse_interest_rate(interest_rate)
        if balance < ZERO:
            raise InvalidAccountData("Initial deposit cannot be negative")

        with self.storage.atomic():
            if account_number is None:
                account_number = self._generate_account_number()
            elif self.find_by_number(account_number):
                raise InvalidAccountData(f"Account number {account_number} already in use")

            now = datetime.now(timezone.utc)
            account = Account(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                account_number=account_number,
                customer_id=customer_id,
                account_type=account_type,
                balance=balance,
                interest_rate=rate
            )
            self._save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_CREATED,
                entity_type="account",
                entity_id=account.id,
                metadata={
                    "account_number": account.account_number,
                    "customer_id": customer_id,
                    "account_type": account_type.value,
                    "initial_deposit": balance
                }
            )

        log_action(
            self.logger, "info", f"Account created: {account.account_number}",
            action="create_account", resource=f"account:{account.id}",
            extra={"account_type": account_type.value, "initial_deposit": str(balance)}
        )
        return account

    def get(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        account_dict = self.storage.load(self.table_name, account_id)
        if account_dict:
            return self._account_from_dict(account_dict)
        return None

    def find_by_number(self, account_number: str) -> List[Account]:
        """Get every account carrying a masked account number"""
        accounts = self.storage.find(self.table_name, {"account_number": account_number})
        return [self._account_from_dict(data) for data in accounts]

    def get_by_number(self, account_number: str) -> Optional[Account]:
        """Get the account with this number, or None when absent or ambiguous"""
        matches = self.find_by_number(account_number)
        if len(matches) == 1:
            return matches[0]
        return None

    def list_accounts(
        self,
        customer_id: Optional[str] = None,
        account_type: Optional[AccountType] = None,
        status: Optional[AccountStatus] = None
    ) -> List[Account]:
        """List accounts with optional filters"""
        filters: Dict[str, Any] = {}
        if customer_id:
            filters["customer_id"] = customer_id
        if account_type:
            filters["account_type"] = account_type.value
        if status:
            filters["status"] = status.value
        return [self._account_from_dict(data) for data in self.storage.find(self.table_name, filters)]

    def adjust_balance(
        self,
        account_id: str,
        delta: Decimal,
        floor: Optional[Decimal] = None
    ) -> Account:
        """
        Atomically add ``delta`` to an account balance

        Args:
            account_id: Account to adjust
            delta: Signed change
            floor: When given, a debit that would leave the balance below it
                is rejected and nothing is written

        Returns:
            Updated Account

        Raises:
            AccountNotFound: If the account does not exist
            InsufficientFunds: If the floor would be breached
            InvalidAmount: If the new balance does not fit the decimal context
        """
        with self.lock(account_id), self.storage.atomic():
            account = self.get(account_id)
            if not account:
                raise AccountNotFound(f"Account {account_id} not found",
                                      {"account_id": account_id})

            old_balance = account.balance
            try:
                new_balance = round_amount(old_balance + delta)
            except ValueError:
                raise InvalidAmount(
                    f"Balance out of range after adjustment of {delta}",
                    {"account_id": account_id, "delta": str(delta)}
                )
            if floor is not None and delta < 0 and new_balance < floor:
                raise InsufficientFunds(
                    f"Insufficient funds: balance {old_balance}, requested {-delta}",
                    {"account_id": account_id, "balance": str(old_balance), "requested": str(-delta)}
                )

            account.balance = new_balance
            account.updated_at = datetime.now(timezone.utc)
            self._save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.BALANCE_ADJUSTED,
                entity_type="account",
                entity_id=account_id,
                metadata={
                    "old_balance": old_balance,
                    "new_balance": new_balance,
                    "delta": delta
                }
            )
            return account

    def update_fields(self, account_id: str, partial: Dict[str, Any]) -> Account:
        """
        Update non-balance fields from an explicit allow-list

        Raises:
            ImmutableFieldError: If any key is outside UPDATABLE_FIELDS
        """
        rejected = sorted(set(partial) - self.UPDATABLE_FIELDS)
        if rejected:
            raise ImmutableFieldError(
                f"Fields cannot be updated: {', '.join(rejected)}",
                {"fields": rejected}
            )

        with self.lock(account_id), self.storage.atomic():
            account = self.get(account_id)
            if not account:
                raise AccountNotFound(f"Account {account_id} not found",
                                      {"account_id": account_id})

            changes: Dict[str, Any] = {}
            if "status" in partial:
                try:
                    new_status = AccountStatus(partial["status"])
                except ValueError:
                    raise InvalidStatus(f"Invalid account status: {partial['status']}")
                if new_status != account.status:
                    changes["status"] = (account.status, new_status)
                    account.status = new_status

            if "interest_rate" in partial:
                new_rate = parse_interest_rate(partial["interest_rate"])
                if new_rate is not None and account.account_type != AccountType.SAVINGS:
                    raise InvalidAccountData("Interest rate is only allowed on savings accounts")
                changes["interest_rate"] = (account.interest_rate, new_rate)
                account.interest_rate = new_rate

            account.updated_at = datetime.now(timezone.utc)
            self._save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_UPDATED,
                entity_type="account",
                entity_id=account_id,
                metadata={field: {"old": old, "new": new} for field, (old, new) in changes.items()}
            )

        log_action(
            self.logger, "info", f"Account updated: {account.account_number}",
            action="update_account", resource=f"account:{account_id}",
            extra={"fields": sorted(changes)}
        )
        return account

    def delete_account(self, account_id: str) -> bool:
        """Physically remove an account (administrative path, never used by the engine)"""
        with self.lock(account_id), self.storage.atomic():
            deleted = self.storage.delete(self.table_name, account_id)
            if deleted:
                self.audit_trail.log_event(
                    event_type=AuditEventType.ACCOUNT_DELETED,
                    entity_type="account",
                    entity_id=account_id,
                    metadata={}
                )
        if deleted:
            self.logger.warning(f"Account {account_id} deleted")
        return deleted

    def _generate_account_number(self) -> str:
        """Generate a masked account number not used by any stored account"""
        digits = self.config.account_number_digits
        used = {data["account_number"] for data in self.storage.load_all(self.table_name)}
        for _ in range(self.config.account_number_attempts):
            candidate = mask_account_number(f"{secrets.randbelow(10 ** digits):0{digits}d}", digits)
            if candidate not in used:
                return candidate
        raise InvalidAccountData("Could not allocate a unique account number")

    def _save_account(self, account: Account) -> None:
        self.storage.save(self.table_name, account.id, self._account_to_dict(account))

    def _account_to_dict(self, account: Account) -> Dict[str, Any]:
        """Convert Account to dictionary for storage"""
        result = account.to_dict()
        result['account_type'] = account.account_type.value
        result['status'] = account.status.value
        result['balance'] = str(account.balance)
        result['interest_rate'] = str(account.interest_rate) if account.interest_rate is not None else None
        return result

    def _account_from_dict(self, data: Dict[str, Any]) -> Account:
        """Convert dictionary to Account"""
        interest_rate = None
        if data.get('interest_rate') is not None:
            interest_rate = Decimal(data['interest_rate'])

        return Account(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            account_number=data['account_number'],
            customer_id=data['customer_id'],
            account_type=AccountType(data['account_type']),
            balance=Decimal(data['balance']),
            status=AccountStatus(data['status']),
            interest_rate=interest_rate
        )
