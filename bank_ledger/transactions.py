"""
Transaction Store Module

Transaction records are immutable once created except for ``status``.
Records are appended by the ledger engine and removed only through its
reversal path; status corrections go straight to the store.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .errors import InvalidAmount, InvalidStatus, TransactionNotFound
from .logging_config import get_logger, log_action


def _as_utc(value: datetime) -> datetime:
    # Naive bounds are taken as UTC, stored timestamps are aware
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TransactionType(Enum):
    """Types of ledger transactions"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"
    FEE = "fee"


class TransactionStatus(Enum):
    """Status of a transaction record"""
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


@dataclass
class Transaction(StorageRecord):
    """
    Ledger transaction attached to its source account.

    Transfers also carry the masked numbers of both sides for display and
    the destination id for reversal.
    """
    account_id: str
    transaction_type: TransactionType
    amount: Decimal
    description: str
    status: TransactionStatus = TransactionStatus.COMPLETED
    from_account: Optional[str] = None
    to_account: Optional[str] = None
    to_account_id: Optional[str] = None

    def __post_init__(self):
        if self.amount <= 0:
            raise InvalidAmount("Transaction amount must be positive")

    @property
    def timestamp(self) -> datetime:
        return self.created_at

    @property
    def is_transfer(self) -> bool:
        return self.transaction_type == TransactionType.TRANSFER


class TransactionStore:
    """Persistence for transaction records"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "transactions"
        self.logger = get_logger("bank_ledger.transactions")

    def append(self, transaction: Transaction) -> Transaction:
        """Insert a new transaction record"""
        self._save_transaction(transaction)
        return transaction

    def get(self, transaction_id: str) -> Optional[Transaction]:
        """Get transaction by ID"""
        transaction_dict = self.storage.load(self.table_name, transaction_id)
        if transaction_dict:
            return self._transaction_from_dict(transaction_dict)
        return None

    def all(self) -> List[Transaction]:
        """Every stored transaction, newest first"""
        transactions = [self._transaction_from_dict(data) for data in self.storage.load_all(self.table_name)]
        transactions.sort(key=lambda x: x.created_at, reverse=True)
        return transactions

    def list_by_account(self, account_id: str) -> List[Transaction]:
        """Transactions owned by an account, newest first"""
        return self.list_transactions(account_id=account_id)

    def list_transactions(
        self,
        account_id: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
        status: Optional[TransactionStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[Transaction]:
        """
        Get transactions with optional filters

        Args:
            account_id: Owning account
            transaction_type: Optional type filter
            status: Optional status filter
            start_date: Inclusive lower bound on timestamp
            end_date: Inclusive upper bound on timestamp
            limit: Optional limit on number of transactions, at least 1

        Returns:
            List of Transaction objects, most recent first
        """
        filters: Dict[str, Any] = {}
        if account_id:
            filters["account_id"] = account_id
        if transaction_type:
            filters["transaction_type"] = transaction_type.value
        if status:
            filters["status"] = status.value

        transactions = [self._transaction_from_dict(data) for data in self.storage.find(self.table_name, filters)]

        if start_date:
            start_date = _as_utc(start_date)
            transactions = [t for t in transactions if t.created_at >= start_date]
        if end_date:
            end_date = _as_utc(end_date)
            transactions = [t for t in transactions if t.created_at <= end_date]

        transactions.sort(key=lambda x: x.created_at, reverse=True)

        if limit is not None:
            if limit < 1:
                raise ValueError(f"limit must be at least 1, got {limit}")
            transactions = transactions[:limit]
        return transactions

    def update_status(self, transaction_id: str, status: Any) -> Transaction:
        """
        Change only the status of a transaction; balances are untouched

        Raises:
            InvalidStatus: If status is not completed, pending or failed
            TransactionNotFound: If the transaction does not exist
        """
        try:
            new_status = TransactionStatus(status)
        except ValueError:
            raise InvalidStatus(f"Invalid transaction status: {status}")

        with self.storage.atomic():
            transaction = self.get(transaction_id)
            if not transaction:
                raise TransactionNotFound(f"Transaction {transaction_id} not found",
                                          {"transaction_id": transaction_id})

            old_status = transaction.status
            transaction.status = new_status
            transaction.updated_at = datetime.now(timezone.utc)
            self._save_transaction(transaction)

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSACTION_STATUS_CHANGED,
                entity_type="transaction",
                entity_id=transaction_id,
                metadata={"old_status": old_status, "new_status": new_status}
            )

        log_action(
            self.logger, "info", f"Transaction status changed to {new_status.value}",
            action="update_transaction_status", resource=f"transaction:{transaction_id}",
            extra={"old_status": old_status.value, "new_status": new_status.value}
        )
        return transaction

    def remove(self, transaction_id: str) -> bool:
        """Delete a transaction record"""
        return self.storage.delete(self.table_name, transaction_id)

    def _save_transaction(self, transaction: Transaction) -> None:
        self.storage.save(self.table_name, transaction.id, self._transaction_to_dict(transaction))

    def _transaction_to_dict(self, transaction: Transaction) -> Dict[str, Any]:
        """Convert Transaction to dictionary for storage"""
        result = transaction.to_dict()
        result['transaction_type'] = transaction.transaction_type.value
        result['status'] = transaction.status.value
        result['amount'] = str(transaction.amount)
        return result

    def _transaction_from_dict(self, data: Dict[str, Any]) -> Transaction:
        """Convert dictionary to Transaction"""
        return Transaction(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            account_id=data['account_id'],
            transaction_type=TransactionType(data['transaction_type']),
            amount=Decimal(data['amount']),
            description=data['description'],
            status=TransactionStatus(data['status']),
            from_account=data.get('from_account'),
            to_account=data.get('to_account'),
            to_account_id=data.get('to_account_id')
        )
