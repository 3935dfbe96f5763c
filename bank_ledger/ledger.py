"""
Ledger Engine

The single authority for turning a transaction request into balance
changes plus a persisted transaction record, and for reversing that effect
when the record is deleted.

Signed effects per transaction type:

    type        source    destination
    deposit     +amount   -
    withdrawal  -amount   -
    fee         -amount   -
    transfer    -amount   +amount

Validation and application run while holding the locks of every account
involved and inside one ``storage.atomic()`` block. Backends without real
transactions get compensating adjustments instead of a rollback.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union
import uuid

from .accounts import Account, AccountStore
from .audit import AuditTrail, AuditEventType
from .errors import (
    AccountNotActive, AccountNotFound, DestinationNotActive, DestinationNotFound,
    DestinationRequired, InsufficientFunds, InvalidAmount, InvalidDescription,
    InvalidTransactionType, LedgerError, PersistenceFailure, SelfTransferNotAllowed,
    TransactionNotFound
)
from .logging_config import get_logger, log_action
from .money import ZERO, AmountLike, parse_amount
from .storage import StorageInterface
from .transactions import (
    Transaction, TransactionStatus, TransactionStore, TransactionType
)


# (source sign, destination sign); None means the side is not touched
EFFECTS: Dict[TransactionType, Tuple[int, Optional[int]]] = {
    TransactionType.DEPOSIT: (1, None),
    TransactionType.WITHDRAWAL: (-1, None),
    TransactionType.FEE: (-1, None),
    TransactionType.TRANSFER: (-1, 1),
}

DEBIT_TYPES = frozenset(t for t, (sign, _) in EFFECTS.items() if sign < 0)


@dataclass
class TransactionRequest:
    """Input to LedgerEngine.execute"""
    account_id: str
    transaction_type: Union[TransactionType, str]
    amount: AmountLike
    description: str
    to_account_id: Optional[str] = None


@dataclass
class BalanceDelta:
    """Signed balance change for one account"""
    account_id: str
    delta: Decimal
    side: str  # source or destination


@dataclass
class ReversalResult:
    """Outcome of LedgerEngine.reverse"""
    transaction: Transaction
    applied: List[BalanceDelta] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def fully_reversed(self) -> bool:
        return not self.skipped


def compute_deltas(
    transaction_type: TransactionType,
    amount: Decimal,
    source_id: str,
    destination_id: Optional[str] = None
) -> List[BalanceDelta]:
    """Balance deltas an executed transaction applies"""
    source_sign, destination_sign = EFFECTS[transaction_type]
    deltas = [BalanceDelta(source_id, amount * source_sign, "source")]
    if destination_sign is not None:
        if destination_id is None:
            raise DestinationRequired("Destination account required for transfers")
        deltas.append(BalanceDelta(destination_id, amount * destination_sign, "destination"))
    return deltas


def compute_reversal_deltas(
    transaction_type: TransactionType,
    amount: Decimal,
    source_id: str,
    destination_id: Optional[str] = None
) -> List[BalanceDelta]:
    """Exact negation of compute_deltas"""
    return [
        BalanceDelta(d.account_id, -d.delta, d.side)
        for d in compute_deltas(transaction_type, amount, source_id, destination_id)
    ]


class LedgerEngine:
    """
    Validates transaction requests against account state, applies the
    balance deltas atomically and persists the transaction record.
    """

    def __init__(
        self,
        storage: StorageInterface,
        accounts: AccountStore,
        transactions: TransactionStore,
        audit_trail: AuditTrail
    ):
        self.storage = storage
        self.accounts = accounts
        self.transactions = transactions
        self.audit_trail = audit_trail
        self.logger = get_logger("bank_ledger.ledger")

    def execute(self, request: TransactionRequest) -> Transaction:
        """
        Execute a transaction request

        Args:
            request: Account, type, amount, description and, for transfers,
                the destination account id

        Returns:
            The created Transaction, status completed

        Raises:
            ValidationError / NotFoundError subclasses: before any mutation
            PersistenceFailure: If storage fails while applying
        """
        try:
            transaction_type = self._parse_type(request.transaction_type)
            amount = self._parse_amount(request.amount)
            description = self._parse_description(request.description)
        except LedgerError as e:
            self._log_rejection(request, e)
            raise

        lock_ids = [request.account_id]
        if transaction_type == TransactionType.TRANSFER and request.to_account_id:
            lock_ids.append(request.to_account_id)

        with self.accounts.lock(*lock_ids):
            try:
                source, destination = self._validate(transaction_type, amount, request)
            except LedgerError as e:
                self._log_rejection(request, e)
                raise

            now = datetime.now(timezone.utc)
            transaction = Transaction(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                account_id=source.id,
                transaction_type=transaction_type,
                amount=amount,
                description=description,
                status=TransactionStatus.COMPLETED,
                from_account=source.account_number if destination else None,
                to_account=destination.account_number if destination else None,
                to_account_id=destination.id if destination else None
            )
            deltas = compute_deltas(
                transaction_type, amount, source.id, destination.id if destination else None
            )

            applied: List[BalanceDelta] = []
            try:
                with self.storage.atomic():
                    for delta in deltas:
                        self.accounts.adjust_balance(delta.account_id, delta.delta, floor=ZERO)
                        applied.append(delta)
                    self.transactions.append(transaction)

                    self.audit_trail.log_event(
                        event_type=AuditEventType.TRANSACTION_EXECUTED,
                        entity_type="transaction",
                        entity_id=transaction.id,
                        metadata={
                            "account_id": source.id,
                            "transaction_type": transaction_type,
                            "amount": amount,
                            "to_account_id": transaction.to_account_id,
                            "deltas": {d.account_id: d.delta for d in deltas}
                        }
                    )
            except LedgerError:
                self._compensate(applied, transaction.id)
                raise
            except Exception as e:
                self._compensate(applied, transaction.id)
                self.logger.exception(f"Persistence failure executing transaction {transaction.id}")
                raise PersistenceFailure(
                    f"Could not persist {transaction_type.value}: {e}",
                    {"transaction_id": transaction.id}
                ) from e

        log_action(
            self.logger, "info", f"Transaction executed: {transaction_type.value}",
            action="execute_transaction", resource=f"transaction:{transaction.id}",
            extra={
                "account_id": source.id,
                "amount": str(amount),
                "to_account_id": transaction.to_account_id
            }
        )
        return transaction

    def reverse(self, transaction_id: str) -> ReversalResult:
        """
        Undo a transaction's balance effect and delete its record

        A missing source account, or a transfer destination that can no
        longer be resolved, is skipped; the record is removed regardless.

        Raises:
            TransactionNotFound: If the transaction does not exist
            PersistenceFailure: If storage fails while applying
        """
        transaction = self.transactions.get(transaction_id)
        if not transaction:
            raise TransactionNotFound(f"Transaction {transaction_id} not found",
                                      {"transaction_id": transaction_id})

        destination_id = self._resolve_destination_id(transaction)
        lock_ids = [transaction.account_id] + ([destination_id] if destination_id else [])

        with self.accounts.lock(*lock_ids):
            # Re-read under the locks so a concurrent reversal is seen
            transaction = self.transactions.get(transaction_id)
            if not transaction:
                raise TransactionNotFound(f"Transaction {transaction_id} not found",
                                          {"transaction_id": transaction_id})

            result = ReversalResult(transaction=transaction)
            deltas = compute_reversal_deltas(
                transaction.transaction_type, transaction.amount,
                transaction.account_id, destination_id or ""
            )
            for delta in deltas:
                if delta.side == "destination" and not destination_id:
                    result.skipped.append("destination")
                elif not self.accounts.get(delta.account_id):
                    result.skipped.append(delta.side)

            try:
                with self.storage.atomic():
                    for delta in deltas:
                        if delta.side in result.skipped:
                            continue
                        self.accounts.adjust_balance(delta.account_id, delta.delta)
                        result.applied.append(delta)
                    self.transactions.remove(transaction_id)

                    self.audit_trail.log_event(
                        event_type=AuditEventType.TRANSACTION_REVERSED,
                        entity_type="transaction",
                        entity_id=transaction_id,
                        metadata={
                            "account_id": transaction.account_id,
                            "transaction_type": transaction.transaction_type,
                            "amount": transaction.amount,
                            "applied": {d.account_id: d.delta for d in result.applied},
                            "skipped": result.skipped
                        }
                    )
            except LedgerError:
                self._compensate(result.applied, transaction_id)
                raise
            except Exception as e:
                self._compensate(result.applied, transaction_id)
                self.logger.exception(f"Persistence failure reversing transaction {transaction_id}")
                raise PersistenceFailure(
                    f"Could not reverse transaction {transaction_id}: {e}",
                    {"transaction_id": transaction_id}
                ) from e

        if result.skipped:
            log_action(
                self.logger, "warning",
                f"Transaction {transaction_id} reversed without {', '.join(result.skipped)} side",
                action="reverse_transaction", resource=f"transaction:{transaction_id}",
                extra={"skipped": result.skipped}
            )
        else:
            log_action(
                self.logger, "info", f"Transaction reversed: {transaction.transaction_type.value}",
                action="reverse_transaction", resource=f"transaction:{transaction_id}",
                extra={"amount": str(transaction.amount)}
            )
        return result

    def deposit(self, account_id: str, amount: AmountLike, description: str) -> Transaction:
        """Convenience method for deposits"""
        return self.execute(TransactionRequest(account_id, TransactionType.DEPOSIT, amount, description))

    def withdraw(self, account_id: str, amount: AmountLike, description: str) -> Transaction:
        """Convenience method for withdrawals"""
        return self.execute(TransactionRequest(account_id, TransactionType.WITHDRAWAL, amount, description))

    def charge_fee(self, account_id: str, amount: AmountLike, description: str) -> Transaction:
        """Convenience method for fees"""
        return self.execute(TransactionRequest(account_id, TransactionType.FEE, amount, description))

    def transfer(
        self,
        from_account_id: str,
        to_account_id: str,
        amount: AmountLike,
        description: str
    ) -> Transaction:
        """Convenience method for transfers between accounts"""
        return self.execute(TransactionRequest(
            from_account_id, TransactionType.TRANSFER, amount, description, to_account_id
        ))

    def _validate(
        self,
        transaction_type: TransactionType,
        amount: Decimal,
        request: TransactionRequest
    ) -> Tuple[Account, Optional[Account]]:
        source = self.accounts.get(request.account_id)
        if not source:
            raise AccountNotFound(f"Account {request.account_id} not found",
                                  {"account_id": request.account_id})
        if not source.is_active:
            raise AccountNotActive(
                f"Account {source.account_number} is not active",
                {"account_id": source.id, "status": source.status.value}
            )

        destination = None
        if transaction_type == TransactionType.TRANSFER:
            if not request.to_account_id:
                raise DestinationRequired("Destination account required for transfers")
            destination = self.accounts.get(request.to_account_id)
            if not destination:
                raise DestinationNotFound(
                    f"Destination account {request.to_account_id} not found",
                    {"to_account_id": request.to_account_id}
                )
            if not destination.is_active:
                raise DestinationNotActive(
                    f"Destination account {destination.account_number} is not active",
                    {"to_account_id": destination.id, "status": destination.status.value}
                )
            if destination.id == source.id:
                raise SelfTransferNotAllowed(
                    "Source and destination accounts must differ",
                    {"account_id": source.id}
                )

        if transaction_type in DEBIT_TYPES and source.balance < amount:
            raise InsufficientFunds(
                f"Insufficient funds: balance {source.balance}, requested {amount}",
                {"account_id": source.id, "balance": str(source.balance), "requested": str(amount)}
            )

        return source, destination

    def _resolve_destination_id(self, transaction: Transaction) -> Optional[str]:
        """Destination of a transfer by stored id, falling back to its masked number"""
        if not transaction.is_transfer:
            return None
        if transaction.to_account_id:
            return transaction.to_account_id
        if transaction.to_account:
            account = self.accounts.get_by_number(transaction.to_account)
            if account:
                return account.id
        self.logger.warning(
            f"Transfer {transaction.id} destination {transaction.to_account} cannot be resolved"
        )
        return None

    def _compensate(self, applied: List[BalanceDelta], transaction_id: str) -> None:
        """Undo already applied deltas when the backend cannot roll them back"""
        if not applied or self.storage.supports_transactions:
            return

        failed = []
        for delta in reversed(applied):
            try:
                self.accounts.adjust_balance(delta.account_id, -delta.delta)
            except Exception:
                self.logger.exception(
                    f"Compensation failed for account {delta.account_id} ({transaction_id})"
                )
                failed.append(delta.account_id)

        self.audit_trail.log_event(
            event_type=AuditEventType.TRANSACTION_COMPENSATED,
            entity_type="transaction",
            entity_id=transaction_id,
            metadata={
                "compensated": {d.account_id: -d.delta for d in applied},
                "failed": failed
            }
        )

    @staticmethod
    def _parse_type(value: Union[TransactionType, str]) -> TransactionType:
        try:
            return TransactionType(value)
        except ValueError:
            raise InvalidTransactionType(f"Invalid transaction type: {value}")

    @staticmethod
    def _parse_amount(value: AmountLike) -> Decimal:
        try:
            amount = parse_amount(value)
        except ValueError:
            raise InvalidAmount(f"Invalid amount: {value!r}")
        if amount <= ZERO:
            raise InvalidAmount("Amount must be greater than zero", {"amount": str(amount)})
        return amount

    @staticmethod
    def _parse_description(value: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise InvalidDescription("Description is required")
        return value.strip()

    def _log_rejection(self, request: TransactionRequest, error: LedgerError) -> None:
        log_action(
            self.logger, "warning", f"Transaction rejected: {error.message}",
            action="execute_transaction", resource=f"account:{request.account_id}",
            extra={"error": error.code}
        )
