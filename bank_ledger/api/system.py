"""
Ledger system wiring and the FastAPI dependency that hands it to routes
"""

from typing import Optional

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..accounts import AccountStore
from ..transactions import TransactionStore
from ..ledger import LedgerEngine
from ..reporting import StatisticsAggregator
from ..config import LedgerConfig, get_config


class BankingSystem:
    """Ledger components sharing one storage backend"""

    def __init__(self, storage: Optional[StorageInterface] = None, config: Optional[LedgerConfig] = None):
        self.config = config or get_config()

        # Initialize storage
        if storage is None:
            storage = create_storage(self.config.storage_backend, self.config.sqlite_path)
        self.storage = storage

        # Initialize core components
        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.accounts = AccountStore(self.storage, self.audit_trail, self.config)
        self.transactions = TransactionStore(self.storage, self.audit_trail)
        self.engine = LedgerEngine(self.storage, self.accounts, self.transactions, self.audit_trail)
        self.statistics = StatisticsAggregator(self.accounts, self.transactions)

    def close(self) -> None:
        self.storage.close()


# Global ledger system instance, created on first use
_banking_system: Optional[BankingSystem] = None


# Dependency to get banking system
def get_banking_system() -> BankingSystem:
    global _banking_system
    if _banking_system is None:
        _banking_system = BankingSystem()
    return _banking_system
