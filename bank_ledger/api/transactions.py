"""
Transaction endpoints

Creation and deletion go through the ledger engine; status updates touch
only the transaction store.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from .system import BankingSystem, get_banking_system
from .schemas import (
    CreateTransactionRequest, UpdateTransactionStatusRequest,
    to_jsonable, transaction_to_response
)
from ..errors import InvalidStatus, InvalidTransactionType, TransactionNotFound
from ..ledger import TransactionRequest
from ..transactions import TransactionStatus, TransactionType


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_transaction(
    request: CreateTransactionRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Execute a deposit, withdrawal, transfer or fee"""
    transaction = system.engine.execute(TransactionRequest(
        account_id=request.account_id,
        transaction_type=request.type,
        amount=request.amount,
        description=request.description,
        to_account_id=request.to_account_id
    ))
    return transaction_to_response(transaction)


@router.get("")
async def list_transactions(
    account_id: Optional[str] = None,
    type: Optional[str] = None,
    status: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: Optional[int] = Query(None, ge=1),
    system: BankingSystem = Depends(get_banking_system)
):
    """List transactions with optional filters, newest first"""
    try:
        transaction_type = TransactionType(type) if type else None
    except ValueError:
        raise InvalidTransactionType(f"Invalid transaction type: {type}")
    try:
        transaction_status = TransactionStatus(status) if status else None
    except ValueError:
        raise InvalidStatus(f"Invalid transaction status: {status}")

    transactions = system.transactions.list_transactions(
        account_id=account_id,
        transaction_type=transaction_type,
        status=transaction_status,
        start_date=start_date,
        end_date=end_date,
        limit=limit
    )
    return {"transactions": [transaction_to_response(t) for t in transactions]}


@router.get("/stats/summary")
async def get_transaction_summary(system: BankingSystem = Depends(get_banking_system)):
    """Totals and counts by type and status"""
    return to_jsonable(system.statistics.transaction_summary())


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Get transaction details"""
    transaction = system.transactions.get(transaction_id)
    if not transaction:
        raise TransactionNotFound(f"Transaction {transaction_id} not found",
                                  {"transaction_id": transaction_id})
    return transaction_to_response(transaction)


@router.put("/{transaction_id}/status")
async def update_transaction_status(
    transaction_id: str,
    request: UpdateTransactionStatusRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Change a transaction's status without touching balances"""
    transaction = system.transactions.update_status(transaction_id, request.status)
    return transaction_to_response(transaction)


@router.delete("/{transaction_id}")
async def delete_transaction(
    transaction_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Reverse a transaction's balance effect and delete it"""
    result = system.engine.reverse(transaction_id)
    return {
        "transaction_id": transaction_id,
        "reversed": result.fully_reversed,
        "skipped": result.skipped,
        "message": "Transaction deleted successfully"
    }
