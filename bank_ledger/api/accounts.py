"""
Account management endpoints
"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends, Query, status

from .system import BankingSystem, get_banking_system
from .schemas import CreateAccountRequest, account_to_response, transaction_to_response
from ..accounts import AccountStatus, AccountType
from ..errors import AccountNotFound, InvalidAccountData, InvalidStatus


router = APIRouter()

# Wire names accepted on update, mapped onto account store fields
UPDATE_ALIASES = {"interestRate": "interest_rate"}


def _parse_account_type(value: str) -> AccountType:
    try:
        return AccountType(value)
    except ValueError:
        raise InvalidAccountData(f"Invalid account type: {value}")


def _parse_account_status(value: str) -> AccountStatus:
    try:
        return AccountStatus(value)
    except ValueError:
        raise InvalidStatus(f"Invalid account status: {value}")


def _require_account(system: BankingSystem, account_id: str):
    account = system.accounts.get(account_id)
    if not account:
        raise AccountNotFound(f"Account {account_id} not found", {"account_id": account_id})
    return account


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_account(
    request: CreateAccountRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Create a new account"""
    account = system.accounts.create_account(
        customer_id=request.customer_id,
        account_type=_parse_account_type(request.account_type),
        initial_deposit=request.initial_deposit,
        interest_rate=request.interest_rate
    )
    return account_to_response(account)


@router.get("")
async def list_accounts(
    customer_id: Optional[str] = None,
    account_type: Optional[str] = None,
    status: Optional[str] = None,
    system: BankingSystem = Depends(get_banking_system)
):
    """List accounts with optional filters"""
    accounts = system.accounts.list_accounts(
        customer_id=customer_id,
        account_type=_parse_account_type(account_type) if account_type else None,
        status=_parse_account_status(status) if status else None
    )
    return {"accounts": [account_to_response(a) for a in accounts]}


@router.get("/{account_id}")
async def get_account(
    account_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Get account details"""
    return account_to_response(_require_account(system, account_id))


@router.put("/{account_id}")
async def update_account(
    account_id: str,
    payload: Dict[str, Any] = Body(...),
    system: BankingSystem = Depends(get_banking_system)
):
    """Update status or interest rate; balance and identity fields are rejected"""
    partial = {UPDATE_ALIASES.get(key, key): value for key, value in payload.items()}
    account = system.accounts.update_fields(account_id, partial)
    return account_to_response(account)


@router.delete("/{account_id}")
async def delete_account(
    account_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Remove an account; its transactions stay and later reversals skip it"""
    if not system.accounts.delete_account(account_id):
        raise AccountNotFound(f"Account {account_id} not found", {"account_id": account_id})
    return {
        "account_id": account_id,
        "message": "Account deleted successfully"
    }


@router.get("/{account_id}/balance")
async def get_account_balance(
    account_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Get current account balance"""
    account = _require_account(system, account_id)
    return {
        "account_id": account.id,
        "account_number": account.account_number,
        "balance": str(account.balance),
        "status": account.status.value
    }


@router.get("/{account_id}/transactions")
async def get_account_transactions(
    account_id: str,
    limit: Optional[int] = Query(50, ge=1),
    system: BankingSystem = Depends(get_banking_system)
):
    """Get transaction history for account, newest first"""
    _require_account(system, account_id)
    transactions = system.transactions.list_transactions(account_id=account_id, limit=limit)
    return {"transactions": [transaction_to_response(t) for t in transactions]}
