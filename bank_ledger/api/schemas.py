"""
Pydantic schemas for API requests and response serialization
"""

from decimal import Decimal
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from ..accounts import Account
from ..transactions import Transaction


# Account schemas
class CreateAccountRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_id: str = Field(..., alias="customerId")
    account_type: str = Field(..., alias="accountType", description="Account type (checking, savings, business)")
    initial_deposit: Union[str, float, int] = Field("0", alias="initialDeposit", description="Decimal amount as string")
    interest_rate: Optional[Union[str, float]] = Field(None, alias="interestRate")  # Savings only


# Transaction schemas
class CreateTransactionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_id: str = Field(..., alias="accountId")
    type: str = Field(..., description="Transaction type (deposit, withdrawal, transfer, fee)")
    amount: Union[str, float, int] = Field(..., description="Decimal amount, string preferred")
    description: str
    to_account_id: Optional[str] = Field(None, alias="toAccountId")


class UpdateTransactionStatusRequest(BaseModel):
    status: str = Field(..., description="Transaction status (completed, pending, failed)")


def to_jsonable(value: Any) -> Any:
    """Render Decimals as strings and enums/datetimes as plain values, recursively"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def account_to_response(account: Account) -> Dict[str, Any]:
    return {
        "id": account.id,
        "account_number": account.account_number,
        "customer_id": account.customer_id,
        "account_type": account.account_type.value,
        "balance": str(account.balance),
        "status": account.status.value,
        "interest_rate": str(account.interest_rate) if account.interest_rate is not None else None,
        "created_at": account.created_at.isoformat(),
        "updated_at": account.updated_at.isoformat()
    }


def transaction_to_response(transaction: Transaction) -> Dict[str, Any]:
    result = {
        "id": transaction.id,
        "account_id": transaction.account_id,
        "type": transaction.transaction_type.value,
        "amount": str(transaction.amount),
        "description": transaction.description,
        "status": transaction.status.value,
        "timestamp": transaction.created_at.isoformat()
    }
    if transaction.is_transfer:
        result["from_account"] = transaction.from_account
        result["to_account"] = transaction.to_account
        result["to_account_id"] = transaction.to_account_id
    return result
