"""
Reporting endpoints
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query

from .system import BankingSystem, get_banking_system
from .schemas import to_jsonable
from ..errors import ValidationError
from ..reporting import PERIODS


router = APIRouter()


@router.get("/dashboard")
async def get_dashboard(system: BankingSystem = Depends(get_banking_system)):
    """Totals, breakdowns and recent activity"""
    overview = system.statistics.dashboard_overview(
        recent_limit=system.config.recent_transactions_limit
    )
    return to_jsonable(overview)


@router.get("/financial-summary")
async def get_financial_summary(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    system: BankingSystem = Depends(get_banking_system)
):
    """Money moved per type within an optional date range"""
    return to_jsonable(system.statistics.financial_summary(start_date, end_date))


@router.get("/account-analytics")
async def get_account_analytics(
    top_n: Optional[int] = Query(None, ge=1),
    system: BankingSystem = Depends(get_banking_system)
):
    """Account breakdowns, balance distribution and most active accounts"""
    return to_jsonable(system.statistics.account_analytics(top_n or system.config.top_n_default))


@router.get("/transaction-analytics")
async def get_transaction_analytics(
    period: str = "month",
    system: BankingSystem = Depends(get_banking_system)
):
    """Transaction breakdown for day, week, month or all"""
    if period not in PERIODS:
        raise ValidationError(f"Invalid period: {period}", {"allowed": list(PERIODS)})
    return to_jsonable(system.statistics.transaction_analytics(period))


@router.get("/customer-analytics")
async def get_customer_analytics(
    top_n: Optional[int] = Query(None, ge=1),
    system: BankingSystem = Depends(get_banking_system)
):
    """Per-customer account counts and balances"""
    return to_jsonable(system.statistics.customer_rollup(top_n or system.config.top_n_default))
