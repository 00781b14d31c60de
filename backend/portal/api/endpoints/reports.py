from datetime import date
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from portal.api import deps
from portal.db.session import get_db
from portal.models.profile import Profile
from portal.models.reimbursement import ReimbursementStatus
from portal.schemas.policy import PolicyResponse
from portal.schemas.report import AgentProduction, PolicySummary, ReimbursementSummary
from portal.services.report_service import ReportService

router = APIRouter()

@router.get("/reimbursements", response_model=ReimbursementSummary)
async def reimbursement_summary(
    status: Optional[ReimbursementStatus] = None,
    current_user: Profile = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ReportService(db)
    return await service.reimbursement_summary(current_user, status=status)

@router.get("/policies", response_model=PolicySummary)
async def policy_summary(
    expiring_within_days: int = Query(30, ge=0),
    current_user: Profile = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Policies by status plus the active ones ending within the window."""
    service = ReportService(db)
    return await service.policy_summary(current_user, expiring_within_days=expiring_within_days)

@router.get("/agent-production", response_model=List[AgentProduction])
async def agent_production(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Policy count and premium per agent over a creation-date window (default: last 30 days)."""
    service = ReportService(db)
    try:
        return await service.agent_production(start=start_date, end=end_date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.get("/expired-policies", response_model=List[PolicyResponse])
async def expired_policies(
    days: int = Query(30, ge=0),
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ReportService(db)
    return await service.expired_policies(days=days)
