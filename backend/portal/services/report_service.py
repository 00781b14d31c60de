from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from portal.models.policy import Policy, PolicyStatus
from portal.models.profile import Profile, ProfileRole
from portal.models.reimbursement import ReimbursementRequest, ReimbursementStatus
from portal.services.policy_service import PolicyService
from portal.services.reimbursement_rules import PENDING_GROUP
from portal.services.reimbursement_service import ReimbursementService


def summarize_reimbursements(requests: List[ReimbursementRequest]) -> Dict[str, Any]:
    return {
        "total_requests": len(requests),
        "total_requested": sum(r.amount_requested or 0 for r in requests),
        "total_approved": sum(r.amount_approved or 0 for r in requests),
        "approved_count": sum(1 for r in requests if r.status == ReimbursementStatus.APPROVED),
        "rejected_count": sum(1 for r in requests if r.status == ReimbursementStatus.REJECTED),
        "pending_count": sum(1 for r in requests if r.status in PENDING_GROUP),
    }


def summarize_policies(policies: List[Policy], today: date, expiring_within_days: int) -> Dict[str, Any]:
    by_status = {status.value: 0 for status in PolicyStatus}
    for policy in policies:
        by_status[PolicyStatus(policy.status).value] += 1
    horizon = today + timedelta(days=expiring_within_days)
    active = [p for p in policies if p.status == PolicyStatus.ACTIVE]
    return {
        "total_policies": len(policies),
        "by_status": by_status,
        "active_premium_total": sum(p.premium_amount or 0 for p in active),
        "expiring_soon": sorted(
            (p for p in active if today <= p.end_date <= horizon), key=lambda p: p.end_date
        ),
    }


def summarize_agent_production(agents: List[Profile], policies: List[Policy]) -> List[Dict[str, Any]]:
    """One row per agent, agents without policies included, highest premium first."""
    rows = {
        agent.id: {
            "agent_id": agent.id,
            "agent_name": agent.full_name or agent.email,
            "agent_email": agent.email,
            "policy_count": 0,
            "total_premium": 0.0,
        }
        for agent in agents
    }
    for policy in policies:
        row = rows.get(policy.agent_id)
        if row is None:
            continue
        row["policy_count"] += 1
        row["total_premium"] += policy.premium_amount or 0
    for row in rows.values():
        row["average_premium"] = row["total_premium"] / row["policy_count"] if row["policy_count"] else 0.0
    return sorted(rows.values(), key=lambda row: row["total_premium"], reverse=True)


class ReportService:
    """Summaries over the rows the caller is allowed to see."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def reimbursement_summary(self, profile: Profile, status: ReimbursementStatus = None) -> Dict[str, Any]:
        requests = await ReimbursementService(self.db).list_requests(profile, status=status)
        return summarize_reimbursements(requests)

    async def policy_summary(self, profile: Profile, expiring_within_days: int = 30, today: date = None) -> Dict[str, Any]:
        policies = await PolicyService(self.db).list_policies(profile)
        return summarize_policies(policies, today or date.today(), expiring_within_days)

    async def agent_production(self, start: date = None, end: date = None) -> List[Dict[str, Any]]:
        """Policies sold per agent, counting those created between start and end inclusive."""
        end = end or date.today()
        start = start or end - timedelta(days=30)
        if start > end:
            raise ValueError("The start date must not be after the end date.")

        agents = await self.db.execute(select(Profile).where(Profile.role == ProfileRole.AGENT))
        policies = await self.db.execute(
            select(Policy).where(
                Policy.agent_id.is_not(None),
                Policy.created_at >= datetime.combine(start, time.min),
                Policy.created_at < datetime.combine(end + timedelta(days=1), time.min),
            )
        )
        return summarize_agent_production(agents.scalars().all(), policies.scalars().all())

    async def expired_policies(self, days: int = 30, today: date = None) -> List[Policy]:
        """Expired policies whose end date falls in the last ``days`` days, latest first."""
        today = today or date.today()
        result = await self.db.execute(
            select(Policy)
            .where(
                Policy.status == PolicyStatus.EXPIRED,
                Policy.end_date >= today - timedelta(days=days),
                Policy.end_date <= today,
            )
            .order_by(Policy.end_date.desc(), Policy.id.desc())
        )
        return result.scalars().all()
