from pydantic import BaseModel
from typing import Dict, List
from portal.schemas.policy import PolicyResponse

class ReimbursementSummary(BaseModel):
    total_requests: int
    total_requested: float
    total_approved: float
    approved_count: int
    rejected_count: int
    pending_count: int

class PolicySummary(BaseModel):
    total_policies: int
    by_status: Dict[str, int]
    active_premium_total: float
    expiring_soon: List[PolicyResponse]

class AgentProduction(BaseModel):
    agent_id: int
    agent_name: str
    agent_email: str
    policy_count: int
    total_premium: float
    average_premium: float
