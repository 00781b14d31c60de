from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import date, datetime
from portal.models.policy import PolicyStatus
from portal.models.product import PaymentFrequency

class PolicyCoverage(BaseModel):
    coverage_amount: Optional[float] = None
    ad_d_included: Optional[bool] = None
    ad_d_coverage: Optional[float] = None
    beneficiaries: Optional[List[Dict[str, Any]]] = None
    deductible: Optional[float] = None
    coinsurance: Optional[float] = None
    max_annual: Optional[float] = None
    has_dental: Optional[bool] = None
    has_vision: Optional[bool] = None
    dependents_details: Optional[List[Dict[str, Any]]] = None
    age_at_inscription: Optional[int] = None

class PolicyCreate(PolicyCoverage):
    policy_number: Optional[str] = None
    client_id: int
    agent_id: Optional[int] = None
    product_id: int
    start_date: date
    end_date: date
    premium_amount: float = Field(ge=0)
    payment_frequency: Optional[PaymentFrequency] = None
    contract_details: Optional[str] = None

class PolicyApplication(PolicyCoverage):
    """Self-service application submitted by a client."""
    product_id: int
    agent_id: Optional[int] = None
    start_date: Optional[date] = None
    payment_frequency: Optional[PaymentFrequency] = None

class PolicyUpdate(PolicyCoverage):
    policy_number: Optional[str] = None
    agent_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[PolicyStatus] = None
    premium_amount: Optional[float] = Field(default=None, ge=0)
    payment_frequency: Optional[PaymentFrequency] = None
    contract_details: Optional[str] = None

class PolicyReviewRequest(BaseModel):
    approve: bool

class PolicyResponse(PolicyCoverage):
    id: int
    policy_number: str
    client_id: int
    agent_id: Optional[int] = None
    product_id: int
    start_date: date
    end_date: date
    status: PolicyStatus
    premium_amount: float
    payment_frequency: Optional[PaymentFrequency] = None
    contract_details: Optional[str] = None
    signature_url: Optional[str] = None
    signed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class PolicyReviewResponse(BaseModel):
    policy: PolicyResponse
    signature_link: Optional[str] = None

class SignatureLinkResponse(BaseModel):
    policy_id: int
    email: str
    link: str
