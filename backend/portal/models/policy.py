import enum
from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, Date, DateTime, Enum, JSON, Text
from sqlalchemy.sql import func
from portal.db.base import Base
from portal.models.product import PaymentFrequency

class PolicyStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    REJECTED = "rejected"
    AWAITING_SIGNATURE = "awaiting_signature"
    AWAITING_REVIEW = "awaiting_review"

# A client may sign only while the policy is in one of these
SIGNABLE_STATUSES = (PolicyStatus.PENDING, PolicyStatus.AWAITING_SIGNATURE)
# Applications an agent can still approve or reject
REVIEWABLE_STATUSES = (PolicyStatus.PENDING, PolicyStatus.AWAITING_REVIEW)

class Policy(Base):
    __tablename__ = "policies"

    id = Column(Integer, primary_key=True, index=True)
    policy_number = Column(String, unique=True, index=True, nullable=False)
    client_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("profiles.id"), nullable=True, index=True)
    product_id = Column(Integer, ForeignKey("insurance_products.id"), nullable=False, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(Enum(PolicyStatus), default=PolicyStatus.PENDING, nullable=False)
    premium_amount = Column(Float, nullable=False)
    payment_frequency = Column(Enum(PaymentFrequency), nullable=True)
    contract_details = Column(Text, nullable=True)

    # Life coverage
    coverage_amount = Column(Float, nullable=True)
    ad_d_included = Column(Boolean, nullable=True)
    ad_d_coverage = Column(Float, nullable=True)
    beneficiaries = Column(JSON, nullable=True)

    # Health coverage
    deductible = Column(Float, nullable=True)
    coinsurance = Column(Float, nullable=True)
    max_annual = Column(Float, nullable=True)
    has_dental = Column(Boolean, nullable=True)
    has_vision = Column(Boolean, nullable=True)
    dependents_details = Column(JSON, nullable=True)

    age_at_inscription = Column(Integer, nullable=True)

    signature_url = Column(String, nullable=True)
    signed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now())
