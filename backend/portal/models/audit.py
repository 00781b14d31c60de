"""
Decision trail for reimbursement requests.
"""
import enum
from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum, Text
from sqlalchemy.sql import func
from portal.db.base import Base


class DecisionType(str, enum.Enum):
    """What happened to a reimbursement request."""
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    MORE_INFO_NEEDED = "more_info_needed"
    RESUBMITTED = "resubmitted"


class ReimbursementDecision(Base):
    """
    One row per status change of a reimbursement request.
    The request itself only keeps the latest reasons and comments.
    """
    __tablename__ = "reimbursement_decisions"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(
        Integer, ForeignKey("reimbursement_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    decision = Column(Enum(DecisionType), nullable=False)
    notes = Column(Text, nullable=True)
    decided_by = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
