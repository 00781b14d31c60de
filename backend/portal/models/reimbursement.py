import enum
from sqlalchemy import Column, Integer, String, Float, ForeignKey, Date, DateTime, Enum, JSON, Text
from sqlalchemy.sql import func
from portal.db.base import Base

class ReimbursementStatus(str, enum.Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    MORE_INFO_NEEDED = "more_info_needed"
    APPROVED = "approved"
    REJECTED = "rejected"

class DocumentStatus(str, enum.Enum):
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"

class ReimbursementRequest(Base):
    __tablename__ = "reimbursement_requests"

    id = Column(Integer, primary_key=True, index=True)
    policy_id = Column(Integer, ForeignKey("policies.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    request_date = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    event_date = Column(Date, nullable=True)

    status = Column(Enum(ReimbursementStatus), default=ReimbursementStatus.PENDING, nullable=False)
    amount_requested = Column(Float, nullable=True)
    amount_approved = Column(Float, nullable=True)
    admin_notes = Column(Text, nullable=True)
    rejection_reasons = Column(JSON, nullable=True)  # list of RejectionReason tags
    rejection_comments = Column(Text, nullable=True)

    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now())

class ReimbursementDocument(Base):
    __tablename__ = "reimbursement_documents"

    id = Column(Integer, primary_key=True, index=True)
    reimbursement_request_id = Column(
        Integer, ForeignKey("reimbursement_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    document_name = Column(String, nullable=False)
    file_url = Column(String, nullable=False)  # storage path inside the reimbursement-docs bucket
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now())
    status = Column(Enum(DocumentStatus), default=DocumentStatus.PENDING_REVIEW, nullable=False)
    admin_notes = Column(Text, nullable=True)
    uploaded_by = Column(Integer, ForeignKey("profiles.id"), nullable=False)
