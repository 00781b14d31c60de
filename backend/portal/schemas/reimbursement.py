from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Union
from datetime import date, datetime
from portal.models.reimbursement import ReimbursementStatus, DocumentStatus
from portal.models.audit import DecisionType

class ReimbursementBase(BaseModel):
    policy_id: int
    amount_requested: Optional[float] = None
    event_date: Optional[date] = None

class ReimbursementResponse(ReimbursementBase):
    id: int
    client_id: int
    request_date: datetime
    status: ReimbursementStatus
    amount_approved: Optional[float] = None
    admin_notes: Optional[str] = None
    rejection_reasons: Optional[List[str]] = None
    rejection_comments: Optional[str] = None

    class Config:
        from_attributes = True

class DocumentResponse(BaseModel):
    id: int
    reimbursement_request_id: int
    document_name: str
    file_url: str
    uploaded_at: Optional[datetime] = None
    status: DocumentStatus
    admin_notes: Optional[str] = None
    uploaded_by: int

    class Config:
        from_attributes = True

class ChecklistItem(BaseModel):
    document_name: str
    is_required: bool
    description: Optional[str] = None
    submitted: bool

class ReimbursementDetail(ReimbursementResponse):
    policy_number: Optional[str] = None
    product_id: Optional[int] = None
    client_name: Optional[str] = None
    client_identification_number: Optional[str] = None
    documents: List[DocumentResponse] = []
    checklist: List[ChecklistItem] = []
    # rejection comments split back per reason, for re-opening the review form
    parsed_comments: Dict[str, str] = {}

class ApproveRequest(BaseModel):
    # Accepts text so a malformed amount yields the workflow's own message
    amount_approved: Union[float, str, None] = None
    justification: Optional[str] = None

class RejectRequest(BaseModel):
    reasons: List[str] = Field(default_factory=list)
    comments: Dict[str, str] = Field(default_factory=dict)

class DecisionResponse(BaseModel):
    id: int
    request_id: int
    decision: DecisionType
    notes: Optional[str] = None
    decided_by: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class RejectionReasonInfo(BaseModel):
    id: str
    label: str
    requires_comment: bool
    placeholder: Optional[str] = None
