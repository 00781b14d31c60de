from datetime import date
from typing import Any, List, Optional, Tuple
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from portal.api import deps
from portal.db.session import get_db
from portal.models.policy import Policy
from portal.models.profile import Profile
from portal.models.reimbursement import ReimbursementRequest, ReimbursementStatus
from portal.schemas.reimbursement import (
    ApproveRequest,
    ChecklistItem,
    DecisionResponse,
    RejectionReasonInfo,
    RejectRequest,
    ReimbursementDetail,
    ReimbursementResponse,
)
from portal.services.reimbursement_rules import REJECTION_REASONS
from portal.services.reimbursement_service import (
    DocumentUpload,
    ReimbursementService,
    can_handle_documents,
    can_view_request,
)
from portal.services.storage_service import StorageService, get_storage

router = APIRouter()


async def _get_visible_request(
    service: ReimbursementService, request_id: int, user: Profile
) -> Tuple[ReimbursementRequest, Optional[Policy]]:
    request = await service.get_request(request_id)
    if not request:
        raise HTTPException(status_code=404, detail="Reimbursement request not found")
    policy = await service.get_policy_for(request)
    if not can_view_request(request, policy, user):
        raise HTTPException(status_code=403, detail="Not authorized to view this request")
    return request, policy


async def _read_uploads(
    document_names: Optional[List[str]], files: Optional[List[UploadFile]]
) -> List[DocumentUpload]:
    document_names = document_names or []
    files = files or []
    if len(document_names) != len(files):
        raise HTTPException(status_code=400, detail="Each file needs exactly one document name.")
    uploads = []
    for name, upload in zip(document_names, files):
        uploads.append(
            DocumentUpload(
                document_name=name,
                filename=upload.filename or name,
                content=await upload.read(),
                content_type=upload.content_type,
            )
        )
    return uploads

@router.get("/rejection-reasons", response_model=List[RejectionReasonInfo])
async def read_rejection_reasons(current_user: Profile = Depends(deps.get_current_user)) -> Any:
    return [
        RejectionReasonInfo(
            id=reason.value,
            label=config.label,
            requires_comment=config.requires_comment,
            placeholder=config.placeholder,
        )
        for reason, config in REJECTION_REASONS.items()
    ]

@router.get("/", response_model=List[ReimbursementResponse])
async def read_requests(
    status: Optional[ReimbursementStatus] = None,
    identification_prefix: Optional[str] = None,
    open_only: bool = False,
    current_user: Profile = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ReimbursementService(db)
    return await service.list_requests(
        current_user,
        status=status,
        identification_prefix=identification_prefix,
        open_only=open_only,
    )

@router.post("/", response_model=ReimbursementResponse, status_code=201)
async def submit_request(
    policy_id: int = Form(...),
    amount_requested: Optional[str] = Form(None),
    event_date: Optional[date] = Form(None),
    document_names: Optional[List[str]] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    current_user: Profile = Depends(deps.get_client_user),
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage),
) -> Any:
    """Multipart submission: one ``document_names`` entry per uploaded file."""
    uploads = await _read_uploads(document_names, files)
    service = ReimbursementService(db, storage)
    try:
        return await service.submit_request(current_user, policy_id, amount_requested, uploads, event_date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.get("/{request_id}", response_model=ReimbursementDetail)
async def read_request(
    request_id: int,
    current_user: Profile = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage),
) -> Any:
    service = ReimbursementService(db, storage)
    request, _ = await _get_visible_request(service, request_id, current_user)
    return await service.get_detail(request)

@router.get("/{request_id}/checklist", response_model=List[ChecklistItem])
async def read_checklist(
    request_id: int,
    current_user: Profile = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ReimbursementService(db)
    request, _ = await _get_visible_request(service, request_id, current_user)
    return await service.get_checklist(request)

@router.get("/{request_id}/decisions", response_model=List[DecisionResponse])
async def read_decisions(
    request_id: int,
    current_user: Profile = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Decision history of a request, oldest first."""
    service = ReimbursementService(db)
    await _get_visible_request(service, request_id, current_user)
    return await service.get_decisions(request_id)

@router.post("/{request_id}/start-review", response_model=ReimbursementResponse)
async def start_review(
    request_id: int,
    current_user: Profile = Depends(deps.get_agent_or_staff),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ReimbursementService(db)
    _, policy = await _get_visible_request(service, request_id, current_user)
    if not can_handle_documents(policy, current_user):
        raise HTTPException(status_code=403, detail="Not authorized")
    try:
        return await service.start_review(request_id, current_user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.post("/{request_id}/approve", response_model=ReimbursementResponse)
async def approve_request(
    request_id: int,
    decision: ApproveRequest,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ReimbursementService(db)
    await _get_visible_request(service, request_id, current_user)
    try:
        return await service.approve(request_id, current_user, decision.amount_approved, decision.justification)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.post("/{request_id}/reject", response_model=ReimbursementResponse)
async def reject_request(
    request_id: int,
    decision: RejectRequest,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ReimbursementService(db)
    await _get_visible_request(service, request_id, current_user)
    try:
        return await service.reject(request_id, current_user, decision.reasons, decision.comments)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.post("/{request_id}/request-info", response_model=ReimbursementResponse)
async def request_more_info(
    request_id: int,
    decision: RejectRequest,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Send the request back to the client asking for corrections."""
    service = ReimbursementService(db)
    await _get_visible_request(service, request_id, current_user)
    try:
        return await service.request_more_info(request_id, current_user, decision.reasons, decision.comments)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.post("/{request_id}/resubmit", response_model=ReimbursementResponse)
async def resubmit_request(
    request_id: int,
    amount_requested: Optional[str] = Form(None),
    document_names: Optional[List[str]] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    delete_document_ids: Optional[List[int]] = Form(None),
    current_user: Profile = Depends(deps.get_client_user),
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage),
) -> Any:
    service = ReimbursementService(db, storage)
    await _get_visible_request(service, request_id, current_user)
    uploads = await _read_uploads(document_names, files)
    try:
        return await service.resubmit(
            request_id, current_user, amount_requested, uploads, delete_document_ids or []
        )
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.delete("/documents/{document_id}", status_code=204)
async def delete_document(
    document_id: int,
    current_user: Profile = Depends(deps.get_agent_or_staff),
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage),
) -> None:
    service = ReimbursementService(db, storage)
    document = await service.get_document(document_id)
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")
    _, policy = await _get_visible_request(service, document.reimbursement_request_id, current_user)
    if not can_handle_documents(policy, current_user):
        raise HTTPException(status_code=403, detail="Not authorized")
    await service.delete_document(document_id)
