from datetime import date
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from portal.api import deps
from portal.db.session import get_db
from portal.models.policy import Policy, PolicyStatus, SIGNABLE_STATUSES
from portal.models.profile import Profile, ProfileRole
from portal.schemas.policy import (
    PolicyApplication,
    PolicyCreate,
    PolicyResponse,
    PolicyReviewRequest,
    PolicyReviewResponse,
    PolicyUpdate,
    SignatureLinkResponse,
)
from portal.services.policy_service import PolicyService, can_view_policy
from portal.services.profile_service import ProfileService
from portal.services.storage_service import StorageService, get_storage

router = APIRouter()


def _can_manage(policy: Policy, user: Profile) -> bool:
    return user.is_staff or (user.role == ProfileRole.AGENT and policy.agent_id == user.id)


async def _get_visible_policy(service: PolicyService, policy_id: int, user: Profile) -> Policy:
    policy = await service.get_policy(policy_id)
    if not policy:
        raise HTTPException(status_code=404, detail="Policy not found")
    if not can_view_policy(policy, user):
        raise HTTPException(status_code=403, detail="Not authorized to view this policy")
    return policy

@router.get("/", response_model=List[PolicyResponse])
async def read_policies(
    status: Optional[PolicyStatus] = None,
    current_user: Profile = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = PolicyService(db)
    return await service.list_policies(current_user, status=status)

@router.post("/", response_model=PolicyResponse, status_code=201)
async def create_policy(
    policy_in: PolicyCreate,
    current_user: Profile = Depends(deps.get_agent_or_staff),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = PolicyService(db)
    try:
        return await service.create_policy(policy_in.model_dump(), current_user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.post("/apply", response_model=PolicyResponse, status_code=201)
async def apply_for_policy(
    application: PolicyApplication,
    current_user: Profile = Depends(deps.get_client_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Client self-service application, reviewed later by an agent."""
    service = PolicyService(db)
    try:
        return await service.apply_for_policy(application.model_dump(), current_user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.post("/expire", response_model=List[PolicyResponse])
async def expire_policies(
    today: Optional[date] = None,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = PolicyService(db)
    return await service.expire_policies(today)

@router.get("/{policy_id}", response_model=PolicyResponse)
async def read_policy(
    policy_id: int,
    current_user: Profile = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = PolicyService(db)
    return await _get_visible_policy(service, policy_id, current_user)

@router.put("/{policy_id}", response_model=PolicyResponse)
async def update_policy(
    policy_id: int,
    policy_in: PolicyUpdate,
    current_user: Profile = Depends(deps.get_agent_or_staff),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = PolicyService(db)
    policy = await _get_visible_policy(service, policy_id, current_user)
    if not _can_manage(policy, current_user):
        raise HTTPException(status_code=403, detail="Not authorized")
    try:
        return await service.update_policy(policy_id, policy_in.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.delete("/{policy_id}", status_code=204)
async def delete_policy(
    policy_id: int,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage),
) -> None:
    service = PolicyService(db, storage)
    try:
        await service.delete_policy(policy_id)
    except ValueError as e:
        status_code = 404 if str(e) == "Policy not found" else 400
        raise HTTPException(status_code=status_code, detail=str(e))

@router.post("/{policy_id}/review", response_model=PolicyReviewResponse)
async def review_policy(
    policy_id: int,
    review: PolicyReviewRequest,
    current_user: Profile = Depends(deps.get_agent_or_staff),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Approve (signature link issued) or reject a pending application."""
    service = PolicyService(db)
    policy = await _get_visible_policy(service, policy_id, current_user)
    if not _can_manage(policy, current_user):
        raise HTTPException(status_code=403, detail="Not authorized")
    try:
        policy, link = await service.review_application(policy_id, review.approve)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PolicyReviewResponse(policy=PolicyResponse.model_validate(policy), signature_link=link)

@router.post("/{policy_id}/signature-link", response_model=SignatureLinkResponse)
async def create_signature_link(
    policy_id: int,
    current_user: Profile = Depends(deps.get_agent_or_staff),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Generate a fresh signature magic link for the policy's client."""
    service = PolicyService(db)
    policy = await _get_visible_policy(service, policy_id, current_user)
    if not _can_manage(policy, current_user):
        raise HTTPException(status_code=403, detail="Not authorized")
    if policy.status not in SIGNABLE_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"The policy is not pending or awaiting signature. Current status: {policy.status.value}.",
        )
    try:
        link = await service.create_signature_link(policy)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    client = await ProfileService(db).get_profile(policy.client_id)
    return SignatureLinkResponse(policy_id=policy.id, email=client.email, link=link)

@router.post("/{policy_id}/sign", response_model=PolicyResponse)
async def sign_policy(
    policy_id: int,
    signature: UploadFile = File(...),
    current_user: Profile = Depends(deps.get_client_user),
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage),
) -> Any:
    service = PolicyService(db, storage)
    content = await signature.read()
    try:
        return await service.sign_policy(
            policy_id, current_user, content, signature.content_type, signature.filename
        )
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        status_code = 404 if str(e) == "Policy not found" else 400
        raise HTTPException(status_code=status_code, detail=str(e))

@router.delete("/{policy_id}/signature", response_model=PolicyResponse)
async def revoke_signature(
    policy_id: int,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage),
) -> Any:
    service = PolicyService(db, storage)
    try:
        return await service.revoke_signature(policy_id)
    except ValueError as e:
        status_code = 404 if str(e) == "Policy not found" else 400
        raise HTTPException(status_code=status_code, detail=str(e))
