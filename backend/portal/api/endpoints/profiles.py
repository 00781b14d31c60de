from typing import Any, List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from portal.api import deps
from portal.db.session import get_db
from portal.models.profile import Profile, ProfileRole
from portal.schemas.profile import (
    ClientCreate,
    ProfileCreate,
    ProfileResponse,
    ProfileSelfUpdate,
    ProfileUpdate,
    UniquenessCheckRequest,
    UniquenessCheckResponse,
)
from portal.services.profile_service import ProfileService

router = APIRouter()

def _check_can_manage(target: Profile, current_user: Profile) -> None:
    if target.role == ProfileRole.SUPERADMINISTRATOR and current_user.role != ProfileRole.SUPERADMINISTRATOR:
        raise HTTPException(status_code=403, detail="Only a superadministrator can manage superadministrators")

@router.get("/", response_model=List[ProfileResponse])
async def read_profiles(
    role: Optional[ProfileRole] = None,
    search: Optional[str] = None,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ProfileService(db)
    return await service.list_profiles(role=role, search=search)

@router.post("/", response_model=ProfileResponse, status_code=201)
async def create_profile(
    profile_in: ProfileCreate,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    if profile_in.role == ProfileRole.SUPERADMINISTRATOR and current_user.role != ProfileRole.SUPERADMINISTRATOR:
        raise HTTPException(status_code=403, detail="Only a superadministrator can create superadministrators")
    service = ProfileService(db)
    try:
        return await service.create_profile(profile_in.model_dump(), profile_in.role)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.post("/validate-unique", response_model=UniquenessCheckResponse)
async def validate_unique(
    check: UniquenessCheckRequest,
    exclude_id: Optional[int] = None,
    current_user: Profile = Depends(deps.get_agent_or_staff),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Report which of email / identification number are already taken."""
    service = ProfileService(db)
    duplicated = await service.validate_unique(
        email=check.email,
        identification_number=check.identification_number,
        exclude_id=exclude_id,
    )
    return UniquenessCheckResponse(duplicated=duplicated)

@router.put("/me", response_model=ProfileResponse)
async def update_me(
    profile_in: ProfileSelfUpdate,
    current_user: Profile = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ProfileService(db)
    try:
        return await service.update_profile(current_user.id, profile_in.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.get("/clients", response_model=List[ProfileResponse])
async def read_my_clients(
    current_user: Profile = Depends(deps.require_roles(ProfileRole.AGENT)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Clients holding a policy assigned to the calling agent."""
    service = ProfileService(db)
    return await service.list_agent_clients(current_user.id)

@router.post("/clients", response_model=ProfileResponse, status_code=201)
async def create_client(
    client_in: ClientCreate,
    current_user: Profile = Depends(deps.get_agent_or_staff),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ProfileService(db)
    try:
        return await service.create_profile(client_in.model_dump(), ProfileRole.CLIENT)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.get("/{profile_id}", response_model=ProfileResponse)
async def read_profile(
    profile_id: int,
    current_user: Profile = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    if current_user.id != profile_id and not current_user.is_staff:
        raise HTTPException(status_code=403, detail="Not authorized to view this profile")
    service = ProfileService(db)
    profile = await service.get_profile(profile_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile

@router.put("/{profile_id}", response_model=ProfileResponse)
async def update_profile(
    profile_id: int,
    profile_in: ProfileUpdate,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    if profile_in.role == ProfileRole.SUPERADMINISTRATOR and current_user.role != ProfileRole.SUPERADMINISTRATOR:
        raise HTTPException(status_code=403, detail="Only a superadministrator can grant that role")
    service = ProfileService(db)
    target = await service.get_profile(profile_id)
    if not target:
        raise HTTPException(status_code=404, detail="Profile not found")
    _check_can_manage(target, current_user)
    try:
        return await service.update_profile(profile_id, profile_in.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.post("/{profile_id}/deactivate", response_model=ProfileResponse)
async def deactivate_profile(
    profile_id: int,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    if profile_id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account.")
    service = ProfileService(db)
    target = await service.get_profile(profile_id)
    if not target:
        raise HTTPException(status_code=404, detail="Profile not found")
    _check_can_manage(target, current_user)
    return await service.deactivate_profile(profile_id)
