from typing import Any
import jwt
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from portal.api import deps
from portal.core.logging import get_logger
from portal.core.security import create_access_token, decode_token, MAGIC_LINK_PURPOSE
from portal.db.session import get_db
from portal.models.profile import Profile, ProfileRole, ProfileStatus
from portal.schemas.auth import LoginRequest, Token, MagicLinkVerifyRequest, MagicLinkToken
from portal.schemas.profile import ProfileRegister, ProfileResponse
from portal.services.profile_service import ProfileService

LOGGER = get_logger(__name__)

router = APIRouter()

@router.post("/login", response_model=Token)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ProfileService(db)
    try:
        profile = await service.authenticate(credentials.email, credentials.password)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    if not profile:
        raise HTTPException(status_code=401, detail="Incorrect email or password")
    LOGGER.info("Login", extra={"profile_id": profile.id, "role": profile.role.value})
    return Token(access_token=create_access_token(profile.id, profile.role.value))

@router.post("/register", response_model=ProfileResponse, status_code=201)
async def register(
    profile_in: ProfileRegister,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Self-registration always creates a client profile."""
    service = ProfileService(db)
    try:
        return await service.create_profile(profile_in.model_dump(), ProfileRole.CLIENT)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.get("/me", response_model=ProfileResponse)
async def read_me(current_user: Profile = Depends(deps.get_current_user)) -> Any:
    return current_user

@router.post("/magic-link/verify", response_model=MagicLinkToken)
async def verify_magic_link(
    request: MagicLinkVerifyRequest,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Exchange a signature magic link for a regular session token."""
    try:
        payload = decode_token(request.token, purpose=MAGIC_LINK_PURPOSE)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="The link is invalid or has expired.")

    service = ProfileService(db)
    profile = await service.get_profile(int(payload["sub"]))
    if not profile or profile.email != payload.get("email"):
        raise HTTPException(status_code=401, detail="The link is invalid or has expired.")
    if profile.status != ProfileStatus.ACTIVE:
        raise HTTPException(status_code=403, detail="This account is inactive.")
    try:
        await service.consume_magic_link(payload.get("jti"), profile.id)
    except ValueError as e:
        raise HTTPException(status_code=401, detail=str(e))

    return MagicLinkToken(
        access_token=create_access_token(profile.id, profile.role.value),
        policy_id=payload.get("policy_id"),
    )
