from typing import Optional
import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from portal.core.logging import get_logger
from portal.core.security import decode_token
from portal.db.session import get_db
from portal.models.profile import Profile, ProfileRole, ProfileStatus, STAFF_ROLES
from portal.services.profile_service import ProfileService

LOGGER = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Bearer"})
    try:
        payload = decode_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        LOGGER.warning(f"Rejected token: {e}")
        raise HTTPException(status_code=401, detail="Invalid or expired token", headers={"WWW-Authenticate": "Bearer"})

    profile = await ProfileService(db).get_profile(int(payload["sub"]))
    if not profile:
        raise HTTPException(status_code=401, detail="User not found")
    if profile.status != ProfileStatus.ACTIVE:
        raise HTTPException(status_code=403, detail="This account is inactive.")
    return profile


def require_roles(*roles: ProfileRole):
    """Dependency factory: the current user must hold one of ``roles``."""
    async def checker(current_user: Profile = Depends(get_current_user)) -> Profile:
        if current_user.role not in roles:
            raise HTTPException(status_code=403, detail="Not authorized")
        return current_user
    return checker


get_staff_user = require_roles(*STAFF_ROLES)
get_agent_or_staff = require_roles(ProfileRole.AGENT, *STAFF_ROLES)
get_client_user = require_roles(ProfileRole.CLIENT)
