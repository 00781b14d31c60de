from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from portal.core.logging import get_logger
from portal.core.security import hash_password, verify_password
from portal.models.profile import Profile, ProfileRole, ProfileStatus
from portal.models.magic_link import UsedMagicLink
from portal.models.policy import Policy
from typing import Any, Dict, List, Optional

LOGGER = get_logger(__name__)


class ProfileService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_profile(self, profile_data: dict, role: ProfileRole = ProfileRole.CLIENT) -> Profile:
        """Create a profile after checking email and identification number are free."""
        profile_data = dict(profile_data)
        password = profile_data.pop("password")
        profile_data.pop("role", None)

        duplicated = await self.validate_unique(
            email=profile_data.get("email"),
            identification_number=profile_data.get("identification_number"),
        )
        if duplicated:
            fields = ", ".join(d["field"] for d in duplicated)
            raise ValueError(f"A profile already exists with the same {fields}.")

        if not profile_data.get("full_name"):
            profile_data["full_name"] = self.compose_full_name(profile_data)

        profile = Profile(
            **profile_data,
            password_hash=hash_password(password),
            role=role,
            status=ProfileStatus.ACTIVE,
        )
        self.db.add(profile)
        await self.db.commit()
        await self.db.refresh(profile)
        LOGGER.info("Profile created", extra={"profile_id": profile.id, "role": role.value})
        return profile

    async def authenticate(self, email: str, password: str) -> Optional[Profile]:
        """
        Return the profile matching the credentials, None if they are wrong.
        Inactive profiles raise PermissionError.
        """
        profile = await self.get_by_email(email)
        if not profile or not verify_password(password, profile.password_hash):
            LOGGER.warning("Failed login attempt", extra={"email": email})
            return None
        if profile.status != ProfileStatus.ACTIVE:
            raise PermissionError("This account is inactive.")
        return profile

    async def consume_magic_link(self, jti: str, profile_id: int) -> None:
        """Mark a magic-link token as used. A second use raises ValueError."""
        if not jti:
            raise ValueError("The link is invalid or has expired.")
        if await self.db.get(UsedMagicLink, jti):
            raise ValueError("This link has already been used.")
        self.db.add(UsedMagicLink(jti=jti, profile_id=profile_id))
        try:
            await self.db.commit()
        except IntegrityError:
            # Same link verified concurrently
            await self.db.rollback()
            raise ValueError("This link has already been used.")
        LOGGER.info("Magic link used", extra={"profile_id": profile_id})

    async def get_profile(self, profile_id: int) -> Optional[Profile]:
        result = await self.db.execute(select(Profile).where(Profile.id == profile_id))
        return result.scalars().first()

    async def get_by_email(self, email: str) -> Optional[Profile]:
        result = await self.db.execute(select(Profile).where(Profile.email == email))
        return result.scalars().first()

    async def list_profiles(self, role: ProfileRole = None, search: str = None) -> List[Profile]:
        """List profiles, optionally by role and by a substring of name, email or id number."""
        query = select(Profile)
        if role:
            query = query.where(Profile.role == role)
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(
                    Profile.full_name.ilike(pattern),
                    Profile.email.ilike(pattern),
                    Profile.identification_number.ilike(pattern),
                )
            )
        result = await self.db.execute(query.order_by(Profile.full_name, Profile.id))
        return result.scalars().all()

    async def list_agent_clients(self, agent_id: int) -> List[Profile]:
        """Clients holding at least one policy assigned to the agent."""
        client_ids = select(Policy.client_id).where(Policy.agent_id == agent_id)
        result = await self.db.execute(
            select(Profile).where(Profile.id.in_(client_ids)).order_by(Profile.full_name, Profile.id)
        )
        return result.scalars().all()

    async def update_profile(self, profile_id: int, update_data: dict) -> Profile:
        profile = await self.get_profile(profile_id)
        if not profile:
            raise ValueError("Profile not found")

        duplicated = await self.validate_unique(
            email=update_data.get("email"),
            identification_number=update_data.get("identification_number"),
            exclude_id=profile_id,
        )
        if duplicated:
            fields = ", ".join(d["field"] for d in duplicated)
            raise ValueError(f"A profile already exists with the same {fields}.")

        for key, value in update_data.items():
            if hasattr(profile, key) and value is not None:
                setattr(profile, key, value)

        name_fields = {"first_name", "middle_name", "first_surname", "second_surname"}
        if "full_name" not in update_data and name_fields & update_data.keys():
            profile.full_name = self.compose_full_name(
                {field: getattr(profile, field) for field in name_fields}
            )

        await self.db.commit()
        await self.db.refresh(profile)
        return profile

    async def deactivate_profile(self, profile_id: int) -> Profile:
        profile = await self.get_profile(profile_id)
        if not profile:
            raise ValueError("Profile not found")
        profile.status = ProfileStatus.INACTIVE
        await self.db.commit()
        await self.db.refresh(profile)
        LOGGER.info("Profile deactivated", extra={"profile_id": profile_id})
        return profile

    async def validate_unique(
        self, email: str = None, identification_number: str = None, exclude_id: int = None
    ) -> List[Dict[str, Any]]:
        """Return the fields whose value is already used by another profile."""
        duplicated = []
        checks = (
            ("email", Profile.email, email),
            ("identification_number", Profile.identification_number, identification_number),
        )
        for field, column, value in checks:
            if not value:
                continue
            query = select(Profile.id).where(column == value)
            if exclude_id is not None:
                query = query.where(Profile.id != exclude_id)
            result = await self.db.execute(query)
            if result.scalars().first() is not None:
                duplicated.append({"field": field, "value": value})
        return duplicated

    @staticmethod
    def compose_full_name(data: Dict[str, Any]) -> Optional[str]:
        parts = [
            data.get("first_name"),
            data.get("middle_name"),
            data.get("first_surname"),
            data.get("second_surname"),
        ]
        name = " ".join(p.strip() for p in parts if p and p.strip())
        return name or None
