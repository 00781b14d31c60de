"""
Policy issuance: creation by staff or agents, client applications,
agent review, e-signature capture and expiry.
"""
import calendar
import random
from datetime import date, datetime, timezone
from pathlib import PurePath
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from portal.core.config import settings
from portal.core.logging import get_logger
from portal.core.security import create_magic_link_token
from portal.models.policy import Policy, PolicyStatus, SIGNABLE_STATUSES, REVIEWABLE_STATUSES
from portal.models.product import InsuranceProduct
from portal.models.profile import Profile, ProfileRole, STAFF_ROLES
from portal.models.reimbursement import ReimbursementRequest
from portal.services.storage_service import StorageService, SIGNATURE_BUCKET

LOGGER = get_logger(__name__)

SIGNATURE_CONTENT_TYPES = {"image/png": "png", "image/jpeg": "jpg", "image/webp": "webp"}


def add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def can_view_policy(policy: Policy, profile: Profile) -> bool:
    if profile.role in STAFF_ROLES:
        return True
    if profile.role == ProfileRole.AGENT:
        return policy.agent_id == profile.id
    return policy.client_id == profile.id


class PolicyService:
    def __init__(self, db: AsyncSession, storage: StorageService = None):
        self.db = db
        self.storage = storage

    async def create_policy(self, policy_data: dict, creator: Profile) -> Policy:
        """Issue a policy for a client. Starts in ``pending`` until the client signs."""
        policy_data = dict(policy_data)
        if creator.role == ProfileRole.AGENT and not policy_data.get("agent_id"):
            policy_data["agent_id"] = creator.id

        await self._get_active_product(policy_data["product_id"])
        await self._check_profile_role(policy_data["client_id"], ProfileRole.CLIENT, "client")
        if policy_data.get("agent_id"):
            await self._check_profile_role(policy_data["agent_id"], ProfileRole.AGENT, "agent")
        if policy_data["end_date"] <= policy_data["start_date"]:
            raise ValueError("The end date must be after the start date.")

        if policy_data.get("policy_number"):
            if await self.get_by_number(policy_data["policy_number"]):
                raise ValueError(f"Policy number {policy_data['policy_number']} is already in use.")
        else:
            policy_data["policy_number"] = await self._generate_policy_number()

        policy = Policy(**policy_data, status=PolicyStatus.PENDING)
        self.db.add(policy)
        await self.db.commit()
        await self.db.refresh(policy)
        LOGGER.info("Policy created", extra={"policy_id": policy.id, "created_by": creator.id})
        return policy

    async def apply_for_policy(self, application: dict, client: Profile) -> Policy:
        """A client applies for a product; the application waits for agent review."""
        product = await self._get_active_product(application["product_id"])
        if application.get("agent_id"):
            await self._check_profile_role(application["agent_id"], ProfileRole.AGENT, "agent")

        start = application.pop("start_date", None) or date.today()
        term = product.default_term_months or 12
        policy = Policy(
            **application,
            policy_number=await self._generate_policy_number(),
            client_id=client.id,
            start_date=start,
            end_date=add_months(start, term),
            premium_amount=product.base_premium,
            status=PolicyStatus.AWAITING_REVIEW,
        )
        if product.fixed_payment_frequency:
            policy.payment_frequency = product.fixed_payment_frequency
        self.db.add(policy)
        await self.db.commit()
        await self.db.refresh(policy)
        LOGGER.info("Policy application received", extra={"policy_id": policy.id, "client_id": client.id})
        return policy

    async def review_application(self, policy_id: int, approve: bool) -> Tuple[Policy, Optional[str]]:
        """
        Approve (-> awaiting_signature, returns a signature link) or reject an application.
        """
        policy = await self.get_policy(policy_id)
        if not policy:
            raise ValueError("Policy not found")
        if policy.status not in REVIEWABLE_STATUSES:
            raise ValueError(f"Only pending applications can be reviewed. Current status: {policy.status.value}.")

        policy.status = PolicyStatus.AWAITING_SIGNATURE if approve else PolicyStatus.REJECTED
        await self.db.commit()
        await self.db.refresh(policy)
        LOGGER.info(
            "Policy application reviewed",
            extra={"policy_id": policy.id, "status": policy.status.value},
        )

        if not approve:
            return policy, None
        return policy, await self.create_signature_link(policy)

    async def create_signature_link(self, policy: Policy) -> str:
        """Build the magic link a client follows to sign the policy."""
        client = await self.db.get(Profile, policy.client_id)
        if not client:
            raise ValueError("The policy client no longer exists.")
        token = create_magic_link_token(client.id, client.email, policy_id=policy.id)
        link = f"{settings.FRONTEND_URL}/client/dashboard/policies/{policy.id}/sign?token={token}"
        # Delivery by email is handled outside this service
        LOGGER.info("Signature link generated", extra={"policy_id": policy.id, "email": client.email})
        return link

    async def sign_policy(
        self, policy_id: int, client: Profile, content: bytes, content_type: str, filename: str = None
    ) -> Policy:
        """Store the signature image and activate the policy."""
        policy = await self.get_policy(policy_id)
        if not policy:
            raise ValueError("Policy not found")
        if policy.client_id != client.id:
            raise PermissionError("Not authorized to sign this policy")
        if policy.status == PolicyStatus.ACTIVE and policy.signature_url:
            raise ValueError("This policy is already signed.")
        if policy.status not in SIGNABLE_STATUSES:
            raise ValueError(
                f"The policy is not pending or awaiting signature. Current status: {policy.status.value}."
            )
        if not content:
            raise ValueError("The signature file is empty.")

        ext = SIGNATURE_CONTENT_TYPES.get(content_type)
        if not ext and filename:
            ext = PurePath(filename).suffix.lstrip(".").lower().replace("jpeg", "jpg")
        if ext not in SIGNATURE_CONTENT_TYPES.values():
            raise ValueError("The signature must be an image (png, jpg or webp).")

        stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
        path = f"{policy.id}-{stamp}-signature.{ext}"
        await self.storage.upload(SIGNATURE_BUCKET, path, content, content_type)

        try:
            policy.signature_url = path
            policy.signed_at = datetime.now(timezone.utc)
            policy.status = PolicyStatus.ACTIVE
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            LOGGER.error("Policy update failed after signature upload", extra={"policy_id": policy_id})
            await self.storage.remove(SIGNATURE_BUCKET, [path])
            raise

        await self.db.refresh(policy)
        LOGGER.info("Policy signed", extra={"policy_id": policy.id, "client_id": client.id})
        return policy

    async def revoke_signature(self, policy_id: int) -> Policy:
        """Drop the stored signature and send the policy back to awaiting_signature."""
        policy = await self.get_policy(policy_id)
        if not policy:
            raise ValueError("Policy not found")
        if not policy.signature_url:
            raise ValueError("The policy has no signature.")

        await self.storage.remove(SIGNATURE_BUCKET, [policy.signature_url])
        policy.signature_url = None
        policy.signed_at = None
        policy.status = PolicyStatus.AWAITING_SIGNATURE
        await self.db.commit()
        await self.db.refresh(policy)
        LOGGER.info("Policy signature revoked", extra={"policy_id": policy.id})
        return policy

    async def update_policy(self, policy_id: int, update_data: dict) -> Policy:
        policy = await self.get_policy(policy_id)
        if not policy:
            raise ValueError("Policy not found")

        if update_data.get("policy_number") and update_data["policy_number"] != policy.policy_number:
            if await self.get_by_number(update_data["policy_number"]):
                raise ValueError(f"Policy number {update_data['policy_number']} is already in use.")
        if update_data.get("agent_id"):
            await self._check_profile_role(update_data["agent_id"], ProfileRole.AGENT, "agent")

        for key, value in update_data.items():
            if hasattr(policy, key) and value is not None:
                setattr(policy, key, value)
        if policy.end_date <= policy.start_date:
            raise ValueError("The end date must be after the start date.")

        await self.db.commit()
        await self.db.refresh(policy)
        return policy

    async def delete_policy(self, policy_id: int) -> None:
        policy = await self.get_policy(policy_id)
        if not policy:
            raise ValueError("Policy not found")
        result = await self.db.execute(
            select(func.count(ReimbursementRequest.id)).where(ReimbursementRequest.policy_id == policy_id)
        )
        if result.scalar_one() > 0:
            raise ValueError("The policy has reimbursement requests and cannot be deleted.")
        if policy.signature_url:
            await self.storage.remove(SIGNATURE_BUCKET, [policy.signature_url])
        await self.db.delete(policy)
        await self.db.commit()
        LOGGER.info("Policy deleted", extra={"policy_id": policy_id})

    async def expire_policies(self, today: date = None) -> List[Policy]:
        """Mark active policies whose end date has passed as expired."""
        today = today or date.today()
        result = await self.db.execute(
            select(Policy).where(Policy.status == PolicyStatus.ACTIVE, Policy.end_date < today)
        )
        expired = result.scalars().all()
        for policy in expired:
            policy.status = PolicyStatus.EXPIRED
        await self.db.commit()
        if expired:
            LOGGER.info("Policies expired", extra={"count": len(expired)})
        return expired

    async def get_policy(self, policy_id: int) -> Optional[Policy]:
        result = await self.db.execute(select(Policy).where(Policy.id == policy_id))
        return result.scalars().first()

    async def get_by_number(self, policy_number: str) -> Optional[Policy]:
        result = await self.db.execute(select(Policy).where(Policy.policy_number == policy_number))
        return result.scalars().first()

    async def get_by_signature(self, path: str) -> Optional[Policy]:
        result = await self.db.execute(select(Policy).where(Policy.signature_url == path))
        return result.scalars().first()

    async def list_policies(self, profile: Profile, status: PolicyStatus = None) -> List[Policy]:
        """Policies visible to the profile: all for staff, assigned for agents, own for clients."""
        query = select(Policy)
        if profile.role == ProfileRole.AGENT:
            query = query.where(Policy.agent_id == profile.id)
        elif profile.role not in STAFF_ROLES:
            query = query.where(Policy.client_id == profile.id)
        if status:
            query = query.where(Policy.status == status)
        result = await self.db.execute(query.order_by(Policy.created_at.desc(), Policy.id.desc()))
        return result.scalars().all()

    async def _get_active_product(self, product_id: int) -> InsuranceProduct:
        product = await self.db.get(InsuranceProduct, product_id)
        if not product:
            raise ValueError("Product not found")
        if not product.is_active:
            raise ValueError(f"The product {product.name} is not active.")
        return product

    async def _check_profile_role(self, profile_id: int, role: ProfileRole, label: str) -> Profile:
        profile = await self.db.get(Profile, profile_id)
        if not profile or profile.role != role:
            raise ValueError(f"The selected {label} does not exist.")
        return profile

    async def _generate_policy_number(self) -> str:
        while True:
            number = f"POL-{random.randint(0, 999999):06d}"
            if not await self.get_by_number(number):
                return number
