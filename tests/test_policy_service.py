"""Tests for PolicyService: issuance, applications, signature and expiry."""
from datetime import date, timedelta
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import pytest

from portal.core.security import decode_token, MAGIC_LINK_PURPOSE
from portal.models.policy import PolicyStatus
from portal.models.product import PaymentFrequency
from portal.models.reimbursement import ReimbursementRequest
from portal.services.policy_service import PolicyService, add_months
from portal.services.storage_service import SIGNATURE_BUCKET

from conftest import make_policy

PNG = b"\x89PNG\r\n\x1a\n signature"


@pytest.fixture
def service(db, storage):
    return PolicyService(db, storage)


def policy_data(client, product, **overrides):
    data = {
        "client_id": client.id,
        "product_id": product.id,
        "start_date": date(2024, 1, 1),
        "end_date": date(2025, 1, 1),
        "premium_amount": 99.0,
    }
    data.update(overrides)
    return data


def test_add_months_clamps_day():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2024, 11, 15), 14) == date(2026, 1, 15)


class TestCreate:
    async def test_agent_becomes_assigned_agent(self, service, agent, client_profile, product):
        policy = await service.create_policy(policy_data(client_profile, product), agent)
        assert policy.agent_id == agent.id
        assert policy.status == PolicyStatus.PENDING
        assert policy.policy_number.startswith("POL-") and len(policy.policy_number) == 10

    async def test_end_date_after_start(self, service, admin, client_profile, product):
        with pytest.raises(ValueError, match="end date must be after"):
            await service.create_policy(
                policy_data(client_profile, product, end_date=date(2023, 12, 31)), admin
            )

    async def test_client_must_be_client(self, service, admin, agent, product):
        with pytest.raises(ValueError, match="The selected client does not exist."):
            await service.create_policy(policy_data(agent, product), admin)

    async def test_inactive_product(self, db, service, admin, client_profile, product):
        product.is_active = False
        await db.commit()
        with pytest.raises(ValueError, match="is not active"):
            await service.create_policy(policy_data(client_profile, product), admin)

    async def test_duplicate_number(self, service, admin, client_profile, product, active_policy):
        with pytest.raises(ValueError, match="already in use"):
            await service.create_policy(
                policy_data(client_profile, product, policy_number=active_policy.policy_number), admin
            )


class TestApplication:
    async def test_apply_and_approve(self, db, service, client_profile, agent, product):
        product.fixed_payment_frequency = PaymentFrequency.QUARTERLY
        await db.commit()
        policy = await service.apply_for_policy(
            {"product_id": product.id, "agent_id": agent.id, "start_date": date(2024, 3, 1)}, client_profile
        )
        assert policy.status == PolicyStatus.AWAITING_REVIEW
        assert policy.premium_amount == 120.0
        assert policy.end_date == date(2025, 3, 1)
        assert policy.payment_frequency == PaymentFrequency.QUARTERLY

        reviewed, link = await service.review_application(policy.id, approve=True)
        assert reviewed.status == PolicyStatus.AWAITING_SIGNATURE
        assert f"/client/dashboard/policies/{policy.id}/sign?token=" in link
        token = parse_qs(urlparse(link).query)["token"][0]
        payload = decode_token(token, purpose=MAGIC_LINK_PURPOSE)
        assert payload["policy_id"] == policy.id
        assert payload["email"] == client_profile.email

    async def test_reject_application(self, service, client_profile, product):
        policy = await service.apply_for_policy({"product_id": product.id}, client_profile)
        reviewed, link = await service.review_application(policy.id, approve=False)
        assert reviewed.status == PolicyStatus.REJECTED
        assert link is None

    async def test_active_policy_cannot_be_reviewed(self, service, active_policy):
        with pytest.raises(ValueError, match="Only pending applications"):
            await service.review_application(active_policy.id, approve=True)


class TestSignature:
    async def test_sign_activates_policy(self, db, service, storage, client_profile, product):
        policy = await make_policy(db, client_profile, product, status=PolicyStatus.AWAITING_SIGNATURE)
        signed = await service.sign_policy(policy.id, client_profile, PNG, "image/png")
        assert signed.status == PolicyStatus.ACTIVE
        assert signed.signed_at is not None
        assert signed.signature_url.startswith(f"{policy.id}-")
        assert signed.signature_url.endswith("-signature.png")
        assert storage.local_path(SIGNATURE_BUCKET, signed.signature_url).read_bytes() == PNG

    async def test_only_owner_signs(self, db, service, other_client, client_profile, product):
        policy = await make_policy(db, client_profile, product, status=PolicyStatus.PENDING)
        with pytest.raises(PermissionError):
            await service.sign_policy(policy.id, other_client, PNG, "image/png")

    async def test_already_signed(self, db, service, client_profile, product):
        policy = await make_policy(db, client_profile, product, status=PolicyStatus.PENDING)
        await service.sign_policy(policy.id, client_profile, PNG, "image/png")
        with pytest.raises(ValueError, match="already signed"):
            await service.sign_policy(policy.id, client_profile, PNG, "image/png")

    async def test_not_signable_status(self, db, service, client_profile, product):
        policy = await make_policy(db, client_profile, product, status=PolicyStatus.CANCELLED)
        with pytest.raises(ValueError, match="not pending or awaiting signature"):
            await service.sign_policy(policy.id, client_profile, PNG, "image/png")

    async def test_extension_from_filename(self, db, service, client_profile, product):
        policy = await make_policy(db, client_profile, product, status=PolicyStatus.PENDING)
        signed = await service.sign_policy(policy.id, client_profile, PNG, None, "firma.JPG")
        assert signed.signature_url.endswith("-signature.jpg")

    async def test_failed_update_removes_file(self, db, service, storage, client_profile, product):
        policy = await make_policy(db, client_profile, product, status=PolicyStatus.PENDING)
        db.commit = AsyncMock(side_effect=RuntimeError("database is locked"))
        storage.remove = AsyncMock()
        with pytest.raises(RuntimeError):
            await service.sign_policy(policy.id, client_profile, PNG, "image/png")
        bucket, paths = storage.remove.await_args.args
        assert bucket == SIGNATURE_BUCKET
        assert paths[0].endswith("-signature.png")

    async def test_revoke(self, db, service, storage, client_profile, product):
        policy = await make_policy(db, client_profile, product, status=PolicyStatus.PENDING)
        signed = await service.sign_policy(policy.id, client_profile, PNG, "image/png")
        path = signed.signature_url
        revoked = await service.revoke_signature(policy.id)
        assert revoked.status == PolicyStatus.AWAITING_SIGNATURE
        assert revoked.signature_url is None
        assert not storage.local_path(SIGNATURE_BUCKET, path).exists()


class TestLifecycle:
    async def test_expire(self, db, service, client_profile, product):
        policy = await make_policy(db, client_profile, product)
        expired = await service.expire_policies(policy.end_date + timedelta(days=1))
        assert [p.id for p in expired] == [policy.id]
        assert expired[0].status == PolicyStatus.EXPIRED
        assert await service.expire_policies(policy.end_date + timedelta(days=2)) == []

    async def test_delete_refused_with_reimbursements(self, db, service, active_policy, client_profile):
        db.add(ReimbursementRequest(policy_id=active_policy.id, client_id=client_profile.id, amount_requested=5))
        await db.commit()
        with pytest.raises(ValueError, match="has reimbursement requests"):
            await service.delete_policy(active_policy.id)

    async def test_list_scoped(self, db, service, client_profile, other_client, agent, admin, product, active_policy):
        other = await make_policy(db, other_client, product, number="POL-000002")
        assert [p.id for p in await service.list_policies(client_profile)] == [active_policy.id]
        assert [p.id for p in await service.list_policies(agent)] == [active_policy.id]
        assert {p.id for p in await service.list_policies(admin)} == {active_policy.id, other.id}
