"""Pytest configuration and shared fixtures."""
from datetime import date, timedelta
from typing import Dict

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import portal.models  # noqa: F401
from main import app
from portal.core.security import create_access_token
from portal.db.base import Base
from portal.db.session import get_db
from portal.models.policy import Policy, PolicyStatus
from portal.models.product import InsuranceProduct, ProductType, RequiredDocument
from portal.models.profile import Profile, ProfileRole
from portal.services.profile_service import ProfileService
from portal.services.reimbursement_service import DocumentUpload
from portal.services.storage_service import LocalStorageService, get_storage

PASSWORD = "password123"


def auth_headers(profile: Profile) -> Dict[str, str]:
    token = create_access_token(profile.id, profile.role.value)
    return {"Authorization": f"Bearer {token}"}


def invoice_uploads():
    """The two required documents of the health product."""
    return [
        DocumentUpload("Medical invoice", "invoice.pdf", b"%PDF-1.4 invoice", "application/pdf"),
        DocumentUpload("Medical report", "report.pdf", b"%PDF-1.4 report", "application/pdf"),
    ]


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage(tmp_path) -> LocalStorageService:
    return LocalStorageService(str(tmp_path / "storage"))


@pytest.fixture
async def client(session_factory, storage):
    """httpx client over the ASGI app, wired to the test database and storage."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides = {}


async def make_profile(db, email: str, role: ProfileRole, identification_number: str = None) -> Profile:
    return await ProfileService(db).create_profile(
        {
            "email": email,
            "password": PASSWORD,
            "first_name": email.split("@")[0].capitalize(),
            "first_surname": "Tester",
            "identification_number": identification_number,
        },
        role,
    )


@pytest.fixture
async def admin(db) -> Profile:
    return await make_profile(db, "admin@example.com", ProfileRole.ADMIN, "V-100")


@pytest.fixture
async def agent(db) -> Profile:
    return await make_profile(db, "agent@example.com", ProfileRole.AGENT, "V-200")


@pytest.fixture
async def client_profile(db) -> Profile:
    return await make_profile(db, "john@example.com", ProfileRole.CLIENT, "V-301")


@pytest.fixture
async def other_client(db) -> Profile:
    return await make_profile(db, "sarah@example.com", ProfileRole.CLIENT, "E-302")


@pytest.fixture
async def product(db) -> InsuranceProduct:
    product = InsuranceProduct(
        name="Health Plus",
        type=ProductType.HEALTH,
        default_term_months=12,
        coverage_details={"max_annual": 50000},
        base_premium=120.0,
    )
    db.add(product)
    await db.commit()
    await db.refresh(product)
    db.add_all(
        [
            RequiredDocument(product_id=product.id, document_name="Medical report", sort_order=2),
            RequiredDocument(product_id=product.id, document_name="Medical invoice", sort_order=1),
            RequiredDocument(product_id=product.id, document_name="Prescription", is_required=False, sort_order=3),
        ]
    )
    await db.commit()
    return product


async def make_policy(db, client: Profile, product: InsuranceProduct, agent: Profile = None,
                      status: PolicyStatus = PolicyStatus.ACTIVE, number: str = "POL-000001",
                      end_date: date = None, premium: float = 120.0) -> Policy:
    today = date.today()
    policy = Policy(
        policy_number=number,
        client_id=client.id,
        agent_id=agent.id if agent else None,
        product_id=product.id,
        start_date=today - timedelta(days=30),
        end_date=end_date or today + timedelta(days=335),
        status=status,
        premium_amount=premium,
    )
    db.add(policy)
    await db.commit()
    await db.refresh(policy)
    return policy


@pytest.fixture
async def active_policy(db, client_profile, agent, product) -> Policy:
    return await make_policy(db, client_profile, product, agent)
