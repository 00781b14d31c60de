"""
Seed the database with products, profiles, policies and reimbursement
requests covering each workflow status.
Performs a full clean (DROP ALL) before seeding.
"""
import asyncio
import sys
import os

# Ensure backend directory is in path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from datetime import date, datetime, timedelta, timezone

from portal.db.init_db import init_models
from portal.db.session import SessionLocal
from portal.models.policy import Policy, PolicyStatus
from portal.models.product import InsuranceProduct, ProductType, PaymentFrequency, RequiredDocument
from portal.models.profile import ProfileRole
from portal.services.profile_service import ProfileService
from portal.services.reimbursement_service import DocumentUpload, ReimbursementService
from portal.services.storage_service import get_storage

PASSWORD = "password123"

async def seed_database():
    print("[*] Resetting database...")
    await init_models(drop_existing=True)
    print("[*] Tables recreated.")

    async with SessionLocal() as session:
        print("[*] Seeding database with test data...")
        profiles = ProfileService(session)

        admin = await profiles.create_profile(
            {"email": "admin@example.com", "password": PASSWORD, "first_name": "Ana", "first_surname": "Admin",
             "identification_number": "V-1000000"},
            ProfileRole.ADMIN,
        )
        agent = await profiles.create_profile(
            {"email": "emma.agent@example.com", "password": PASSWORD, "first_name": "Emma", "first_surname": "Rivas",
             "identification_number": "V-2000000"},
            ProfileRole.AGENT,
        )
        clients = [
            await profiles.create_profile(
                {"email": "john@example.com", "password": PASSWORD, "first_name": "John", "first_surname": "Perez",
                 "identification_number": "V-3000001", "phone_number": "+58 412 0000001"},
                ProfileRole.CLIENT,
            ),
            await profiles.create_profile(
                {"email": "sarah@example.com", "password": PASSWORD, "first_name": "Sarah", "first_surname": "Lopez",
                 "identification_number": "V-3000002", "phone_number": "+58 412 0000002"},
                ProfileRole.CLIENT,
            ),
        ]
        print(f"[OK] Created {2 + len(clients)} profiles")

        health = InsuranceProduct(
            name="Health Plus",
            type=ProductType.HEALTH,
            description="Hospitalization, surgery and outpatient care",
            default_term_months=12,
            coverage_details={"max_annual": 50000, "deductible": 500},
            base_premium=120.0,
            fixed_payment_frequency=PaymentFrequency.MONTHLY,
        )
        life = InsuranceProduct(
            name="Life Essential",
            type=ProductType.LIFE,
            description="Term life cover with optional AD&D",
            default_term_months=24,
            coverage_details={"coverage_amount": 100000},
            base_premium=45.0,
        )
        session.add_all([health, life])
        await session.commit()
        await session.refresh(health)
        await session.refresh(life)

        session.add_all(
            [
                RequiredDocument(product_id=health.id, document_name="Medical invoice", sort_order=1),
                RequiredDocument(product_id=health.id, document_name="Medical report", sort_order=2),
                RequiredDocument(
                    product_id=health.id, document_name="Prescription", is_required=False, sort_order=3
                ),
            ]
        )
        await session.commit()
        print("[OK] Created 2 products with their required documents")

        today = date.today()
        policies = [
            Policy(policy_number="POL-000001", client_id=clients[0].id, agent_id=agent.id, product_id=health.id,
                   start_date=today - timedelta(days=200), end_date=today + timedelta(days=165),
                   status=PolicyStatus.ACTIVE, premium_amount=120.0, payment_frequency=PaymentFrequency.MONTHLY,
                   signed_at=datetime.now(timezone.utc)),
            Policy(policy_number="POL-000002", client_id=clients[1].id, agent_id=agent.id, product_id=health.id,
                   start_date=today - timedelta(days=340), end_date=today + timedelta(days=25),
                   status=PolicyStatus.ACTIVE, premium_amount=120.0, payment_frequency=PaymentFrequency.MONTHLY,
                   signed_at=datetime.now(timezone.utc)),
            Policy(policy_number="POL-000003", client_id=clients[1].id, agent_id=agent.id, product_id=life.id,
                   start_date=today, end_date=today + timedelta(days=730),
                   status=PolicyStatus.AWAITING_SIGNATURE, premium_amount=45.0,
                   payment_frequency=PaymentFrequency.ANNUALLY, coverage_amount=100000),
            Policy(policy_number="POL-000004", client_id=clients[0].id, product_id=life.id,
                   start_date=today, end_date=today + timedelta(days=730),
                   status=PolicyStatus.AWAITING_REVIEW, premium_amount=45.0),
        ]
        session.add_all(policies)
        await session.commit()
        for policy in policies:
            await session.refresh(policy)
        print(f"[OK] Created {len(policies)} policies")

        reimbursements = ReimbursementService(session, get_storage())
        uploads = [
            DocumentUpload("Medical invoice", "invoice.pdf", b"%PDF-1.4 invoice", "application/pdf"),
            DocumentUpload("Medical report", "report.pdf", b"%PDF-1.4 report", "application/pdf"),
        ]
        pending = await reimbursements.submit_request(clients[0], policies[0].id, 350.0, uploads, today - timedelta(days=3))
        in_review = await reimbursements.submit_request(clients[0], policies[0].id, 1200.0, uploads, today - timedelta(days=10))
        await reimbursements.start_review(in_review.id, agent)
        approved = await reimbursements.submit_request(clients[1], policies[1].id, 80.0, uploads, today - timedelta(days=20))
        await reimbursements.approve(approved.id, admin, 75.0, "Consultation fee capped by the plan.")
        rejected = await reimbursements.submit_request(clients[1], policies[1].id, 5000.0, uploads, today - timedelta(days=15))
        await reimbursements.reject(rejected.id, admin, ["out_of_coverage"])
        more_info = await reimbursements.submit_request(clients[0], policies[0].id, 640.0, uploads, today - timedelta(days=6))
        await reimbursements.request_more_info(
            more_info.id, admin, ["illegible_document"], {"illegible_document": "The invoice scan is blurred."}
        )
        print(f"[OK] Created 5 reimbursement requests (pending #{pending.id} and one per review outcome)")

    print("\n" + "="*60)
    print("TEST CREDENTIALS (password: %s)" % PASSWORD)
    print("="*60)
    print("  - admin@example.com        (admin)")
    print("  - emma.agent@example.com   (agent)")
    print("  - john@example.com         (client)")
    print("  - sarah@example.com        (client)")
    print("\n[SUCCESS] Database cleaned and seeded successfully!")

if __name__ == "__main__":
    if os.name == 'nt':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(seed_database())
