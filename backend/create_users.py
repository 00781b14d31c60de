"""Quick script to create the staff accounts needed to log in the first time."""
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from portal.db.init_db import init_models
from portal.db.session import SessionLocal
from portal.models.profile import ProfileRole
from portal.services.profile_service import ProfileService

STAFF = [
    {
        "email": os.getenv("SUPERADMIN_EMAIL", "superadmin@example.com"),
        "password": os.getenv("SUPERADMIN_PASSWORD", "password123"),
        "first_name": "Super",
        "first_surname": "Administrator",
        "role": ProfileRole.SUPERADMINISTRATOR,
    },
    {
        "email": os.getenv("ADMIN_EMAIL", "admin@example.com"),
        "password": os.getenv("ADMIN_PASSWORD", "password123"),
        "first_name": "Portal",
        "first_surname": "Admin",
        "role": ProfileRole.ADMIN,
    },
]

async def create_users():
    await init_models()
    async with SessionLocal() as session:
        service = ProfileService(session)
        for data in STAFF:
            data = dict(data)
            role = data.pop("role")
            if await service.get_by_email(data["email"]):
                print(f"[=] {data['email']} already exists")
                continue
            await service.create_profile(data, role)
            print(f"[OK] Created {role.value}: {data['email']}")

if __name__ == "__main__":
    asyncio.run(create_users())
