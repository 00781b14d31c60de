import asyncio
from portal.db.session import engine
from portal.db.base import Base
from portal.core.logging import get_logger
# Import all models to register with Base
import portal.models  # noqa: F401

LOGGER = get_logger(__name__)

async def init_models(drop_existing: bool = False):
    async with engine.begin() as conn:
        if drop_existing:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    LOGGER.info("Tables created.")

if __name__ == "__main__":
    asyncio.run(init_models())
