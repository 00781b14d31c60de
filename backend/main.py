from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from portal.core.config import settings
from portal.core.exceptions import StorageError
from portal.core.logging import get_logger
from portal.api.router import router as api_router
from portal.db.init_db import init_models

LOGGER = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    LOGGER.info("Starting Insurance Policy Portal API")
    await init_models()
    yield
    LOGGER.info("Shutting down Insurance Policy Portal API")


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    description="Policies, e-signatures and reimbursement requests for clients, agents and administrators",
    lifespan=lifespan,
)

# Set all CORS enabled origins
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    LOGGER.error(f"Storage error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/")
async def root():
    return {"message": "Insurance Policy Portal API", "status": "running"}
