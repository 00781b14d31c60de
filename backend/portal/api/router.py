from fastapi import APIRouter

router = APIRouter()

from portal.api.endpoints import auth, profiles, products, policies, reimbursements, reports, files

router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(profiles.router, prefix="/profiles", tags=["profiles"])
router.include_router(products.router, prefix="/products", tags=["products"])
router.include_router(policies.router, prefix="/policies", tags=["policies"])
router.include_router(reimbursements.router, prefix="/reimbursements", tags=["reimbursements"])
router.include_router(reports.router, prefix="/reports", tags=["reports"])
router.include_router(files.router, prefix="/files", tags=["files"])
