from typing import Any
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
from portal.api import deps
from portal.core.exceptions import StorageError
from portal.db.session import get_db
from portal.models.profile import Profile
from portal.services.policy_service import PolicyService, can_view_policy
from portal.services.reimbursement_service import ReimbursementService, can_view_request
from portal.services.storage_service import (
    LocalStorageService,
    StorageService,
    REIMBURSEMENT_BUCKET,
    SIGNATURE_BUCKET,
    get_storage,
)

router = APIRouter()

@router.get("/{bucket}/{path:path}")
async def read_file(
    bucket: str,
    path: str,
    current_user: Profile = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage),
) -> Any:
    """Serve a stored object from local storage to a caller allowed to see its owner row."""
    if not isinstance(storage, LocalStorageService):
        raise HTTPException(status_code=404, detail="File not found")

    if bucket == REIMBURSEMENT_BUCKET:
        service = ReimbursementService(db)
        document = await service.get_document_by_path(path)
        if not document:
            raise HTTPException(status_code=404, detail="File not found")
        request = await service.get_request(document.reimbursement_request_id)
        policy = await service.get_policy_for(request)
        allowed = can_view_request(request, policy, current_user)
    elif bucket == SIGNATURE_BUCKET:
        policy = await PolicyService(db).get_by_signature(path)
        if not policy:
            raise HTTPException(status_code=404, detail="File not found")
        allowed = can_view_policy(policy, current_user)
    else:
        raise HTTPException(status_code=404, detail="File not found")

    if not allowed:
        raise HTTPException(status_code=403, detail="Not authorized to view this file")

    try:
        target = storage.local_path(bucket, path)
    except StorageError:
        raise HTTPException(status_code=404, detail="File not found")
    if not target.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(target)
