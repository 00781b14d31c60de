from typing import Any, List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from portal.api import deps
from portal.db.session import get_db
from portal.models.profile import Profile
from portal.schemas.product import (
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    RequiredDocumentCreate,
    RequiredDocumentResponse,
    RequiredDocumentUpdate,
)
from portal.services.product_service import ProductService

router = APIRouter()

@router.get("/", response_model=List[ProductResponse])
async def read_products(
    active_only: bool = True,
    current_user: Profile = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Active products for everyone; staff may ask for the full catalogue."""
    service = ProductService(db)
    if not current_user.is_staff:
        active_only = True
    return await service.list_products(active_only=active_only)

@router.post("/", response_model=ProductResponse, status_code=201)
async def create_product(
    product_in: ProductCreate,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ProductService(db)
    try:
        return await service.create_product(product_in.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.get("/{product_id}", response_model=ProductResponse)
async def read_product(
    product_id: int,
    current_user: Profile = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ProductService(db)
    product = await service.get_product(product_id)
    if not product or (not product.is_active and not current_user.is_staff):
        raise HTTPException(status_code=404, detail="Product not found")
    return product

@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    product_in: ProductUpdate,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ProductService(db)
    if not await service.get_product(product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    try:
        return await service.update_product(product_id, product_in.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.delete("/{product_id}", status_code=204)
async def delete_product(
    product_id: int,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> None:
    service = ProductService(db)
    if not await service.get_product(product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    try:
        await service.delete_product(product_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.get("/{product_id}/required-documents", response_model=List[RequiredDocumentResponse])
async def read_required_documents(
    product_id: int,
    current_user: Profile = Depends(deps.get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ProductService(db)
    if not await service.get_product(product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    return await service.list_required_documents(product_id)

@router.post("/{product_id}/required-documents", response_model=RequiredDocumentResponse, status_code=201)
async def create_required_document(
    product_id: int,
    document_in: RequiredDocumentCreate,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ProductService(db)
    if not await service.get_product(product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    try:
        return await service.create_required_document(product_id, document_in.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.put("/required-documents/{document_id}", response_model=RequiredDocumentResponse)
async def update_required_document(
    document_id: int,
    document_in: RequiredDocumentUpdate,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = ProductService(db)
    if not await service.get_required_document(document_id):
        raise HTTPException(status_code=404, detail="Required document not found")
    return await service.update_required_document(document_id, document_in.model_dump(exclude_unset=True))

@router.delete("/required-documents/{document_id}", status_code=204)
async def delete_required_document(
    document_id: int,
    current_user: Profile = Depends(deps.get_staff_user),
    db: AsyncSession = Depends(get_db),
) -> None:
    service = ProductService(db)
    if not await service.get_required_document(document_id):
        raise HTTPException(status_code=404, detail="Required document not found")
    await service.delete_required_document(document_id)
