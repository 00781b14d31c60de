from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from datetime import datetime
from portal.models.product import ProductType, PaymentFrequency

class ProductBase(BaseModel):
    name: str
    type: ProductType
    description: Optional[str] = None
    default_term_months: Optional[int] = Field(default=12, gt=0)
    min_term_months: Optional[int] = Field(default=None, gt=0)
    max_term_months: Optional[int] = Field(default=None, gt=0)
    coverage_details: Dict[str, Any] = Field(default_factory=dict)
    base_premium: float = Field(ge=0)
    currency: str = "USD"
    terms_and_conditions: Optional[str] = None
    is_active: bool = True
    admin_notes: Optional[str] = None
    fixed_payment_frequency: Optional[PaymentFrequency] = None

class ProductCreate(ProductBase):
    pass

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[ProductType] = None
    description: Optional[str] = None
    default_term_months: Optional[int] = Field(default=None, gt=0)
    min_term_months: Optional[int] = Field(default=None, gt=0)
    max_term_months: Optional[int] = Field(default=None, gt=0)
    coverage_details: Optional[Dict[str, Any]] = None
    base_premium: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    is_active: Optional[bool] = None
    admin_notes: Optional[str] = None
    fixed_payment_frequency: Optional[PaymentFrequency] = None

class ProductResponse(ProductBase):
    id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class RequiredDocumentBase(BaseModel):
    document_name: str = Field(min_length=1)
    is_required: bool = True
    description: Optional[str] = None
    sort_order: int = 0

class RequiredDocumentCreate(RequiredDocumentBase):
    pass

class RequiredDocumentUpdate(BaseModel):
    document_name: Optional[str] = Field(default=None, min_length=1)
    is_required: Optional[bool] = None
    description: Optional[str] = None
    sort_order: Optional[int] = None

class RequiredDocumentResponse(RequiredDocumentBase):
    id: int
    product_id: int

    class Config:
        from_attributes = True
