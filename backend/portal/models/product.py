import enum
from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, DateTime, Enum, JSON, Text
from sqlalchemy.sql import func
from portal.db.base import Base

class ProductType(str, enum.Enum):
    LIFE = "life"
    HEALTH = "health"
    OTHER = "other"

class PaymentFrequency(str, enum.Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"

class InsuranceProduct(Base):
    __tablename__ = "insurance_products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    type = Column(Enum(ProductType), nullable=False)
    description = Column(Text, nullable=True)
    default_term_months = Column(Integer, nullable=True)
    min_term_months = Column(Integer, nullable=True)
    max_term_months = Column(Integer, nullable=True)
    coverage_details = Column(JSON, nullable=False, default=dict)  # coverage_amount, deductible, max_dependents, ...
    base_premium = Column(Float, nullable=False, default=0.0)
    currency = Column(String, nullable=False, default="USD")
    terms_and_conditions = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    admin_notes = Column(Text, nullable=True)
    fixed_payment_frequency = Column(Enum(PaymentFrequency), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now())


class RequiredDocument(Base):
    """
    A document a client has to attach to a reimbursement request
    for policies of the given product.
    """
    __tablename__ = "reimbursement_required_documents"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("insurance_products.id", ondelete="CASCADE"), nullable=False, index=True)
    document_name = Column(String, nullable=False)
    is_required = Column(Boolean, default=True, nullable=False)
    description = Column(Text, nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
