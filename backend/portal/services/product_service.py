from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from portal.core.logging import get_logger
from portal.models.product import InsuranceProduct, RequiredDocument
from portal.models.policy import Policy
from typing import List, Optional

LOGGER = get_logger(__name__)


class ProductService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_product(self, product_data: dict) -> InsuranceProduct:
        self._check_terms(product_data)
        product = InsuranceProduct(**product_data)
        self.db.add(product)
        await self.db.commit()
        await self.db.refresh(product)
        LOGGER.info("Product created", extra={"product_id": product.id})
        return product

    async def get_product(self, product_id: int) -> Optional[InsuranceProduct]:
        result = await self.db.execute(select(InsuranceProduct).where(InsuranceProduct.id == product_id))
        return result.scalars().first()

    async def list_products(self, active_only: bool = False) -> List[InsuranceProduct]:
        query = select(InsuranceProduct)
        if active_only:
            query = query.where(InsuranceProduct.is_active.is_(True))
        result = await self.db.execute(query.order_by(InsuranceProduct.name))
        return result.scalars().all()

    async def update_product(self, product_id: int, update_data: dict) -> InsuranceProduct:
        product = await self.get_product(product_id)
        if not product:
            raise ValueError("Product not found")
        for key, value in update_data.items():
            if hasattr(product, key) and value is not None:
                setattr(product, key, value)
        self._check_terms(
            {
                "min_term_months": product.min_term_months,
                "max_term_months": product.max_term_months,
                "default_term_months": product.default_term_months,
            }
        )
        await self.db.commit()
        await self.db.refresh(product)
        return product

    async def delete_product(self, product_id: int) -> None:
        product = await self.get_product(product_id)
        if not product:
            raise ValueError("Product not found")
        result = await self.db.execute(
            select(func.count(Policy.id)).where(Policy.product_id == product_id)
        )
        if result.scalar_one() > 0:
            raise ValueError("The product has policies and cannot be deleted. Deactivate it instead.")
        await self.db.execute(delete(RequiredDocument).where(RequiredDocument.product_id == product_id))
        await self.db.delete(product)
        await self.db.commit()
        LOGGER.info("Product deleted", extra={"product_id": product_id})

    # Required documents

    async def list_required_documents(self, product_id: int) -> List[RequiredDocument]:
        result = await self.db.execute(
            select(RequiredDocument)
            .where(RequiredDocument.product_id == product_id)
            .order_by(RequiredDocument.sort_order, RequiredDocument.id)
        )
        return result.scalars().all()

    async def get_required_document(self, document_id: int) -> Optional[RequiredDocument]:
        result = await self.db.execute(select(RequiredDocument).where(RequiredDocument.id == document_id))
        return result.scalars().first()

    async def create_required_document(self, product_id: int, document_data: dict) -> RequiredDocument:
        if not await self.get_product(product_id):
            raise ValueError("Product not found")
        existing = await self.list_required_documents(product_id)
        if any(d.document_name == document_data["document_name"] for d in existing):
            raise ValueError(f"The product already lists a document named {document_data['document_name']}.")
        document = RequiredDocument(**document_data, product_id=product_id)
        self.db.add(document)
        await self.db.commit()
        await self.db.refresh(document)
        return document

    async def update_required_document(self, document_id: int, update_data: dict) -> RequiredDocument:
        document = await self.get_required_document(document_id)
        if not document:
            raise ValueError("Required document not found")
        for key, value in update_data.items():
            if hasattr(document, key) and value is not None:
                setattr(document, key, value)
        await self.db.commit()
        await self.db.refresh(document)
        return document

    async def delete_required_document(self, document_id: int) -> None:
        document = await self.get_required_document(document_id)
        if not document:
            raise ValueError("Required document not found")
        await self.db.delete(document)
        await self.db.commit()

    @staticmethod
    def _check_terms(data: dict) -> None:
        low = data.get("min_term_months")
        high = data.get("max_term_months")
        default = data.get("default_term_months")
        if low and high and low > high:
            raise ValueError("The minimum term cannot exceed the maximum term.")
        if default and low and default < low:
            raise ValueError("The default term is below the minimum term.")
        if default and high and default > high:
            raise ValueError("The default term is above the maximum term.")
