"""Product catalog operations.

Each mutating operation admits its idempotency key first, before any business
rule is checked, so a retried request is rejected on ``(key, owner)`` alone.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from .errors import ProductAlreadyExists, ProductNotFound
from .idempotency import IdempotencyLedger
from .log import get_logger
from .models import Product
from .repositories import ProductRepository
from .schemas import CreateProductRequest

log = get_logger(__name__)


class CatalogService:
    def __init__(self, products: ProductRepository, ledger: IdempotencyLedger):
        self.products = products
        self.ledger = ledger

    def create_product(
        self,
        request: CreateProductRequest,
        idempotency_key: Optional[str],
        owner: str,
        path: str,
    ) -> Product:
        self.ledger.admit(idempotency_key, owner, "POST", path)

        if self.products.exists_by_sku(request.sku):
            log.warning("product.sku_taken", sku=request.sku)
            raise ProductAlreadyExists(request.sku)

        now = datetime.now(timezone.utc)
        product = Product(
            sku=request.sku,
            name=request.name,
            price=request.price,
            currency=request.currency,
            description=request.description,
            created_at=now,
            updated_at=now,
        )
        try:
            product = self.products.add(product)
        except IntegrityError as exc:
            # a concurrent create took the sku after the existence check
            raise ProductAlreadyExists(request.sku) from exc

        log.info("product.created", product_id=product.id, sku=product.sku)
        return product

    def get_product(self, product_id: int) -> Product:
        product = self.products.get(product_id)
        if product is None:
            raise ProductNotFound.by_id(product_id)
        return product

    def get_product_by_sku(self, sku: str) -> Product:
        product = self.products.find_by_sku(sku)
        if product is None:
            raise ProductNotFound.by_sku(sku)
        return product

    def list_products(self) -> List[Product]:
        return self.products.list_all()

    def change_price(
        self,
        product_id: int,
        new_price: Decimal,
        idempotency_key: Optional[str],
        owner: str,
        path: str,
    ) -> Product:
        self.ledger.admit(idempotency_key, owner, "PUT", path)

        product = self.get_product(product_id)
        product.price = new_price
        product.updated_at = datetime.now(timezone.utc)
        product = self.products.save(product)

        log.info("product.price_changed", product_id=product.id, new_price=str(product.price))
        return product

    def delete_product(
        self,
        product_id: int,
        idempotency_key: Optional[str],
        owner: str,
        path: str,
    ) -> None:
        self.ledger.admit(idempotency_key, owner, "DELETE", path)

        product = self.get_product(product_id)
        self.products.delete(product)
        log.info("product.deleted", product_id=product_id)
