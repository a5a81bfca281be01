"""Session-backed stores for products, idempotency records and users.

Write methods commit immediately; a constraint violation surfaces as
:class:`sqlalchemy.exc.IntegrityError` after the session has been rolled back.
"""

from __future__ import annotations

from typing import List, Optional, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, SQLModel, select

from .models import IdempotencyKey, Product, User

ModelT = TypeVar("ModelT", bound=SQLModel)


class _SessionRepository:
    def __init__(self, session: Session):
        self.session = session

    def _persist(self, instance: ModelT) -> ModelT:
        self.session.add(instance)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise
        self.session.refresh(instance)
        return instance


class ProductRepository(_SessionRepository):
    """Durable keyed storage for products."""

    def get(self, product_id: int) -> Optional[Product]:
        return self.session.get(Product, product_id)

    def find_by_sku(self, sku: str) -> Optional[Product]:
        return self.session.exec(select(Product).where(Product.sku == sku)).first()

    def exists_by_sku(self, sku: str) -> bool:
        count = self.session.exec(select(func.count()).select_from(Product).where(Product.sku == sku)).one()
        return int(count) > 0

    def list_all(self) -> List[Product]:
        return list(self.session.exec(select(Product).order_by(Product.id)).all())

    def add(self, product: Product) -> Product:
        return self._persist(product)

    def save(self, product: Product) -> Product:
        return self._persist(product)

    def delete(self, product: Product) -> None:
        self.session.delete(product)
        self.session.commit()


class IdempotencyKeyRepository(_SessionRepository):
    """Append-only storage for admitted idempotency keys."""

    def exists_by_key_and_owner(self, key: str, owner: str) -> bool:
        statement = (
            select(func.count())
            .select_from(IdempotencyKey)
            .where(IdempotencyKey.key == key, IdempotencyKey.owner == owner)
        )
        return int(self.session.exec(statement).one()) > 0

    def add(self, record: IdempotencyKey) -> IdempotencyKey:
        return self._persist(record)


class UserRepository(_SessionRepository):
    """Read access to the credential store."""

    def find_by_username(self, username: str) -> Optional[User]:
        return self.session.exec(select(User).where(User.username == username)).first()
