"""Database models for the API."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import Column, Numeric, String, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Roles a user can hold."""

    USER = "USER"
    ADMIN = "ADMIN"


class User(SQLModel, table=True):
    """A registered user able to obtain bearer tokens."""

    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(max_length=64, unique=True, index=True)
    password: str = Field(max_length=255)
    enabled: bool = Field(default=True)

    roles: List["UserRole"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"lazy": "selectin", "cascade": "all, delete-orphan"},
    )

    @property
    def role_set(self) -> frozenset[Role]:
        return frozenset(Role(entry.role) for entry in self.roles)


class UserRole(SQLModel, table=True):
    """A single role granted to a user."""

    __tablename__ = "user_roles"

    user_id: Optional[int] = Field(default=None, foreign_key="users.id", primary_key=True)
    role: Role = Field(primary_key=True)

    user: Optional[User] = Relationship(back_populates="roles")


class Product(SQLModel, table=True):
    """A catalog entry identified by its SKU."""

    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    sku: str = Field(max_length=64, unique=True, index=True)
    name: str = Field(max_length=128)
    price: Decimal = Field(
        sa_column=Column(Numeric(precision=19, scale=2), nullable=False),
        default=Decimal("0.00"),
    )
    currency: str = Field(max_length=3)
    description: Optional[str] = Field(default=None, max_length=512)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class IdempotencyKey(SQLModel, table=True):
    """One admitted mutating request.

    ``(key, owner)`` is unique at the table level; records are never updated
    or deleted.
    """

    __tablename__ = "idempotency_keys"
    __table_args__ = (UniqueConstraint("idempotency_key", "owner", name="uc_idempotency_key_owner"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    key: str = Field(sa_column=Column("idempotency_key", String(128), nullable=False))
    owner: str = Field(max_length=64)
    http_method: str = Field(max_length=16)
    path: str = Field(max_length=255)
    created_at: datetime = Field(default_factory=utcnow)
