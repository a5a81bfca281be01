"""Database utilities and seed data."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from .config import Settings
from .log import get_logger
from .models import Role, User, UserRole
from .security import hash_password

log = get_logger(__name__)


def build_engine(database_url: str) -> Engine:
    """Create the SQLAlchemy engine for ``database_url``."""

    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=False, pool_pre_ping=True)

    kwargs: dict = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection, otherwise every checkout sees an empty database
        kwargs["poolclass"] = StaticPool
    return create_engine(database_url, echo=False, **kwargs)


def create_db_and_tables(engine: Engine) -> None:
    """Create all database tables."""

    SQLModel.metadata.create_all(engine)


def get_session(request: Request) -> Iterator[Session]:
    """Yield a database session for request handling."""

    with Session(request.app.state.engine) as session:
        yield session


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def seed_users(engine: Engine, settings: Settings) -> None:
    """Seed the credential store with an administrator and a regular user."""

    with session_scope(engine) as session:
        existing = session.exec(select(User)).first()
        if existing is not None:
            return

        admin = User(username="admin", password=hash_password(settings.admin_password, settings.bcrypt_rounds), enabled=True)
        admin.roles = [UserRole(role=Role.ADMIN), UserRole(role=Role.USER)]
        user = User(username="user", password=hash_password(settings.user_password, settings.bcrypt_rounds), enabled=True)
        user.roles = [UserRole(role=Role.USER)]

        session.add_all([admin, user])
        log.info("users.seeded", usernames=["admin", "user"])


def init_db(engine: Engine, settings: Settings) -> None:
    """Initialize database tables and seed data."""

    create_db_and_tables(engine)
    if settings.seed_users:
        seed_users(engine, settings)
