"""Shared fixtures: an application bound to a fresh in-memory database."""

from __future__ import annotations

from typing import Callable, Dict, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlmodel import Session

from storeapi.catalog import CatalogService
from storeapi.config import Settings
from storeapi.db import build_engine, create_db_and_tables
from storeapi.idempotency import IdempotencyLedger
from storeapi.main import create_app
from storeapi.repositories import IdempotencyKeyRepository, ProductRepository

TEST_SECRET = "test-secret-for-store-api-unit-tests"


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        jwt_secret=TEST_SECRET,
        bcrypt_rounds=4,
        log_level="warning",
        admin_password="admin123",
        user_password="user123",
    )


@pytest.fixture()
def app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    """Provide a TestClient bound to a fresh application instance."""

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def token_for(client: TestClient) -> Callable[[str, str], str]:
    def _issue(username: str, password: str) -> str:
        response = client.post("/api/auth/token", json={"username": username, "password": password})
        assert response.status_code == 200, response.text
        return response.json()["token"]

    return _issue


@pytest.fixture()
def admin_headers(token_for: Callable[[str, str], str]) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_for('admin', 'admin123')}"}


@pytest.fixture()
def user_headers(token_for: Callable[[str, str], str]) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_for('user', 'user123')}"}


@pytest.fixture()
def session() -> Iterator[Session]:
    engine = build_engine("sqlite://")
    create_db_and_tables(engine)
    with Session(engine) as db_session:
        yield db_session
    engine.dispose()


@pytest.fixture()
def ledger(session: Session) -> IdempotencyLedger:
    return IdempotencyLedger(IdempotencyKeyRepository(session))


@pytest.fixture()
def catalog(session: Session, ledger: IdempotencyLedger) -> CatalogService:
    return CatalogService(ProductRepository(session), ledger)
