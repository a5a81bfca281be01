"""FastAPI dependency providers."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from .catalog import CatalogService
from .config import Settings
from .db import get_session
from .errors import AuthenticationFailed
from .idempotency import IdempotencyLedger
from .log import bind_user
from .repositories import IdempotencyKeyRepository, ProductRepository, UserRepository
from .security import Authenticator, Principal, TokenValidator, enforce, resolve_access

bearer_scheme = HTTPBearer(scheme_name="bearer-jwt", bearerFormat="JWT", auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_authenticator(
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
) -> Authenticator:
    return Authenticator(UserRepository(session), settings)


def get_catalog(session: Session = Depends(get_session)) -> CatalogService:
    ledger = IdempotencyLedger(IdempotencyKeyRepository(session))
    return CatalogService(ProductRepository(session), ledger)


async def authorize(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    settings: Settings = Depends(get_app_settings),
) -> Principal:
    """Authenticate the bearer token and apply the route's access rule.

    Runs on the event loop, not in the threadpool, so the ``user`` bound to
    the logging context is inherited by the endpoint and the error handlers.
    """

    principal: Optional[Principal] = None
    if credentials is not None:
        if credentials.scheme.lower() != "bearer" or not credentials.credentials:
            raise AuthenticationFailed("Invalid token")
        principal = TokenValidator(settings).validate(credentials.credentials)
        bind_user(principal.subject)

    rule = resolve_access(request.method, request.url.path)
    principal = enforce(rule, principal)
    if principal is None:
        raise AuthenticationFailed("Full authentication is required to access this resource")
    return principal
