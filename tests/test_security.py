"""Tests for credential verification, token handling and access rules."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt
from sqlmodel import Session

from storeapi.config import Settings
from storeapi.errors import AccessDenied, AuthenticationFailed
from storeapi.models import Role, User, UserRole
from storeapi.repositories import UserRepository
from storeapi.security import (
    Access,
    Authenticator,
    Principal,
    TokenValidator,
    create_access_token,
    dummy_hash,
    enforce,
    hash_password,
    resolve_access,
    verify_password,
)


def _add_user(session: Session, username: str, password: str, roles: list[Role], enabled: bool = True) -> User:
    user = User(username=username, password=hash_password(password, rounds=4), enabled=enabled)
    user.roles = [UserRole(role=role) for role in roles]
    session.add(user)
    session.commit()
    return user


@pytest.fixture()
def authenticator(session: Session, settings: Settings) -> Authenticator:
    _add_user(session, "admin", "admin123", [Role.ADMIN, Role.USER])
    _add_user(session, "user", "user123", [Role.USER])
    _add_user(session, "ghost", "ghost123", [Role.USER], enabled=False)
    return Authenticator(UserRepository(session), settings)


def test_password_hash_round_trip() -> None:
    hashed = hash_password("s3cret", rounds=4)

    assert hashed != "s3cret"
    assert verify_password("s3cret", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("s3cret", "not-a-bcrypt-hash")


def test_issue_token_encodes_subject_roles_and_expiry(authenticator: Authenticator, settings: Settings) -> None:
    issued = authenticator.issue_token("admin", "admin123")

    assert issued.expires_in_seconds == 3600
    claims = jwt.decode(issued.token, settings.jwt_secret, algorithms=["HS256"], issuer="store-api")
    assert claims["sub"] == "admin"
    assert claims["roles"] == ["ADMIN", "USER"]
    assert claims["exp"] - claims["iat"] == 3600


@pytest.mark.parametrize(
    ("username", "password"),
    [("admin", "wrong"), ("nobody", "admin123"), ("ghost", "ghost123")],
    ids=["bad-password", "unknown-user", "disabled-user"],
)
def test_issue_token_rejects_bad_credentials(authenticator: Authenticator, username: str, password: str) -> None:
    with pytest.raises(AuthenticationFailed):
        authenticator.issue_token(username, password)


def test_validator_derives_principal(settings: Settings) -> None:
    token = create_access_token("user", [Role.USER], settings)

    principal = TokenValidator(settings).validate(token)

    assert principal == Principal(subject="user", roles=frozenset({Role.USER}))


def test_validator_rejects_expired_token(settings: Settings) -> None:
    issued_at = datetime.now(timezone.utc) - timedelta(seconds=settings.jwt_expiration_seconds + 60)
    token = create_access_token("user", [Role.USER], settings, now=issued_at)

    with pytest.raises(AuthenticationFailed):
        TokenValidator(settings).validate(token)


def test_validator_rejects_token_signed_with_another_secret(settings: Settings) -> None:
    forged_settings = settings.model_copy(update={"jwt_secret": "another-secret-that-is-long-enough-x"})
    token = create_access_token("admin", [Role.ADMIN], forged_settings)

    with pytest.raises(AuthenticationFailed):
        TokenValidator(settings).validate(token)


def test_validator_rejects_foreign_issuer(settings: Settings) -> None:
    token = create_access_token("admin", [Role.ADMIN], settings.model_copy(update={"jwt_issuer": "elsewhere"}))

    with pytest.raises(AuthenticationFailed):
        TokenValidator(settings).validate(token)


def test_validator_rejects_garbage(settings: Settings) -> None:
    with pytest.raises(AuthenticationFailed):
        TokenValidator(settings).validate("not.a.jwt")


def test_validator_ignores_unknown_roles(settings: Settings) -> None:
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {"iss": "store-api", "sub": "svc", "iat": now, "exp": now + timedelta(minutes=5), "roles": ["USER", "ROOT"]},
        settings.jwt_secret,
        algorithm="HS256",
    )

    assert TokenValidator(settings).validate(token).roles == frozenset({Role.USER})


@pytest.mark.parametrize(
    ("method", "path", "expected"),
    [
        ("POST", "/api/auth/token", Access.OPEN),
        ("GET", "/docs", Access.OPEN),
        ("GET", "/docs/oauth2-redirect", Access.OPEN),
        ("GET", "/redoc", Access.OPEN),
        ("GET", "/openapi.json", Access.OPEN),
        ("GET", "/api/products", Access.ROLE),
        ("GET", "/api/products/7", Access.ROLE),
        ("GET", "/api/products/by-sku/SKU-1", Access.ROLE),
        ("POST", "/api/products", Access.AUTHENTICATED),
        ("PUT", "/api/products/7/price", Access.AUTHENTICATED),
        ("DELETE", "/api/products/7", Access.AUTHENTICATED),
        ("GET", "/api/other", Access.AUTHENTICATED),
        ("GET", "/api/productsx", Access.AUTHENTICATED),
    ],
)
def test_resolve_access(method: str, path: str, expected: Access) -> None:
    assert resolve_access(method, path).access is expected


def test_role_rule_requires_user_or_admin() -> None:
    rule = resolve_access("GET", "/api/products")

    assert enforce(rule, Principal("user", frozenset({Role.USER}))) is not None
    assert enforce(rule, Principal("admin", frozenset({Role.ADMIN}))) is not None
    with pytest.raises(AccessDenied):
        enforce(rule, Principal("bot", frozenset()))
    with pytest.raises(AuthenticationFailed):
        enforce(rule, None)


def test_authenticated_rule_is_role_agnostic() -> None:
    rule = resolve_access("DELETE", "/api/products/1")

    assert enforce(rule, Principal("bot", frozenset())).subject == "bot"
    with pytest.raises(AuthenticationFailed):
        enforce(rule, None)


def test_open_rule_admits_anonymous_callers() -> None:
    assert enforce(resolve_access("POST", "/api/auth/token"), None) is None


def test_unknown_user_is_checked_against_hash_of_configured_cost(
    authenticator: Authenticator, settings: Settings, monkeypatch: pytest.MonkeyPatch
) -> None:
    checked: list[str] = []

    def record(password: str, hashed: str) -> bool:
        checked.append(hashed)
        return False

    monkeypatch.setattr("storeapi.security.verify_password", record)

    with pytest.raises(AuthenticationFailed):
        authenticator.issue_token("nobody", "admin123")

    assert checked == [dummy_hash(settings.bcrypt_rounds)]
    assert checked[0].startswith(f"$2b${settings.bcrypt_rounds:02d}$")
