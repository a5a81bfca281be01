"""Security utilities for the API: password hashing, tokens and access rules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import lru_cache
from typing import Iterable, Optional, Tuple

import bcrypt
from jose import JWTError, jwt

from .config import Settings
from .errors import AccessDenied, AuthenticationFailed
from .log import get_logger
from .models import Role
from .repositories import UserRepository

log = get_logger(__name__)

# bcrypt only looks at the first 72 bytes of a secret
_BCRYPT_MAX_BYTES = 72
ROLE_NAMES = frozenset(role.value for role in Role)


def _secret_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password with a fresh bcrypt salt."""

    return bcrypt.hashpw(_secret_bytes(password), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(password: str, hashed: str) -> bool:
    """Check ``password`` against a bcrypt hash in constant time."""

    try:
        return bcrypt.checkpw(_secret_bytes(password), hashed.encode("ascii"))
    except ValueError:
        # malformed stored hash
        return False


@lru_cache(maxsize=None)
def dummy_hash(rounds: int) -> str:
    """Hash checked for unknown usernames, at the same cost as stored hashes."""

    return hash_password("store-api-dummy-password", rounds=rounds)


@dataclass(frozen=True)
class Principal:
    """Represents an authenticated principal."""

    subject: str
    roles: frozenset[Role] = field(default_factory=frozenset)

    def has_any_role(self, roles: Iterable[Role]) -> bool:
        return not self.roles.isdisjoint(roles)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_in_seconds: int


def create_access_token(
    subject: str,
    roles: Iterable[Role],
    settings: Settings,
    now: Optional[datetime] = None,
) -> str:
    """Create a signed JWT access token."""

    issued_at = now or datetime.now(timezone.utc)
    expire = issued_at + timedelta(seconds=settings.jwt_expiration_seconds)
    to_encode = {
        "iss": settings.jwt_issuer,
        "sub": subject,
        "iat": issued_at,
        "exp": expire,
        "roles": sorted(Role(role).value for role in roles),
    }
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


class Authenticator:
    """Verifies credentials against the user store and issues bearer tokens."""

    def __init__(self, users: UserRepository, settings: Settings):
        self.users = users
        self.settings = settings

    def issue_token(self, username: str, password: str) -> IssuedToken:
        user = self.users.find_by_username(username)
        if user is None:
            verify_password(password, dummy_hash(self.settings.bcrypt_rounds))
            log.warning("auth.unknown_user", username=username)
            raise AuthenticationFailed()

        password_ok = verify_password(password, user.password)
        if not user.enabled:
            log.warning("auth.user_disabled", username=username)
            raise AuthenticationFailed()
        if not password_ok:
            log.warning("auth.bad_password", username=username)
            raise AuthenticationFailed()

        token = create_access_token(user.username, user.role_set, self.settings)
        log.info("auth.token_issued", username=user.username, roles=sorted(r.value for r in user.role_set))
        return IssuedToken(token=token, expires_in_seconds=self.settings.jwt_expiration_seconds)


class TokenValidator:
    """Verifies bearer tokens and derives the caller's identity from them."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def validate(self, token: str) -> Principal:
        try:
            payload = jwt.decode(
                token,
                self.settings.jwt_secret,
                algorithms=[self.settings.jwt_algorithm],
                issuer=self.settings.jwt_issuer,
                options={"require_exp": True, "require_sub": True},
            )
        except JWTError as exc:
            log.info("auth.invalid_token", reason=str(exc))
            raise AuthenticationFailed("Invalid token") from exc

        subject = payload.get("sub")
        if not subject:
            raise AuthenticationFailed("Missing subject")
        raw_roles = payload.get("roles") or []
        if not isinstance(raw_roles, list):
            raise AuthenticationFailed("Malformed roles claim")
        roles = frozenset(Role(name) for name in raw_roles if name in ROLE_NAMES)
        return Principal(subject=subject, roles=roles)


class Access(str, Enum):
    OPEN = "open"
    AUTHENTICATED = "authenticated"
    ROLE = "role"


@dataclass(frozen=True)
class AccessRule:
    """Requirement for requests matching ``pattern`` (and ``methods``, if given).

    A pattern ending in ``/**`` matches the prefix itself and everything below it.
    """

    pattern: str
    access: Access
    methods: Tuple[str, ...] = ()
    roles: Tuple[Role, ...] = ()

    def matches(self, method: str, path: str) -> bool:
        if self.methods and method.upper() not in self.methods:
            return False
        if self.pattern.endswith("/**"):
            prefix = self.pattern[:-3]
            return path == prefix or path.startswith(prefix + "/")
        return path == self.pattern


ACCESS_RULES: Tuple[AccessRule, ...] = (
    AccessRule("/api/auth/**", Access.OPEN),
    AccessRule("/docs/**", Access.OPEN),
    AccessRule("/redoc", Access.OPEN),
    AccessRule("/openapi.json", Access.OPEN),
    AccessRule("/api/products/**", Access.ROLE, methods=("GET", "HEAD"), roles=(Role.USER, Role.ADMIN)),
    AccessRule("/api/products/**", Access.AUTHENTICATED),
)
DEFAULT_RULE = AccessRule("/**", Access.AUTHENTICATED)


def resolve_access(method: str, path: str) -> AccessRule:
    """Return the first rule matching the request; unmatched requests need authentication."""

    for rule in ACCESS_RULES:
        if rule.matches(method, path):
            return rule
    return DEFAULT_RULE


def enforce(rule: AccessRule, principal: Optional[Principal]) -> Optional[Principal]:
    """Apply ``rule`` to the (possibly anonymous) caller."""

    if rule.access is Access.OPEN:
        return principal
    if principal is None:
        raise AuthenticationFailed("Full authentication is required to access this resource")
    if rule.access is Access.ROLE and not principal.has_any_role(rule.roles):
        log.warning("auth.access_denied", subject=principal.subject, required=[r.value for r in rule.roles])
        raise AccessDenied()
    return principal
