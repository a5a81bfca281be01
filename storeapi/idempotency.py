"""Idempotency ledger guarding mutating product operations.

A request is admitted at most once per ``(key, owner)``. The existence check
only saves a round trip; the unique constraint on ``idempotency_keys`` is what
actually rejects a second admission, including one that races the first.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError

from .errors import DuplicateIdempotencyKey, InvalidIdempotencyKey
from .log import get_logger
from .models import IdempotencyKey
from .repositories import IdempotencyKeyRepository

log = get_logger(__name__)

MAX_KEY_LENGTH = 128
MAX_OWNER_LENGTH = 64


class IdempotencyLedger:
    """Records admitted ``(key, owner, method, path)`` tuples."""

    def __init__(self, repository: IdempotencyKeyRepository):
        self.repository = repository

    def admit(self, key: Optional[str], owner: str, method: str, path: str) -> None:
        """Admit a mutating request or raise.

        The record is committed before returning, so the key stays consumed
        whatever happens to the operation it guards.

        Raises:
            InvalidIdempotencyKey: ``key`` is missing, blank or too long.
            DuplicateIdempotencyKey: ``(key, owner)`` was admitted before.
        """

        if key is None or not key.strip():
            raise InvalidIdempotencyKey("Idempotency key must not be null or blank")
        if len(key) > MAX_KEY_LENGTH:
            raise InvalidIdempotencyKey(f"Idempotency key must be at most {MAX_KEY_LENGTH} characters")
        if len(owner) > MAX_OWNER_LENGTH:
            raise InvalidIdempotencyKey(f"Idempotency owner must be at most {MAX_OWNER_LENGTH} characters")

        if self.repository.exists_by_key_and_owner(key, owner):
            log.warning("idempotency.key_reused", key=key, owner=owner)
            raise DuplicateIdempotencyKey(key)

        try:
            self.repository.add(IdempotencyKey(key=key, owner=owner, http_method=method, path=path))
        except IntegrityError as exc:
            log.warning("idempotency.key_conflict", key=key, owner=owner)
            raise DuplicateIdempotencyKey(key) from exc

        log.debug("idempotency.key_registered", key=key, owner=owner, method=method, path=path)
