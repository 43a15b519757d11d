from __future__ import annotations

from contextlib import contextmanager
from collections.abc import Generator
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


class ConfigurationError(RuntimeError):
    pass


class StoreError(RuntimeError):
    """Base class for typed store failures surfaced to callers."""

    kind = "store_error"

    def __init__(self, message: str, *, entity: str | None = None, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.entity = entity
        self.field = field

    def to_dict(self) -> dict:
        out: dict[str, object] = {"ok": False, "error": self.kind, "message": self.message}
        if self.entity:
            out["entity"] = self.entity
        if self.field:
            out["field"] = self.field
        return out


class NotFound(StoreError):
    kind = "not_found"


class UniqueConstraintViolation(StoreError):
    kind = "unique_violation"


class ForeignKeyViolation(StoreError):
    kind = "foreign_key_violation"


class ValidationError(StoreError):
    """Application-level rule; checked before writes reach the store."""

    kind = "validation_error"


# Postgres SQLSTATE codes
_PG_UNIQUE = "23505"
_PG_FOREIGN_KEY = "23503"
_PG_NOT_NULL = "23502"


def _sqlstate(orig: object) -> str | None:
    # psycopg2 exposes pgcode, psycopg 3 exposes sqlstate
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def translate_integrity_error(exc: IntegrityError) -> StoreError:
    orig = exc.orig
    message = str(orig) if orig is not None else str(exc)
    code = _sqlstate(orig)
    lowered = message.lower()

    if code == _PG_UNIQUE or "unique constraint" in lowered or "duplicate key" in lowered:
        field = None
        # sqlite: "UNIQUE constraint failed: users.email"
        if "failed:" in message:
            field = message.split("failed:", 1)[1].strip()
        return UniqueConstraintViolation("Duplicate value for a unique field.", field=field)
    if code == _PG_FOREIGN_KEY or "foreign key constraint" in lowered:
        return ForeignKeyViolation("Related entity is missing or still referenced.")
    if code == _PG_NOT_NULL or "not null constraint" in lowered:
        return ValidationError("A required field is missing.")
    return StoreError(message)


@contextmanager
def guard_integrity(s: "Session") -> Generator[None, None, None]:
    """
    Flush pending writes and surface constraint failures as typed errors.
    The session is rolled back before the typed error propagates.
    """
    try:
        yield
        s.flush()
    except IntegrityError as e:
        s.rollback()
        raise translate_integrity_error(e) from e
