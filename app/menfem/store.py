"""
Store-agnostic CRUD helpers shared by every module service.

All writes flush immediately so constraint failures surface as typed errors
(see app.menfem.errors) at the call site rather than at commit time.
"""
from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

from sqlalchemy import and_, func, inspect as sa_inspect, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from app.menfem.errors import NotFound, ValidationError, guard_integrity
from app.menfem.models import Base
from app.menfem.utils import utcnow

T = TypeVar("T", bound=Base)

MAX_PER_PAGE = 100
DEFAULT_PER_PAGE = 20


def create(s: Session, model: type[T], **fields: Any) -> T:
    obj = model(**fields)
    with guard_integrity(s):
        s.add(obj)
    return obj


def get(s: Session, model: type[T], ident: Any) -> T:
    obj = s.get(model, ident)
    if obj is None:
        raise NotFound(f"{model.__name__} not found.", entity=model.__name__)
    return obj


def get_by(s: Session, model: type[T], **unique: Any) -> T:
    """Lookup by a unique key, e.g. get_by(s, Article, slug="hello-world")."""
    obj = s.scalars(select(model).filter_by(**unique)).one_or_none()
    if obj is None:
        raise NotFound(f"{model.__name__} not found.", entity=model.__name__)
    return obj


def find_by(s: Session, model: type[T], **unique: Any) -> T | None:
    return s.scalars(select(model).filter_by(**unique)).one_or_none()


def update(s: Session, obj: T, **fields: Any) -> T:
    mapper = sa_inspect(type(obj))
    columns = set(mapper.columns.keys())
    for key in fields:
        if key not in columns or mapper.columns[key].primary_key:
            raise ValidationError(f"Unknown or immutable field: {key}", entity=type(obj).__name__, field=key)
    with guard_integrity(s):
        for key, value in fields.items():
            setattr(obj, key, value)
        if "updated_at" in columns:
            obj.updated_at = utcnow()  # type: ignore[attr-defined]
    return obj


def delete(s: Session, obj: Base) -> None:
    """Remove a row; ON DELETE rules cascade, restrict or null out dependents."""
    with guard_integrity(s):
        s.delete(obj)


# ---------- Pagination ----------
@dataclass
class Page(Generic[T]):
    items: list[T]
    total: int | None = None
    page: int | None = None
    per_page: int = DEFAULT_PER_PAGE
    next_cursor: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def has_next(self) -> bool:
        if self.next_cursor is not None:
            return True
        if self.page is not None and self.total is not None:
            return self.page * self.per_page < self.total
        return False

    @property
    def total_pages(self) -> int | None:
        if self.total is None:
            return None
        return (self.total + self.per_page - 1) // self.per_page


def clamp_per_page(per_page: int | None) -> int:
    if not per_page or per_page < 1:
        return DEFAULT_PER_PAGE
    return min(per_page, MAX_PER_PAGE)


def paginate(s: Session, stmt: Select, *, page: int = 1, per_page: int | None = None) -> Page:
    """Offset pagination; stmt must already carry a stable ORDER BY."""
    per_page = clamp_per_page(per_page)
    page = max(page, 1)
    total = s.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    items = list(s.scalars(stmt.offset((page - 1) * per_page).limit(per_page)))
    return Page(items=items, total=total, page=page, per_page=per_page)


def encode_cursor(value: Any, ident: str) -> str:
    if isinstance(value, datetime):
        value = {"dt": value.isoformat()}
    raw = json.dumps([value, ident], separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[Any, str]:
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        value, ident = json.loads(base64.urlsafe_b64decode(padded.encode()))
    except (ValueError, TypeError) as e:
        raise ValidationError("Malformed pagination cursor.", field="cursor") from e
    if isinstance(value, dict) and "dt" in value:
        value = datetime.fromisoformat(value["dt"])
    return value, str(ident)


def keyset_page(
    s: Session,
    stmt: Select,
    *,
    order_column,
    id_column,
    descending: bool,
    cursor: str | None = None,
    per_page: int | None = None,
) -> Page:
    """
    Cursor pagination over the (order_column, id_column) pair.
    The statement's ORDER BY is replaced with that pair so pages never overlap.
    """
    per_page = clamp_per_page(per_page)
    if cursor:
        last_value, last_id = decode_cursor(cursor)
        if descending:
            stmt = stmt.where(
                or_(order_column < last_value, and_(order_column == last_value, id_column < last_id))
            )
        else:
            stmt = stmt.where(
                or_(order_column > last_value, and_(order_column == last_value, id_column > last_id))
            )
    if descending:
        stmt = stmt.order_by(None).order_by(order_column.desc(), id_column.desc())
    else:
        stmt = stmt.order_by(None).order_by(order_column.asc(), id_column.asc())

    rows = list(s.scalars(stmt.limit(per_page + 1)))
    items = rows[:per_page]
    next_cursor = None
    if len(rows) > per_page:
        last = items[-1]
        next_cursor = encode_cursor(getattr(last, order_column.key), getattr(last, id_column.key))
    return Page(items=items, per_page=per_page, next_cursor=next_cursor)
