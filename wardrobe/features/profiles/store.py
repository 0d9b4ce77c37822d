"""
Profile store: document-style access to user profiles.

The usage counter and subscription state are embedded in the profile row, so
every entitlement component reads and writes through this store. The SQL
implementation never rewrites a whole profile: updates touch only the fields
they name, counter increments are `column = column + n` at the database and
writes can carry conditions that make them compare-and-update.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, ContextManager, Dict, List, Optional, Protocol, Sequence, Tuple
import logging

from sqlalchemy import and_, insert, select, update, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from wardrobe.core.database import get_db_session, profiles
from wardrobe.core.errors import StorageUnavailableError


logger = logging.getLogger("wardrobe.profiles")

# (field, operator, value), e.g. ("subscription_tier", "in", ["basic", "premium"])
Condition = Tuple[str, str, Any]


@dataclass(frozen=True)
class Increment:
    """Field value that adds `amount` atomically instead of overwriting."""
    amount: int = 1


@dataclass(frozen=True)
class ProfileWrite:
    """One field-level update inside a batch commit."""
    user_id: str
    fields: Dict[str, Any]
    conditions: Tuple[Condition, ...] = field(default_factory=tuple)


class ProfileStore(Protocol):
    """Document get/set/update/query over user profiles."""

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        ...

    def set(self, user_id: str, fields: Dict[str, Any], merge: bool = True) -> None:
        ...

    def create(self, user_id: str, fields: Dict[str, Any]) -> bool:
        """Insert the profile only if it does not exist yet. Returns False if it already did."""
        ...

    def update(self, user_id: str, fields: Dict[str, Any], conditions: Sequence[Condition] = ()) -> bool:
        """Apply a field-level update. Returns False if no profile matched."""
        ...

    def query(self, conditions: Sequence[Condition]) -> List[Dict[str, Any]]:
        ...

    def batch_commit(self, writes: Sequence[ProfileWrite]) -> List[str]:
        """Apply all writes in one transaction; returns user ids actually written."""
        ...


_OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    "==": lambda col, value: col.is_(None) if value is None else col == value,
    "!=": lambda col, value: col.is_not(None) if value is None else col != value,
    "<": lambda col, value: col < value,
    "<=": lambda col, value: col <= value,
    ">": lambda col, value: col > value,
    ">=": lambda col, value: col >= value,
    "in": lambda col, value: col.in_(list(value)),
    "not-in": lambda col, value: col.not_in(list(value)),
}

_KEY_COLUMN = "user_id"
_MANAGED_COLUMNS = {"user_id", "created_at", "updated_at"}


def _column(name: str):
    try:
        return profiles.c[name]
    except KeyError:
        raise ValueError(f"Unknown profile field: {name}") from None


def _clause(condition: Condition):
    name, op, value = condition
    if op not in _OPERATORS:
        raise ValueError(f"Unsupported operator: {op}")
    return _OPERATORS[op](_column(name), value)


def _values(fields: Dict[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for name, value in fields.items():
        col = _column(name)
        if name in _MANAGED_COLUMNS:
            raise ValueError(f"Profile field {name} is not writable")
        values[name] = col + value.amount if isinstance(value, Increment) else value
    return values


def _insert_values(user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {_KEY_COLUMN: user_id}
    for name, value in fields.items():
        _column(name)
        values[name] = value.amount if isinstance(value, Increment) else value
    return values


def _row_to_document(row) -> Dict[str, Any]:
    return dict(row._mapping)


class SqlProfileStore:
    """ProfileStore backed by the `profiles` table."""

    def __init__(self, session_scope: Callable[[], ContextManager[Session]] = get_db_session):
        self._session_scope = session_scope

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            with self._session_scope() as session:
                row = session.execute(
                    select(profiles).where(profiles.c.user_id == user_id)
                ).fetchone()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Profile read failed: {e.__class__.__name__}") from e
        return _row_to_document(row) if row else None

    def set(self, user_id: str, fields: Dict[str, Any], merge: bool = True) -> None:
        try:
            with self._session_scope() as session:
                if not merge:
                    session.execute(delete(profiles).where(profiles.c.user_id == user_id))
                    session.execute(insert(profiles).values(**_insert_values(user_id, fields)))
                    return
                if fields and self._apply(session, ProfileWrite(user_id, dict(fields))):
                    return
                exists = session.execute(
                    select(profiles.c.user_id).where(profiles.c.user_id == user_id)
                ).fetchone()
                if not exists:
                    session.execute(insert(profiles).values(**_insert_values(user_id, fields)))
        except IntegrityError:
            # Another writer created the profile first; merge into it.
            self.update(user_id, fields)
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Profile write failed: {e.__class__.__name__}") from e

    def create(self, user_id: str, fields: Dict[str, Any]) -> bool:
        try:
            with self._session_scope() as session:
                session.execute(insert(profiles).values(**_insert_values(user_id, fields)))
        except IntegrityError:
            return False
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Profile create failed: {e.__class__.__name__}") from e
        return True

    def update(self, user_id: str, fields: Dict[str, Any], conditions: Sequence[Condition] = ()) -> bool:
        if not fields:
            return False
        try:
            with self._session_scope() as session:
                return self._apply(session, ProfileWrite(user_id, dict(fields), tuple(conditions)))
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Profile update failed: {e.__class__.__name__}") from e

    def query(self, conditions: Sequence[Condition]) -> List[Dict[str, Any]]:
        stmt = select(profiles)
        if conditions:
            stmt = stmt.where(and_(*[_clause(c) for c in conditions]))
        try:
            with self._session_scope() as session:
                rows = session.execute(stmt.order_by(profiles.c.user_id)).fetchall()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Profile query failed: {e.__class__.__name__}") from e
        return [_row_to_document(row) for row in rows]

    def batch_commit(self, writes: Sequence[ProfileWrite]) -> List[str]:
        written: List[str] = []
        if not writes:
            return written
        try:
            with self._session_scope() as session:
                for write in writes:
                    if self._apply(session, write):
                        written.append(write.user_id)
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Batch commit failed: {e.__class__.__name__}") from e
        return written

    @staticmethod
    def _apply(session: Session, write: ProfileWrite) -> bool:
        stmt = update(profiles).where(profiles.c.user_id == write.user_id)
        for condition in write.conditions:
            stmt = stmt.where(_clause(condition))
        result = session.execute(stmt.values(**_values(write.fields)))
        return bool(result.rowcount)
