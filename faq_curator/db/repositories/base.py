"""Generic base repository for SQLAlchemy models."""

from typing import Any

from sqlalchemy import exists as sa_exists
from sqlalchemy import select
from sqlalchemy.orm import Session


class BaseRepository[T]:
    """Generic base repository providing standard CRUD operations.

    Repositories never commit; the service layer owns transaction boundaries.
    They return None for missing rows and leave raising to the services.
    """

    model: type[T]

    def __init__(self, db: Session) -> None:
        self.db = db

    # --- Retrieval ---

    def get(self, id_: Any) -> T | None:
        """Get entity by primary key."""
        return self.db.get(self.model, id_)

    def get_many(self, ids: list[Any]) -> dict[Any, T]:
        """Fetch several rows by primary key, keyed by id. Missing ids are absent."""
        if not ids:
            return {}
        stmt = select(self.model).where(self.model.id.in_(ids))
        return {obj.id: obj for obj in self.db.scalars(stmt).all()}

    def list_all(self) -> list[T]:
        return list(self.db.scalars(select(self.model)).all())

    def list_by(self, **filters: Any) -> list[T]:
        """List entities matching equality filters."""
        stmt = select(self.model)
        for key, value in filters.items():
            stmt = stmt.where(getattr(self.model, key) == value)
        return list(self.db.scalars(stmt).all())

    def first_by(self, **filters: Any) -> T | None:
        results = self.list_by(**filters)
        return results[0] if results else None

    def exists(self, **filters: Any) -> bool:
        conditions = [getattr(self.model, k) == v for k, v in filters.items()]
        stmt = select(sa_exists().where(*conditions))
        return self.db.scalar(stmt) or False

    # --- Persistence (never commit) ---

    def add(self, obj: T) -> T:
        self.db.add(obj)
        return obj

    def delete(self, obj: T) -> None:
        self.db.delete(obj)

    def refresh(self, obj: T) -> T:
        self.db.refresh(obj)
        return obj

    def partial_update(self, obj: T, skip_none: bool = True, **fields: Any) -> T:
        """Update entity fields."""
        for key, value in fields.items():
            if skip_none and value is None:
                continue
            setattr(obj, key, value)
        self.db.add(obj)
        return obj
