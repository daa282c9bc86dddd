"""Base service with standard lookup and transaction management."""

from typing import Any

from sqlalchemy.orm import Session

from faq_curator.core.exceptions import EntityNotFound
from faq_curator.db.repositories.base import BaseRepository


class BaseService[T, R: BaseRepository]:
    """Base service owning transaction boundaries for its repository.

    Transaction boundary rules:
    1. Single-service operations: the service commits.
    2. Multi-service orchestration: the orchestrator commits, inner services flush only.
    """

    repository_class: type[R]

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo: R = self.repository_class(db)

    def get_or_raise(self, id_: Any) -> T:
        """Get entity or raise EntityNotFound."""
        obj = self.repo.get(id_)
        if obj is None:
            model_name = self.repo.model.__name__
            raise EntityNotFound(f"{model_name} not found", context={"id": str(id_)})
        return obj

    def create(self, obj: T) -> T:
        """Create entity with commit."""
        self.repo.add(obj)
        self.commit()
        self.repo.refresh(obj)
        return obj

    def update(self, obj: T, **fields: Any) -> T:
        """Update entity with commit."""
        self.repo.partial_update(obj, **fields)
        self.commit()
        self.repo.refresh(obj)
        return obj

    def delete(self, obj: T) -> None:
        """Delete entity with commit."""
        self.repo.delete(obj)
        self.commit()

    def commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
