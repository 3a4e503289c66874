# backend/repairdesk/repositories/base_repository.py
"""
Base Repository Pattern for the repairdesk platform.

Provides the foundation for all repository classes with:
- Common CRUD operations
- Conditional (compare-and-swap) updates
- Transaction support (managed by services)

Repositories never commit; the service layer owns transaction boundaries.
"""

import logging
from typing import Any, Dict, Generic, Optional, Sequence, Type, TypeVar

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException
from ..database import get_dialect_name

# Type variable for generic model support
T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Concrete base repository implementation with common data access patterns.

    Attributes:
        db: SQLAlchemy session
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        return get_dialect_name(self.db)

    def get_by_id(self, id: str, load_relationships: bool = True) -> Optional[T]:
        """
        Retrieve an entity by its primary key.

        Subclasses override _apply_eager_loading to pull in relationships.
        """
        try:
            query = self.db.query(self.model).filter(self.model.id == id)
            if load_relationships:
                query = self._apply_eager_loading(query)
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting {self.model.__name__} by id {id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve {self.model.__name__}: {str(e)}")

    def create(self, **kwargs) -> T:
        """
        Create a new entity.

        Note: Does NOT commit - transaction management is handled by service layer.
        """
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()  # Get ID without committing
            return entity
        except IntegrityError as exc:
            self.logger.error(
                "Integrity error creating %s: %s", self.model.__name__, exc, exc_info=True
            )
            self.db.rollback()
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(e)}")

    def update(self, id: str, **kwargs) -> Optional[T]:
        """
        Load-modify-flush update for fields no concurrent actor competes on.

        Lifecycle fields must go through conditional_update instead.
        """
        try:
            entity = self.get_by_id(id, load_relationships=False)
            if not entity:
                return None
            for key, value in kwargs.items():
                if hasattr(entity, key):
                    setattr(entity, key, value)
            self.db.flush()
            return entity
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating {self.model.__name__} {id}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to update {self.model.__name__}: {str(e)}")

    def conditional_update(
        self,
        id: str,
        conditions: Sequence[Any],
        values: Dict[str, Any],
    ) -> Optional[T]:
        """
        Apply ``values`` to row ``id`` only if every condition still holds.

        Runs as one ``UPDATE ... WHERE id = :id AND <conditions>`` so at most
        one concurrent caller can match. Returns the freshly loaded row, or
        None when nothing matched; callers re-read to classify the miss.
        """
        stmt = (
            update(self.model)
            .where(self.model.id == id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Conditional update of {self.model.__name__} {id} failed: {str(e)}")
            raise RepositoryException(f"Failed to update {self.model.__name__}: {str(e)}")

        if not result.rowcount:
            self.logger.debug(
                "Conditional update matched no rows",
                extra={"model": self.model.__name__, "entity_id": id},
            )
            return None
        return self.db.get(self.model, id, populate_existing=True)

    def reload(self, id: str) -> Optional[T]:
        """Read a row bypassing any stale identity-map state."""
        return self.db.get(self.model, id, populate_existing=True)

    def find_one_by(self, **kwargs) -> Optional[T]:
        try:
            return self.db.query(self.model).filter_by(**kwargs).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding one by criteria: {str(e)}")
            raise RepositoryException(f"Failed to find record: {str(e)}")

    def _apply_eager_loading(self, query: Query) -> Query:
        """Hook for subclasses; the base loads nothing extra."""
        return query
