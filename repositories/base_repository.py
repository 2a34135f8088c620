"""
Base Repository - common database operations for all repositories
Implements the Repository Pattern; services never touch the session directly.
"""

from typing import TypeVar, Generic, List, Optional, Dict, Any, Type, Iterable
from sqlalchemy.orm import Session, Query
from sqlalchemy.exc import SQLAlchemyError
import logging

logger = logging.getLogger(__name__)

# Type variable for model classes
T = TypeVar('T')


class BaseRepository(Generic[T]):
    """
    Base repository with common CRUD operations.

    Writes log and re-raise SQLAlchemy errors after rolling back. Reads log
    and return an empty value.
    """

    def __init__(self, session: Session, model_class: Type[T]):
        """
        Initialize repository with database session and model class.

        Args:
            session: SQLAlchemy database session
            model_class: The model class this repository manages
        """
        self.session = session
        self.model_class = model_class

    # CREATE Operations

    def create(self, **kwargs) -> T:
        """
        Create a new entity and flush it to get an id.

        Raises:
            SQLAlchemyError: If database operation fails
        """
        try:
            entity = self.model_class(**kwargs)
            self.session.add(entity)
            self.session.flush()
            logger.debug(f"Created {self.model_class.__name__} with id {entity.id}")
            return entity
        except SQLAlchemyError as e:
            logger.error(f"Error creating {self.model_class.__name__}: {e}")
            self.session.rollback()
            raise

    # READ Operations

    def get_by_id(self, entity_id: int) -> Optional[T]:
        try:
            return self.session.get(self.model_class, entity_id)
        except SQLAlchemyError as e:
            logger.error(f"Error getting {self.model_class.__name__} by id {entity_id}: {e}")
            return None

    def get_many_by_ids(self, entity_ids: Iterable[int], **filters) -> List[T]:
        """
        Fetch several entities with a single IN query.

        Args:
            entity_ids: Ids to fetch; missing ids are simply absent from the result
            **filters: Extra equality filters, e.g. account_id
        """
        ids = list(entity_ids)
        if not ids:
            return []
        try:
            query = self._build_query(filters).filter(self.model_class.id.in_(ids))
            return query.all()
        except SQLAlchemyError as e:
            logger.error(f"Error getting {self.model_class.__name__} by ids: {e}")
            return []

    def find_by(self, **filters) -> List[T]:
        try:
            return self._build_query(filters).all()
        except SQLAlchemyError as e:
            logger.error(f"Error finding {self.model_class.__name__} by filters: {e}")
            return []

    def find_one_by(self, **filters) -> Optional[T]:
        results = self.find_by(**filters)
        return results[0] if results else None

    def count(self, **filters) -> int:
        try:
            return self._build_query(filters).count()
        except SQLAlchemyError as e:
            logger.error(f"Error counting {self.model_class.__name__}: {e}")
            return 0

    # UPDATE Operations

    def update(self, entity: T, **updates) -> T:
        """
        Update an entity with new values.

        Raises:
            SQLAlchemyError: If database operation fails
        """
        try:
            for field, value in updates.items():
                if hasattr(entity, field):
                    setattr(entity, field, value)
            self.session.flush()
            logger.debug(f"Updated {self.model_class.__name__} with id {entity.id}")
            return entity
        except SQLAlchemyError as e:
            logger.error(f"Error updating {self.model_class.__name__}: {e}")
            self.session.rollback()
            raise

    def update_where(self, criteria: List[Any], values: Dict[str, Any]) -> int:
        """
        Conditional UPDATE ... WHERE; the row count tells the caller whether
        the expected prior state still held.

        Args:
            criteria: SQLAlchemy filter expressions the rows must satisfy
            values: Column values to set

        Returns:
            Number of rows updated

        Raises:
            SQLAlchemyError: If database operation fails
        """
        try:
            count = self.session.query(self.model_class)\
                .filter(*criteria)\
                .update(values, synchronize_session='fetch')
            self.session.flush()
            if count:
                self._expire_loaded(list(values))
            logger.debug(f"Conditionally updated {count} {self.model_class.__name__} rows")
            return count
        except SQLAlchemyError as e:
            logger.error(f"Error updating {self.model_class.__name__} rows: {e}")
            self.session.rollback()
            raise

    # Transaction Management

    def commit(self) -> None:
        """Commit the current transaction."""
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error committing transaction: {e}")
            self.session.rollback()
            raise

    def rollback(self) -> None:
        self.session.rollback()

    def refresh(self, entity: T) -> T:
        self.session.refresh(entity)
        return entity

    # Helper Methods

    def _expire_loaded(self, keys: List[str]) -> None:
        """
        Expire columns a bulk UPDATE just wrote on every in-session instance,
        so the next attribute access reads the row instead of a stale value.
        """
        for obj in list(self.session.identity_map.values()):
            if isinstance(obj, self.model_class):
                self.session.expire(obj, keys)

    def _build_query(self, filters: Optional[Dict[str, Any]] = None) -> Query:
        """
        Build a query from equality filters. Lists become IN clauses and
        None becomes IS NULL.
        """
        query = self.session.query(self.model_class)

        if filters:
            for field, value in filters.items():
                if hasattr(self.model_class, field):
                    column = getattr(self.model_class, field)
                    if isinstance(value, (list, tuple)):
                        query = query.filter(column.in_(value))
                    elif value is None:
                        query = query.filter(column.is_(None))
                    else:
                        query = query.filter(column == value)

        return query
