"""
Base repository class for data access layer.

The repository pattern provides:
1. Separation of data access logic from business logic
2. Single place for query logic (easier to maintain)
3. Easier testing (can mock repositories)

Writes keyed by a natural unique key go through ``insert_stmt()``, which
returns the dialect-specific INSERT so callers can attach
``on_conflict_do_nothing`` / ``on_conflict_do_update``. Both PostgreSQL
(production) and SQLite (tests) support the same ON CONFLICT clause.

Example:
    class EventRepository(BaseRepository[Event]):
        def find_by_external_id(self, external_id: str) -> Optional[Event]:
            return self.where_first(Event.external_id == external_id)
"""
from abc import ABC
from typing import TypeVar, Generic, Type, Optional, List

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Query, Session

T = TypeVar("T")


class BaseRepository(Generic[T], ABC):
    """
    Base repository class providing common data access methods.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        db: The database session
    """

    def __init__(self, model_type: Type[T], db: Session):
        self.model_type = model_type
        self.db = db

    # ========================================================================
    # Reads
    # ========================================================================

    def find_by_id(self, id: str) -> Optional[T]:
        """Find a single record by ID."""
        return self.db.get(self.model_type, id)

    def query(self) -> Query:
        """Get a new query object for this model."""
        return self.db.query(self.model_type)

    def where(self, *criterion) -> List[T]:
        """Filter records using SQLAlchemy expressions."""
        return self.query().filter(*criterion).all()

    def where_first(self, *criterion) -> Optional[T]:
        """Filter records using SQLAlchemy expressions and return first match."""
        return self.query().filter(*criterion).first()

    # ========================================================================
    # Conflict-aware inserts
    # ========================================================================

    def insert_stmt(self, model_type: Optional[type] = None):
        """
        Dialect-specific INSERT for ``model_type`` (default: this repository's model).

        Raises:
            NotImplementedError: The bound database has no ON CONFLICT support
        """
        table = (model_type or self.model_type).__table__
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(table)
        if dialect == "sqlite":
            return sqlite.insert(table)
        raise NotImplementedError(f"Upserts are not supported on {dialect}")

