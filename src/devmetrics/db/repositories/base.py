"""Base repository pattern implementation for async SQLAlchemy.

Provides common session handling and the generic store operations
(get-by-id, find, add, update, count, composable query) shared by all
repositories.
"""

from collections.abc import Sequence
from typing import Any, Generic, TypeVar

from sqlalchemy import ColumnElement, Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from devmetrics.db.models import Base

# Generic type variable for model classes
ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Base repository with common async session handling.

    All repositories should inherit from this class to get
    consistent session management and common query patterns.

    Usage:
        class DeveloperRepository(BaseRepository[Developer]):
            def __init__(self, session: AsyncSession) -> None:
                super().__init__(session, Developer)

            async def get_by_email(self, email: str) -> Developer | None:
                return await self._get_by_field("email", email)
    """

    def __init__(self, session: AsyncSession, model_class: type[ModelT]) -> None:
        """Initialize the repository with a session.

        Args:
            session: Async SQLAlchemy session (caller manages lifecycle)
            model_class: The SQLAlchemy model class this repository manages
        """
        self._session = session
        self._model_class = model_class

    @property
    def session(self) -> AsyncSession:
        """Access the underlying session."""
        return self._session

    # -------------------------------------------------------------------------
    # Common Read Operations
    # -------------------------------------------------------------------------

    async def get_by_id(self, id: int) -> ModelT | None:
        """Get an entity by its primary key ID.

        Args:
            id: Primary key ID

        Returns:
            Entity or None if not found
        """
        return await self._session.get(self._model_class, id)

    async def _get_by_field(self, field_name: str, value: object) -> ModelT | None:
        """Get an entity by a specific field value.

        Args:
            field_name: Name of the model field
            value: Value to match

        Returns:
            First matching entity or None
        """
        stmt = select(self._model_class).where(
            getattr(self._model_class, field_name) == value
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    def query(self) -> Select[tuple[ModelT]]:
        """Start a composable SELECT over this repository's model.

        Usage:
            stmt = repo.query().where(Commit.repository_id == 1).order_by(Commit.sha)
            commits = await repo.fetch_all(stmt)
        """
        return select(self._model_class)

    async def fetch_all(self, stmt: Select[tuple[ModelT]]) -> list[ModelT]:
        """Execute a statement built from query() and return all entities."""
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def find(self, *criteria: ColumnElement[bool]) -> list[ModelT]:
        """Get all entities matching the given predicates.

        Args:
            *criteria: SQLAlchemy boolean expressions, ANDed together

        Returns:
            List of matching entities
        """
        return await self.fetch_all(self.query().where(*criteria))

    async def get_all(self, limit: int | None = None) -> list[ModelT]:
        """Get all entities, optionally limited.

        Args:
            limit: Maximum number of entities to return

        Returns:
            List of entities
        """
        stmt = self.query()
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self.fetch_all(stmt)

    # -------------------------------------------------------------------------
    # Common Write Operations
    # -------------------------------------------------------------------------

    def add(self, entity: ModelT) -> ModelT:
        """Add an entity to the session (does not flush).

        The entity will be persisted when the unit of work saves.

        Args:
            entity: Entity to add

        Returns:
            The same entity (for chaining)
        """
        self._session.add(entity)
        return entity

    def add_all(self, entities: Sequence[ModelT]) -> None:
        """Add several entities to the session (does not flush)."""
        self._session.add_all(entities)

    def update(self, entity: ModelT, **values: Any) -> ModelT:
        """Overwrite attributes on a tracked entity (does not flush).

        Args:
            entity: Entity to modify
            **values: Attribute names and their new values

        Returns:
            The same entity
        """
        for key, value in values.items():
            setattr(entity, key, value)
        return entity

    async def flush(self) -> None:
        """Flush pending changes to the database.

        This executes SQL but does not commit the transaction.
        Useful for getting generated IDs before commit.
        """
        await self._session.flush()

    async def delete(self, entity: ModelT) -> None:
        """Mark an entity for deletion.

        The deletion happens on commit/flush.

        Args:
            entity: Entity to delete
        """
        await self._session.delete(entity)

    # -------------------------------------------------------------------------
    # Utility Methods
    # -------------------------------------------------------------------------

    async def count(self, *criteria: ColumnElement[bool]) -> int:
        """Count entities of this type, optionally filtered.

        Args:
            *criteria: Optional SQLAlchemy boolean expressions

        Returns:
            Total count
        """
        stmt = select(func.count()).select_from(self._model_class)
        if criteria:
            stmt = stmt.where(*criteria)
        result = await self._session.execute(stmt)
        return result.scalar() or 0
