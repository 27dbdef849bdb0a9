from typing import Generic, TypeVar, Type, Optional, List, Any, Dict, Iterable, Sequence, Union
from uuid import UUID
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func
from sqlalchemy.exc import SQLAlchemyError

from app.utils.logging import get_logger

# Define a generic type for SQLAlchemy models
ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)

OrderBy = Union[str, Sequence[str], None]


class BaseRepository(Generic[ModelType]):
    """Base repository implementing common CRUD operations.

    Filters are equality-only (``{"field": value}``); ordering is by column
    name, with a leading ``-`` for descending. Writes commit by default;
    pass ``commit=False`` to leave the surrounding transaction open.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session
            model: The SQLAlchemy model class this repository manages
        """
        self.session = session
        self.model = model
        self.logger = LOGGER

    def _apply_filters(self, query, filters: Optional[Dict[str, Any]]):
        if filters:
            for field, value in filters.items():
                if not hasattr(self.model, field):
                    raise AttributeError(f"{self.model.__name__} has no column {field!r}")
                query = query.where(getattr(self.model, field) == value)
        return query

    def _apply_order(self, query, order_by: OrderBy):
        if not order_by:
            return query
        fields = [order_by] if isinstance(order_by, str) else list(order_by)
        for field in fields:
            column = getattr(self.model, field.lstrip("-"))
            query = query.order_by(column.desc() if field.startswith("-") else column.asc())
        return query

    async def get_by_id(self, id: UUID) -> Optional[ModelType]:
        """Get a record by its ID.

        Args:
            id: The UUID of the record

        Returns:
            The record if found, None otherwise
        """
        try:
            query = select(self.model).where(self.model.id == id)
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error retrieving {self.model.__name__} by ID {id}: {str(e)}",
                exc_info=True
            )
            raise

    async def get_by_ids(
        self,
        ids: Iterable[UUID],
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[ModelType]:
        """Get the records whose ID is in ``ids`` and that match ``filters``."""
        id_list = list(ids)
        if not id_list:
            return []
        try:
            query = select(self.model).where(self.model.id.in_(id_list))
            query = self._apply_filters(query, filters)
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error retrieving {self.model.__name__} by IDs: {str(e)}",
                exc_info=True
            )
            raise

    async def get_all(
        self,
        skip: int = 0,
        limit: Optional[int] = 200,
        filters: Optional[Dict[str, Any]] = None,
        order_by: OrderBy = None,
    ) -> List[ModelType]:
        """Get all records with optional pagination, filtering and ordering.

        Args:
            skip: Number of records to skip
            limit: Maximum number of records to return (None for no limit)
            filters: Dictionary of field_name: value to filter by
            order_by: Column name(s); prefix with "-" for descending

        Returns:
            List of records
        """
        try:
            query = self._apply_filters(select(self.model), filters)
            query = self._apply_order(query, order_by)
            query = query.offset(skip)
            if limit is not None:
                query = query.limit(limit)
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error retrieving all {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def get_one(
        self,
        filters: Dict[str, Any],
        order_by: OrderBy = None,
    ) -> Optional[ModelType]:
        """First record matching ``filters`` in ``order_by`` order, if any."""
        records = await self.get_all(limit=1, filters=filters, order_by=order_by)
        return records[0] if records else None

    async def max_value(self, field: str, filters: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """Largest value of ``field`` among records matching ``filters``."""
        try:
            query = select(func.max(getattr(self.model, field)))
            query = self._apply_filters(query, filters)
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error reading max {field} of {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def create(self, commit: bool = True, **kwargs) -> ModelType:
        """Create a new record.

        Args:
            commit: Commit the session after flushing
            **kwargs: Fields and values for the new record

        Returns:
            The created record
        """
        try:
            instance = self.model(**kwargs)
            self.session.add(instance)
            await self.session.flush()
            if commit:
                await self.session.commit()
            return instance
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error creating {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def create_many(self, rows: Sequence[Dict[str, Any]], commit: bool = True) -> List[ModelType]:
        """Insert several records in one flush.

        Args:
            rows: Field/value mappings, one per record
            commit: Commit the session after flushing

        Returns:
            The created records, in input order
        """
        try:
            instances = [self.model(**row) for row in rows]
            self.session.add_all(instances)
            await self.session.flush()
            if commit:
                await self.session.commit()
            return instances
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error creating {len(rows)} {self.model.__name__} rows: {str(e)}",
                exc_info=True
            )
            raise

    async def update(self, id: UUID, commit: bool = True, **kwargs) -> Optional[ModelType]:
        """Update an existing record.

        Args:
            id: The UUID of the record to update
            commit: Commit the session after flushing
            **kwargs: Fields and values to update

        Returns:
            The updated record if found, None otherwise
        """
        try:
            instance = await self.get_by_id(id)
            if not instance:
                return None

            for key, value in kwargs.items():
                if hasattr(instance, key):
                    setattr(instance, key, value)

            if hasattr(instance, "updated_at"):
                setattr(instance, "updated_at", datetime.now(timezone.utc))

            await self.session.flush()
            if commit:
                await self.session.commit()
            return instance
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error updating {self.model.__name__} {id}: {str(e)}",
                exc_info=True
            )
            raise

    async def delete(self, id: UUID) -> bool:
        """Delete a record by ID.

        Args:
            id: The UUID of the record to delete

        Returns:
            True if deleted, False if not found
        """
        try:
            instance = await self.get_by_id(id)
            if not instance:
                return False

            await self.session.delete(instance)
            await self.session.flush()
            await self.session.commit()
            return True
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error deleting {self.model.__name__} {id}: {str(e)}",
                exc_info=True
            )
            raise

    async def delete_where(self, filters: Dict[str, Any], commit: bool = True) -> int:
        """Delete every record matching ``filters``.

        Args:
            filters: Dictionary of field_name: value to filter by; must not be empty
            commit: Commit the session after the delete

        Returns:
            Number of deleted records
        """
        if not filters:
            raise ValueError("delete_where requires at least one filter")
        try:
            stmt = self._apply_filters(delete(self.model), filters)
            result = await self.session.execute(stmt)
            if commit:
                await self.session.commit()
            return result.rowcount or 0
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error deleting {self.model.__name__} rows: {str(e)}",
                exc_info=True
            )
            raise

    async def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records matching filters.

        Args:
            filters: Dictionary of field_name: value to filter by

        Returns:
            Count of matching records
        """
        try:
            query = self._apply_filters(select(func.count()).select_from(self.model), filters)
            result = await self.session.execute(query)
            return result.scalar_one()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error counting {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise
