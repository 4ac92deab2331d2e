"""
Base Data Access Object (DAO) class.

WHY: Services never build SQL themselves. Every lifecycle write that
depends on the current status goes through update_where, so the status
check and the write are one statement.
"""

from typing import Generic, TypeVar, Type, Optional, List, Any, Dict
from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseDAO(Generic[ModelType]):
    """
    Generic create / read / guarded-update access for one model.

    There is no delete(): inquiries, proposals, payments and comments are
    part of the client's record and are retained.

    Type Parameters:
        ModelType: The SQLAlchemy model class this DAO manages
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    def _filtered(self, query: Select, filters: Dict[str, Any]) -> Select:
        """Apply column == value filters; unknown names are ignored."""
        for field, value in filters.items():
            column = getattr(self.model, field, None)
            if column is not None:
                query = query.where(column == value)
        return query

    async def create(self, **kwargs: Any) -> ModelType:
        """
        Insert a record and load its generated columns.

        The session is flushed, not committed; the request's get_db
        dependency commits once the whole operation succeeded.

        Raises:
            IntegrityError: If unique constraints are violated
        """
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def get_by_id(self, id: int) -> Optional[ModelType]:
        result = await self.session.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_all(self, skip: int = 0, limit: int = 100, **filters: Any) -> List[ModelType]:
        """
        List records in insertion order.

        Args:
            skip: Offset for pagination
            limit: Page size
            **filters: Column equality filters, e.g. status="new"
        """
        query = self._filtered(select(self.model), filters)
        result = await self.session.execute(
            query.order_by(self.model.id).offset(skip).limit(limit)
        )
        return list(result.scalars().all())

    async def update(self, id: int, **kwargs: Any) -> Optional[ModelType]:
        """Unconditional update; None if the record does not exist."""
        return await self.update_where(id, {}, **kwargs)

    async def update_where(
        self,
        id: int,
        expected: Dict[str, Any],
        **values: Any,
    ) -> Optional[ModelType]:
        """
        Compare-and-set update.

        WHAT: UPDATE ... WHERE id = :id AND <column> = <expected> for each
        expected column, e.g. {"status": SENT, "lock_version": 3}.

        WHY: A proposal response or payment completion must not apply on
        top of a concurrent change. A guard that no longer holds matches
        zero rows instead of overwriting.

        Args:
            id: Primary key
            expected: Column values that must still hold
            **values: Columns to write

        Returns:
            The refreshed instance, or None if the row is missing or a
            guard failed
        """
        statement = update(self.model).where(self.model.id == id)
        for field, value in expected.items():
            statement = statement.where(getattr(self.model, field) == value)
        statement = statement.values(**values).execution_options(synchronize_session=False)

        result = await self.session.execute(statement)
        if result.rowcount == 0:
            return None

        # The UPDATE bypassed the identity map; reload any instance already held
        instance = await self.session.get(self.model, id)
        if instance is not None:
            await self.session.refresh(instance)
        return instance

    async def count(self, **filters: Any) -> int:
        query = self._filtered(select(func.count()).select_from(self.model), filters)
        result = await self.session.execute(query)
        return result.scalar_one()
