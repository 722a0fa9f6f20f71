"""Base service with tenant-scoped queries.

Service classes inherit from this. Provides standard read/list/delete
with pagination and tenant scoping (multi-tenant).
"""

from typing import Any, Generic, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseService(Generic[ModelType]):
    """Generic tenant-scoped service for any SQLAlchemy model.

    Usage:
        class ExecutionService(BaseService[WorkflowExecution]):
            def __init__(self, db: AsyncSession):
                super().__init__(WorkflowExecution, db)
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    # ─── Read ──────────────────────────────────────────────

    async def get_by_id_and_tenant(self, id: str, tenant_id: str) -> Optional[ModelType]:
        """Get a single record scoped to a tenant."""
        query = select(self.model).where(
            self.model.id == id,
            self.model.tenant_id == tenant_id,
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list(
        self,
        tenant_id: str,
        offset: int = 0,
        limit: int = 50,
        order_by: str = "created_at",
        order_desc: bool = True,
        filters: dict[str, Any] = None,
        where: Sequence[Any] = (),
    ) -> tuple[Sequence[ModelType], int]:
        """List records with pagination, filtering, and sorting.

        ``filters`` maps column names to a value (or list of values);
        ``where`` adds arbitrary SQL expressions.

        Returns:
            Tuple of (items, total_count)
        """
        query = select(self.model).where(self.model.tenant_id == tenant_id)
        count_query = select(func.count()).select_from(self.model).where(
            self.model.tenant_id == tenant_id
        )

        # Additional filters
        if filters:
            for field, value in filters.items():
                if value is None or not hasattr(self.model, field):
                    continue
                col = getattr(self.model, field)
                if isinstance(value, list):
                    query = query.where(col.in_(value))
                    count_query = count_query.where(col.in_(value))
                else:
                    query = query.where(col == value)
                    count_query = count_query.where(col == value)

        for clause in where:
            query = query.where(clause)
            count_query = count_query.where(clause)

        # Sorting
        if hasattr(self.model, order_by):
            col = getattr(self.model, order_by)
            query = query.order_by(col.desc() if order_desc else col.asc())

        # Pagination
        query = query.offset(offset).limit(limit)

        result = await self.db.execute(query)
        items = result.scalars().all()

        count_result = await self.db.execute(count_query)
        total = count_result.scalar() or 0

        return items, total

    # ─── Delete ────────────────────────────────────────────

    async def delete(self, id: str, tenant_id: str) -> bool:
        """Hard-delete a record.

        Returns:
            True if deleted, False if not found
        """
        instance = await self.get_by_id_and_tenant(id, tenant_id)
        if not instance:
            return False

        await self.db.delete(instance)
        await self.db.flush()
        return True
