"""
Base Repository for the Pet Gourmet store

Generic async repository implementing CRUD operations over one SQLModel
table. Repositories never commit; the session owner (request dependency or
`get_session_context`) decides the transaction boundary.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, List, Optional, Type, TypeVar, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel


ModelType = TypeVar("ModelType", bound=SQLModel)
CreateSchemaType = TypeVar("CreateSchemaType", bound=SQLModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=SQLModel)

PrimaryKey = Union[int, str, UUID]


class IReadRepository(ABC, Generic[ModelType]):
    """Interface for read operations."""

    @abstractmethod
    async def get_by_id(self, id: PrimaryKey) -> Optional[ModelType]:
        """Get a single record by ID."""
        pass

    @abstractmethod
    async def get_all(self, skip: int = 0, limit: int = 100) -> List[ModelType]:
        """Get all records with pagination."""
        pass


class IWriteRepository(ABC, Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    """Interface for write operations."""

    @abstractmethod
    async def create(self, data: CreateSchemaType) -> ModelType:
        """Create a new record."""
        pass

    @abstractmethod
    async def update(self, id: PrimaryKey, data: UpdateSchemaType) -> Optional[ModelType]:
        """Update an existing record."""
        pass


class BaseRepository(
    IReadRepository[ModelType],
    IWriteRepository[ModelType, CreateSchemaType, UpdateSchemaType],
    Generic[ModelType, CreateSchemaType, UpdateSchemaType]
):
    """
    Generic async repository with CRUD operations.

    Args:
        model: The SQLModel table class to operate on
        session: Async database session
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        """Get the current session."""
        return self._session

    async def get_by_id(self, id: PrimaryKey) -> Optional[ModelType]:
        """
        Get a single record by its primary key.

        Args:
            id: Primary key value

        Returns:
            Model instance or None if not found
        """
        return await self._session.get(self._model, id)

    async def get_all(self, skip: int = 0, limit: int = 100) -> List[ModelType]:
        stmt = select(self._model).offset(skip).limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, data: CreateSchemaType) -> ModelType:
        """
        Create a new record from a create schema.

        Args:
            data: Create schema with field values

        Returns:
            Created model instance (flushed, with generated keys)
        """
        db_obj = self._model.model_validate(data)
        return await self.add(db_obj)

    async def add(self, db_obj: ModelType) -> ModelType:
        """Persist an already-built table instance."""
        self._session.add(db_obj)
        await self._session.flush()
        await self._session.refresh(db_obj)
        return db_obj

    async def update(self, id: PrimaryKey, data: UpdateSchemaType) -> Optional[ModelType]:
        """
        Update an existing record with the fields set on `data`.

        Returns:
            Updated model instance or None if not found
        """
        db_obj = await self.get_by_id(id)
        if not db_obj:
            return None
        return await self.apply(db_obj, data.model_dump(exclude_unset=True))

    async def apply(self, db_obj: ModelType, changes: dict[str, Any]) -> ModelType:
        """Set attributes on a loaded instance and flush."""
        for field, value in changes.items():
            setattr(db_obj, field, value)
        return await self.add(db_obj)
