"""
Repository base class for the Library Desk backend.

Every component that owns a table subclasses ``BaseRepository`` and gets the
shared lookups for free. Components never open or commit transactions
themselves: they work inside the session handed to them by the desk, so one
desk operation is always one unit of work.
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..errors import NotFound
from .schema import Base
from .session import safe_query

ModelType = TypeVar("ModelType", bound=Base)
ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)


class BaseRepository(ABC, Generic[ModelType, ResponseSchemaType]):
    """Shared lookups over one table, returning pydantic models."""

    def __init__(self, session: Session):
        self.session = session

    @property
    @abstractmethod
    def model_class(self) -> type[ModelType]:
        """Return the SQLAlchemy model class."""

    @property
    @abstractmethod
    def response_schema(self) -> type[ResponseSchemaType]:
        """Return the Pydantic response schema."""

    @property
    def entity_name(self) -> str:
        return self.model_class.__name__

    def _to_response_model(self, db_obj: ModelType) -> ResponseSchemaType:
        return self.response_schema.model_validate(db_obj, from_attributes=True)

    def _get_row(self, id: int) -> ModelType | None:
        # Conditional UPDATEs bypass the identity map; always reload column values.
        query = (
            select(self.model_class)
            .where(self.model_class.id == id)
            .execution_options(populate_existing=True)
        )
        return safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            f"Failed to get {self.entity_name} by ID",
        )

    def _require_row(self, id: int) -> ModelType:
        db_obj = self._get_row(id)
        if db_obj is None:
            raise NotFound(f"{self.entity_name} {id} not found")
        return db_obj

    def get_by_id(self, id: int) -> ResponseSchemaType | None:
        db_obj = self._get_row(id)
        return None if db_obj is None else self._to_response_model(db_obj)

    def require(self, id: int) -> ResponseSchemaType:
        """Like ``get_by_id`` but raises ``NotFound`` for a missing row."""
        return self._to_response_model(self._require_row(id))

    def exists(self, id: int) -> bool:
        query = (
            select(func.count()).select_from(self.model_class).where(self.model_class.id == id)
        )
        count = safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to check existence"
        )
        return bool(count)

    def count(self) -> int:
        query = select(func.count()).select_from(self.model_class)
        return (
            safe_query(self.session, lambda s: s.execute(query).scalar(), "Failed to count rows")
            or 0
        )
