"""ORM model and API schemas for test entities."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


class TestEntity(Base):
    """A named record used to exercise the CRUD endpoints."""

    __tablename__ = "test_entities"
    __test__ = False

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    def __repr__(self) -> str:
        return f"TestEntity(id={self.id!r}, name={self.name!r})"


class EntityPayload(BaseModel):
    """Request body for creating or updating an entity."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1024)


class EntityResponse(BaseModel):
    """Entity as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
