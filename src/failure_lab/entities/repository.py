"""Query helpers for :class:`TestEntity` rows."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select

from .models import TestEntity

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


class TestEntityRepository:
    """Data access for test entities bound to one session."""

    __test__ = False

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_all(self) -> list[TestEntity]:
        return list(self.session.scalars(select(TestEntity).order_by(TestEntity.id)))

    def find_by_id(self, entity_id: int) -> TestEntity | None:
        return self.session.get(TestEntity, entity_id)

    def exists_by_id(self, entity_id: int) -> bool:
        return self.find_by_id(entity_id) is not None

    def save(self, entity: TestEntity) -> TestEntity:
        self.session.add(entity)
        self.session.flush()
        return entity

    def delete_by_id(self, entity_id: int) -> None:
        entity = self.find_by_id(entity_id)
        if entity is not None:
            self.session.delete(entity)
            self.session.flush()

    def count(self) -> int:
        return self.session.scalar(select(func.count()).select_from(TestEntity)) or 0

    def find_by_name_containing(self, fragment: str) -> list[TestEntity]:
        """Case-insensitive substring match on ``name``. ``%`` and ``_`` match literally."""
        stmt = (
            select(TestEntity)
            .where(TestEntity.name.icontains(fragment, autoescape=True))
            .order_by(TestEntity.id)
        )
        return list(self.session.scalars(stmt))

    def find_all_with_description(self) -> list[TestEntity]:
        stmt = select(TestEntity).where(TestEntity.description.is_not(None)).order_by(TestEntity.id)
        return list(self.session.scalars(stmt))
