"""Business operations on test entities."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..exceptions import EntityNotFoundError
from ..logging import get_logger
from ..telemetry import get_tracer
from .models import EntityPayload, EntityResponse, TestEntity
from .repository import TestEntityRepository

if TYPE_CHECKING:
    from ..database import Database

logger = get_logger(__name__)
tracer = get_tracer(__name__)


class TestEntityService:
    """CRUD and search over test entities.

    Every method opens its own session, so results are detached
    :class:`EntityResponse` models safe to hand to any thread.
    """

    __test__ = False

    def __init__(self, database: Database) -> None:
        self.database = database

    def get_all_entities(self) -> list[EntityResponse]:
        with tracer.start_as_current_span("get-all-entities"), self.database.session() as session:
            logger.debug("entities.fetch_all")
            entities = TestEntityRepository(session).find_all()
            logger.info("entities.fetched", count=len(entities))
            return [EntityResponse.model_validate(entity) for entity in entities]

    def get_entity_by_id(self, entity_id: int) -> EntityResponse | None:
        with tracer.start_as_current_span("get-entity-by-id"), self.database.session() as session:
            entity = TestEntityRepository(session).find_by_id(entity_id)
            if entity is None:
                logger.warning("entities.not_found", entity_id=entity_id)
                return None
            logger.info("entities.found", entity_id=entity_id, name=entity.name)
            return EntityResponse.model_validate(entity)

    def create_entity(self, payload: EntityPayload) -> EntityResponse:
        with tracer.start_as_current_span("create-entity"), self.database.session() as session:
            entity = TestEntityRepository(session).save(
                TestEntity(name=payload.name, description=payload.description),
            )
            logger.info("entities.created", entity_id=entity.id)
            return EntityResponse.model_validate(entity)

    def update_entity(self, entity_id: int, payload: EntityPayload) -> EntityResponse:
        """Overwrite name and description of an existing entity.

        Raises:
            EntityNotFoundError: If no entity has ``entity_id``.

        """
        with tracer.start_as_current_span("update-entity"), self.database.session() as session:
            repository = TestEntityRepository(session)
            entity = repository.find_by_id(entity_id)
            if entity is None:
                logger.error("entities.update_missing", entity_id=entity_id)
                raise EntityNotFoundError(entity_id)
            entity.name = payload.name
            entity.description = payload.description
            repository.save(entity)
            logger.info("entities.updated", entity_id=entity_id)
            return EntityResponse.model_validate(entity)

    def delete_entity(self, entity_id: int) -> None:
        """Delete an entity.

        Raises:
            EntityNotFoundError: If no entity has ``entity_id``.

        """
        with tracer.start_as_current_span("delete-entity"), self.database.session() as session:
            repository = TestEntityRepository(session)
            if not repository.exists_by_id(entity_id):
                logger.warning("entities.delete_missing", entity_id=entity_id)
                raise EntityNotFoundError(entity_id)
            repository.delete_by_id(entity_id)
            logger.info("entities.deleted", entity_id=entity_id)

    def search_entities_by_name(self, name: str) -> list[EntityResponse]:
        with tracer.start_as_current_span("search-entities-by-name"), self.database.session() as session:
            entities = TestEntityRepository(session).find_by_name_containing(name)
            logger.info("entities.searched", name=name, count=len(entities))
            return [EntityResponse.model_validate(entity) for entity in entities]

    def count_entities(self) -> int:
        with self.database.session() as session:
            return TestEntityRepository(session).count()
