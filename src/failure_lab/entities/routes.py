"""HTTP routes for test entity CRUD."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status

from ..exceptions import EntityNotFoundError
from ..logging import get_logger
from ..telemetry import get_tracer
from .models import EntityPayload, EntityResponse
from .service import TestEntityService

logger = get_logger(__name__)
tracer = get_tracer(__name__)

router = APIRouter(prefix="/api/entities", tags=["entities"])


def get_entity_service(request: Request) -> TestEntityService:
    return request.app.state.entity_service


EntityService = Annotated[TestEntityService, Depends(get_entity_service)]


# Sync handlers run on the bounded worker pool, like every CRUD request.
@router.get("", response_model=list[EntityResponse], summary="List all entities")
def list_entities(service: EntityService) -> list[EntityResponse]:
    with tracer.start_as_current_span("get-all-entities-endpoint"):
        logger.info("api.entities.list")
        return service.get_all_entities()


@router.get("/search", response_model=list[EntityResponse], summary="Search entities by name")
def search_entities(
    service: EntityService,
    name: Annotated[str, Query(description="Case-insensitive name fragment.")],
) -> list[EntityResponse]:
    with tracer.start_as_current_span("search-entities-endpoint"):
        logger.info("api.entities.search", name=name)
        return service.search_entities_by_name(name)


@router.get("/{entity_id}", response_model=EntityResponse, summary="Get an entity by id")
def get_entity(entity_id: int, service: EntityService) -> EntityResponse:
    with tracer.start_as_current_span("get-entity-by-id-endpoint"):
        logger.info("api.entities.get", entity_id=entity_id)
        entity = service.get_entity_by_id(entity_id)
        if entity is None:
            raise EntityNotFoundError(entity_id)
        return entity


@router.post(
    "",
    response_model=EntityResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an entity",
)
def create_entity(payload: EntityPayload, service: EntityService) -> EntityResponse:
    with tracer.start_as_current_span("create-entity-endpoint"):
        logger.info("api.entities.create", name=payload.name)
        return service.create_entity(payload)


@router.put("/{entity_id}", response_model=EntityResponse, summary="Update an entity")
def update_entity(entity_id: int, payload: EntityPayload, service: EntityService) -> EntityResponse:
    with tracer.start_as_current_span("update-entity-endpoint"):
        logger.info("api.entities.update", entity_id=entity_id)
        return service.update_entity(entity_id, payload)


@router.delete("/{entity_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an entity")
def delete_entity(entity_id: int, service: EntityService) -> Response:
    with tracer.start_as_current_span("delete-entity-endpoint"):
        logger.info("api.entities.delete", entity_id=entity_id)
        service.delete_entity(entity_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
