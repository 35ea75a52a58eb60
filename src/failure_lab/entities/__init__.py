"""Test entity CRUD resource."""

from __future__ import annotations

from .models import EntityPayload, EntityResponse, TestEntity
from .service import TestEntityService

__all__ = ["EntityPayload", "EntityResponse", "TestEntity", "TestEntityService"]
