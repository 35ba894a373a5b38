"""
Field Locator — resolve a field's display name to its upstream definition id.

Checks the person's field-data snapshot first (no extra calls). On a miss,
walks the whole field definition catalog page by page through the governed
client and matches by exact name.
"""

from __future__ import annotations

import logging

from onboarding_sync.integrations.planning_center import PlanningCenterClient
from onboarding_sync.sync.models import FieldDataSnapshot, FieldDefinitionRef

logger = logging.getLogger(__name__)


async def list_field_definitions(client: PlanningCenterClient) -> list[FieldDefinitionRef]:
    """Fetch every field definition, following ``links.next`` until absent."""
    definitions: list[FieldDefinitionRef] = []
    next_url: str | None = None

    while True:
        page = await client.get_field_definitions_page(next_url)
        definitions.extend(
            FieldDefinitionRef.from_resource(resource)
            for resource in page.get("data") or []
            if resource.get("type", "FieldDefinition") == "FieldDefinition"
        )
        next_url = (page.get("links") or {}).get("next")
        if not next_url:
            break

    logger.debug("Fetched %d field definitions", len(definitions))
    return definitions


async def find_field_definition(
    client: PlanningCenterClient,
    name: str,
    snapshot: FieldDataSnapshot | None = None,
) -> FieldDefinitionRef | None:
    """
    Find the field definition with the given display name.

    Returns None when no definition has that name upstream, meaning the
    field must be created in Planning Center first. Failed page requests
    propagate as httpx errors.
    """
    if snapshot is not None:
        definition = snapshot.find_definition(name)
        if definition is not None:
            return definition

    logger.info("Field %r not in person's data, scanning all field definitions", name)
    for definition in await list_field_definitions(client):
        if definition.name == name:
            return definition

    logger.warning("Field %r not found in Planning Center", name)
    return None
