"""
Field Synchronizer — read and upsert a volunteer's custom field values.

Composes the governed Planning Center client with the Field Locator:

    fetch snapshot → resolve definition → PATCH existing datum | POST new datum

Upserts for the same (person, field) pair are serialized within the process,
so two concurrent first-time writes can't both take the create branch and
leave duplicate field data upstream.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Any, Mapping

from onboarding_sync.integrations.planning_center import PlanningCenterClient
from onboarding_sync.sync.field_locator import find_field_definition
from onboarding_sync.sync.models import FieldDataSnapshot, UpsertAction, UpsertResult

logger = logging.getLogger(__name__)


class FieldNotFoundError(Exception):
    """Raised when a field definition doesn't exist upstream (create it in PCO People first)."""

    def __init__(self, field_name: str) -> None:
        self.field_name = field_name
        super().__init__(
            f'Field "{field_name}" not found. '
            "Please create this custom field in PCO People first."
        )


class FieldSynchronizer:
    """Reads and writes a person's field data through the governed client."""

    def __init__(self, client: PlanningCenterClient) -> None:
        self.client = client
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, person_id: str, field_name: str) -> asyncio.Lock:
        key = (person_id, field_name)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def fetch_person_field_data(self, person_id: str) -> FieldDataSnapshot:
        """Fetch a person's field data and included field definitions."""
        document = await self.client.get_person_field_data(person_id)
        snapshot = FieldDataSnapshot.from_document(person_id, document)
        logger.debug(
            "Fetched %d field data entries for person %s", len(snapshot.field_data), person_id
        )
        return snapshot

    async def upsert_field(self, person_id: str, field_name: str, value: Any) -> UpsertResult:
        """
        Create or update a single field value for a person.

        Raises:
            FieldNotFoundError: No field definition with this name exists upstream.
            httpx.HTTPStatusError: Any non-2xx, non-429 upstream response.
        """
        async with self._lock_for(person_id, field_name):
            snapshot = await self.fetch_person_field_data(person_id)

            definition = await find_field_definition(self.client, field_name, snapshot)
            if definition is None:
                raise FieldNotFoundError(field_name)

            existing = snapshot.find_datum_for(definition.id)
            if existing is not None:
                await self.client.update_field_datum(existing.id, value)
                action = UpsertAction.UPDATED
                datum_id: str | None = existing.id
            else:
                document = await self.client.create_field_datum(person_id, definition.id, value)
                action = UpsertAction.CREATED
                datum_id = (document.get("data") or {}).get("id")

        logger.info(
            "Field %r %s for person %s (definition %s)",
            field_name,
            action.value,
            person_id,
            definition.id,
        )
        return UpsertResult(
            person_id=person_id,
            field_name=field_name,
            field_definition_id=definition.id,
            action=action,
            field_datum_id=str(datum_id) if datum_id is not None else None,
            value=value,
        )

    async def upsert_fields(
        self, person_id: str, values: Mapping[str, Any]
    ) -> dict[str, UpsertResult | Exception]:
        """
        Upsert several fields for a person, each independently.

        A failure on one field is recorded in the result map and does not
        stop the others. The caller decides what to retry.
        """
        results: dict[str, UpsertResult | Exception] = {}
        for field_name, value in values.items():
            try:
                results[field_name] = await self.upsert_field(person_id, field_name, value)
            except Exception as e:
                logger.error("Failed to sync field %r for person %s: %s", field_name, person_id, e)
                results[field_name] = e
        return results
