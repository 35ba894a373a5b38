"""
Field sync models — parsed views of Planning Center JSON:API documents.

Field definitions are addressed by display name in this codebase but by
opaque id upstream. These models keep both so callers never juggle raw
JSON:API resources.
"""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, Field


class FieldDefinitionRef(BaseModel):
    """An upstream field definition: display name + opaque id."""

    model_config = {"frozen": True}

    name: str
    id: str

    @classmethod
    def from_resource(cls, resource: dict[str, Any]) -> FieldDefinitionRef:
        return cls(id=str(resource["id"]), name=resource.get("attributes", {}).get("name", ""))


class FieldDatum(BaseModel):
    """A value binding one person to one field definition."""

    id: str
    value: Any = None
    field_definition_id: str | None = None

    @classmethod
    def from_resource(cls, resource: dict[str, Any]) -> FieldDatum:
        relationship = (
            (resource.get("relationships") or {}).get("field_definition") or {}
        ).get("data") or {}
        definition_id = relationship.get("id")
        return cls(
            id=str(resource["id"]),
            value=(resource.get("attributes") or {}).get("value"),
            field_definition_id=str(definition_id) if definition_id is not None else None,
        )


def _is_field_definition(resource: dict[str, Any]) -> bool:
    return resource.get("type") == "FieldDefinition"


class FieldDataSnapshot(BaseModel):
    """A person's field data at one point in time, with included definitions."""

    person_id: str
    field_data: list[FieldDatum] = Field(default_factory=list)
    field_definitions: list[FieldDefinitionRef] = Field(default_factory=list)

    @classmethod
    def from_document(cls, person_id: str, document: dict[str, Any]) -> FieldDataSnapshot:
        return cls(
            person_id=person_id,
            field_data=[FieldDatum.from_resource(r) for r in document.get("data") or []],
            field_definitions=[
                FieldDefinitionRef.from_resource(r)
                for r in document.get("included") or []
                if _is_field_definition(r)
            ],
        )

    def find_definition(self, name: str) -> FieldDefinitionRef | None:
        """Exact display-name match against the included definitions."""
        for definition in self.field_definitions:
            if definition.name == name:
                return definition
        return None

    def find_datum_for(self, field_definition_id: str) -> FieldDatum | None:
        """Return the datum bound to a definition id, if any."""
        for datum in self.field_data:
            if datum.field_definition_id == field_definition_id:
                return datum
        return None

    def values_by_name(self) -> dict[str, Any]:
        """Map field display name → value for every datum with a known definition."""
        names = {d.id: d.name for d in self.field_definitions}
        return {
            names[datum.field_definition_id]: datum.value
            for datum in self.field_data
            if datum.field_definition_id in names
        }


class UpsertAction(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"


class UpsertResult(BaseModel):
    """Outcome of a single field upsert."""

    person_id: str
    field_name: str
    field_definition_id: str
    action: UpsertAction
    field_datum_id: str | None = None
    value: Any = None
