"""
Planning Center People integration.

Thin async wrapper over the People v2 JSON:API endpoints used for onboarding
field sync. Every request goes through the client's RateGovernor, and
authenticates with the admin personal access token (HTTP Basic, app id +
secret) because volunteers can't read their own field data.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from onboarding_sync.config import settings
from onboarding_sync.integrations.rate_governor import RateGovernor

logger = logging.getLogger(__name__)


class PlanningCenterClient:
    """
    Async Planning Center People client.

    Non-2xx responses raise httpx.HTTPStatusError; 429s are absorbed by the
    governor before they get here.
    """

    def __init__(
        self,
        app_id: str | None = None,
        secret: str | None = None,
        base_url: str | None = None,
        governor: RateGovernor | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        page_size: int | None = None,
    ) -> None:
        self.base_url = (base_url or settings.pco_base_url).rstrip("/")
        self._auth = httpx.BasicAuth(
            app_id if app_id is not None else settings.pco_app_id,
            secret if secret is not None else settings.pco_secret,
        )
        self.governor = governor or RateGovernor()
        self.page_size = page_size or settings.field_definitions_page_size
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                auth=self._auth,
                headers={"Accept": "application/json"},
                timeout=30.0,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> PlanningCenterClient:
        await self._ensure_client()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        client = await self._ensure_client()
        request = client.build_request(method, url, **kwargs)
        resp = await self.governor.execute(client, request)
        resp.raise_for_status()
        if not resp.content:
            return {}
        return resp.json()

    # ── Field data ─────────────────────────────────────────────

    async def get_person_field_data(self, person_id: str) -> dict[str, Any]:
        """Get a person's field data with the field definitions included."""
        return await self._request(
            "GET",
            f"/people/v2/people/{person_id}/field_data",
            params={"include": "field_definition"},
        )

    async def create_field_datum(
        self, person_id: str, field_definition_id: str, value: Any
    ) -> dict[str, Any]:
        """Create a field datum binding the person to a field definition."""
        payload = {
            "data": {
                "type": "FieldDatum",
                "attributes": {"value": value},
                "relationships": {
                    "field_definition": {
                        "data": {"type": "FieldDefinition", "id": field_definition_id},
                    },
                },
            },
        }
        data = await self._request(
            "POST", f"/people/v2/people/{person_id}/field_data", json=payload
        )
        logger.info(
            "Field datum created for person %s (definition %s)", person_id, field_definition_id
        )
        return data

    async def update_field_datum(self, field_datum_id: str, value: Any) -> dict[str, Any]:
        """Update an existing field datum's value."""
        payload = {
            "data": {
                "type": "FieldDatum",
                "id": field_datum_id,
                "attributes": {"value": value},
            },
        }
        data = await self._request(
            "PATCH", f"/people/v2/field_data/{field_datum_id}", json=payload
        )
        logger.info("Field datum %s updated", field_datum_id)
        return data

    # ── Field definitions ──────────────────────────────────────

    async def get_field_definitions_page(self, url: str | None = None) -> dict[str, Any]:
        """
        Get one page of the field definition catalog.

        Pass the previous page's ``links.next`` as ``url`` to continue.
        """
        if url is None:
            return await self._request(
                "GET", "/people/v2/field_definitions", params={"per_page": self.page_size}
            )
        return await self._request("GET", url)
