"""Shared fixtures: a controllable clock and an in-memory Planning Center People API."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from onboarding_sync.integrations.planning_center import PlanningCenterClient
from onboarding_sync.integrations.rate_governor import RateGovernor

BASE_URL = "https://pco.test"


class FakeClock:
    """Monotonic clock whose sleep() advances time instantly."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakePeopleAPI:
    """
    Minimal People v2 field-data API.

    ``definitions`` is the full field definition catalog; ``field_data`` maps
    person id → list of {"id", "definition_id", "value"}.
    """

    def __init__(self, definitions: dict[str, str]) -> None:
        self.definitions = definitions  # id → name
        self.field_data: dict[str, list[dict[str, Any]]] = {}
        self.requests: list[httpx.Request] = []
        self.fail_person_fetch_with: int | None = None
        self._next_datum_id = 5000

    def add_datum(self, person_id: str, definition_id: str, value: Any) -> str:
        datum_id = str(self._next_datum_id)
        self._next_datum_id += 1
        self.field_data.setdefault(person_id, []).append(
            {"id": datum_id, "definition_id": definition_id, "value": value}
        )
        return datum_id

    def calls(self, method: str, path_prefix: str = "") -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and r.url.path.startswith(path_prefix)
        ]

    def _datum_resource(self, datum: dict[str, Any]) -> dict[str, Any]:
        return {
            "type": "FieldDatum",
            "id": datum["id"],
            "attributes": {"value": datum["value"]},
            "relationships": {
                "field_definition": {
                    "data": {"type": "FieldDefinition", "id": datum["definition_id"]}
                }
            },
        }

    def _definition_resource(self, definition_id: str) -> dict[str, Any]:
        return {
            "type": "FieldDefinition",
            "id": definition_id,
            "attributes": {"name": self.definitions[definition_id]},
        }

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path.strip("/").split("/")

        # /people/v2/people/{id}/field_data
        if parts[:3] == ["people", "v2", "people"] and parts[-1] == "field_data":
            person_id = parts[3]
            if request.method == "GET":
                if self.fail_person_fetch_with:
                    return httpx.Response(self.fail_person_fetch_with, json={"errors": []})
                data = self.field_data.get(person_id, [])
                return httpx.Response(
                    200,
                    json={
                        "data": [self._datum_resource(d) for d in data],
                        "included": [
                            self._definition_resource(d["definition_id"]) for d in data
                        ],
                    },
                )
            if request.method == "POST":
                body = json.loads(request.content)
                definition_id = body["data"]["relationships"]["field_definition"]["data"]["id"]
                datum_id = self.add_datum(
                    person_id, definition_id, body["data"]["attributes"]["value"]
                )
                datum = self.field_data[person_id][-1]
                assert datum["id"] == datum_id
                return httpx.Response(201, json={"data": self._datum_resource(datum)})

        # /people/v2/field_data/{id}
        if parts[:3] == ["people", "v2", "field_data"] and request.method == "PATCH":
            body = json.loads(request.content)
            for data in self.field_data.values():
                for datum in data:
                    if datum["id"] == parts[3]:
                        datum["value"] = body["data"]["attributes"]["value"]
                        return httpx.Response(200, json={"data": self._datum_resource(datum)})
            return httpx.Response(404, json={"errors": []})

        # /people/v2/field_definitions
        if parts == ["people", "v2", "field_definitions"] and request.method == "GET":
            per_page = int(request.url.params.get("per_page", "25"))
            offset = int(request.url.params.get("offset", "0"))
            ids = sorted(self.definitions)
            page = ids[offset : offset + per_page]
            links: dict[str, Any] = {}
            if offset + per_page < len(ids):
                links["next"] = (
                    f"{BASE_URL}/people/v2/field_definitions"
                    f"?per_page={per_page}&offset={offset + per_page}"
                )
            return httpx.Response(
                200,
                json={"data": [self._definition_resource(i) for i in page], "links": links},
            )

        return httpx.Response(404, json={"errors": [{"title": "Not Found"}]})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def people_api() -> FakePeopleAPI:
    return FakePeopleAPI(
        {
            "101": "Declaration Reviewed",
            "102": "References Checked",
            "103": "Child Safety Training Last Completed",
            "104": "Moral Conduct Policy Signed",
            "105": "Public Presence Policy Signed",
        }
    )


@pytest.fixture
def pco_client(people_api: FakePeopleAPI, clock: FakeClock) -> PlanningCenterClient:
    return PlanningCenterClient(
        app_id="app-id",
        secret="secret",
        base_url=BASE_URL,
        governor=RateGovernor(clock=clock, sleep=clock.sleep),
        transport=httpx.MockTransport(people_api.handle),
        page_size=2,
    )
