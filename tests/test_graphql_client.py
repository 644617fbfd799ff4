"""Tests for the Geo read API client."""

import json

import httpx
import pytest
from fakes import GRAPHQL_URL, SPACE_ID, FakeSpace

from spacedrain.connectors.base import ConnectorError, GraphQLError, RateLimitError
from spacedrain.connectors.graphql import GeoGraphQLClient
from spacedrain.models.graph import SpaceCounts, to_dashed_uuid


def make_client(handler, max_retries: int = 3) -> GeoGraphQLClient:
    return GeoGraphQLClient(
        GRAPHQL_URL,
        transport=httpx.MockTransport(handler),
        max_retries=max_retries,
        retry_delay=0,
    )


class TestTypedQueries:
    """Tests against the fake space."""

    async def test_fetch_counts(self, space: FakeSpace, reader: GeoGraphQLClient):
        space.populate(relations=3, entities=2)
        assert await reader.fetch_counts(SPACE_ID) == SpaceCounts(entities=2, relations=3)

    async def test_entities_page(self, space: FakeSpace, reader: GeoGraphQLClient):
        prop = "1" * 32
        entity_id = space.add_entity(name="A", property_ids=[prop])
        space.add_entity(name="B")

        page = await reader.fetch_entities_page(SPACE_ID, first=1)
        assert page.page_info.has_next_page
        assert page.page_info.end_cursor == "1"
        (entity,) = page.entities
        assert entity.id == entity_id
        # Duplicate values for the same property collapse to one ID
        assert entity.property_ids == [prop]

        page = await reader.fetch_entities_page(SPACE_ID, first=1, after=page.page_info.end_cursor)
        assert not page.page_info.has_next_page
        assert [e.name for e in page.entities] == ["B"]

    async def test_relations_page(self, space: FakeSpace, reader: GeoGraphQLClient):
        relation_id = space.add_relation(type_id="2" * 32, from_id="3" * 32, to_id="4" * 32)
        page = await reader.fetch_relations_page(SPACE_ID)
        (relation,) = page.relations
        assert relation.id == relation_id
        assert relation.type_id == "2" * 32
        assert relation.from_id == "3" * 32
        assert relation.to_id == "4" * 32

    async def test_recent_entities_newest_first(self, space: FakeSpace, reader: GeoGraphQLClient):
        space.add_entity(name="old")
        space.add_entity(name="new")
        recent = await reader.fetch_recent_entities(SPACE_ID, first=10)
        assert [e.name for e in recent] == ["new", "old"]

    async def test_space_id_sent_dashed(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(json.loads(request.content)["variables"])
            return httpx.Response(200, json={"data": {
                "entitiesConnection": {"totalCount": 0},
                "relationsConnection": {"totalCount": 0},
            }})

        async with make_client(handler) as client:
            await client.fetch_counts(SPACE_ID)
        assert seen["spaceId"] == to_dashed_uuid(SPACE_ID)


class TestRetry:
    """Tests for backoff on transient failures."""

    async def test_retries_server_error(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"data": {"ok": True}})

        async with make_client(handler) as client:
            assert await client.execute("query X { ok }", {}) == {"ok": True}
        assert len(calls) == 3

    async def test_rate_limit_exhausts_retries(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(429)

        async with make_client(handler, max_retries=2) as client:
            with pytest.raises(RateLimitError):
                await client.execute("query X { ok }", {})
        assert len(calls) == 2

    async def test_transport_error_is_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"data": {"ok": True}})

        async with make_client(handler) as client:
            assert await client.execute("query X { ok }", {}) == {"ok": True}

    async def test_graphql_errors_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(200, json={"errors": [{"message": "bad field"}]})

        async with make_client(handler) as client:
            with pytest.raises(GraphQLError, match="bad field"):
                await client.execute("query X { ok }", {})
        assert len(calls) == 1

    async def test_client_error_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(400)

        async with make_client(handler) as client:
            with pytest.raises(ConnectorError) as exc_info:
                await client.execute("query X { ok }", {})
        assert not exc_info.value.retriable
        assert len(calls) == 1


class TestResponseValidation:
    async def test_unexpected_shape(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"entitiesConnection": {"nodes": []}}})

        async with make_client(handler) as client:
            with pytest.raises(GraphQLError, match="Unexpected"):
                await client.fetch_entities_page(SPACE_ID)

    async def test_malformed_id(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"relationsConnection": {
                "pageInfo": {"hasNextPage": False, "endCursor": None},
                "nodes": [{"id": "x", "typeId": "y", "fromEntityId": "z", "toEntityId": "w"}],
            }}})

        async with make_client(handler) as client:
            with pytest.raises(GraphQLError):
                await client.fetch_relations_page(SPACE_ID)

    async def test_non_json_body(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, text="<html>gateway</html>")

        async with make_client(handler) as client:
            with pytest.raises(GraphQLError, match="not JSON"):
                await client.fetch_counts(SPACE_ID)
        assert len(calls) == 1

    async def test_non_object_payload(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=["unexpected"])

        async with make_client(handler) as client:
            with pytest.raises(GraphQLError, match="not a JSON object"):
                await client.fetch_counts(SPACE_ID)
