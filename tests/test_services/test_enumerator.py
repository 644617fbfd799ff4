"""Tests for the paginated enumerator."""

import pytest
from fakes import SPACE_ID, WALLET, FakeSpace

from spacedrain.connectors.base import EnumerationError
from spacedrain.connectors.graphql import GeoGraphQLClient
from spacedrain.services.enumerator import PaginatedEnumerator

TYPE_A = "a" * 32
TYPE_B = "b" * 32


class TestEnumerate:
    """Tests for full snapshots."""

    async def test_empty_space(self, reader: GeoGraphQLClient):
        snapshot = await PaginatedEnumerator(reader).enumerate(SPACE_ID)
        assert snapshot.total == 0
        assert snapshot.relations == []
        assert snapshot.entities == []

    async def test_pages_until_exhausted(self, space: FakeSpace, reader: GeoGraphQLClient):
        space.populate(relations=7, entities=5)
        snapshot = await PaginatedEnumerator(reader, page_size=2).enumerate(SPACE_ID)
        assert len(snapshot.relations) == 7
        assert len(snapshot.entities) == 5
        assert space.requests.count("SpaceEntities") == 3
        assert space.requests.count("SpaceRelations") == 4

    async def test_order_is_creation_order(self, space: FakeSpace, reader: GeoGraphQLClient):
        ids = [space.add_entity(name=str(i)) for i in range(5)]
        snapshot = await PaginatedEnumerator(reader, page_size=2).enumerate(SPACE_ID)
        assert [e.id for e in snapshot.entities] == ids

    async def test_repeatable(self, space: FakeSpace, reader: GeoGraphQLClient):
        space.populate(relations=4, entities=4)
        enumerator = PaginatedEnumerator(reader, page_size=3)
        first = await enumerator.enumerate(SPACE_ID)
        second = await enumerator.enumerate(SPACE_ID)
        assert first == second

    async def test_skips_accounts(self, space: FakeSpace, reader: GeoGraphQLClient):
        space.add_account()
        space.add_entity(name="0x" + "12" * 20)
        keep = space.add_entity(name="Keep me")
        snapshot = await PaginatedEnumerator(reader).enumerate(SPACE_ID)
        assert [e.id for e in snapshot.entities] == [keep]
        assert snapshot.skipped_protected == 2

    async def test_include_protected(self, space: FakeSpace, reader: GeoGraphQLClient):
        space.add_account(WALLET)
        space.add_entity(name="Plain")
        snapshot = await PaginatedEnumerator(reader).enumerate(SPACE_ID, include_protected=True)
        assert len(snapshot.entities) == 2
        assert snapshot.skipped_protected == 0


class TestFiltersAndLimits:
    """Tests for type filters and caps."""

    async def test_type_filter(self, space: FakeSpace, reader: GeoGraphQLClient):
        wanted = space.add_entity(type_ids=[TYPE_A])
        space.add_entity(type_ids=[TYPE_B])
        snapshot = await PaginatedEnumerator(reader).enumerate(
            SPACE_ID, type_filter="aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"
        )
        assert [e.id for e in snapshot.entities] == [wanted]
        assert snapshot.filtered_out == 1

    async def test_exclude_type(self, space: FakeSpace, reader: GeoGraphQLClient):
        space.add_entity(type_ids=[TYPE_A])
        kept = space.add_entity(type_ids=[TYPE_B])
        snapshot = await PaginatedEnumerator(reader).enumerate(SPACE_ID, exclude_type=TYPE_A)
        assert [e.id for e in snapshot.entities] == [kept]

    async def test_limit_counts_matching_entities_only(
        self, space: FakeSpace, reader: GeoGraphQLClient
    ):
        for _ in range(3):
            space.add_account()
        plain = [space.add_entity(name=f"e{i}") for i in range(4)]
        entities, skipped, _ = await PaginatedEnumerator(reader, page_size=2).list_entities(
            SPACE_ID, limit=2
        )
        assert [e.id for e in entities] == plain[:2]
        assert skipped == 3

    async def test_relation_limit_shrinks_page(self, space: FakeSpace, reader: GeoGraphQLClient):
        space.populate(relations=10, entities=0)
        relations = await PaginatedEnumerator(reader, page_size=4).list_relations(SPACE_ID, limit=5)
        assert len(relations) == 5
        assert space.requests.count("SpaceRelations") == 2


class TestFailures:
    async def test_upstream_error_aborts(self, space: FakeSpace, reader: GeoGraphQLClient):
        space.populate(relations=1, entities=1)
        space.fail_operations["SpaceRelations"] = 500
        with pytest.raises(EnumerationError, match="Relation enumeration failed"):
            await PaginatedEnumerator(reader).enumerate(SPACE_ID)
