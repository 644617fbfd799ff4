"""Geo read API client.

Thin async wrapper over the GraphQL endpoint with retry on rate limits and
server errors. Every query has its own response schema, validated at this
boundary so callers only ever see typed models.
"""

import asyncio
import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field, ValidationError

from spacedrain.connectors.base import ConnectorError, GraphQLError, RateLimitError
from spacedrain.models.graph import Entity, GraphId, Relation, SpaceCounts, to_dashed_uuid

logger = logging.getLogger(__name__)

# Default retry configuration
MAX_RETRIES = 3
RETRY_DELAY = 1.0  # seconds
RETRY_MULTIPLIER = 2.0

DEFAULT_TIMEOUT = 60.0
PAGE_SIZE = 200


# =============================================================================
# Queries
# =============================================================================

SPACE_COUNTS_QUERY = """
query SpaceCounts($spaceId: UUID!) {
  entitiesConnection(first: 0, spaceId: $spaceId) { totalCount }
  relationsConnection(first: 0, filter: { spaceId: { is: $spaceId } }) { totalCount }
}
"""

SPACE_ENTITIES_QUERY = """
query SpaceEntities($spaceId: UUID, $first: Int!, $after: Cursor) {
  entitiesConnection(first: $first, after: $after, spaceId: $spaceId, orderBy: CREATED_AT_ASC) {
    pageInfo { hasNextPage endCursor }
    nodes { id name typeIds valuesList { propertyId } }
  }
}
"""

SPACE_RELATIONS_QUERY = """
query SpaceRelations($first: Int!, $after: Cursor, $spaceId: UUID!) {
  relationsConnection(first: $first, after: $after, filter: { spaceId: { is: $spaceId } }) {
    pageInfo { hasNextPage endCursor }
    nodes { id typeId fromEntityId toEntityId }
  }
}
"""

RECENT_ENTITIES_QUERY = """
query RecentEntities($spaceId: UUID!, $first: Int!) {
  entitiesConnection(first: $first, spaceId: $spaceId, orderBy: UPDATED_AT_DESC) {
    nodes { id name typeIds }
  }
}
"""


# =============================================================================
# Response schemas
# =============================================================================


class PageInfo(BaseModel):
    has_next_page: bool = Field(alias="hasNextPage")
    end_cursor: str | None = Field(None, alias="endCursor")


class ValueRef(BaseModel):
    property_id: GraphId = Field(alias="propertyId")


class EntityNode(BaseModel):
    id: GraphId
    name: str | None = None
    type_ids: list[GraphId] = Field(default_factory=list, alias="typeIds")
    values_list: list[ValueRef] = Field(default_factory=list, alias="valuesList")

    def to_entity(self) -> Entity:
        # Several values can share a property (one per language)
        property_ids = list(dict.fromkeys(v.property_id for v in self.values_list))
        return Entity(
            id=self.id,
            name=self.name,
            type_ids=self.type_ids,
            property_ids=property_ids,
        )


class RelationNode(BaseModel):
    id: GraphId
    type_id: GraphId = Field(alias="typeId")
    from_entity_id: GraphId = Field(alias="fromEntityId")
    to_entity_id: GraphId = Field(alias="toEntityId")

    def to_relation(self) -> Relation:
        return Relation(
            id=self.id,
            type_id=self.type_id,
            from_id=self.from_entity_id,
            to_id=self.to_entity_id,
        )


class EntityConnection(BaseModel):
    page_info: PageInfo = Field(alias="pageInfo")
    nodes: list[EntityNode] = Field(default_factory=list)

    @property
    def entities(self) -> list[Entity]:
        return [node.to_entity() for node in self.nodes]


class RelationConnection(BaseModel):
    page_info: PageInfo = Field(alias="pageInfo")
    nodes: list[RelationNode] = Field(default_factory=list)

    @property
    def relations(self) -> list[Relation]:
        return [node.to_relation() for node in self.nodes]


class TotalCount(BaseModel):
    total_count: int = Field(alias="totalCount")


class SpaceCountsResponse(BaseModel):
    entities_connection: TotalCount = Field(alias="entitiesConnection")
    relations_connection: TotalCount = Field(alias="relationsConnection")


class EntitiesPageResponse(BaseModel):
    entities_connection: EntityConnection = Field(alias="entitiesConnection")


class RelationsPageResponse(BaseModel):
    relations_connection: RelationConnection = Field(alias="relationsConnection")


class RecentEntityConnection(BaseModel):
    nodes: list[EntityNode] = Field(default_factory=list)


class RecentEntitiesResponse(BaseModel):
    entities_connection: RecentEntityConnection = Field(alias="entitiesConnection")


# =============================================================================
# Client
# =============================================================================


class GeoGraphQLClient:
    """Async client for the Geo read API."""

    system = "geo-graphql"

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
    ):
        """Initialize the client.

        Args:
            url: GraphQL endpoint URL
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
            max_retries: Attempts per query before giving up
            retry_delay: Initial backoff delay in seconds
        """
        self.url = url
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GeoGraphQLClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # =========================================================================
    # Typed queries
    # =========================================================================

    async def fetch_counts(self, space_id: str) -> SpaceCounts:
        """Total entity and relation counts without paginating."""
        data = await self.execute(SPACE_COUNTS_QUERY, {"spaceId": to_dashed_uuid(space_id)})
        response = self._parse(SpaceCountsResponse, data)
        return SpaceCounts(
            entities=response.entities_connection.total_count,
            relations=response.relations_connection.total_count,
        )

    async def fetch_entities_page(
        self, space_id: str, first: int = PAGE_SIZE, after: str | None = None
    ) -> EntityConnection:
        data = await self.execute(
            SPACE_ENTITIES_QUERY,
            {"spaceId": to_dashed_uuid(space_id), "first": first, "after": after},
        )
        return self._parse(EntitiesPageResponse, data).entities_connection

    async def fetch_relations_page(
        self, space_id: str, first: int = PAGE_SIZE, after: str | None = None
    ) -> RelationConnection:
        data = await self.execute(
            SPACE_RELATIONS_QUERY,
            {"spaceId": to_dashed_uuid(space_id), "first": first, "after": after},
        )
        return self._parse(RelationsPageResponse, data).relations_connection

    async def fetch_recent_entities(self, space_id: str, first: int = 10) -> list[Entity]:
        """Most recently updated entities first."""
        data = await self.execute(
            RECENT_ENTITIES_QUERY, {"spaceId": to_dashed_uuid(space_id), "first": first}
        )
        response = self._parse(RecentEntitiesResponse, data)
        return [node.to_entity() for node in response.entities_connection.nodes]

    # =========================================================================
    # Transport
    # =========================================================================

    async def execute(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run a query with exponential backoff on rate limits and server errors.

        Returns:
            The `data` object of the response

        Raises:
            GraphQLError: If the response carries GraphQL errors
            RateLimitError: If still rate limited after all retries
            ConnectorError: On other HTTP or transport failures
        """
        last_error: ConnectorError | None = None
        delay = self.retry_delay

        for attempt in range(self.max_retries):
            try:
                return await self._post(query, variables)
            except ConnectorError as e:
                if not e.retriable:
                    raise
                last_error = e
                if attempt + 1 >= self.max_retries:
                    break
                wait = delay
                if isinstance(e, RateLimitError) and e.retry_after:
                    wait = max(delay, e.retry_after)
                logger.warning(
                    f"{e} (attempt {attempt + 1}/{self.max_retries}), retrying in {wait}s..."
                )
                await asyncio.sleep(wait)
                delay *= RETRY_MULTIPLIER

        raise last_error or ConnectorError("Unexpected retry failure", system=self.system)

    async def _post(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.post(
                self.url, json={"query": query, "variables": variables}
            )
        except httpx.TransportError as e:
            raise ConnectorError(
                f"Geo GraphQL transport error: {e}", system=self.system, retriable=True
            ) from e

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                "Geo GraphQL rate limited",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
                system=self.system,
            )
        if response.status_code >= 500:
            raise ConnectorError(
                f"Geo GraphQL error: {response.status_code} {response.reason_phrase}",
                system=self.system,
                retriable=True,
            )
        if response.status_code >= 400:
            raise ConnectorError(
                f"Geo GraphQL error: {response.status_code} {response.reason_phrase}",
                system=self.system,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise GraphQLError(
                f"Geo GraphQL response is not JSON (status {response.status_code})",
                system=self.system,
            ) from e
        if not isinstance(payload, dict):
            raise GraphQLError(
                f"Geo GraphQL response is not a JSON object: {type(payload).__name__}",
                system=self.system,
            )

        errors = payload.get("errors") or []
        if errors:
            raise GraphQLError(
                f"Geo GraphQL error: {errors[0].get('message', 'unknown error')}",
                errors=errors,
                system=self.system,
            )
        data = payload.get("data")
        if data is None:
            raise GraphQLError("Geo GraphQL response has no data", system=self.system)
        return data

    def _parse(self, schema: type[BaseModel], data: dict[str, Any]) -> Any:
        try:
            return schema.model_validate(data)
        except ValidationError as e:
            raise GraphQLError(
                f"Unexpected Geo GraphQL response shape: {e}", system=self.system
            ) from e
