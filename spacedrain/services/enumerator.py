"""Cursor-paginated snapshot of a space's entities and relations."""

import logging
from dataclasses import dataclass, field

from spacedrain.connectors.base import ConnectorError, EnumerationError
from spacedrain.connectors.graphql import PAGE_SIZE, GeoGraphQLClient
from spacedrain.models.graph import Entity, Relation, canonical_id

logger = logging.getLogger(__name__)


@dataclass
class SpaceSnapshot:
    """Objects matching the filters at enumeration time, in stable order."""

    relations: list[Relation] = field(default_factory=list)
    entities: list[Entity] = field(default_factory=list)
    skipped_protected: int = 0
    filtered_out: int = 0

    @property
    def total(self) -> int:
        return len(self.relations) + len(self.entities)


class PaginatedEnumerator:
    """Pages through a space until the upstream is exhausted or a cap is hit.

    Enumeration is read-only, so a failed pass can simply be retried. Any
    upstream error is raised as `EnumerationError`.
    """

    def __init__(self, reader: GeoGraphQLClient, page_size: int = PAGE_SIZE):
        self.reader = reader
        self.page_size = page_size

    async def list_entities(
        self,
        space_id: str,
        limit: int | None = None,
        type_filter: str | None = None,
        exclude_type: str | None = None,
        include_protected: bool = False,
    ) -> tuple[list[Entity], int, int]:
        """Matching entities, oldest first.

        Returns:
            Tuple of (entities, skipped_protected, filtered_out)
        """
        wanted_type = canonical_id(type_filter) if type_filter else None
        unwanted_type = canonical_id(exclude_type) if exclude_type else None

        out: list[Entity] = []
        seen: set[str] = set()
        skipped = 0
        filtered = 0
        after: str | None = None
        page = 0

        while limit is None or len(out) < limit:
            page += 1
            try:
                conn = await self.reader.fetch_entities_page(space_id, self.page_size, after)
            except ConnectorError as e:
                raise EnumerationError(
                    f"Entity enumeration failed on page {page}: {e}", system=e.system
                ) from e

            for entity in conn.entities:
                if entity.id in seen:
                    continue
                seen.add(entity.id)
                if not include_protected and entity.is_protected:
                    skipped += 1
                    continue
                if wanted_type and wanted_type not in entity.type_ids:
                    filtered += 1
                    continue
                if unwanted_type and unwanted_type in entity.type_ids:
                    filtered += 1
                    continue
                out.append(entity)

            logger.debug(f"Entities page {page}: {len(out)} matching so far")
            if not conn.page_info.has_next_page or not conn.page_info.end_cursor:
                break
            after = conn.page_info.end_cursor

        if limit is not None:
            out = out[:limit]
        return out, skipped, filtered

    async def list_relations(self, space_id: str, limit: int | None = None) -> list[Relation]:
        out: list[Relation] = []
        seen: set[str] = set()
        after: str | None = None
        page = 0

        while limit is None or len(out) < limit:
            page += 1
            first = self.page_size if limit is None else min(self.page_size, limit - len(out))
            try:
                conn = await self.reader.fetch_relations_page(space_id, first, after)
            except ConnectorError as e:
                raise EnumerationError(
                    f"Relation enumeration failed on page {page}: {e}", system=e.system
                ) from e

            for relation in conn.relations:
                if relation.id not in seen:
                    seen.add(relation.id)
                    out.append(relation)

            logger.debug(f"Relations page {page}: {len(out)} so far")
            if not conn.page_info.has_next_page or not conn.page_info.end_cursor:
                break
            after = conn.page_info.end_cursor

        if limit is not None:
            out = out[:limit]
        return out

    async def enumerate(
        self,
        space_id: str,
        entity_limit: int | None = None,
        relation_limit: int | None = None,
        type_filter: str | None = None,
        exclude_type: str | None = None,
        include_protected: bool = False,
    ) -> SpaceSnapshot:
        """Snapshot entities then relations for one pass."""
        entities, skipped, filtered = await self.list_entities(
            space_id,
            limit=entity_limit,
            type_filter=type_filter,
            exclude_type=exclude_type,
            include_protected=include_protected,
        )
        relations = await self.list_relations(space_id, limit=relation_limit)

        logger.info(
            f"Enumerated {len(relations)} relations and {len(entities)} entities "
            f"in {space_id} (skipped {skipped} protected, filtered {filtered})"
        )
        return SpaceSnapshot(
            relations=relations,
            entities=entities,
            skipped_protected=skipped,
            filtered_out=filtered,
        )
