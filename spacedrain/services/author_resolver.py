"""Find or lazily create the account entity that authors every edit."""

import logging

from pydantic import BaseModel, Field

from spacedrain.connectors.base import ConnectorError, EnumerationError
from spacedrain.connectors.graphql import GeoGraphQLClient
from spacedrain.models.graph import ACCOUNT_TYPE_ID, is_wallet_address
from spacedrain.models.ops import Op, OpsBuilder

logger = logging.getLogger(__name__)

LOOKUP_SIZE = 10


class ResolvedAuthor(BaseModel):
    author_id: str
    creation_ops: list[Op] = Field(default_factory=list)
    """Ops that create the author. Empty when it already exists."""

    @property
    def needs_creation(self) -> bool:
        return bool(self.creation_ops)


class AuthorResolver:
    """Resolves one author per space and reuses it for every batch.

    Lookup checks the most recently updated entities for the account type
    marker first, then for a wallet-address name. When nothing qualifies, the
    creation ops are handed out with every batch until one of them lands,
    at which point `mark_created` pins the ID.
    """

    def __init__(
        self,
        reader: GeoGraphQLClient,
        ops_builder: OpsBuilder,
        wallet_address: str,
        lookup_size: int = LOOKUP_SIZE,
    ):
        self.reader = reader
        self.ops_builder = ops_builder
        self.wallet_address = wallet_address
        self.lookup_size = lookup_size
        self._resolved: dict[str, str] = {}
        self._pending: dict[str, ResolvedAuthor] = {}

    async def find_existing(self, space_id: str) -> str | None:
        """Return an existing author entity ID, if any.

        Raises:
            EnumerationError: If the lookup query fails. Creating a second
                author on an unknown answer would break the one-author rule.
        """
        try:
            recent = await self.reader.fetch_recent_entities(space_id, first=self.lookup_size)
        except ConnectorError as e:
            raise EnumerationError(f"Author lookup failed: {e}", system=e.system) from e

        for entity in recent:
            if ACCOUNT_TYPE_ID in entity.type_ids:
                return entity.id
        for entity in recent:
            if is_wallet_address(entity.name):
                return entity.id
        return None

    async def resolve(self, space_id: str) -> ResolvedAuthor:
        if space_id in self._resolved:
            return ResolvedAuthor(author_id=self._resolved[space_id])
        if space_id in self._pending:
            return self._pending[space_id]

        existing = await self.find_existing(space_id)
        if existing:
            logger.info(f"Reusing existing account entity {existing}")
            self._resolved[space_id] = existing
            return ResolvedAuthor(author_id=existing)

        author_id, ops = self.ops_builder.create_author(self.wallet_address)
        logger.info(f"Creating new account entity {author_id} for {self.wallet_address}")
        resolved = ResolvedAuthor(author_id=author_id, creation_ops=ops)
        self._pending[space_id] = resolved
        return resolved

    def mark_created(self, space_id: str, author_id: str) -> None:
        """Record that the creation ops were applied on-chain."""
        self._pending.pop(space_id, None)
        self._resolved[space_id] = author_id

    def invalidate(self, space_id: str) -> None:
        """Forget the cached author so the next resolve looks it up again."""
        self._resolved.pop(space_id, None)
        self._pending.pop(space_id, None)
