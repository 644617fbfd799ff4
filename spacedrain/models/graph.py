"""Pydantic models for graph objects stored in a space.

Graph IDs are opaque 128-bit values. The read replica and the on-chain
contracts use different spellings of the same ID (dashed UUID, dashless hex,
0x-prefixed bytes16), so every model canonicalizes IDs to lowercase dashless
hex on the way in.
"""

import re
from enum import Enum
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, Discriminator, Field

# Account type ID. Entities of this type are created by the mutation process
# itself (one per author), so they are never enumerated for deletion.
ACCOUNT_TYPE_ID = "cb69723f7456471aa8ad3e93ddc3edfe"

# Geo system property that links an entity to its types.
TYPES_PROPERTY_ID = "8f151ba4de204e3c9cb499ddf96f7f1f"

WALLET_ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")

_HEX_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


# =============================================================================
# ID helpers
# =============================================================================


def canonical_id(value: str) -> str:
    """Normalize any accepted ID spelling to lowercase dashless hex.

    Accepts `96f859ef-a1ca-4b22-9372-c86ad58b694b`,
    `96f859efa1ca4b229372c86ad58b694b` and `0x96f859efa1ca4b229372c86ad58b694b`.

    Raises:
        ValueError: If the value is not 32 hex characters once cleaned.
    """
    cleaned = value.strip().lower()
    if cleaned.startswith("0x"):
        cleaned = cleaned[2:]
    cleaned = cleaned.replace("-", "")
    if not _HEX_ID_PATTERN.match(cleaned):
        raise ValueError(
            f"Invalid ID: expected 32 hex chars (with or without dashes), got {value!r}"
        )
    return cleaned


def to_dashed_uuid(value: str) -> str:
    """Convert any accepted ID spelling to dashed UUID form for API queries."""
    hex_id = canonical_id(value)
    return (
        f"{hex_id[:8]}-{hex_id[8:12]}-{hex_id[12:16]}-"
        f"{hex_id[16:20]}-{hex_id[20:]}"
    )


def with_hex_prefix(value: str) -> str:
    """Lowercase and prefix with 0x (idempotent)."""
    trimmed = value.strip().lower()
    return trimmed if trimmed.startswith("0x") else f"0x{trimmed}"


def is_wallet_address(name: str | None) -> bool:
    """True if a name looks like an EVM address (0x + 40 hex chars)."""
    return bool(name) and WALLET_ADDRESS_PATTERN.match(name) is not None


GraphId = Annotated[str, AfterValidator(canonical_id)]


# =============================================================================
# Graph objects
# =============================================================================


class Entity(BaseModel):
    """An entity in a space, as seen by the read replica."""

    kind: Literal["entity"] = "entity"
    id: GraphId
    name: str | None = None
    type_ids: list[GraphId] = Field(default_factory=list, alias="typeIds")
    property_ids: list[GraphId] = Field(default_factory=list, alias="propertyIds")

    model_config = {"populate_by_name": True}

    @property
    def is_protected(self) -> bool:
        """Account entities and wallet-named entities are artifacts of publishing."""
        return ACCOUNT_TYPE_ID in self.type_ids or is_wallet_address(self.name)


class Relation(BaseModel):
    """A typed edge between two entities."""

    kind: Literal["relation"] = "relation"
    id: GraphId
    type_id: GraphId = Field(alias="typeId")
    from_id: GraphId = Field(alias="fromId")
    to_id: GraphId = Field(alias="toId")

    model_config = {"populate_by_name": True}


GraphObject = Annotated[Entity | Relation, Discriminator("kind")]


class SpaceCounts(BaseModel):
    """Total entity and relation counts for a space."""

    entities: int = 0
    relations: int = 0

    @property
    def total(self) -> int:
        return self.entities + self.relations

    @property
    def is_empty(self) -> bool:
        return self.total == 0


# =============================================================================
# Targets
# =============================================================================


class GovernanceMode(str, Enum):
    """Write path for a space, chosen once per target."""

    PERSONAL = "personal"  # Direct publish, no voting
    GOVERNED = "governed"  # Propose, vote, execute


class SpaceTarget(BaseModel):
    """The space a drain run mutates."""

    space_id: GraphId
    mode: GovernanceMode = GovernanceMode.PERSONAL
    dao_address: Annotated[str, AfterValidator(with_hex_prefix)] | None = None
    """Address of the DAO space contract (governed spaces only)."""

    caller_space_id: GraphId | None = None
    """The operator's own governance-registered (personal) space, used to vote."""

    @property
    def is_governed(self) -> bool:
        return self.mode == GovernanceMode.GOVERNED

    @property
    def label(self) -> str:
        return "DAO space" if self.is_governed else "personal space"
