"""Pydantic models for deletion batches and their governance outcomes."""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from spacedrain.models.graph import GraphId

# =============================================================================
# Enums
# =============================================================================


class ProposalStatus(str, Enum):
    """Lifecycle of a proposal created by the transactor."""

    CREATED = "created"  # Propose transaction confirmed
    VOTED = "voted"  # Our YES vote confirmed
    EXECUTED = "executed"  # Ops applied (auto-executed or explicit execute)
    PENDING_THRESHOLD = "pending_threshold"  # Needs votes from other members


class BatchStatus(str, Enum):
    """Terminal state of one batch, from the pipeline's point of view."""

    CONFIRMED = "confirmed"  # Direct publish confirmed on-chain
    EXECUTED = "executed"  # Governed proposal executed
    PENDING_THRESHOLD = "pending_threshold"  # Governed proposal awaiting votes
    FAILED = "failed"  # Submit, vote, or execute raised

    @property
    def is_completed(self) -> bool:
        """Completed at the transaction level (pending still counts)."""
        return self != BatchStatus.FAILED


class VoteOption(int, Enum):
    """DAOSpace VoteOption enum as defined by the governance contract."""

    NONE = 0
    YES = 1
    NO = 2
    ABSTAIN = 3


# =============================================================================
# Batches
# =============================================================================


class Deletion(BaseModel):
    """One planned deletion."""

    kind: Literal["relation", "entity"]
    id: GraphId
    property_ids: list[GraphId] = Field(default_factory=list, alias="propertyIds")

    model_config = {"populate_by_name": True}

    @property
    def op_cost(self) -> int:
        """Logical ops: relations 1, entities 1 plus 1 if they have values to unset."""
        if self.kind == "relation":
            return 1
        return 2 if self.property_ids else 1


class Batch(BaseModel):
    """An ordered, bounded slice of a plan."""

    index: int
    """Zero-based position in the plan."""

    total: int
    """Number of batches in the plan."""

    items: list[Deletion]

    @property
    def number(self) -> int:
        return self.index + 1

    @property
    def name(self) -> str:
        return f"({self.number}/{self.total})"

    @property
    def relation_count(self) -> int:
        return sum(1 for item in self.items if item.kind == "relation")

    @property
    def entity_count(self) -> int:
        return sum(1 for item in self.items if item.kind == "entity")

    @property
    def estimated_ops(self) -> int:
        return sum(item.op_cost for item in self.items)


class BatchPlan(BaseModel):
    """Output of the planner for one pass."""

    batch_size: int
    relations: int = 0
    entities: int = 0
    batches: list[Batch] = Field(default_factory=list)

    @property
    def item_count(self) -> int:
        return self.relations + self.entities

    @property
    def estimated_ops(self) -> int:
        return sum(batch.estimated_ops for batch in self.batches)

    @property
    def is_empty(self) -> bool:
        return not self.batches

    def deletions(self) -> list[Deletion]:
        """All planned deletions in execution order."""
        return [item for batch in self.batches for item in batch.items]


# =============================================================================
# Governance
# =============================================================================


class Proposal(BaseModel):
    """A proposal created by this process for exactly one batch."""

    id: str
    batch_ops: int
    voting_mode: str = "FAST"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: ProposalStatus = ProposalStatus.CREATED
    executed: bool = False
    propose_tx: str | None = None
    vote_tx: str | None = None
    execute_tx: str | None = None


class VoteResult(BaseModel):
    """What happened after our vote."""

    executed: bool
    auto_executed: bool = False
    threshold_reached: bool = False


class BatchOutcome(BaseModel):
    """Result of driving one batch through the write protocol."""

    batch_index: int
    status: BatchStatus
    items: int
    ops_submitted: int = 0
    tx_hashes: list[str] = Field(default_factory=list)
    proposal: Proposal | None = None
    vote_result: VoteResult | None = None
    error: str | None = None
    retry_after: float | None = None
    """Seconds the writer asked us to back off, when it rate limited us."""

    elapsed_ms: int = 0

    @property
    def completed(self) -> bool:
        return self.status.is_completed

    @property
    def pending(self) -> bool:
        return self.status == BatchStatus.PENDING_THRESHOLD
