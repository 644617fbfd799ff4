"""Pydantic models for spacedrain."""

from spacedrain.models.batch import (
    Batch,
    BatchOutcome,
    BatchPlan,
    BatchStatus,
    Deletion,
    Proposal,
    ProposalStatus,
    VoteOption,
    VoteResult,
)
from spacedrain.models.graph import (
    ACCOUNT_TYPE_ID,
    Entity,
    GovernanceMode,
    GraphObject,
    Relation,
    SpaceCounts,
    SpaceTarget,
    canonical_id,
    to_dashed_uuid,
)
from spacedrain.models.ops import Op, OpsBuilder
from spacedrain.models.progress import (
    DrainResult,
    DryRunPreview,
    PassResult,
    ProgressRecord,
    StopReason,
)

__all__ = [
    # Graph
    "ACCOUNT_TYPE_ID",
    "Entity",
    "GovernanceMode",
    "GraphObject",
    "Relation",
    "SpaceCounts",
    "SpaceTarget",
    "canonical_id",
    "to_dashed_uuid",
    # Ops
    "Op",
    "OpsBuilder",
    # Batches
    "Batch",
    "BatchOutcome",
    "BatchPlan",
    "BatchStatus",
    "Deletion",
    "Proposal",
    "ProposalStatus",
    "VoteOption",
    "VoteResult",
    # Progress
    "DrainResult",
    "DryRunPreview",
    "PassResult",
    "ProgressRecord",
    "StopReason",
]
