"""Pydantic models for pass results and the append-only progress log."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from spacedrain.models.batch import BatchOutcome, BatchPlan
from spacedrain.models.graph import SpaceCounts


class StopReason(str, Enum):
    """Why a drain run stopped."""

    CLEAN = "clean"  # Post-pass counts reached zero
    EXHAUSTED = "exhausted"  # A pass found nothing left to delete
    STALLED = "stalled"  # Remaining count stopped decreasing
    ABORTED = "aborted"  # Operator declined confirmation
    DRY_RUN = "dry_run"
    SINGLE_PASS = "single_pass"


class DryRunPreview(BaseModel):
    """What a live pass would do, computed without writing anything."""

    counts: SpaceCounts
    relations: int
    entities: int
    estimated_ops: int
    batch_count: int
    batch_size: int
    count_only: bool = False
    """True when computed from totalCount only (no enumeration, no filters)."""

    @property
    def items(self) -> int:
        return self.relations + self.entities


class PassResult(BaseModel):
    """Outcome of one enumerate, plan, drive, verify cycle."""

    pass_number: int = 1
    aborted: bool = False
    dry_run: bool = False
    preview: DryRunPreview | None = None
    ops_attempted: int = 0
    estimated_ops: int = 0
    batches_total: int = 0
    batches_completed: int = 0
    batches_pending: int = 0
    batches_failed: int = 0
    elapsed_ms: int = 0
    counts_before: SpaceCounts = Field(default_factory=SpaceCounts)
    counts_after: SpaceCounts | None = None
    """None when post-verification could not be queried."""

    outcomes: list[BatchOutcome] = Field(default_factory=list)

    @classmethod
    def from_plan(cls, plan: BatchPlan, **kwargs: object) -> "PassResult":
        return cls(
            ops_attempted=plan.item_count,
            estimated_ops=plan.estimated_ops,
            batches_total=len(plan.batches),
            **kwargs,
        )

    @property
    def removed(self) -> int | None:
        """Objects actually removed according to the read replica."""
        if self.counts_after is None:
            return None
        return self.counts_before.total - self.counts_after.total

    @property
    def is_clean(self) -> bool:
        return self.counts_after is not None and self.counts_after.is_empty

    @property
    def throughput_per_min(self) -> float | None:
        if self.elapsed_ms <= 0 or self.ops_attempted <= 0:
            return None
        return self.ops_attempted / (self.elapsed_ms / 60_000)


class DrainResult(BaseModel):
    """Aggregate of every pass in one invocation."""

    passes: list[PassResult] = Field(default_factory=list)
    stop_reason: StopReason = StopReason.SINGLE_PASS
    elapsed_ms: int = 0
    rename: BatchOutcome | None = None
    """Outcome of the space rename edit, when one was requested."""

    @property
    def ops_attempted(self) -> int:
        return sum(p.ops_attempted for p in self.passes)

    @property
    def batches_completed(self) -> int:
        return sum(p.batches_completed for p in self.passes)

    @property
    def batches_pending(self) -> int:
        return sum(p.batches_pending for p in self.passes)

    @property
    def batches_failed(self) -> int:
        return sum(p.batches_failed for p in self.passes)

    @property
    def last(self) -> PassResult | None:
        return self.passes[-1] if self.passes else None


class ProgressRecord(BaseModel):
    """One line of the progress log. Written once, never modified."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    space_id: str = Field(alias="spaceId")
    mode: str
    pass_number: int = Field(alias="pass")
    batch_size: int = Field(alias="batchSize")
    counts_before: SpaceCounts = Field(alias="countsBefore")
    counts_after: SpaceCounts | None = Field(alias="countsAfter")
    ops_attempted: int = Field(alias="opsAttempted")
    estimated_ops: int = Field(0, alias="estimatedOps")
    batches_completed: int = Field(alias="batchesCompleted")
    batches_pending: int = Field(0, alias="batchesPending")
    batches_failed: int = Field(alias="batchesFailed")
    elapsed_ms: int = Field(alias="elapsedMs")
    aborted: bool = False

    model_config = {"populate_by_name": True, "frozen": True}

    @classmethod
    def from_pass(
        cls, result: PassResult, space_id: str, mode: str, batch_size: int
    ) -> "ProgressRecord":
        return cls(
            space_id=space_id,
            mode=mode,
            pass_number=result.pass_number,
            batch_size=batch_size,
            counts_before=result.counts_before,
            counts_after=result.counts_after,
            ops_attempted=result.ops_attempted,
            estimated_ops=result.estimated_ops,
            batches_completed=result.batches_completed,
            batches_pending=result.batches_pending,
            batches_failed=result.batches_failed,
            elapsed_ms=result.elapsed_ms,
            aborted=result.aborted,
        )

    def to_json_line(self) -> str:
        return self.model_dump_json(by_alias=True) + "\n"
