"""Outer control loop: enumerate, plan, drive, verify, record.

Single-pass mode runs the cycle once. Drain mode repeats it with a bounded
chunk per pass until the space is empty, a pass finds nothing to delete, or
the remaining count stops shrinking. Every pass starts from a fresh query of
the remote space, so an interrupted run is resumed by simply running again.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from spacedrain.config import DrainConfig
from spacedrain.connectors.base import ConnectorError, EnumerationError
from spacedrain.models.batch import BatchOutcome, BatchPlan, BatchStatus
from spacedrain.models.graph import SpaceCounts
from spacedrain.models.progress import DrainResult, DryRunPreview, PassResult, StopReason
from spacedrain.services.author_resolver import AuthorResolver, ResolvedAuthor
from spacedrain.services.enumerator import PaginatedEnumerator, SpaceSnapshot
from spacedrain.services.planner import BatchPlanner
from spacedrain.services.progress_recorder import ProgressRecorder
from spacedrain.services.rate_limiter import BackoffGate, SleepFunc
from spacedrain.services.transactor import GovernanceTransactor
from spacedrain.session import DrainSession

logger = logging.getLogger(__name__)

# Type for event callbacks
EventCallback = Callable[[str, dict[str, Any]], None]

# Asked before a large single pass. Returning False aborts the pass.
ConfirmCallback = Callable[[BatchPlan], Awaitable[bool]]

_APPLIED = (BatchStatus.CONFIRMED, BatchStatus.EXECUTED)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class ResumableRunLoop:
    """Runs drain passes against the session's target space.

    Example:
        async with session:
            loop = ResumableRunLoop(session, DrainConfig(drain=True), recorder)
            result = await loop.run()
            print(result.stop_reason, result.ops_attempted)
    """

    def __init__(
        self,
        session: DrainSession,
        config: DrainConfig,
        recorder: ProgressRecorder | None = None,
        confirm: ConfirmCallback | None = None,
        on_event: EventCallback | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.session = session
        self.config = config
        self.recorder = recorder
        self.confirm = confirm
        self.on_event = on_event

        governed = session.target.is_governed
        self.enumerator = PaginatedEnumerator(session.reader)
        self.planner = BatchPlanner(config.batch_size)
        self.resolver = AuthorResolver(session.reader, session.ops, session.wallet_address)
        self.transactor = GovernanceTransactor(session, tx_timeout=config.tx_timeout_seconds)
        self.gate = BackoffGate(config.delay_for(governed), sleep=sleep)

        # Deleting account entities is only offered on personal spaces
        self.include_protected = config.include_accounts and not governed

        # Passes finished in the current run, kept when a later pass raises
        self.finished_passes: list[PassResult] = []

    @property
    def space_id(self) -> str:
        return self.session.target.space_id

    def emit(self, event_type: str, data: dict[str, Any]) -> None:
        if self.on_event:
            self.on_event(event_type, data)

    # =========================================================================
    # Entry points
    # =========================================================================

    async def run(self) -> DrainResult:
        """Run according to the config: dry run, single pass, or drain.

        Raises:
            EnumerationError: If counting or enumeration fails
        """
        start = time.monotonic()
        self.finished_passes = []

        if self.config.dry_run:
            preview = await self.preview()
            result = DrainResult(
                passes=[PassResult(dry_run=True, preview=preview, counts_before=preview.counts)],
                stop_reason=StopReason.DRY_RUN,
            )
        elif self.config.drain:
            result = await self.drain()
        else:
            pass_result = await self.run_pass(
                1, cap=self.config.total_limit, allow_confirm=True
            )
            result = DrainResult(
                passes=[pass_result],
                stop_reason=StopReason.ABORTED if pass_result.aborted else StopReason.SINGLE_PASS,
            )

        if self.config.rename_to and result.stop_reason not in (
            StopReason.DRY_RUN,
            StopReason.ABORTED,
        ):
            result.rename = await self.rename_space(self.config.rename_to)

        result.elapsed_ms = _elapsed_ms(start)
        self.emit("run_complete", {
            "stop_reason": result.stop_reason.value,
            "passes": len(result.passes),
            "ops_attempted": result.ops_attempted,
            "batches_completed": result.batches_completed,
            "batches_pending": result.batches_pending,
            "batches_failed": result.batches_failed,
            "elapsed_ms": result.elapsed_ms,
        })
        return result

    async def preview(self) -> DryRunPreview:
        """Compute what the first live pass would do, without writing."""
        counts = await self.fetch_counts()
        batch_size = self.config.batch_size

        if self.config.count_only:
            preview = DryRunPreview(
                counts=counts,
                relations=counts.relations,
                entities=counts.entities,
                estimated_ops=counts.total,
                batch_count=self.planner.batch_count(counts.total),
                batch_size=batch_size,
                count_only=True,
            )
        else:
            _, plan = await self.snapshot_and_plan(self._pass_cap())
            preview = DryRunPreview(
                counts=counts,
                relations=plan.relations,
                entities=plan.entities,
                estimated_ops=plan.estimated_ops,
                batch_count=len(plan.batches),
                batch_size=batch_size,
            )

        self.emit("preview", {
            "counts": counts.model_dump(),
            "relations": preview.relations,
            "entities": preview.entities,
            "estimated_ops": preview.estimated_ops,
            "batch_count": preview.batch_count,
            "batch_size": batch_size,
            "count_only": preview.count_only,
            "rename_to": self.config.rename_to,
        })
        return preview

    async def drain(self) -> DrainResult:
        """Repeat passes until the space is empty or no progress is possible."""
        passes: list[PassResult] = []
        idle = 0
        pass_number = 0

        while True:
            pass_number += 1
            result = await self.run_pass(
                pass_number, cap=self.config.chunk_size, allow_confirm=pass_number == 1
            )
            passes.append(result)

            if result.aborted:
                stop = StopReason.ABORTED
                break
            if result.is_clean:
                stop = StopReason.CLEAN
                break
            if result.ops_attempted == 0:
                stop = StopReason.EXHAUSTED
                break

            progressed = (
                result.counts_after is not None
                and result.counts_after.total < result.counts_before.total
            )
            idle = 0 if progressed else idle + 1
            if idle >= self.config.max_idle_passes:
                stop = StopReason.STALLED
                logger.warning(
                    f"No progress in {idle} consecutive passes; stopping. "
                    "Pending proposals may need votes from other members."
                )
                break

            self.emit("drain_continue", {
                "pass": pass_number,
                "remaining": result.counts_after.total if result.counts_after else None,
            })

        return DrainResult(passes=passes, stop_reason=stop)

    async def run_pass(
        self, pass_number: int = 1, cap: int | None = None, allow_confirm: bool = True
    ) -> PassResult:
        """One enumerate, plan, drive, verify cycle. The result is always recorded.

        Raises:
            EnumerationError: If counting, enumeration or the author lookup fails
        """
        start = time.monotonic()
        counts_before = await self.fetch_counts()
        self.emit("pass_start", {
            "pass": pass_number,
            "counts_before": counts_before.model_dump(),
        })

        snapshot, plan = await self.snapshot_and_plan(cap)
        self.emit("plan", {
            "pass": pass_number,
            "relations": plan.relations,
            "entities": plan.entities,
            "skipped_protected": snapshot.skipped_protected,
            "filtered_out": snapshot.filtered_out,
            "estimated_ops": plan.estimated_ops,
            "batches": len(plan.batches),
            "batch_size": plan.batch_size,
        })

        if plan.is_empty:
            self.emit("nothing_to_delete", {"pass": pass_number})
            return self._finish(PassResult(
                pass_number=pass_number,
                counts_before=counts_before,
                counts_after=counts_before,
                elapsed_ms=_elapsed_ms(start),
            ))

        if allow_confirm and self._needs_confirmation(plan):
            if not await self.confirm(plan):
                self.emit("aborted", {"pass": pass_number, "items": plan.item_count})
                return self._finish(PassResult(
                    pass_number=pass_number,
                    aborted=True,
                    counts_before=counts_before,
                    counts_after=counts_before,
                    elapsed_ms=_elapsed_ms(start),
                ))

        author = await self.resolver.resolve(self.space_id)
        self.emit("author", {
            "author_id": author.author_id,
            "created": author.needs_creation,
        })

        outcomes = await self.drive_batches(plan, author)

        if self.include_protected:
            # This pass may have deleted the cached author entity
            self.resolver.invalidate(self.space_id)

        counts_after = await self.verify()
        result = PassResult.from_plan(
            plan,
            pass_number=pass_number,
            counts_before=counts_before,
            counts_after=counts_after,
            outcomes=outcomes,
            batches_completed=sum(1 for o in outcomes if o.completed),
            batches_pending=sum(1 for o in outcomes if o.pending),
            batches_failed=sum(1 for o in outcomes if not o.completed),
            elapsed_ms=_elapsed_ms(start),
        )

        self.emit("pass_complete", {
            "pass": pass_number,
            "counts_before": counts_before.model_dump(),
            "counts_after": counts_after.model_dump() if counts_after else None,
            "removed": result.removed,
            "ops_attempted": result.ops_attempted,
            "estimated_ops": result.estimated_ops,
            "batches_completed": result.batches_completed,
            "batches_pending": result.batches_pending,
            "batches_failed": result.batches_failed,
            "elapsed_ms": result.elapsed_ms,
            "throughput_per_min": result.throughput_per_min,
        })
        return self._finish(result)

    async def rename_space(self, name: str) -> BatchOutcome:
        """Publish (or propose) one edit renaming the space entity."""
        author = await self.resolver.resolve(self.space_id)
        ops = list(author.creation_ops)
        ops.extend(self.session.ops.rename_entity(self.space_id, name))

        outcome = await self.transactor.submit(
            ops, author.author_id, f'Rename space to "{name}"', items=1
        )
        if author.needs_creation and outcome.status in _APPLIED:
            self.resolver.mark_created(self.space_id, author.author_id)

        self.emit("rename_complete", {
            "name": name,
            "status": outcome.status.value,
            "error": outcome.error,
        })
        return outcome

    # =========================================================================
    # Steps
    # =========================================================================

    async def fetch_counts(self) -> SpaceCounts:
        try:
            return await self.session.reader.fetch_counts(self.space_id)
        except ConnectorError as e:
            raise EnumerationError(f"Count query failed: {e}", system=e.system) from e

    async def snapshot_and_plan(self, cap: int | None) -> tuple[SpaceSnapshot, BatchPlan]:
        per_type = self.config.limit
        if cap is not None:
            per_type = cap if per_type is None else min(per_type, cap)

        snapshot = await self.enumerator.enumerate(
            self.space_id,
            entity_limit=per_type,
            relation_limit=per_type,
            type_filter=self.config.type_filter,
            exclude_type=self.config.exclude_type,
            include_protected=self.include_protected,
        )
        plan = self.planner.plan(snapshot.relations, snapshot.entities, total_limit=cap)
        return snapshot, plan

    async def drive_batches(self, plan: BatchPlan, author: ResolvedAuthor) -> list[BatchOutcome]:
        """Submit every batch in plan order, one at a time."""
        outcomes: list[BatchOutcome] = []
        batch_times: list[int] = []
        self.gate.reset()

        for batch in plan.batches:
            await self.gate.wait()
            creation_ops = author.creation_ops if author.needs_creation else None

            self.emit("batch_start", {
                "batch": batch.number,
                "total": batch.total,
                "relations": batch.relation_count,
                "entities": batch.entity_count,
                "estimated_ops": batch.estimated_ops,
                "creates_author": creation_ops is not None,
            })

            outcome = await self.transactor.drive(batch, author.author_id, creation_ops)
            outcomes.append(outcome)

            # Creation ops ride along until one batch actually applies them
            if creation_ops and outcome.status in _APPLIED:
                self.resolver.mark_created(self.space_id, author.author_id)
                author = ResolvedAuthor(author_id=author.author_id)
            if outcome.retry_after:
                self.gate.defer(outcome.retry_after)

            batch_times.append(outcome.elapsed_ms)
            avg_ms = sum(batch_times) / len(batch_times)
            remaining = batch.total - batch.number
            self.emit("batch_complete", {
                "batch": batch.number,
                "total": batch.total,
                "status": outcome.status.value,
                "items": outcome.items,
                "ops_submitted": outcome.ops_submitted,
                "proposal_id": outcome.proposal.id if outcome.proposal else None,
                "tx_hashes": outcome.tx_hashes,
                "error": outcome.error,
                "elapsed_ms": outcome.elapsed_ms,
                "avg_ms": avg_ms,
                "eta_ms": remaining * avg_ms,
                "remaining": remaining,
            })

        return outcomes

    async def verify(self) -> SpaceCounts | None:
        """Post-pass counts. A failed query is reported, not raised."""
        try:
            counts = await self.session.reader.fetch_counts(self.space_id)
        except ConnectorError as e:
            logger.warning(f"Post-verification failed: {e}")
            self.emit("verify_failed", {"error": str(e)})
            return None

        if not counts.is_empty:
            self.emit("items_remain", {"counts": counts.model_dump()})
        return counts

    # =========================================================================
    # Helpers
    # =========================================================================

    def _pass_cap(self) -> int | None:
        return self.config.chunk_size if self.config.drain else self.config.total_limit

    def _needs_confirmation(self, plan: BatchPlan) -> bool:
        return (
            self.confirm is not None
            and not self.config.skip_confirm
            and plan.item_count > self.config.confirm_threshold
        )

    def _finish(self, result: PassResult) -> PassResult:
        self.finished_passes.append(result)
        if self.recorder is not None:
            self.recorder.record_pass(result, self.session.target, self.config.batch_size)
        return result
