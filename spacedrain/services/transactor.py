"""Drive one batch of ops through the write protocol.

Direct path (personal spaces):
    build publish -> submit -> confirmed

Governed path (DAO spaces):
    propose -> vote YES -> executed already?
        yes: done (auto-executed with the vote)
        no:  threshold reached? execute : leave pending

Only the proposal created in the same call is ever voted on or executed.
Pending proposals are never re-voted, since the contract rejects double votes.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable
from typing import TypeVar

from spacedrain.connectors.base import (
    PreparedCall,
    RateLimitError,
    TransactionError,
    TransactionReceipt,
)
from spacedrain.models.batch import (
    Batch,
    BatchOutcome,
    BatchStatus,
    Proposal,
    ProposalStatus,
    VoteOption,
    VoteResult,
)
from spacedrain.models.ops import Op
from spacedrain.session import DrainSession

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TX_TIMEOUT = 180.0
VOTING_MODE = "FAST"


class GovernanceTransactor:
    """Submits batches for one target space, one at a time."""

    def __init__(self, session: DrainSession, tx_timeout: float = DEFAULT_TX_TIMEOUT):
        self.session = session
        self.tx_timeout = tx_timeout

    def ops_for_batch(self, batch: Batch, creation_ops: list[Op] | None = None) -> list[Op]:
        """Author creation ops (if any) followed by the batch's delete ops."""
        ops: list[Op] = list(creation_ops or [])
        for item in batch.items:
            ops.extend(self.session.ops.ops_for(item))
        return ops

    async def drive(
        self,
        batch: Batch,
        author_id: str,
        creation_ops: list[Op] | None = None,
    ) -> BatchOutcome:
        """Submit one batch. Never raises; failures come back as FAILED outcomes."""
        ops = self.ops_for_batch(batch, creation_ops)
        name = f"Clear {self.session.target.label} {batch.name}"
        return await self.submit(
            ops, author_id, name, batch_index=batch.index, items=len(batch.items)
        )

    async def submit(
        self,
        ops: list[Op],
        author_id: str,
        name: str,
        batch_index: int = 0,
        items: int = 0,
    ) -> BatchOutcome:
        """Submit an arbitrary op list as one edit on the target's write path."""
        start = time.monotonic()
        outcome = BatchOutcome(
            batch_index=batch_index,
            status=BatchStatus.FAILED,
            items=items,
            ops_submitted=len(ops),
        )

        async with self.session.write_lock:
            try:
                if self.session.target.is_governed:
                    await self._run_governed(ops, author_id, name, outcome)
                else:
                    await self._run_direct(ops, author_id, name, outcome)
            except Exception as e:
                outcome.status = BatchStatus.FAILED
                outcome.error = str(e) or type(e).__name__
                if isinstance(e, RateLimitError):
                    outcome.retry_after = e.retry_after
                logger.error(f"Batch {name} failed: {outcome.error}")

        outcome.elapsed_ms = int((time.monotonic() - start) * 1000)
        return outcome

    # =========================================================================
    # Write paths
    # =========================================================================

    async def _run_direct(
        self, ops: list[Op], author_id: str, name: str, outcome: BatchOutcome
    ) -> None:
        writer = self.session.writer
        call = await self._bounded(
            writer.build_publish(self.session.target.space_id, ops, author_id, name)
        )
        receipt = await self._transact(call, outcome)
        logger.info(f"{name}: publish tx {receipt.tx_hash} confirmed")
        outcome.status = BatchStatus.CONFIRMED

    async def _run_governed(
        self, ops: list[Op], author_id: str, name: str, outcome: BatchOutcome
    ) -> None:
        writer = self.session.writer
        target = self.session.target

        prepared = await self._bounded(
            writer.build_proposal(target, ops, author_id, name, voting_mode=VOTING_MODE)
        )
        proposal = Proposal(
            id=prepared.proposal_id, batch_ops=len(ops), voting_mode=VOTING_MODE
        )
        outcome.proposal = proposal

        receipt = await self._transact(prepared.call, outcome)
        proposal.propose_tx = receipt.tx_hash
        logger.info(f"{name}: proposal {proposal.id} created (tx {receipt.tx_hash})")

        vote_call = await self._bounded(writer.build_vote(target, proposal.id, VoteOption.YES))
        receipt = await self._transact(vote_call, outcome)
        proposal.vote_tx = receipt.tx_hash
        proposal.status = ProposalStatus.VOTED
        logger.info(f"{name}: voted YES (tx {receipt.tx_hash})")

        info = await self._bounded(writer.get_proposal_info(target, proposal.id))
        if info.executed:
            proposal.executed = True
            proposal.status = ProposalStatus.EXECUTED
            outcome.vote_result = VoteResult(
                executed=True, auto_executed=True, threshold_reached=True
            )
            outcome.status = BatchStatus.EXECUTED
            logger.info(f"{name}: auto-executed with vote")
            return

        reached = await self._bounded(writer.is_support_threshold_reached(target, proposal.id))
        if not reached:
            proposal.status = ProposalStatus.PENDING_THRESHOLD
            outcome.vote_result = VoteResult(executed=False, threshold_reached=False)
            outcome.status = BatchStatus.PENDING_THRESHOLD
            logger.warning(f"{name}: threshold not reached; proposal pending additional votes")
            return

        exec_call = await self._bounded(writer.build_execute(target, proposal.id))
        receipt = await self._transact(exec_call, outcome)
        proposal.execute_tx = receipt.tx_hash
        proposal.executed = True
        proposal.status = ProposalStatus.EXECUTED
        outcome.vote_result = VoteResult(executed=True, threshold_reached=True)
        outcome.status = BatchStatus.EXECUTED
        logger.info(f"{name}: executed (tx {receipt.tx_hash})")

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _transact(self, call: PreparedCall, outcome: BatchOutcome) -> TransactionReceipt:
        """Send a call and wait for its receipt, both under the tx timeout."""
        writer = self.session.writer
        tx_hash = await self._bounded(writer.send_transaction(call))
        outcome.tx_hashes.append(tx_hash)
        receipt = await self._bounded(writer.wait_for_receipt(tx_hash))
        if not receipt.ok:
            raise TransactionError(
                f"Transaction {tx_hash} reverted", tx_hash=tx_hash, system=writer.name
            )
        return receipt

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.tx_timeout)
        except asyncio.TimeoutError as e:
            raise TransactionError(
                f"Timed out after {self.tx_timeout}s", system=self.session.writer.name
            ) from e
