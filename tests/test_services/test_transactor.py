"""Tests for the write protocol state machine."""

import asyncio

from fakes import WALLET, FakeSpace, FakeWriter

from spacedrain.models.batch import Batch, BatchStatus, Deletion, ProposalStatus, VoteOption
from spacedrain.models.ops import CreateEntityOp, DeleteRelationOp, OpsBuilder, UnsetEntityValuesOp
from spacedrain.session import DrainSession
from spacedrain.services.transactor import GovernanceTransactor

AUTHOR = "9" * 32


def batch_for(space: FakeSpace, relations: int = 2, entities: int = 1) -> Batch:
    space.populate(relations=relations, entities=entities, with_properties=entities)
    items = [Deletion(kind="relation", id=r) for r in space.relations]
    items += [
        Deletion(kind="entity", id=e, property_ids=data["values"])
        for e, data in space.entities.items()
    ]
    return Batch(index=0, total=1, items=items)


class TestDirectPath:
    """Tests for personal-space publishing."""

    async def test_confirmed(self, space: FakeSpace, writer: FakeWriter, personal_session: DrainSession):
        batch = batch_for(space)
        outcome = await GovernanceTransactor(personal_session).drive(batch, AUTHOR)
        assert outcome.status == BatchStatus.CONFIRMED
        assert outcome.completed
        assert len(outcome.tx_hashes) == 1
        assert outcome.proposal is None
        assert space.counts.total == 0

    async def test_ops_layout(self, space: FakeSpace, writer: FakeWriter, personal_session: DrainSession):
        batch = batch_for(space, relations=1, entities=1)
        _, creation_ops = OpsBuilder().create_author(WALLET)
        outcome = await GovernanceTransactor(personal_session).drive(batch, AUTHOR, creation_ops)
        (ops,) = writer.submissions
        assert ops[:2] == creation_ops
        assert isinstance(ops[2], DeleteRelationOp)
        assert isinstance(ops[3], UnsetEntityValuesOp)
        assert outcome.ops_submitted == 5

    async def test_batch_name(self, space: FakeSpace, writer: FakeWriter, personal_session: DrainSession):
        await GovernanceTransactor(personal_session).drive(batch_for(space), AUTHOR)
        assert writer.names == ["Clear personal space (1/1)"]

    async def test_send_failure_is_isolated(
        self, space: FakeSpace, writer: FakeWriter, personal_session: DrainSession
    ):
        writer.fail_submissions = {1}
        batch = batch_for(space)
        outcome = await GovernanceTransactor(personal_session).drive(batch, AUTHOR)
        assert outcome.status == BatchStatus.FAILED
        assert "rejected" in outcome.error
        assert space.counts.total == 3

    async def test_revert_is_failure(self, space: FakeSpace, writer: FakeWriter, personal_session: DrainSession):
        writer.revert_submissions = {1}
        outcome = await GovernanceTransactor(personal_session).drive(batch_for(space), AUTHOR)
        assert outcome.status == BatchStatus.FAILED
        assert "reverted" in outcome.error
        assert len(outcome.tx_hashes) == 1

    async def test_timeout_is_failure(self, space: FakeSpace, writer: FakeWriter, personal_session: DrainSession):
        async def stuck(tx_hash):
            await asyncio.sleep(10)

        writer.wait_for_receipt = stuck
        transactor = GovernanceTransactor(personal_session, tx_timeout=0.01)
        outcome = await transactor.drive(batch_for(space), AUTHOR)
        assert outcome.status == BatchStatus.FAILED
        assert "Timed out" in outcome.error

    async def test_submit_arbitrary_ops(self, writer: FakeWriter, personal_session: DrainSession):
        ops = OpsBuilder().rename_entity(personal_session.target.space_id, "Renamed")
        outcome = await GovernanceTransactor(personal_session).submit(ops, AUTHOR, "rename")
        assert outcome.status == BatchStatus.CONFIRMED
        assert writer.space.entities[personal_session.target.space_id]["name"] == "Renamed"


class TestGovernedPath:
    """Tests for propose, vote, execute."""

    async def test_auto_executed_with_vote(
        self, space: FakeSpace, writer: FakeWriter, governed_session: DrainSession
    ):
        writer.governance = "auto"
        outcome = await GovernanceTransactor(governed_session).drive(batch_for(space), AUTHOR)
        assert outcome.status == BatchStatus.EXECUTED
        assert outcome.vote_result.executed
        assert outcome.vote_result.auto_executed
        assert outcome.proposal.status == ProposalStatus.EXECUTED
        assert outcome.proposal.execute_tx is None
        assert len(outcome.tx_hashes) == 2
        assert writer.executions == []
        assert space.counts.total == 0

    async def test_threshold_reached_then_executed(
        self, space: FakeSpace, writer: FakeWriter, governed_session: DrainSession
    ):
        writer.governance = "threshold"
        outcome = await GovernanceTransactor(governed_session).drive(batch_for(space), AUTHOR)
        assert outcome.status == BatchStatus.EXECUTED
        assert outcome.vote_result.executed
        assert not outcome.vote_result.auto_executed
        assert writer.executions == [outcome.proposal.id]
        assert outcome.proposal.execute_tx == outcome.tx_hashes[-1]
        assert len(outcome.tx_hashes) == 3
        assert space.counts.total == 0

    async def test_pending_threshold(
        self, space: FakeSpace, writer: FakeWriter, governed_session: DrainSession
    ):
        writer.governance = "pending"
        batch = batch_for(space)
        outcome = await GovernanceTransactor(governed_session).drive(batch, AUTHOR)
        assert outcome.status == BatchStatus.PENDING_THRESHOLD
        assert outcome.completed
        assert outcome.pending
        assert outcome.vote_result.executed is False
        assert outcome.proposal.status == ProposalStatus.PENDING_THRESHOLD
        assert space.counts.total == 3

    async def test_votes_yes_once_on_own_proposal(
        self, space: FakeSpace, writer: FakeWriter, governed_session: DrainSession
    ):
        writer.governance = "pending"
        transactor = GovernanceTransactor(governed_session)
        first = await transactor.drive(batch_for(space), AUTHOR)
        second = await transactor.drive(batch_for(space), AUTHOR)
        assert writer.votes == [
            (first.proposal.id, VoteOption.YES),
            (second.proposal.id, VoteOption.YES),
        ]

    async def test_proposal_carries_batch_ops(
        self, space: FakeSpace, writer: FakeWriter, governed_session: DrainSession
    ):
        _, creation_ops = OpsBuilder().create_author(WALLET)
        outcome = await GovernanceTransactor(governed_session).drive(
            batch_for(space), AUTHOR, creation_ops
        )
        proposal = writer.proposals[outcome.proposal.id]
        assert proposal["voting_mode"] == "FAST"
        assert isinstance(proposal["ops"][0], CreateEntityOp)
        assert outcome.proposal.batch_ops == len(proposal["ops"])

    async def test_vote_failure_is_isolated(
        self, space: FakeSpace, writer: FakeWriter, governed_session: DrainSession
    ):
        async def broken_vote(space, proposal_id, option=VoteOption.YES):
            raise RuntimeError("vote encoding failed")

        writer.build_vote = broken_vote
        outcome = await GovernanceTransactor(governed_session).drive(batch_for(space), AUTHOR)
        assert outcome.status == BatchStatus.FAILED
        assert outcome.proposal.status == ProposalStatus.CREATED
        assert outcome.error == "vote encoding failed"

    async def test_governance_unsupported_writer_fails_batch(
        self, space: FakeSpace, writer: FakeWriter, governed_session: DrainSession
    ):
        async def unsupported(*args, **kwargs):
            raise NotImplementedError("no proposals")

        writer.build_proposal = unsupported
        outcome = await GovernanceTransactor(governed_session).drive(batch_for(space), AUTHOR)
        assert outcome.status == BatchStatus.FAILED
