"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator

import pytest
from fakes import (
    CALLER_SPACE_ID,
    DAO_ADDRESS,
    GRAPHQL_URL,
    SPACE_ID,
    WALLET,
    FakeSpace,
    FakeWriter,
    SleepRecorder,
)

from spacedrain.config import DrainConfig
from spacedrain.connectors.graphql import GeoGraphQLClient
from spacedrain.models.graph import GovernanceMode, SpaceTarget
from spacedrain.services.progress_recorder import ProgressRecorder
from spacedrain.session import DrainSession


@pytest.fixture
def space() -> FakeSpace:
    return FakeSpace()


@pytest.fixture
async def reader(space: FakeSpace) -> AsyncGenerator[GeoGraphQLClient, None]:
    """Real read client talking to the fake space."""
    client = GeoGraphQLClient(GRAPHQL_URL, transport=space.transport(), retry_delay=0)
    yield client
    await client.aclose()


@pytest.fixture
def writer(space: FakeSpace) -> FakeWriter:
    return FakeWriter(space)


@pytest.fixture
def personal_target() -> SpaceTarget:
    return SpaceTarget(space_id=SPACE_ID)


@pytest.fixture
def governed_target() -> SpaceTarget:
    return SpaceTarget(
        space_id=SPACE_ID,
        mode=GovernanceMode.GOVERNED,
        dao_address=DAO_ADDRESS,
        caller_space_id=CALLER_SPACE_ID,
    )


@pytest.fixture
def personal_session(
    reader: GeoGraphQLClient, writer: FakeWriter, personal_target: SpaceTarget
) -> DrainSession:
    return DrainSession(reader=reader, writer=writer, target=personal_target, wallet_address=WALLET)


@pytest.fixture
def governed_session(
    reader: GeoGraphQLClient, writer: FakeWriter, governed_target: SpaceTarget
) -> DrainSession:
    return DrainSession(reader=reader, writer=writer, target=governed_target, wallet_address=WALLET)


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def recorder(tmp_path) -> ProgressRecorder:
    return ProgressRecorder(tmp_path / "backups" / "progress.jsonl")


@pytest.fixture
def config() -> DrainConfig:
    return DrainConfig(batch_size=10, skip_confirm=True)
