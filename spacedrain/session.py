"""Explicit session passed to every pipeline component.

A session owns the read client, the writer backend and the signing lock for
one target space. It is created once at process start and closed once at
exit; components receive it by reference.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from spacedrain.config import Settings
from spacedrain.connectors.base import SpaceWriter, WriterConfigurationError, WriterRegistry
from spacedrain.connectors.graphql import GeoGraphQLClient
from spacedrain.models.graph import GovernanceMode, SpaceTarget
from spacedrain.models.ops import OpsBuilder

logger = logging.getLogger(__name__)


@dataclass
class DrainSession:
    """Everything a drain run needs to read and write one space."""

    reader: GeoGraphQLClient
    writer: SpaceWriter
    target: SpaceTarget
    wallet_address: str
    ops: OpsBuilder = field(default_factory=OpsBuilder)
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    """Single-writer access to the signing identity's transaction sequence."""

    async def aclose(self) -> None:
        try:
            await self.writer.aclose()
        finally:
            await self.reader.aclose()

    async def __aenter__(self) -> "DrainSession":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def load_writer(settings: Settings, writer_spec: str | None = None) -> SpaceWriter:
    """Instantiate the configured writer backend.

    Raises:
        WriterConfigurationError: If no backend is configured or it cannot be loaded
    """
    spec = writer_spec or settings.writer
    if not spec:
        raise WriterConfigurationError(
            "No writer backend configured. Set SPACEDRAIN_WRITER or pass --writer "
            "'module.path:ClassName'."
        )
    writer_class = WriterRegistry.load(spec)
    logger.info(f"Using writer backend {writer_class.__module__}:{writer_class.__name__}")
    return writer_class(
        private_key=settings.private_key,
        wallet_address=settings.wallet_address,
    )


async def open_session(
    settings: Settings,
    writer: SpaceWriter,
    space_id: str | None = None,
    dao_address: str | None = None,
    caller_space_id: str | None = None,
    reader: GeoGraphQLClient | None = None,
) -> DrainSession:
    """Build a session, resolving the personal space when no space ID is given.

    Raises:
        WriterConfigurationError: If the wallet address or target space cannot be determined,
            or the writer cannot serve a governed target
    """
    wallet_address = writer.wallet_address or settings.wallet_address
    if not wallet_address:
        raise WriterConfigurationError(
            "Operator wallet address unknown. Set GEO_WALLET_ADDRESS or use a writer "
            "that derives it from the private key."
        )

    governed = dao_address is not None
    if governed and not writer.supports_governance:
        raise WriterConfigurationError(
            f"Writer backend '{writer.name}' cannot propose, vote or execute; "
            "it only supports personal spaces"
        )
    if space_id is None:
        if governed:
            raise WriterConfigurationError("--space-id is required with --dao-address")
        space_id = await writer.resolve_personal_space_id(wallet_address)
        logger.info(f"Resolved personal space {space_id} for {wallet_address}")

    if governed and caller_space_id is None:
        # Votes are cast from the operator's own registered space
        caller_space_id = await writer.resolve_personal_space_id(wallet_address)

    target = SpaceTarget(
        space_id=space_id,
        mode=GovernanceMode.GOVERNED if governed else GovernanceMode.PERSONAL,
        dao_address=dao_address,
        caller_space_id=caller_space_id,
    )
    reader = reader or GeoGraphQLClient(
        settings.graphql_url, timeout=settings.query_timeout_seconds
    )
    return DrainSession(
        reader=reader,
        writer=writer,
        target=target,
        wallet_address=wallet_address,
    )
