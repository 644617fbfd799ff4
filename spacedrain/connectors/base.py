"""Base writer interface and connector errors.

A writer backend turns op lists into on-chain transactions for one signing
identity. Two write paths exist:
1. Direct publish (personal spaces): one transaction per batch
2. Governed (DAO spaces): propose, vote, then execute once the threshold is met

The drain pipeline never encodes ops or signs anything itself; it talks to a
`SpaceWriter` implementation selected by import path or registry name.
"""

import importlib
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field

from spacedrain.models.batch import VoteOption
from spacedrain.models.graph import SpaceTarget
from spacedrain.models.ops import Op


class ConnectorError(Exception):
    """Base exception for read API and writer errors."""

    def __init__(self, message: str, system: str | None = None, retriable: bool = False):
        super().__init__(message)
        self.system = system
        self.retriable = retriable


class GraphQLError(ConnectorError):
    """The read API answered with a GraphQL `errors` payload."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.errors = errors or []


class RateLimitError(ConnectorError):
    """Rate limit exceeded."""

    def __init__(self, message: str, retry_after: float | None = None, **kwargs: Any):
        super().__init__(message, retriable=True, **kwargs)
        self.retry_after = retry_after


class EnumerationError(ConnectorError):
    """A read query failed while snapshotting a space. Aborts the pass."""

    pass


class TransactionError(ConnectorError):
    """A transaction reverted or could not be submitted."""

    def __init__(self, message: str, tx_hash: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.tx_hash = tx_hash


class WriterConfigurationError(ConnectorError):
    """No usable writer backend could be loaded."""

    pass


# =============================================================================
# Writer call shapes
# =============================================================================


class PreparedCall(BaseModel):
    """An unsigned contract call ready to be sent."""

    to: str
    data: str
    value: int = 0
    description: str | None = None


class PreparedProposal(BaseModel):
    """A propose call plus the proposal ID it will create."""

    proposal_id: str
    call: PreparedCall


class TransactionReceipt(BaseModel):
    tx_hash: str
    status: Literal["success", "reverted"] = "success"
    block_number: int | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


class ProposalInfo(BaseModel):
    """Read-only view of a proposal on the governance contract."""

    proposal_id: str
    executed: bool = False
    extra: dict[str, Any] = Field(default_factory=dict)


class SpaceWriter(ABC):
    """Abstract base class for on-chain write backends.

    Example implementation:
        @WriterRegistry.register
        class MyChainWriter(SpaceWriter):
            name = "mychain"

            async def build_publish(self, space_id, ops, author_id, name):
                cid = await self._upload_edit(ops, author_id, name)
                return PreparedCall(to=self._registry, data=self._encode(space_id, cid))
    """

    name: ClassVar[str] = "writer"
    supports_governance: ClassVar[bool] = False

    def __init__(self, private_key: str | None = None, wallet_address: str | None = None) -> None:
        self._private_key = private_key
        self.wallet_address = wallet_address

    # =========================================================================
    # Abstract Methods (must implement)
    # =========================================================================

    @abstractmethod
    async def build_publish(
        self, space_id: str, ops: list[Op], author_id: str, name: str
    ) -> PreparedCall:
        """Wrap ops into a single direct-publish call for a personal space."""
        pass

    @abstractmethod
    async def send_transaction(self, call: PreparedCall) -> str:
        """Sign and submit a call. Returns the transaction hash."""
        pass

    @abstractmethod
    async def wait_for_receipt(self, tx_hash: str) -> TransactionReceipt:
        """Block until the transaction is confirmed on-chain."""
        pass

    # =========================================================================
    # Governance Methods (override for DAO spaces)
    # =========================================================================

    async def build_proposal(
        self,
        space: SpaceTarget,
        ops: list[Op],
        author_id: str,
        name: str,
        voting_mode: str = "FAST",
    ) -> PreparedProposal:
        raise NotImplementedError(f"{self.name} writer does not support proposals")

    async def build_vote(
        self, space: SpaceTarget, proposal_id: str, option: VoteOption = VoteOption.YES
    ) -> PreparedCall:
        """Vote from the operator's own space (`space.caller_space_id`)."""
        raise NotImplementedError(f"{self.name} writer does not support voting")

    async def build_execute(self, space: SpaceTarget, proposal_id: str) -> PreparedCall:
        raise NotImplementedError(f"{self.name} writer does not support execution")

    async def get_proposal_info(self, space: SpaceTarget, proposal_id: str) -> ProposalInfo:
        raise NotImplementedError(f"{self.name} writer cannot read proposals")

    async def is_support_threshold_reached(self, space: SpaceTarget, proposal_id: str) -> bool:
        raise NotImplementedError(f"{self.name} writer cannot read proposals")

    # =========================================================================
    # Optional Methods (can override)
    # =========================================================================

    async def resolve_personal_space_id(self, address: str) -> str:
        """Look up the personal space registered to a wallet address."""
        raise NotImplementedError(f"{self.name} writer cannot resolve personal spaces")

    async def aclose(self) -> None:
        """Release network resources."""
        pass

    async def __aenter__(self) -> "SpaceWriter":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class WriterRegistry:
    """Registry of available writer backends.

    Backends register under their `name`; anything else can be loaded by
    import path.
    """

    _writers: dict[str, type[SpaceWriter]] = {}

    @classmethod
    def register(cls, writer_class: type[SpaceWriter]) -> type[SpaceWriter]:
        """Register a writer class.

        Can be used as a decorator:
            @WriterRegistry.register
            class MyChainWriter(SpaceWriter):
                name = "mychain"
        """
        cls._writers[writer_class.name] = writer_class
        return writer_class

    @classmethod
    def get(cls, name: str) -> type[SpaceWriter] | None:
        return cls._writers.get(name)

    @classmethod
    def load(cls, spec: str) -> type[SpaceWriter]:
        """Resolve a registered name or a `module.path:ClassName` import path.

        Raises:
            WriterConfigurationError: If nothing matches or the target is not a SpaceWriter
        """
        registered = cls._writers.get(spec)
        if registered is not None:
            return registered

        if ":" not in spec:
            raise WriterConfigurationError(
                f"Unknown writer '{spec}': expected a registered name or 'module.path:ClassName'"
            )

        module_path, class_name = spec.rsplit(":", 1)
        try:
            module = importlib.import_module(module_path)
        except ImportError as e:
            raise WriterConfigurationError(
                f"Failed to import module '{module_path}': {e}"
            ) from e

        writer_class = getattr(module, class_name, None)
        if writer_class is None:
            raise WriterConfigurationError(
                f"Class '{class_name}' not found in module '{module_path}'"
            )
        if not isinstance(writer_class, type) or not issubclass(writer_class, SpaceWriter):
            raise WriterConfigurationError(f"'{class_name}' is not a SpaceWriter")
        return writer_class
