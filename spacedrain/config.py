"""Configuration for drain runs.

`DrainConfig` holds per-run knobs (usually from CLI flags). `Settings` holds
process-level values read from the environment, optionally seeded from a
`.env` file.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from spacedrain.models.graph import GraphId

DEFAULT_GRAPHQL_URL = "https://testnet-api.geobrowser.io/graphql"

DEFAULT_BATCH_SIZE = 5_000
DRAIN_CHUNK_SIZE = 50_000
CONFIRM_THRESHOLD = 1_000

# Seconds between batches. Governed batches confirm three transactions each,
# so they wait longer to stay under the read API's rate limits.
DIRECT_BATCH_DELAY = 2.0
GOVERNED_BATCH_DELAY = 4.0

PERSONAL_PROGRESS_LOG = "personal-deletion-progress.jsonl"
GOVERNED_PROGRESS_LOG = "deletion-progress.jsonl"


class DrainConfig(BaseModel):
    """Configuration for one drain invocation."""

    batch_size: int = Field(DEFAULT_BATCH_SIZE, gt=0)
    """Deletions per published edit or proposal."""

    limit: int | None = Field(None, gt=0)
    """Per-type cap: at most N entities and N relations."""

    total_limit: int | None = Field(None, gt=0)
    """Combined cap. Relations are taken first, then entities."""

    drain: bool = False
    """Loop passes until the space is empty."""

    chunk_size: int = Field(DRAIN_CHUNK_SIZE, gt=0)
    """Combined cap per pass in drain mode, independent of batch_size."""

    max_idle_passes: int = Field(2, gt=0)
    """Drain mode stops after this many passes without the remaining count dropping."""

    dry_run: bool = False
    count_only: bool = False
    """Dry-run variant that only queries totalCount (ignores filters and limits)."""

    skip_confirm: bool = False
    confirm_threshold: int = CONFIRM_THRESHOLD

    type_filter: GraphId | None = None
    """Only delete entities carrying this type ID."""

    exclude_type: GraphId | None = None
    """Skip entities carrying this type ID."""

    include_accounts: bool = False
    """Also delete account / wallet-named entities (personal spaces only)."""

    rename_to: str | None = None
    """Rename the space entity after deletion."""

    batch_delay: float | None = Field(None, ge=0)
    """Seconds between batches. None picks the default for the write path."""

    tx_timeout_seconds: float = Field(180.0, gt=0)
    """Bound on each transaction wait (submit, vote, execute)."""

    progress_log: str | None = None
    """Path of the JSONL progress log. None picks the default for the write path."""

    def delay_for(self, governed: bool) -> float:
        if self.batch_delay is not None:
            return self.batch_delay
        return GOVERNED_BATCH_DELAY if governed else DIRECT_BATCH_DELAY

    def progress_log_for(self, governed: bool, progress_dir: str) -> Path:
        if self.progress_log:
            return Path(self.progress_log)
        name = GOVERNED_PROGRESS_LOG if governed else PERSONAL_PROGRESS_LOG
        return Path(progress_dir) / name

    @property
    def has_filters(self) -> bool:
        return bool(
            self.limit or self.total_limit or self.type_filter or self.exclude_type
        )


class Settings(BaseModel):
    """Process-level settings from the environment."""

    graphql_url: str = DEFAULT_GRAPHQL_URL
    private_key: str | None = None
    wallet_address: str | None = None
    writer: str | None = None
    """Writer backend as `module.path:ClassName` or a registered name."""

    progress_dir: str = "backups"
    log_level: str = "WARNING"
    query_timeout_seconds: float = 60.0

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Settings":
        """Build settings from environment variables.

        A `.env` file (explicit path, or one found from the working directory)
        is loaded first without overriding variables that are already set.
        """
        if env_file is not None:
            load_dotenv(env_file, override=False)
        else:
            load_dotenv(override=False)

        private_key = (
            os.getenv("GEO_PRIVATE_KEY")
            or os.getenv("PK")
            or os.getenv("TEST_WALLET_PRIVATE_KEY")
        )
        return cls(
            graphql_url=os.getenv("GEO_GRAPHQL_URL", DEFAULT_GRAPHQL_URL),
            private_key=private_key,
            wallet_address=os.getenv("GEO_WALLET_ADDRESS"),
            writer=os.getenv("SPACEDRAIN_WRITER"),
            progress_dir=os.getenv("SPACEDRAIN_PROGRESS_DIR", "backups"),
            log_level=os.getenv("LOG_LEVEL", "WARNING").upper(),
        )
