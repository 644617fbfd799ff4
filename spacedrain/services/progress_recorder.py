"""Append-only JSONL log of pass outcomes.

The log is an audit trail only. Nothing reads it back to make decisions;
resuming always re-queries the remote space.
"""

import logging
import os
from pathlib import Path

from spacedrain.models.graph import SpaceTarget
from spacedrain.models.progress import PassResult, ProgressRecord

logger = logging.getLogger(__name__)


class ProgressRecorder:
    def __init__(self, path: str | Path):
        self.path = Path(path)

    def append(self, record: ProgressRecord) -> None:
        """Append one record and flush it to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(record.to_json_line())
            f.flush()
            os.fsync(f.fileno())
        logger.info(f"Progress logged to {self.path}")

    def record_pass(self, result: PassResult, target: SpaceTarget, batch_size: int) -> ProgressRecord:
        record = ProgressRecord.from_pass(
            result,
            space_id=target.space_id,
            mode=target.mode.value,
            batch_size=batch_size,
        )
        self.append(record)
        return record
