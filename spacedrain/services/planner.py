"""Partition an enumerated snapshot into bounded deletion batches."""

import logging
import math

from spacedrain.models.batch import Batch, BatchPlan, Deletion
from spacedrain.models.graph import Entity, Relation

logger = logging.getLogger(__name__)


class BatchPlanner:
    """Deterministic planner: relations first, then entities, in enumeration order."""

    def __init__(self, batch_size: int):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.batch_size = batch_size

    def plan(
        self,
        relations: list[Relation],
        entities: list[Entity],
        total_limit: int | None = None,
    ) -> BatchPlan:
        """Build the batch plan for one pass.

        With a combined cap, relations are consumed first and entities are
        truncated from the tail.
        """
        if total_limit is not None and len(relations) + len(entities) > total_limit:
            relations = relations[:total_limit]
            entities = entities[: max(0, total_limit - len(relations))]
            logger.info(
                f"Trimmed to limit {total_limit}: {len(relations)} relations "
                f"+ {len(entities)} entities"
            )

        deletions = [Deletion(kind="relation", id=r.id) for r in relations]
        deletions.extend(
            Deletion(kind="entity", id=e.id, property_ids=e.property_ids) for e in entities
        )

        total = math.ceil(len(deletions) / self.batch_size)
        batches = [
            Batch(
                index=i,
                total=total,
                items=deletions[i * self.batch_size : (i + 1) * self.batch_size],
            )
            for i in range(total)
        ]
        return BatchPlan(
            batch_size=self.batch_size,
            relations=len(relations),
            entities=len(entities),
            batches=batches,
        )

    def batch_count(self, items: int) -> int:
        return math.ceil(items / self.batch_size)
