"""Drain pipeline services."""

from spacedrain.services.author_resolver import AuthorResolver, ResolvedAuthor
from spacedrain.services.enumerator import PaginatedEnumerator, SpaceSnapshot
from spacedrain.services.planner import BatchPlanner
from spacedrain.services.progress_recorder import ProgressRecorder
from spacedrain.services.rate_limiter import BackoffGate
from spacedrain.services.run_loop import ConfirmCallback, EventCallback, ResumableRunLoop
from spacedrain.services.transactor import GovernanceTransactor

__all__ = [
    "AuthorResolver",
    "BackoffGate",
    "BatchPlanner",
    "ConfirmCallback",
    "EventCallback",
    "GovernanceTransactor",
    "PaginatedEnumerator",
    "ProgressRecorder",
    "ResolvedAuthor",
    "ResumableRunLoop",
    "SpaceSnapshot",
]
