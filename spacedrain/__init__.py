"""Batched, governance-aware bulk deletion for Geo knowledge-graph spaces."""

__version__ = "0.1.0"
