"""Diff-aware retrieval, scoring, aggregation and formatting."""
