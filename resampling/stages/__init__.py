"""Resampling stages: ordering, neighbor search, grouping, similarity, conflicts.

Each stage exposes a small, pure function API and is driven by
`resampling.pipeline`, which owns the priority order for the run.
"""
