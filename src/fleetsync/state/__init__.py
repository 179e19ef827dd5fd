"""State/store layer.

This package is the single source of truth for how full snapshots from
polling and partial updates from the push channel are merged into one
per-vehicle fleet view.
"""
