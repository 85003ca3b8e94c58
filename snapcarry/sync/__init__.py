"""Sync — the engine that brings a destination store up to date.

This package provides the primitives for:
- Selection: which local packages are newer than the store's copies
- Assertions: rebuilding the signed bundle for installed snaps
- Transfer: space-guarded, pair-wise copying into the store
- Retention: pruning old revisions and repairing broken pairs
- Runner: the run state machine, cancellation and progress channel
"""
