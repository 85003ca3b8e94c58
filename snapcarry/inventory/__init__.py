"""Inventory — what the host offers and what the destination already holds.

- Source inventory: seeded and installed snaps, one entry per name
- Destination inventory: complete payload/assertion pairs per name
"""
