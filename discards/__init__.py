"""
Discards.

Selects staged library items for removal from the catalog, preserving items
that are still needed, and tracks the discard cards they were charged to.
"""
