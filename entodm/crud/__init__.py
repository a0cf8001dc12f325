"""
CRUD engine for entodm.

Each submodule implements one family of operations against the active
store, driven by the relation descriptors in the registry:
- create: insert entities, cascading through populated relations
- read: direct queries, or aggregation pipelines that join relations
- update: upsert entities by identifier, cascading likewise
- delete: remove entities, optionally cascading to related ones

Invariants:
    - The engine never holds state between calls; modifiers arrive as
      QueryOptions values
    - Store failures propagate unchanged
    - Each cascade pass visits an in-memory instance at most once, so
      cyclic object graphs terminate

How to change safely:
    - Keep read pipelines expressible by InMemoryDocumentStore
    - Add integration tests for any new cascade rule
"""

from . import create, delete, read, update

__all__ = ["create", "read", "update", "delete"]
