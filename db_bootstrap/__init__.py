"""
Ordered, idempotent bootstrap of the family store.

The store is brought up by a fixed sequence of steps, each safe to re-run:
- login role ensure (create or overwrite)
- schema ensure (create-if-missing, never altered)
- row ensure and binary seed (re-applied every run)
"""
