"""
Batch subsystem.

Components:
- models.py: data structures (BatchRun, BatchItem, statuses)
- store.py: SQLite-backed run/item storage
- runner.py: sequential runner with pause/resume and retry of failed items
- api.py: small high-level helpers used by the CLI
"""
