"""
Image library.

Components:
- models.py: AIImage record and model labels
- store.py: SQLite-backed image store with tags and favorites
- media.py: data URLs, image metadata, size formatting
- transfer.py: JSON export/import of the whole library
"""
