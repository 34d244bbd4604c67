# src/visitcore/__init__.py
"""Clinical visit activity schema, answer store, validation and adherence engine."""

__version__ = "0.1.0"
