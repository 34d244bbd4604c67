# src/visitcore/export/__init__.py
