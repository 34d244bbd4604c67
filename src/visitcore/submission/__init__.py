# src/visitcore/submission/__init__.py
