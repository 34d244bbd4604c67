# src/visitcore/schemas/__init__.py
