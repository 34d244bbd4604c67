# src/visitcore/store/__init__.py
