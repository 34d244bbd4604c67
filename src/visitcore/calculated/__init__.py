# src/visitcore/calculated/__init__.py
