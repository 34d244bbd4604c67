# src/visitcore/dataloader/__init__.py
