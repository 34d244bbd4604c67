# src/visitcore/validator/__init__.py
from visitcore.validator.engine import (
    ValidationEngine,
    errors_for,
    evaluate,
    has_blocking_errors,
    has_condition,
)

__all__ = ["ValidationEngine", "errors_for", "evaluate", "has_blocking_errors", "has_condition"]
