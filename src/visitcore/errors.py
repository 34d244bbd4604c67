# src/visitcore/errors.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


class VisitCoreError(Exception):
    """
    Base class for structured visitcore exceptions.

    Raised only at the I/O edges (configuration, schema and values files,
    artifact export). Expected conditions inside the core (incomplete
    answers, rule violations, protocol deviations) are returned as data.
    """

    def __init__(
        self, message: str, source: str | None = None, suggested_action: str | None = None
    ):
        super().__init__(message)
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.error_type = self.__class__.__name__
        self.source = source or "unknown"
        self.suggested_action = suggested_action

    @property
    def message(self) -> str:
        return str(self.args[0])

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form for reports and structured logs."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "source": self.source,
            "suggested_action": self.suggested_action,
            "timestamp": self.timestamp,
        }

    def __str__(self) -> str:
        text = f"[{self.error_type}] {self.message} (source={self.source})"
        if self.suggested_action:
            text += f" | action: {self.suggested_action}"
        return text


class ConfigError(VisitCoreError):
    """Invalid or missing configuration (config.yaml)"""


class SchemaError(VisitCoreError):
    """Unreadable or structurally invalid activity schema file"""


class DataError(VisitCoreError):
    """Malformed form values or inconsistent input data"""


class ExportError(VisitCoreError):
    """Failure while writing submission artifacts"""
