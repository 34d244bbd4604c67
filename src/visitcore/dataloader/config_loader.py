# src/visitcore/dataloader/config_loader.py
from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from visitcore.dataloader.documents import YAML_SUFFIXES, read_document
from visitcore.errors import ConfigError
from visitcore.schemas.models import Config


class ConfigLoader:
    """
    @brief
    Loader for the runtime configuration (adherence thresholds, export flags).

    @details
    Reads config.yaml, requires a non-empty mapping at the root and
    validates it against ``Config``. Omitted sections keep their defaults;
    unknown keys are rejected. Every failure surfaces as ``ConfigError``.
    """

    def load(self, path: Path) -> Config:
        """
        @brief
        Load and validate configuration from a YAML file.

        @raises
            ConfigError
                File missing, unreadable, malformed, empty or failing validation.
        """
        # (1) Document
        data = read_document(path, YAML_SUFFIXES, ConfigError, "ConfigLoader.load")
        if data is None:
            raise ConfigError(
                message=f"Configuration file is empty: {path}",
                source="ConfigLoader.load",
                suggested_action="Populate config.yaml or omit --config to use defaults.",
            )
        if not isinstance(data, Mapping):
            raise ConfigError(
                message="Configuration root must be a mapping (key: value pairs).",
                source="ConfigLoader.load",
                suggested_action="Use top-level sections such as 'adherence' and 'export'.",
            )

        # (2) Schema
        try:
            return Config.model_validate(dict(data))
        except PydanticValidationError as e:
            raise ConfigError(
                message=f"Invalid configuration ({e.error_count()} error(s)): {e}",
                source="ConfigLoader.load",
                suggested_action=(
                    "Check section names, types and bounds in config.yaml; "
                    "unknown keys are not allowed."
                ),
            ) from e


__all__ = ["ConfigLoader"]
