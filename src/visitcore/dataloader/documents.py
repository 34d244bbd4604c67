# src/visitcore/dataloader/documents.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from visitcore.errors import VisitCoreError

YAML_SUFFIXES = frozenset({".yaml", ".yml"})
JSON_SUFFIXES = frozenset({".json"})


def read_document(
    path: Path,
    suffixes: frozenset[str],
    error_cls: type[VisitCoreError],
    source: str,
) -> Any:
    """
    @brief
    Read a JSON or YAML document with strict path checks.

    @details
    The parser is chosen by extension: ``.json`` through ``json``, anything
    else allowed by ``suffixes`` through ``yaml.safe_load``.

    @raises
        error_cls
            Invalid path type, missing file, wrong extension, I/O or syntax error.
    """
    # (1) Path type, existence, extension
    if not isinstance(path, Path):
        raise error_cls(
            message=f"Invalid path type: expected pathlib.Path, got {type(path).__name__}",
            source=source,
            suggested_action="Pass a pathlib.Path pointing to the input file.",
        )
    if not path.exists():
        raise error_cls(
            message=f"Input file not found: {path}",
            source=source,
            suggested_action="Verify file path and ensure the file is present.",
        )
    suffix = path.suffix.lower()
    if suffix not in suffixes:
        raise error_cls(
            message=f"Unsupported file extension: {path.suffix}",
            source=source,
            suggested_action=f"Use one of: {', '.join(sorted(suffixes))}",
        )

    # (2) Parse
    try:
        with path.open("r", encoding="utf-8") as f:
            if suffix in JSON_SUFFIXES:
                return json.load(f)
            return yaml.safe_load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise error_cls(
            message=f"Parsing failed for {path.name}: {e}",
            source=source,
            suggested_action="Fix the document syntax.",
        ) from e
    except OSError as e:
        raise error_cls(
            message=f"Unable to read {path}: {e}",
            source=source,
            suggested_action="Check file permissions and that the file is not locked.",
        ) from e


__all__ = ["JSON_SUFFIXES", "YAML_SUFFIXES", "read_document"]
