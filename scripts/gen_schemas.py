# scripts/gen_schemas.py
"""
Write JSON Schemas for the records visitcore exchanges with other systems:
    - Activity          (visit schema entries, camelCase)
    - VisitSubmission   (submitted visit record, camelCase)
    - Config            (config.yaml)

Default output directory: schemas/
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from pydantic import BaseModel

from visitcore.schemas.models import Activity, Config
from visitcore.submission.builder import VisitSubmission

SCHEMA_MODELS: dict[str, type[BaseModel]] = {
    "activity": Activity,
    "submission": VisitSubmission,
    "config": Config,
}


def export_schema(model_cls: type[BaseModel], name: str, out_dir: Path) -> Path:
    """
    @brief
    Write ``<name>.schema.json`` for a pydantic model.

    @details
    Wire models are described by alias, i.e. with the camelCase names they
    use on input and output.
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    schema_path = out_dir / f"{name}.schema.json"
    schema = model_cls.model_json_schema(by_alias=True)

    with schema_path.open("w", encoding="utf-8") as f:
        json.dump(schema, f, indent=2, ensure_ascii=False)
        f.write("\n")

    logging.info("Generated %s", schema_path.as_posix())
    return schema_path


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    parser = argparse.ArgumentParser(prog="visitcore-schemas", description=__doc__)
    parser.add_argument("--out", type=str, default="schemas", help="Output directory")
    args = parser.parse_args(argv)

    out_dir = Path(args.out)
    for name, model_cls in SCHEMA_MODELS.items():
        export_schema(model_cls, name, out_dir)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
