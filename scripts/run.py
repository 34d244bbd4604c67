# scripts/run.py
from __future__ import annotations

import argparse
import logging
import sys
import time
import traceback
from datetime import date
from pathlib import Path
from typing import Any

from visitcore.calculated.formula import formula_evaluator
from visitcore.dataloader.config_loader import ConfigLoader
from visitcore.dataloader.postload_handler import LoadResultHandler
from visitcore.dataloader.schema_loader import ActivitySchemaLoader, FormValuesLoader
from visitcore.errors import DataError, VisitCoreError
from visitcore.export.submission_export import (
    write_measurements_csv,
    write_submission_json,
    write_validation_report,
)
from visitcore.schemas.models import Config
from visitcore.submission.builder import build_submission
from visitcore.validator.engine import ValidationEngine


def _setup_logging() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    @brief
    Parse command-line arguments for the visit evaluation pipeline.

    @details
    Schema and values are required; configuration is optional (built-in
    defaults apply when omitted). ``--visit-date`` overrides the config's
    reference day for adherence.
    """
    parser = argparse.ArgumentParser(
        prog="visitcore-run",
        description="Evaluate a filled visit: load, validate, build submission, export",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config YAML (default: built-in defaults)",
    )
    parser.add_argument(
        "--schema",
        type=str,
        required=True,
        help="Path to the visit activity schema (.json/.yaml)",
    )
    parser.add_argument(
        "--values",
        type=str,
        required=True,
        help="Path to the form values JSON (values map or exported visit)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output directory for artifacts (default: output_dir from config)",
    )
    parser.add_argument("--visit-date", type=date.fromisoformat, default=None)
    parser.add_argument("--patient-id", type=str, default=None)
    parser.add_argument("--protocol", type=str, default=None)
    parser.add_argument("--visit-name", type=str, default="")
    return parser.parse_args(argv)


def run_pipeline(
    config_path: Path | None,
    schema_path: Path,
    values_path: Path,
    output_dir: Path | None = None,
    *,
    visit_date: date | None = None,
    visit_info: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    @brief
    Execute the visit evaluation pipeline end to end.

    @details
    (1) Load configuration, activity schema and answers.
    (2) Validate every activity and write validation_report.json.
    (3) Build the submission (refused while blocking errors exist).
    (4) Export submission.json / measurements.csv per config flags.

    @returns
        Dictionary with the validity flag, error counts and artifact paths.

    @raises
        VisitCoreError
            On configuration, schema, data or export failures.
    """
    t0 = time.perf_counter()

    # (1) Inputs
    if config_path is not None:
        logging.info("Loading config: %s", config_path)
        cfg = ConfigLoader().load(config_path)
    else:
        cfg = Config()
    out_dir = output_dir or Path(cfg.output_dir or "data/output")
    out_dir.mkdir(parents=True, exist_ok=True)

    logging.info("Loading activity schema: %s", schema_path)
    load_result = ActivitySchemaLoader().load(schema_path)
    activities = LoadResultHandler(output_dir=out_dir).handle(load_result)
    if activities is None:
        raise DataError(
            message=f"Schema load failed, see {(out_dir / 'load_errors.json').as_posix()}",
            source="scripts.run",
            suggested_action="Fix schema issues reported in load_errors.json and rerun.",
        )

    logging.info("Loading form values: %s", values_path)
    store = FormValuesLoader().load(values_path, activities)

    # (2) Validation
    logging.info("Validating %d activities…", len(activities))
    engine = ValidationEngine(activities, store, formula_evaluator(activities))
    errors = engine.run_all_checks()
    report = engine.build_report()
    report_path = write_validation_report(report, out_dir / "validation_report.json")
    if not report["valid"]:
        logging.warning(
            "Validation failed: %d blocking error(s). Submission will be skipped.",
            len(report["errors"]),
        )

    # (3) Submission
    reference_day = visit_date or cfg.visit_date
    submission = build_submission(
        activities,
        store,
        errors=errors,
        visit_date=reference_day,
        thresholds=cfg.adherence,
        **(visit_info or {}),
    )

    # (4) Export
    submission_path: Path | None = None
    csv_path: Path | None = None
    if submission is not None:
        if cfg.export.write_submission:
            logging.info("Exporting submission.json…")
            submission_path = write_submission_json(submission, out_dir / "submission.json")
        if cfg.export.write_measurements_csv:
            logging.info("Exporting measurements.csv…")
            csv_path = write_measurements_csv(submission, out_dir / "measurements.csv")

    logging.info("Pipeline finished in %.2f s", time.perf_counter() - t0)

    return {
        "valid": submission is not None,
        "errors": len(report["errors"]),
        "warnings": len(report["warnings"]),
        "artifacts": {
            "validation_report": report_path,
            "submission": submission_path,
            "measurements_csv": csv_path,
        },
    }


def main(argv: list[str] | None = None) -> int:
    """
    @brief
    CLI entry point.

    @details
    Exit codes:
      0 – submission built
      1 – controlled failure (config/schema/data/export) or blocking validation errors
      2 – unexpected crash
    """
    _setup_logging()
    args = _parse_args(argv)

    try:
        result = run_pipeline(
            Path(args.config) if args.config else None,
            Path(args.schema),
            Path(args.values),
            Path(args.output) if args.output else None,
            visit_date=args.visit_date,
            visit_info={
                "patient_id": args.patient_id,
                "protocol_name": args.protocol,
                "visit_name": args.visit_name,
            },
        )
        arts = result["artifacts"]
        logging.info(
            "Artifacts: %s",
            ", ".join(f"{name}={path.as_posix()}" for name, path in arts.items() if path),
        )
        return 0 if result["valid"] else 1

    except VisitCoreError as e:
        logging.error(str(e))
        logging.debug("Error details: %s", e.to_dict())
        return 1
    except Exception:
        logging.error("Unexpected error occurred:")
        traceback.print_exc()
        return 2


if __name__ == "__main__":
    sys.exit(main())
