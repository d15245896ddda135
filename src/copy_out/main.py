"""Main module for the copy-out CLI."""

import argparse
import json
import os
import signal
import sys
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from . import __version__
from .core.config import OrchestratorSettings
from .core.exceptions import CopyOutError, InvalidJobInputError
from .core.factories import OrchestratorFactory, S3ClientFactory
from .core.logging_config import setup_logger
from .core.models import JobInput, ResultWriterDetails
from .services.rclone import RcloneCopyTask
from .services.summarise import ResultSummarizer, format_report

# flag name -> JobInput wire name
_JOB_FLAGS = {
    "source_files_csv_bucket": "sourceFilesCsvBucket",
    "source_files_csv_key": "sourceFilesCsvKey",
    "destination_bucket": "destinationBucket",
    "destination_prefix_key": "destinationPrefixKey",
    "max_items_per_batch": "maxItemsPerBatch",
    "copy_concurrency": "copyConcurrency",
    "required_region": "requiredRegion",
    "start_marker": "destinationStartCopyRelativeKey",
    "end_marker": "destinationEndCopyRelativeKey",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="copy-out",
        description="copy-out - thaw and copy S3 objects listed in a manifest CSV",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Copy everything listed in a manifest
  copy-out run --source-files-csv-bucket my-working --source-files-csv-key manifests/job1.csv \\
               --destination-bucket their-bucket --destination-prefix-key incoming/

  # Job parameters from a JSON file (flags override it)
  copy-out run --input-json job.json

  # Re-run the summary of a finished copy
  copy-out summarise --bucket my-working --key manifests/job1.csv/<run>/manifest.json

Settings come from COPY_OUT_* environment variables (COPY_OUT_WORKING_BUCKET is required).
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run a copy-out job")
    run_parser.add_argument("--input-json", help="File holding job parameters as JSON")
    run_parser.add_argument("--source-files-csv-bucket", help="Bucket of the manifest CSV")
    run_parser.add_argument("--source-files-csv-key", help="Key of the manifest CSV")
    run_parser.add_argument("--destination-bucket", help="Bucket to copy into")
    run_parser.add_argument("--destination-prefix-key", help="Prefix within the destination bucket")
    run_parser.add_argument("--max-items-per-batch", type=int, help="Rows per copy batch (default 8)")
    run_parser.add_argument("--copy-concurrency", type=int, help="Concurrent copies within a batch (default 80)")
    run_parser.add_argument("--required-region", help="Region the destination must be in")
    run_parser.add_argument("--start-marker", help="Destination-relative key of the start marker")
    run_parser.add_argument("--end-marker", help="Destination-relative key of the end-of-copy report")
    run_parser.add_argument("--execution-id", help="Identifier for this execution")
    run_parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    summarise_parser = subparsers.add_parser(
        "summarise", help="Summarise the result-writer output of a copy"
    )
    summarise_parser.add_argument("--bucket", required=True, help="Bucket of the result manifest")
    summarise_parser.add_argument("--key", required=True, help="Key of the result manifest")
    summarise_parser.add_argument("--region", help="Region of the bucket")

    subparsers.add_parser("version", help="Show version information")
    return parser


def job_input_from_args(args: argparse.Namespace) -> JobInput:
    values: Dict[str, Any] = {}
    if args.input_json:
        with open(args.input_json, "r", encoding="utf-8") as f:
            try:
                values.update(json.load(f))
            except json.JSONDecodeError as e:
                raise InvalidJobInputError(f"{args.input_json} is not valid JSON: {e}") from e
    for flag, wire_name in _JOB_FLAGS.items():
        value = getattr(args, flag)
        if value is not None:
            values[wire_name] = value
    try:
        return JobInput.model_validate(values)
    except ValidationError as e:
        raise InvalidJobInputError(f"Invalid job input: {e}") from e


def run_command(args: argparse.Namespace) -> int:
    if args.debug:
        # every logger reads LOG_LEVEL when it is fetched
        os.environ["LOG_LEVEL"] = "DEBUG"
        setup_logger(level="DEBUG")
    settings = OrchestratorSettings.from_env()
    job_input = job_input_from_args(args)
    copy_task = RcloneCopyTask(rclone_binary=settings.rclone_binary)
    orchestrator = OrchestratorFactory.create_orchestrator(settings, copy_task=copy_task)

    # on SIGTERM the running rclones are stopped and the rest of the batch is skipped
    previous = signal.signal(signal.SIGTERM, lambda signum, frame: copy_task.cancel())
    try:
        outcome = orchestrator.run(job_input, execution_id=args.execution_id)
    finally:
        signal.signal(signal.SIGTERM, previous)
    print(outcome.model_dump_json(indent=2))
    return 0 if outcome.succeeded else 1


def summarise_command(args: argparse.Namespace) -> int:
    s3_client = S3ClientFactory.create_s3_client(region_name=args.region)
    entries = ResultSummarizer(s3_client).summarise(ResultWriterDetails(bucket=args.bucket, key=args.key))
    sys.stdout.write(format_report(entries))
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the copy-out command-line interface."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        try:
            sys.exit(run_command(args))
        except CopyOutError as e:
            print(f"copy-out: {e}", file=sys.stderr)
            sys.exit(2)

    elif args.command == "summarise":
        try:
            sys.exit(summarise_command(args))
        except CopyOutError as e:
            print(f"copy-out: {e}", file=sys.stderr)
            sys.exit(1)

    elif args.command == "version":
        print("copy-out CLI")
        print(f"Version {__version__}")
        print("Orchestrated S3 copies with archive thawing")
        sys.exit(0)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
