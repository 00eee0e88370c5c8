"""Command-line interface for receipt parsing and CSV export.

Provides subcommands for parsing a single receipt image, processing a
folder of receipts into a CSV file, and parsing already-recognized text.
"""

import argparse
import csv
import json
import sys
import time
from pathlib import Path

from receipt_ocr.exceptions import UnsupportedImageError
from receipt_ocr.pipeline import ReceiptPipeline, check_upload
from receipt_ocr.schemas import OUTPUT_FIELDS, RawImage, UserContext
from receipt_ocr.utils.config import load_config
from receipt_ocr.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg", "*.gif", "*.webp")
_META_COLUMNS = ["filename", "status", "processing_time_s", "error"]


def _find_documents(input_dir: Path) -> list[Path]:
    """Find all supported receipt images in a directory.

    Args:
        input_dir: Directory to scan for images.

    Returns:
        Sorted list of image file paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def _user_from_args(args: argparse.Namespace) -> UserContext | None:
    if args.first_name or args.last_name:
        return UserContext(first_name=args.first_name, last_name=args.last_name)
    return None


def extract_single(
    file_path: Path,
    pipeline: ReceiptPipeline | None = None,
    user: UserContext | None = None,
) -> dict[str, object]:
    """Parse a single receipt image and return the output contract.

    Args:
        file_path: Path to the receipt image.
        pipeline: Pipeline to use; built from the default config if omitted.
        user: Owner of the receipt.

    Returns:
        Dictionary with the parsed fields plus ``message``.

    Raises:
        UnsupportedImageError: If the file type or size is not accepted.
    """
    pipeline = pipeline or ReceiptPipeline(load_config())
    raw = RawImage.from_path(file_path)
    check_upload(raw, pipeline.config.intake)
    return pipeline.process(raw, user).to_dict()


def process_folder(
    input_dir: Path,
    output_csv: Path,
    pipeline: ReceiptPipeline | None = None,
    verbose: bool = False,
) -> dict[str, int]:
    """Parse all receipt images in a folder and export results to CSV.

    Args:
        input_dir: Directory containing receipt images.
        output_csv: Path for the output CSV file.
        pipeline: Pipeline to use; built from the default config if omitted.
        verbose: Whether to print per-file progress.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    pipeline = pipeline or ReceiptPipeline(load_config())

    files = _find_documents(input_dir)
    if not files:
        logger.warning("No receipt images found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d receipt images to process", len(files))

    results: list[dict[str, object]] = []
    successful = 0
    failed = 0

    for i, file_path in enumerate(files, 1):
        if verbose:
            print(f"Processing [{i}/{len(files)}]: {file_path.name}")

        start_time = time.time()
        try:
            parsed = extract_single(file_path, pipeline)
        except (OSError, UnsupportedImageError) as exc:
            logger.error("Failed to process %s: %s", file_path.name, exc)
            results.append(
                {"filename": file_path.name, "status": "failed", "error": str(exc)}
            )
            failed += 1
            continue

        error = parsed.pop("error", None)
        parsed.pop("message", None)
        row: dict[str, object] = {
            "filename": file_path.name,
            "status": "failed" if error else "success",
            "processing_time_s": round(time.time() - start_time, 2),
            "error": error,
        }
        row.update(parsed)
        results.append(row)
        if error:
            failed += 1
        else:
            successful += 1

    _write_csv(results, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {"total": len(files), "successful": successful, "failed": failed}
    _print_summary(summary, output_csv)
    return summary


def _write_csv(results: list[dict[str, object]], output_path: Path) -> None:
    """Write parsed receipts to a CSV file.

    Args:
        results: List of result dictionaries.
        output_path: Path for the output CSV file.
    """
    if not results:
        return

    columns = _META_COLUMNS + [f for f in OUTPUT_FIELDS if f != "raw_text"]

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(results)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    """Print batch processing summary to stdout.

    Args:
        summary: Counts of total, successful, and failed receipts.
        output_csv: Path to the output CSV.
    """
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def _emit(result: dict[str, object], output: Path | None) -> None:
    output_str = json.dumps(result, indent=2, ensure_ascii=False)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(output_str)
        print(f"Output written to {output}")
    else:
        print(output_str)


def _add_user_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--first-name", help="Receipt owner's first name")
    parser.add_argument("--last-name", help="Receipt owner's last name")
    parser.add_argument("-o", "--output", type=Path, help="Output JSON file")


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Receipt OCR Parser",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c", "--config", type=Path, default=None, help="YAML configuration file"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    batch_parser = subparsers.add_parser("batch", help="Process a folder of receipts")
    batch_parser.add_argument(
        "input_dir", type=Path, help="Input directory with receipt images"
    )
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    single_parser = subparsers.add_parser("extract", help="Parse a single receipt image")
    single_parser.add_argument("file", type=Path, help="Receipt image to parse")
    _add_user_arguments(single_parser)

    text_parser = subparsers.add_parser(
        "parse-text", help="Parse receipt text recognized elsewhere"
    )
    text_parser.add_argument("file", type=Path, help="Text file, or - for stdin")
    _add_user_arguments(text_parser)

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(
            args.input_dir, args.output, ReceiptPipeline(config), args.verbose
        )
    elif args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            result = extract_single(
                args.file, ReceiptPipeline(config), _user_from_args(args)
            )
        except UnsupportedImageError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        _emit(result, args.output)
    elif args.command == "parse-text":
        if str(args.file) == "-":
            text = sys.stdin.read()
        elif args.file.exists():
            text = args.file.read_text(encoding="utf-8")
        else:
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        result = ReceiptPipeline(config).parse_text(text, _user_from_args(args))
        _emit(result.to_dict(), args.output)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
