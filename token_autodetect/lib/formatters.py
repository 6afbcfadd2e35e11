"""
Output formatters for detected token lists.

This module handles CSV generation with timestamp-based filenames and the
one-line summaries logged for each detection pass.
"""

import csv
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, TextIO

from .models import CSV_COLUMNS, DetectionReport, TokenRecord


def generate_timestamp() -> str:
    """
    Generate a timestamp string for filenames.

    Returns:
        Timestamp in YYYYMMDD_HHMMSS format
    """
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def generate_filename(base_path: str, timestamp: Optional[str] = None) -> str:
    """
    Generate a timestamped filename for the token CSV file.

    Args:
        base_path: Base output path (e.g., "tokens.csv")
        timestamp: Optional timestamp to use (generates new one if not provided)

    Returns:
        Output file path

    Examples:
        generate_filename("tokens.csv", "20241214_153022")
        -> "tokens_20241214_153022.csv"
    """
    if timestamp is None:
        timestamp = generate_timestamp()

    path = Path(base_path)
    suffix = path.suffix or ".csv"
    return str(path.parent / f"{path.stem}_{timestamp}{suffix}")


def sort_tokens(tokens: List[TokenRecord]) -> List[TokenRecord]:
    """Order tokens by type, then symbol, then contract."""
    return sorted(tokens, key=lambda t: (t.standard.value, t.symbol.lower(), t.key))


def write_csv_to_stream(tokens: List[TokenRecord], stream: TextIO) -> None:
    """
    Write tokens to a CSV stream.

    Args:
        tokens: List of TokenRecord objects to write
        stream: File-like object to write to
    """
    writer = csv.writer(stream)
    writer.writerow(CSV_COLUMNS)

    for token in sort_tokens(tokens):
        writer.writerow(token.to_csv_row())


def write_csv(tokens: List[TokenRecord], output_path: Optional[str] = None) -> Optional[str]:
    """
    Write tokens to a CSV file or stdout.

    Args:
        tokens: Tokens to write
        output_path: Base output path. If None, writes to stdout.

    Returns:
        The file written, or None when writing to stdout
    """
    if output_path is None:
        write_csv_to_stream(tokens, sys.stdout)
        return None

    output_file = generate_filename(output_path)
    with open(output_file, "w", newline="", encoding="utf-8") as f:
        write_csv_to_stream(tokens, f)

    return output_file


def format_report(report: DetectionReport) -> str:
    """
    Summarize a detection pass in one line.

    Examples:
        "transacted: 3 candidates, 2 added, 1 delegate, 0 dead, 0 ignored"
    """
    if report.stale:
        return f"{report.kind}: discarded, wallet changed during detection"

    summary = (
        f"{report.kind}: {report.candidates} candidates, {report.added} added, "
        f"{report.delegates} delegate, {report.dead} dead, {report.ignored} ignored"
    )
    if report.skipped_unparsable:
        summary += f", {report.skipped_unparsable} unparsable"
    if report.failed:
        summary += f", {report.failed} failed"
    return summary
