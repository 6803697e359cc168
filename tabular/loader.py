from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import polars as pl

SUPPORTED_SUFFIXES = (".csv", ".tsv", ".parquet", ".json", ".ndjson", ".jsonl", ".xlsx", ".xls")


def records_from_frame(frame: pl.DataFrame) -> Tuple[List[Dict[str, Any]], List[str]]:
    """Convert a frame into row mappings plus the column order of the first record."""
    if frame.is_empty():
        return [], []
    records = frame.to_dicts()
    return records, list(records[0].keys())


def read_frame(path: Path, sheet: Optional[str] = None) -> pl.DataFrame:
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pl.read_csv(path, infer_schema_length=None)
    if suffix == ".tsv":
        return pl.read_csv(path, separator="\t", infer_schema_length=None)
    if suffix == ".parquet":
        return pl.read_parquet(path)
    if suffix == ".json":
        return pl.read_json(path)
    if suffix in {".ndjson", ".jsonl"}:
        return pl.read_ndjson(path)
    if suffix in {".xlsx", ".xls"}:
        # first sheet unless one is named
        if sheet:
            return pl.read_excel(path, sheet_name=sheet)
        return pl.read_excel(path, sheet_id=1)
    raise ValueError(
        f"Unsupported file type '{path.suffix}'. Expected one of: {', '.join(SUPPORTED_SUFFIXES)}"
    )


def load_records(
    path: str | Path,
    sheet: Optional[str] = None,
) -> Tuple[List[Dict[str, Any]], List[str]]:
    """Load a tabular file as records for the Sankey pipeline.

    Args:
        path: CSV, TSV, Parquet, JSON, NDJSON or Excel file.
        sheet: Optional sheet name for Excel workbooks; the first sheet is used
            otherwise.

    Returns:
        ``(records, columns)`` where ``columns`` are the keys of the first
        record. Empty cells stay ``None``.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"input file not found: {path}")
    if path.stat().st_size == 0:
        return [], []
    return records_from_frame(read_frame(path, sheet))
