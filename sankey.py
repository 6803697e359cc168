#!/usr/bin/env python
"""Build an acyclic Sankey payload from a tabular file."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Iterable

import polars as pl

from analysis.config import ColumnConfig, PipelineLimits
from analysis.drop_log import DropCounter, NoOpDropLogger, SqliteDropLogger
from analysis.sankey_flow import SankeyGraph, build_sankey, get_unique_values
from tabular.loader import load_records


def graph_to_json(graph: SankeyGraph, highcharts: bool = False) -> dict[str, object]:
    if highcharts:
        return {"series": [graph.to_highcharts()]}
    return graph.to_payload()


def write_json(content: dict[str, object], output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(content, indent=2, ensure_ascii=False))


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--input", required=True, help="CSV, Parquet, JSON or Excel file")
    parser.add_argument("--sheet", help="Excel sheet name (defaults to the first sheet)")
    parser.add_argument("--source", help="Column holding the flow source")
    parser.add_argument("--target", help="Column holding the flow target")
    parser.add_argument("--value", help="Numeric column holding the flow magnitude")
    parser.add_argument("--filter-column", help="Optional column to filter on")
    parser.add_argument("--filter-value", help="Keep rows whose filter column equals this ('All' disables)")
    parser.add_argument("--max-rows", type=int, help="Cap on rows fed into aggregation (0 or less disables)")
    parser.add_argument("--list-values", metavar="COLUMN", help="Print the distinct values of COLUMN and exit")
    parser.add_argument("--highcharts", action="store_true", help="Emit a Highcharts sankey series instead")
    parser.add_argument("--audit-db", help="Record dropped rows and edges in this SQLite file")
    parser.add_argument("--out-json", help="Optional JSON output path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log pipeline diagnostics")
    return parser.parse_args(argv)


def _limits_from_args(args: argparse.Namespace) -> PipelineLimits:
    if args.max_rows is None:
        return PipelineLimits()
    return PipelineLimits(max_rows=args.max_rows if args.max_rows > 0 else None)


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        rows, columns = load_records(args.input, args.sheet)
    except (FileNotFoundError, ValueError, pl.exceptions.PolarsError) as exc:
        raise SystemExit(str(exc)) from exc

    if args.list_values:
        if columns and args.list_values not in columns:
            raise SystemExit(f"Unknown column '{args.list_values}'. Available: {', '.join(columns)}")
        print(json.dumps(get_unique_values(rows, args.list_values), indent=2, ensure_ascii=False))
        return

    config = ColumnConfig(
        source=args.source or "",
        target=args.target or "",
        value=args.value or "",
        filter_column=args.filter_column,
        filter_value=args.filter_value,
    )
    if not config.is_complete:
        logging.getLogger("sankey").warning(
            "--source, --target and --value are required for a non-empty graph"
        )

    recorder: DropCounter | NoOpDropLogger
    recorder = SqliteDropLogger(args.audit_db) if args.audit_db else NoOpDropLogger()
    try:
        graph = build_sankey(rows, config, _limits_from_args(args), recorder)
    finally:
        recorder.close()

    content = graph_to_json(graph, highcharts=args.highcharts)
    if not args.out_json:
        print(json.dumps(content, indent=2, ensure_ascii=False))
        return

    write_json(content, Path(args.out_json))
    print(f"Sankey written to: {Path(args.out_json).resolve()}")
    print(f"  Nodes: {len(graph.nodes):,}  Links: {len(graph.links):,}")
    if args.audit_db:
        print(f"Dropped rows/edges stored in SQLite at: {Path(args.audit_db).resolve()}")
        for reason, count in recorder.summary().items():
            print(f"  {reason}: {count:,}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
