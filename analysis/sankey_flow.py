from __future__ import annotations
"""Weighted, acyclic Sankey graphs from tabular records.

Rows are reduced to a flow graph in five steps:

- optional single-column equality filter
- aggregation of duplicate (source, target) pairs into summed edges
- node ranking by throughput (ties keep first-seen order)
- palette colors keyed by rank
- greedy cycle elimination: edges are admitted heaviest first and rejected
  when the target already reaches the source

Every step is a pure function of its inputs. Malformed rows are dropped, never
raised; pass a recorder from `analysis.drop_log` to see what was discarded.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from analysis.config import ALL_VALUES, PALETTE, ColumnConfig, PipelineLimits
from analysis.drop_log import NoOpDropLogger

__all__ = [
    "Edge",
    "RankedNode",
    "Node",
    "Link",
    "SankeyGraph",
    "SankeyBuilder",
    "cell_text",
    "parse_magnitude",
    "filter_rows",
    "aggregate_edges",
    "rank_nodes",
    "assign_colors",
    "eliminate_cycles",
    "build_sankey",
    "build_comparison",
    "get_unique_values",
]

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]


@dataclass(frozen=True)
class Edge:
    """Aggregated flow between two distinct node names; ``weight > 0``."""

    source: str
    target: str
    weight: float


@dataclass(frozen=True)
class RankedNode:
    name: str
    weight: float
    rank: int


@dataclass(frozen=True)
class Node:
    """Output node.

    Attributes:
        name: Unique node label.
        weight: Throughput over all aggregated edges touching the node, counted
            before cycle elimination.
        rank: Position in the descending-throughput order.
        color: Palette entry ``PALETTE[rank % len(PALETTE)]``.
    """

    name: str
    weight: float
    rank: int
    color: str


@dataclass(frozen=True)
class Link:
    """Admitted edge expressed as indices into `SankeyGraph.nodes`."""

    source: int
    target: int
    weight: float


@dataclass(frozen=True)
class SankeyGraph:
    """Immutable result of a pipeline run. The links always form a DAG."""

    nodes: Tuple[Node, ...] = ()
    links: Tuple[Link, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def to_payload(self) -> Dict[str, List[Dict[str, object]]]:
        return {
            "nodes": [
                {"name": node.name, "weight": node.weight, "color": node.color}
                for node in self.nodes
            ],
            "links": [
                {"source": link.source, "target": link.target, "weight": link.weight}
                for link in self.links
            ],
        }

    def to_highcharts(self) -> Dict[str, object]:
        """Return the graph as a Highcharts ``sankey`` series definition."""
        return {
            "type": "sankey",
            "keys": ["from", "to", "weight"],
            "nodes": [
                {"id": node.name, "name": node.name, "color": node.color}
                for node in self.nodes
            ],
            "data": [
                {
                    "from": self.nodes[link.source].name,
                    "to": self.nodes[link.target].name,
                    "weight": link.weight,
                }
                for link in self.links
            ],
        }


def cell_text(value: Any) -> str:
    """String form of a cell as shown in a spreadsheet.

    ``None`` becomes ``""``, booleans are lower-case and integral floats drop
    their trailing ``.0`` so ``2024.0`` read from a file matches ``"2024"``.
    Floats of 1e16 and above keep Python's own rendering.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return str(value)


def parse_magnitude(value: Any) -> Optional[float]:
    """Parse a value cell; return None unless it is a positive finite number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        # float() accepts "1_000"; spreadsheets do not
        if not value or "_" in value:
            return None
    try:
        magnitude = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(magnitude) or magnitude <= 0:
        return None
    return magnitude


def filter_rows(
    rows: Sequence[Record],
    filter_column: Optional[str],
    filter_value: Optional[str],
    recorder=None,
) -> List[Record]:
    """Keep rows whose `filter_column` cell equals `filter_value` (case-sensitive).

    An unset column, an empty value or ``"All"`` disables the filter. Rows that
    lack the column never match.
    """
    if not filter_column or not filter_value or filter_value == ALL_VALUES:
        return list(rows)
    recorder = recorder or NoOpDropLogger()
    kept: List[Record] = []
    for index, row in enumerate(rows):
        if filter_column in row and cell_text(row[filter_column]) == filter_value:
            kept.append(row)
        else:
            recorder.log("filter", "filtered", row_index=index)
    return kept


def aggregate_edges(
    rows: Iterable[Record],
    config: ColumnConfig,
    recorder=None,
) -> List[Edge]:
    """Sum row magnitudes per ordered (source, target) pair.

    Sums accumulate in row order and the returned list is in discovery order,
    i.e. the order in which each pair first appeared.
    """
    recorder = recorder or NoOpDropLogger()
    totals: Dict[Tuple[str, str], float] = {}

    for index, row in enumerate(rows):
        src = cell_text(row.get(config.source)).strip()
        tgt = cell_text(row.get(config.target)).strip()
        raw_value = row.get(config.value)
        if not src or not tgt:
            recorder.log("aggregate", "empty_endpoint", src or None, tgt or None, raw_value, index)
            continue
        magnitude = parse_magnitude(raw_value)
        if magnitude is None:
            recorder.log("aggregate", "bad_value", src, tgt, raw_value, index)
            continue
        if src == tgt:
            recorder.log("aggregate", "self_loop", src, tgt, raw_value, index)
            continue
        key = (src, tgt)
        totals[key] = totals.get(key, 0.0) + magnitude

    return [Edge(src, tgt, weight) for (src, tgt), weight in totals.items()]


def rank_nodes(edges: Iterable[Edge]) -> List[RankedNode]:
    """Order endpoints by descending throughput; ties keep first-seen order.

    Each edge adds its weight to both endpoints. First-seen order walks the
    edges in discovery order, source before target.
    """
    throughput: Dict[str, float] = {}
    for edge in edges:
        throughput[edge.source] = throughput.get(edge.source, 0.0) + edge.weight
        throughput[edge.target] = throughput.get(edge.target, 0.0) + edge.weight

    ordered = sorted(throughput, key=lambda name: -throughput[name])
    return [RankedNode(name, throughput[name], rank) for rank, name in enumerate(ordered)]


def assign_colors(ranked: Iterable[RankedNode], palette: Sequence[str] = PALETTE) -> List[Node]:
    if not palette:
        raise ValueError("palette must contain at least one color")
    return [
        Node(node.name, node.weight, node.rank, palette[node.rank % len(palette)])
        for node in ranked
    ]


def _reaches(adjacency: Mapping[str, List[str]], start: str, goal: str) -> bool:
    """Breadth-first search over admitted edges."""
    if start == goal:
        return True
    queue = deque([start])
    visited = {start}
    while queue:
        current = queue.popleft()
        for nxt in adjacency.get(current, ()):
            if nxt == goal:
                return True
            if nxt not in visited:
                visited.add(nxt)
                queue.append(nxt)
    return False


def eliminate_cycles(edges: Sequence[Edge], recorder=None) -> List[Edge]:
    """Greedily keep the heaviest edges that do not close a directed cycle.

    Edges are tried by descending weight, equal weights in discovery order. An
    edge (s, t) is rejected for good when t already reaches s through admitted
    edges. The result is in admission order and is not guaranteed to be the
    maximum-weight acyclic subgraph.
    """
    recorder = recorder or NoOpDropLogger()
    ordered = sorted(edges, key=lambda edge: -edge.weight)
    adjacency: Dict[str, List[str]] = {}
    admitted: List[Edge] = []

    for edge in ordered:
        if _reaches(adjacency, edge.target, edge.source):
            recorder.log("cycle", "cycle", edge.source, edge.target, edge.weight)
            continue
        admitted.append(edge)
        adjacency.setdefault(edge.source, []).append(edge.target)

    return admitted


def build_sankey(
    rows: Sequence[Record],
    config: ColumnConfig,
    limits: Optional[PipelineLimits] = None,
    recorder=None,
) -> SankeyGraph:
    """Run the full pipeline and return an acyclic, colored `SankeyGraph`.

    An incomplete config (missing source, target or value column) yields an
    empty graph.
    """
    if not config.is_complete:
        return SankeyGraph()
    limits = limits or PipelineLimits()
    recorder = recorder or NoOpDropLogger()

    selected = filter_rows(rows, config.filter_column, config.filter_value, recorder)
    if limits.max_rows is not None and len(selected) > limits.max_rows:
        logger.warning(
            "Row cap reached: aggregating %d of %d rows", limits.max_rows, len(selected)
        )
        for index in range(limits.max_rows, len(selected)):
            recorder.log("cap", "row_cap", row_index=index)
        selected = selected[: limits.max_rows]

    edges = aggregate_edges(selected, config, recorder)
    nodes = assign_colors(rank_nodes(edges))
    admitted = eliminate_cycles(edges, recorder)

    endpoints = {edge.source for edge in admitted} | {edge.target for edge in admitted}
    kept_nodes = tuple(node for node in nodes if node.name in endpoints)
    index_of = {node.name: position for position, node in enumerate(kept_nodes)}
    links = tuple(
        Link(index_of[edge.source], index_of[edge.target], edge.weight) for edge in admitted
    )

    logger.debug(
        "Sankey build: %d rows in, %d after filter, %d edges aggregated, %d rejected, %d nodes",
        len(rows),
        len(selected),
        len(edges),
        len(edges) - len(admitted),
        len(kept_nodes),
    )
    return SankeyGraph(nodes=kept_nodes, links=links)


def build_comparison(
    rows: Sequence[Record],
    config: ColumnConfig,
    limits: Optional[PipelineLimits] = None,
    recorder=None,
) -> Dict[str, SankeyGraph]:
    """Build the unfiltered graph next to the filtered one for side-by-side views."""
    return {
        "overall": build_sankey(rows, config.without_filter(), limits),
        "filtered": build_sankey(rows, config, limits, recorder),
    }


def get_unique_values(rows: Iterable[Record], column: str) -> List[str]:
    """Sorted distinct string forms of a column's non-null cells."""
    values = {cell_text(row[column]) for row in rows if row.get(column) is not None}
    return sorted(values)


class SankeyBuilder:
    """Reusable entry point bound to one column configuration.

    Holds no results between calls; every `build` starts from scratch.
    """

    def __init__(
        self,
        config: ColumnConfig,
        limits: Optional[PipelineLimits] = None,
        recorder=None,
    ) -> None:
        self.config = config
        self.limits = limits or PipelineLimits()
        self.recorder = recorder or NoOpDropLogger()

    def build(self, rows: Sequence[Record]) -> SankeyGraph:
        return build_sankey(rows, self.config, self.limits, self.recorder)

    def compare(self, rows: Sequence[Record]) -> Dict[str, SankeyGraph]:
        return build_comparison(rows, self.config, self.limits, self.recorder)

    def filter_options(self, rows: Sequence[Record]) -> List[str]:
        """Choices for the filter selector: ``"All"`` followed by the column's values."""
        if not self.config.filter_column:
            return []
        return [ALL_VALUES] + get_unique_values(rows, self.config.filter_column)
