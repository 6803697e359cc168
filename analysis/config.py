from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

# High-contrast jewel tones, indexed by node rank modulo the palette length.
# Node counts above 16 reuse colors; that is expected.
PALETTE: Tuple[str, ...] = (
    "#0d9488",  # teal 600
    "#2563eb",  # blue 600
    "#7c3aed",  # violet 600
    "#db2777",  # pink 600
    "#ea580c",  # orange 600
    "#ca8a04",  # yellow 600
    "#059669",  # emerald 600
    "#dc2626",  # red 600
    "#4f46e5",  # indigo 600
    "#9333ea",  # purple 600
    "#0891b2",  # cyan 600
    "#16a34a",  # green 600
    "#be185d",  # rose 700
    "#1e40af",  # blue 800
    "#115e59",  # teal 800
    "#854d0e",  # yellow 800
)

ALL_VALUES = "All"
DEFAULT_MAX_ROWS = 200_000


@dataclass(frozen=True)
class ColumnConfig:
    """Immutable column selection that drives a single Sankey build."""

    source: str = ""
    target: str = ""
    value: str = ""
    filter_column: Optional[str] = None
    filter_value: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        """Return True when source, target and value columns are all set."""

        return bool(self.source and self.target and self.value)

    @property
    def has_filter(self) -> bool:
        return bool(self.filter_column and self.filter_value and self.filter_value != ALL_VALUES)

    def without_filter(self) -> "ColumnConfig":
        return ColumnConfig(self.source, self.target, self.value)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "ColumnConfig":
        """Build a config from camelCase (``filterColumn``) or snake_case keys."""

        return derive_config(mapping)


@dataclass(frozen=True)
class PipelineLimits:
    """Upper bound on the rows fed into aggregation and cycle elimination.

    Cycle elimination costs O(E * (V + E)) in the worst case, so large uploads are
    capped. ``max_rows=None`` disables the cap.
    """

    max_rows: Optional[int] = DEFAULT_MAX_ROWS

    def __post_init__(self) -> None:
        if self.max_rows is not None and self.max_rows < 0:
            raise ValueError(f"max_rows must be non-negative, got {self.max_rows}")


def _text_or_none(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw)
    return text or None


def derive_config(mapping: Mapping[str, Any]) -> ColumnConfig:
    """Normalise a loosely typed mapping (JSON body, CLI args) into a `ColumnConfig`."""
    def pick(*keys: str) -> Any:
        for key in keys:
            if mapping.get(key) is not None:
                return mapping[key]
        return None

    return ColumnConfig(
        source=_text_or_none(pick("source")) or "",
        target=_text_or_none(pick("target")) or "",
        value=_text_or_none(pick("value")) or "",
        filter_column=_text_or_none(pick("filterColumn", "filter_column")),
        filter_value=_text_or_none(pick("filterValue", "filter_value")),
    )
