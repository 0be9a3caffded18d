"""Text exposition of a snapshot, one line per series."""

from typing import List

from .metrics import SeriesValue, Snapshot


CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def escape_label_value(value: str) -> str:
    """Escape backslash, double quote and newline in a label value."""
    return value.replace("\\", "\\\\").replace("\"", "\\\"").replace("\n", "\\n")


def render_series(series: SeriesValue) -> str:
    """
    Render a single series line.

    The value is written with ``str(int)`` so amounts beyond 64 bits are
    printed in full, never in scientific notation.
    """
    if series.labels:
        labels = ",".join(
            f'{key}="{escape_label_value(value)}"' for key, value in series.labels
        )
        return f"{series.name}{{{labels}}} {series.value:d}"
    return f"{series.name} {series.value:d}"


def render_snapshot(snapshot: Snapshot) -> str:
    """
    Render the whole snapshot.

    Args:
        snapshot: Snapshot to render

    Returns:
        str: Exposition text, newline terminated (empty for an empty snapshot)
    """
    lines: List[str] = [render_series(s) for s in snapshot.series]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"
