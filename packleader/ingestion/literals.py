"""
Literal Row Reconstruction
==========================

BloodHound returns tabular Cypher results as one flat stream of (key, value)
pairs with no row boundaries. This module zips that stream back into rows.

Reconstruction:
1. Column keys are collected in order of first appearance
2. The row count is the number of values seen for the first key
3. Row i holds the i-th value of every key

Uneven column lengths have no defined row boundaries. They are logged as a
warning and padded with None up to the longest column, or rejected with
LiteralShapeError in strict mode.
"""

import logging
from typing import Any, Iterable

from ..errors import LiteralShapeError
from ..model.schemas import Literal


logger = logging.getLogger(__name__)


def _columns(literals: Iterable[Literal]) -> dict:
    columns: dict[str, list] = {}
    for literal in literals:
        columns.setdefault(literal.key, []).append(literal.value)
    return columns


def reconstruct_rows(literals: list, strict: bool = False) -> list:
    """Convert a flat literal stream into row dictionaries.

    Args:
        literals: Literal pairs in response order
        strict: Raise instead of padding when columns have different lengths

    Returns:
        List of dicts whose keys follow first-seen column order

    Raises:
        LiteralShapeError: in strict mode, when column lengths differ
    """
    if not literals:
        return []

    columns = _columns(literals)
    lengths = {key: len(values) for key, values in columns.items()}
    row_count = next(iter(lengths.values()))

    if len(set(lengths.values())) > 1:
        if strict:
            raise LiteralShapeError(f"Literal columns have uneven lengths: {lengths}")
        logger.warning("Uneven literal columns %s, padding rows with None", lengths)
        row_count = max(lengths.values())

    return [
        {key: values[i] if i < len(values) else None for key, values in columns.items()}
        for i in range(row_count)
    ]


def literal_count(literals: list) -> int:
    """Read a single `count(...)` result: the first value as an int, else 0."""
    if not literals:
        return 0
    return to_int(literals[0].value)


def to_int(value: Any) -> int:
    """Coerce a literal value to int; non-numeric values count as 0."""
    if isinstance(value, bool):
        return int(value)
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
