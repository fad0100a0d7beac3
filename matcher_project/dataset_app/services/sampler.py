"""
Deterministic column sampling for dataset previews.
"""
import math
import re
from typing import Any, List, Optional, Sequence

import numpy as np

from dataset_app.models import LogicalType
from shared.utils.exceptions import DataError

SAMPLE_SEED = 0
DEFAULT_SAMPLE_SIZE = 15
INT_MIN_SENTINEL = -2 ** 31


INT_PATTERN = re.compile(r'[+-]?[0-9]+')
FLOAT_PATTERN = re.compile(
    r'[+-]?(NaN|Infinity|([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?)[fFdD]?'
)
INT_RANGE = (-2 ** 31, 2 ** 31 - 1)


def _to_bool(value: str) -> bool:
    if value == 'true':
        return True
    if value == 'false':
        return False
    raise DataError(f"Cannot interpret {value!r} as a boolean")


def _to_float(value: str) -> float:
    if not isinstance(value, str):
        return math.nan
    match = FLOAT_PATTERN.fullmatch(value.strip())
    if match is None:
        return math.nan
    # Python spells the special values "nan"/"inf" and has no type suffix
    text = match.group(0).rstrip('fFdD').replace('Infinity', 'inf')
    return float(text)


def _to_int(value: str) -> int:
    if not isinstance(value, str) or INT_PATTERN.fullmatch(value) is None:
        return INT_MIN_SENTINEL
    number = int(value)
    if not INT_RANGE[0] <= number <= INT_RANGE[1]:
        return INT_MIN_SENTINEL
    return number


def retype_data(data: Sequence[str], logical_type: Optional[str]) -> List[Any]:
    """
    Convert raw CSV strings to the column's logical type.
    
    Args:
        data: Raw cell values
        logical_type: One of the LogicalType values, or None for strings
    
    Returns:
        Converted values. Malformed floats become NaN and malformed
        integers become INT_MIN_SENTINEL.
    
    Raises:
        DataError: If a boolean column holds anything but "true"/"false"
    """
    if logical_type == LogicalType.BOOLEAN:
        return [_to_bool(v) for v in data]
    if logical_type == LogicalType.FLOAT:
        return [_to_float(v) for v in data]
    if logical_type == LogicalType.INTEGER:
        return [_to_int(v) for v in data]
    return list(data)


def sample_indices(row_count: int, n: int = DEFAULT_SAMPLE_SIZE) -> List[int]:
    """
    Row indices for a column sample, drawn with replacement.
    
    The generator is seeded with a constant so the same dataset always
    yields the same sample, and every column of a dataset shares the
    same rows.
    """
    if row_count <= 0 or n <= 0:
        return []
    rng = np.random.default_rng(SAMPLE_SEED)
    return rng.integers(0, row_count, size=n).tolist()


def sample_column(
    values: Sequence[str],
    logical_type: Optional[str],
    n: int = DEFAULT_SAMPLE_SIZE,
    indices: Optional[Sequence[int]] = None
) -> List[Any]:
    """
    Typed sample of a column, in the order the rows were drawn.
    
    Args:
        values: Raw cell values of the column
        logical_type: Declared logical type
        n: Sample size
        indices: Pre-drawn row indices (shared across a dataset)
    
    Returns:
        ``n`` typed values, or an empty list for an empty column
    """
    if not values:
        return []
    if indices is None:
        indices = sample_indices(len(values), n)
    return retype_data([values[i] for i in indices], logical_type)
