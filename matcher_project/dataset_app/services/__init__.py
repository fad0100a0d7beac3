from .storage import DatasetStorage, ColumnRef
from .sampler import retype_data, sample_column, sample_indices, INT_MIN_SENTINEL

__all__ = [
    'DatasetStorage',
    'ColumnRef',
    'retype_data',
    'sample_column',
    'sample_indices',
    'INT_MIN_SENTINEL',
]
