"""In-memory relational model: datasets, tables and rows with lifecycle state.

Usage:
    from dataset_sync.dataset import Dataset, DataTable, DataRow, RowState, RowVersion
"""

from dataset_sync.dataset.dataset import Dataset
from dataset_sync.dataset.rows import DataRow, RowState, RowVersion
from dataset_sync.dataset.table import DataTable

__all__ = [
    "Dataset",
    "DataTable",
    "DataRow",
    "RowState",
    "RowVersion",
]
