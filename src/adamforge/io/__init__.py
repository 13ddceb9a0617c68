"""Dataset I/O: CSV / SAS loaders and CSV / XPT exporters."""

from adamforge.io.readers import LoadResult, load_study, read_table
from adamforge.io.writers import measurements_to_frame, subjects_to_frame, write_dataset

__all__ = [
    "LoadResult",
    "load_study",
    "read_table",
    "measurements_to_frame",
    "subjects_to_frame",
    "write_dataset",
]
