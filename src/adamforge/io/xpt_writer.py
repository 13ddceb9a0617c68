"""SAS Transport v5 writer for derived ADaM datasets.

XPT v5 silently truncates what it cannot hold, so constraints are checked
up front and the file is read back after writing:
- dataset and variable names: <= 8 characters, start with a letter
- dataset and variable labels: <= 40 characters
- character values: <= 200 bytes, ASCII only
"""

from __future__ import annotations

import re
from pathlib import Path

import pandas as pd
import pyreadstat
from loguru import logger

_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]{0,7}$")
_MAX_LABEL = 40
_MAX_CHAR_BYTES = 200


class XPTValidationError(Exception):
    """Raised when a frame violates XPT v5 constraints. Lists every violation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        msg = f"XPT v5 validation failed with {len(errors)} error(s):\n" + "\n".join(
            f"  - {e}" for e in errors
        )
        super().__init__(msg)


def check_xpt_constraints(
    df: pd.DataFrame,
    column_labels: dict[str, str],
    table_name: str,
    table_label: str | None = None,
) -> list[str]:
    """Return every XPT v5 constraint violation (empty list means writable)."""
    errors: list[str] = []

    if not _NAME_RE.match(table_name):
        errors.append(
            f"Dataset name '{table_name}' must be 1-8 characters and start with a letter"
        )
    if table_label is not None and len(table_label) > _MAX_LABEL:
        errors.append(f"Dataset label exceeds {_MAX_LABEL} characters: '{table_label}'")

    for col in df.columns:
        name = str(col)
        if not _NAME_RE.match(name):
            errors.append(f"Variable name '{name}' must be 1-8 characters and start with a letter")
        label = column_labels.get(name)
        if label is None:
            errors.append(f"Variable '{name}' has no label")
        elif len(label) > _MAX_LABEL:
            errors.append(f"Label for '{name}' exceeds {_MAX_LABEL} characters")

        if not pd.api.types.is_object_dtype(df[col]) and not pd.api.types.is_string_dtype(
            df[col]
        ):
            continue
        values = df[col].dropna().astype(str)
        if values.empty:
            continue
        longest = int(values.map(lambda v: len(v.encode("utf-8"))).max())
        if longest > _MAX_CHAR_BYTES:
            errors.append(
                f"Variable '{name}' has values of {longest} bytes (max {_MAX_CHAR_BYTES})"
            )
        n_non_ascii = int((~values.map(str.isascii)).sum())
        if n_non_ascii:
            errors.append(f"Variable '{name}' has {n_non_ascii} non-ASCII value(s)")

    return errors


def write_xpt(
    df: pd.DataFrame,
    path: str | Path,
    table_name: str,
    column_labels: dict[str, str],
    table_label: str | None = None,
) -> None:
    """Write a frame as XPT v5 after checking constraints, then verify by reading back.

    Raises:
        XPTValidationError: If the frame violates XPT v5 constraints.
        RuntimeError: If the read-back does not match what was written.
    """
    path = Path(path)
    errors = check_xpt_constraints(df, column_labels, table_name, table_label)
    if errors:
        raise XPTValidationError(errors)

    write_kwargs: dict[str, object] = {
        "table_name": table_name.upper(),
        "column_labels": column_labels,
        "file_format_version": 5,
    }
    if table_label is not None:
        write_kwargs["file_label"] = table_label

    logger.info(
        "Writing XPT: {} ({} rows x {} cols) -> {}",
        table_name.upper(),
        len(df),
        len(df.columns),
        path,
    )
    pyreadstat.write_xport(df, str(path), **write_kwargs)

    readback, _meta = pyreadstat.read_xport(str(path))
    if list(readback.columns) != [str(c) for c in df.columns]:
        raise RuntimeError(
            f"Read-back column mismatch for {path.name}: "
            f"wrote {list(df.columns)}, read {list(readback.columns)}"
        )
    if len(readback) != len(df):
        raise RuntimeError(
            f"Read-back row count mismatch for {path.name}: "
            f"wrote {len(df)}, read back {len(readback)}"
        )
