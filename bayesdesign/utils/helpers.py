"""Shared table helpers.

Coercion of observation tables to DataFrames with required-column checks and
the copy / in-place switch used by every table-accepting operation.
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np
import pandas as pd

from bayesdesign.utils.errors import SchemaError

__all__ = [
    "GROUP_COLUMN",
    "coerce_frame",
    "group_keys",
    "require_columns",
]

GROUP_COLUMN = ".group"


def require_columns(
    frame: pd.DataFrame, columns: Sequence[str] | str | None, *, context: str = "data",
) -> None:
    """Raise :class:`SchemaError` naming every column of ``columns`` not in ``frame``."""
    if columns is None:
        return
    if isinstance(columns, str):
        columns = [columns]
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise SchemaError(missing, context=context)


def coerce_frame(
    data: Any,
    *,
    required_cols: Sequence[str] | str | None = None,
    select: Sequence[str] | None = None,
    copy: bool = True,
) -> pd.DataFrame:
    """Return ``data`` as a DataFrame after validating its columns.

    Parameters
    ----------
    data : DataFrame, mapping of columns, or sequence of row mappings
        Observation table.
    required_cols : sequence of str, optional
        Columns that must be present.
    select : sequence of str, optional
        Columns that must be present; the result is restricted to them (in
        this order).
    copy : bool
        If True (default) a DataFrame input is deep-copied. If False the
        caller's DataFrame itself is returned and later modifications are
        visible to the caller. Non-DataFrame inputs are always materialized
        into a new frame.

    """
    if isinstance(data, pd.DataFrame):
        frame = data.copy(deep=True) if copy else data
    elif isinstance(data, Mapping):
        frame = pd.DataFrame(dict(data))
    elif isinstance(data, Sequence) and not isinstance(data, (str, bytes)):
        frame = pd.DataFrame.from_records(list(data))
    else:
        msg = f"Expected a DataFrame, a mapping of columns or a sequence of rows; got {type(data).__name__}."
        raise TypeError(msg)

    require_columns(frame, required_cols)
    if select is not None:
        require_columns(frame, select)
        frame = frame.loc[:, list(select)]
    return frame


def group_keys(frame: pd.DataFrame, group: str = GROUP_COLUMN) -> pd.Series:
    """Partition key for group-scoped derivations.

    Returns the ``group`` column when present, otherwise a constant key (one
    group spanning all rows). The frame is not modified.
    """
    if group in frame.columns:
        return frame[group]
    return pd.Series(np.ones(len(frame), dtype=np.int64), index=frame.index, name=group)
