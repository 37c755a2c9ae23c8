"""Feature derivation: one-hot and cumulative membership encodings."""

from __future__ import annotations

import logging
from typing import Any

import numpy as np
import pandas as pd

from bayesdesign.core.design import INTERCEPT, design_matrix
from bayesdesign.utils.errors import FeatureTypeError
from bayesdesign.utils.helpers import GROUP_COLUMN, coerce_frame, group_keys

__all__ = [
    "CUMULATIVE_PREFIX",
    "add_cumulative_membership",
    "cumulative_feature_columns",
    "one_hot_encode_feature",
]

LOGGER = logging.getLogger(__name__)

CUMULATIVE_PREFIX = "c"


def _format_level(level: Any) -> str:
    # 2.0 -> "2" so numeric features name their columns like integer ones
    if isinstance(level, (float, np.floating)) and float(level).is_integer():
        return str(int(level))
    return str(level)


def one_hot_encode_feature(
    data: Any,
    feature: str,
    *,
    contrasts: bool = False,
    copy: bool = True,
) -> pd.DataFrame:
    """Append one indicator column per level of ``feature``.

    Columns are named ``f"{feature}{level}"`` with levels in sorted order.
    With ``contrasts=True`` the first level is the implicit reference (all
    indicators zero) and gets no column.

    Examples
    --------
    >>> one_hot_encode_feature(pd.DataFrame({"week": [1, 2]}), "week").columns.tolist()
    ['week', 'week1', 'week2']
    >>> one_hot_encode_feature(pd.DataFrame({"week": [1, 2]}), "week", contrasts=True).columns.tolist()
    ['week', 'week2']

    """
    frame = coerce_frame(data, required_cols=feature, copy=copy)
    factor = pd.Categorical(frame[feature].to_numpy())
    levels = list(factor.categories)
    names = [f"{feature}{_format_level(lvl)}" for lvl in levels]
    if contrasts:
        names = names[1:]
    clash = [n for n in names if n in frame.columns]
    if clash:
        msg = f"One-hot columns for '{feature}' already exist: {clash}."
        raise ValueError(msg)

    rhs = f"{1 if contrasts else 0} + Q({feature!r})"
    encoded = design_matrix(rhs, pd.DataFrame({feature: factor}), sparse=False).design
    encoded = encoded.drop(columns=[INTERCEPT], errors="ignore")
    for name, col in zip(names, encoded.columns):
        frame[name] = encoded[col].to_numpy()
    return frame


def cumulative_feature_columns(data: pd.DataFrame, feature: str) -> list[str]:
    """Names of the cumulative membership columns derived from ``feature``.

    One ``f"c{feature}{level}"`` per observed level except the smallest,
    whether or not the columns exist yet.
    """
    levels = pd.Categorical(data[feature].to_numpy()).categories
    return [f"{CUMULATIVE_PREFIX}{feature}{_format_level(lvl)}" for lvl in levels[1:]]


def _running_membership(indicators: np.ndarray, keys: pd.Series) -> np.ndarray:
    """Running OR of each indicator column, restarted for every group.

    Rows are partitioned by ``keys`` (row order kept within each partition),
    scanned independently, and written back to their original positions.
    """
    out = np.zeros_like(indicators)
    partitions = pd.Series(keys.to_numpy()).groupby(
        keys.to_numpy(), sort=False, dropna=False,
    ).indices
    for rows in partitions.values():
        out[rows] = np.maximum.accumulate(indicators[rows], axis=0)
    return out


def add_cumulative_membership(
    data: Any,
    feature: str,
    *,
    copy: bool = True,
) -> pd.DataFrame:
    """Add cumulative membership columns for a numeric ``feature``.

    For every level of ``feature`` except the smallest, a column
    ``f"c{feature}{level}"`` is 0 until the first row (in table order)
    holding that level and 1 from then on. The scan restarts for each value
    of the ``.group`` column when present. These step functions are the
    building blocks of random-walk effects.

    If every one of these columns already exists the table is returned
    unchanged. Other columns sharing the ``c{feature}`` prefix are ignored.

    Raises
    ------
    FeatureTypeError
        If ``feature`` is not numeric.
    ValueError
        If only some of the derived columns already exist.

    Examples
    --------
    >>> out = add_cumulative_membership(pd.DataFrame({"week": [1, 2, 3]}), "week")
    >>> out[["cweek2", "cweek3"]].to_numpy().tolist()
    [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0]]

    """
    frame = coerce_frame(data, required_cols=feature, copy=copy)
    col = frame[feature]
    if not pd.api.types.is_numeric_dtype(col) or pd.api.types.is_bool_dtype(col):
        msg = (
            f"Requested variable '{feature}' is not numeric. Cumulative membership "
            "effects are only defined for numeric variables."
        )
        raise FeatureTypeError(feature, msg)

    expected = cumulative_feature_columns(frame, feature)
    existing = [c for c in expected if c in frame.columns]
    if existing and len(existing) == len(expected):
        LOGGER.debug("Cumulative membership for '%s' already present: %s", feature, existing)
        return frame
    if existing:
        msg = (
            f"Cumulative membership columns for '{feature}' partly exist: {existing} "
            f"of {expected}."
        )
        raise ValueError(msg)

    cfeature = f"{CUMULATIVE_PREFIX}{feature}"
    encoded = one_hot_encode_feature(
        pd.DataFrame({cfeature: col.to_numpy()}), cfeature, contrasts=True, copy=False,
    )
    names = [c for c in encoded.columns if c != cfeature]
    cumulative = _running_membership(
        encoded[names].to_numpy(dtype=np.float64), group_keys(frame, GROUP_COLUMN),
    )
    for j, name in enumerate(names):
        frame[name] = cumulative[:, j]
    LOGGER.debug("Added %d cumulative membership columns for '%s'", len(names), feature)
    return frame
