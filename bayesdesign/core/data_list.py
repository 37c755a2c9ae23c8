"""Flat data payloads for the external sampler.

The sampler consumes one mapping of field names to scalars and arrays. The
helpers here flatten model formulas and prior tables into such mappings and
combine them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import numpy as np

from bayesdesign.core.formula import ModelFormula
from bayesdesign.core.priors import PRIOR_COLUMNS
from bayesdesign.utils.helpers import coerce_frame

if TYPE_CHECKING:  # pragma: no cover - typing only
    from collections.abc import Mapping

__all__ = [
    "FORMULA_FIELDS",
    "combine_data_lists",
    "formula_as_data_list",
    "priors_as_data_list",
]

LOGGER = logging.getLogger(__name__)

FORMULA_FIELDS = (
    "fdesign",
    "fintercept",
    "fnrow",
    "findex",
    "fnindex",
    "fncol",
    "rdesign",
    "rncol",
)


def _default_formula_data() -> dict[str, Any]:
    return {
        "fdesign": np.zeros((0, 0), dtype=np.float64),
        "fintercept": 0,
        "fnrow": 0,
        "findex": np.zeros(0, dtype=np.int64),
        "fnindex": 0,
        "fncol": 0,
        "rdesign": np.zeros((0, 0), dtype=np.float64),
        "rncol": 0,
    }


def formula_as_data_list(
    formula: ModelFormula | None = None,
    *,
    prefix: str,
    drop_intercept: bool = False,
) -> dict[str, Any]:
    """Flatten a model formula into ``{f"{prefix}_{field}": value}``.

    Fields
    ------
    fintercept
        1 if the fixed design has an intercept column, else 0.
    fdesign, fnrow
        Fixed design matrix (distinct rows) and its row count.
    findex, fnindex
        1-based index from observations to ``fdesign`` rows, and its length.
    fncol
        Fixed effects: columns of ``fdesign`` less one when an intercept is
        present or ``drop_intercept`` is set (never less two).
    rdesign, rncol
        Random design matrix and its column count less the ``fixed``
        reference column.

    A missing ``formula`` gives the same fields with zeros and empty arrays,
    so a model component can be switched off without changing the payload
    layout.
    """
    data = _default_formula_data()
    if formula is not None:
        if not isinstance(formula, ModelFormula):
            msg = f"formula must be a ModelFormula as returned by model_formula(); got {type(formula).__name__}."
            raise TypeError(msg)
        fixed = formula.fixed
        fintercept = int(fixed.has_intercept)
        data["fdesign"] = fixed.design.to_numpy(dtype=np.float64)
        data["fintercept"] = fintercept
        data["fnrow"] = fixed.nrow
        data["findex"] = np.asarray(fixed.index, dtype=np.int64)
        data["fnindex"] = int(fixed.index.shape[0])
        data["fncol"] = fixed.ncol - int(bool(fintercept) or bool(drop_intercept))
        data["rdesign"] = formula.random.design.to_numpy(dtype=np.float64)
        data["rncol"] = formula.random.ncol - 1
    LOGGER.debug("Formula data for '%s': %d fixed, %d random columns", prefix, data["fncol"], data["rncol"])
    return {f"{prefix}_{key}": value for key, value in data.items()}


def priors_as_data_list(priors: Any, *, copy: bool = True) -> dict[str, np.ndarray]:
    """``{f"{variable}_p": array([mean, sd])}`` for every prior row."""
    table = coerce_frame(priors, select=list(PRIOR_COLUMNS), copy=copy)
    out: dict[str, np.ndarray] = {}
    for variable, mean, sd in table.itertuples(index=False, name=None):
        key = f"{variable}_p"
        if key in out:
            msg = f"Duplicate prior for variable '{variable}'."
            raise ValueError(msg)
        out[key] = np.array([mean, sd], dtype=np.float64)
    return out


def combine_data_lists(*data_lists: Mapping[str, Any]) -> dict[str, Any]:
    """Merge payloads into one mapping; a key defined twice is an error."""
    out: dict[str, Any] = {}
    for data in data_lists:
        clash = sorted(set(out) & set(data))
        if clash:
            msg = f"Data fields defined more than once: {clash}."
            raise ValueError(msg)
        out.update(data)
    return out
