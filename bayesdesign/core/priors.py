"""Normal prior tables and user overrides.

A prior table has one row per model variable with columns ``variable``,
``mean`` and ``sd`` describing an independent normal prior.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import numpy as np
import pandas as pd

from bayesdesign.utils.helpers import coerce_frame

__all__ = ["PRIOR_COLUMNS", "replace_priors", "strip_vector_suffix"]

LOGGER = logging.getLogger(__name__)

PRIOR_COLUMNS = ("variable", "mean", "sd")

_SUFFIX_PAT = re.compile(r"^(?P<base>[^\[\]]+)\[(?P<idx>[^\[\]]*)\]$")


def strip_vector_suffix(name: str) -> str:
    """Drop a single trailing vector index: ``"beta[2]"`` -> ``"beta"``.

    Names without brackets are returned unchanged. Names with several or
    nested bracket groups (``"beta[1][2]"``) are rejected rather than guessed
    at.
    """
    name = str(name)
    if "[" not in name and "]" not in name:
        return name
    m = _SUFFIX_PAT.match(name)
    if m is None:
        msg = f"Cannot derive a variable name from '{name}': only one trailing '[...]' index is supported."
        raise ValueError(msg)
    return m.group("base")


def replace_priors(priors: Any, custom_priors: Any, *, copy: bool = True) -> pd.DataFrame:
    """Replace default priors with user-specified ones.

    Override names are matched against the defaults after stripping a vector
    index, so ``x[1]`` replaces the default prior of ``x``. A default with an
    indexed name (``x[1]``) is replaced by an override of the same name.
    Overrides keep their own names in the result.

    Parameters
    ----------
    priors : DataFrame-like
        Default priors; must contain ``variable`` (other columns are kept).
    custom_priors : DataFrame-like
        Overrides with ``variable``, ``mean`` and ``sd``. Other columns (for
        example posterior summaries from an earlier fit) are ignored.
    copy : bool
        With ``copy=False`` the inputs are not copied before filtering. The
        result is always a new table.

    Returns
    -------
    pd.DataFrame
        Unaffected defaults in their original order followed by the
        overrides in theirs.

    Examples
    --------
    >>> priors = pd.DataFrame({"variable": ["x", "y"], "mean": [0.0, 0.0], "sd": [1.0, 1.0]})
    >>> custom = pd.DataFrame({"variable": ["x[1]"], "mean": [10.0], "sd": [2.0]})
    >>> replace_priors(priors, custom)["variable"].tolist()
    ['y', 'x[1]']

    """
    custom = coerce_frame(custom_priors, select=list(PRIOR_COLUMNS), copy=copy)
    custom = custom.assign(
        mean=pd.to_numeric(custom["mean"]).astype(np.float64),
        sd=pd.to_numeric(custom["sd"]).astype(np.float64),
    )
    names = set(custom["variable"])
    keys = {strip_vector_suffix(v) for v in names} | names

    defaults = coerce_frame(priors, required_cols="variable", copy=copy)
    replaced = defaults["variable"].isin(keys)
    LOGGER.debug("Replacing %d default priors with %d custom priors", int(replaced.sum()), len(custom))

    merged = pd.concat([defaults.loc[~replaced], custom], ignore_index=True, sort=False)
    dup = merged["variable"][merged["variable"].duplicated()]
    if not dup.empty:
        msg = f"Prior variables are not unique after merging: {sorted(set(dup))}."
        raise ValueError(msg)
    return merged
