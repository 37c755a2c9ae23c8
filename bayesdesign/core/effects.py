"""Effect metadata for design matrices.

Every non-intercept design column is an effect, fixed by default. Pooling
tags mark subsets of effects that share a variance parameter (partial
pooling); an effect with any pooling tag is no longer fixed.

Matching is delegated to a finder: a callable taking the effect names plus
keyword configuration and returning one boolean per effect.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Callable

import numpy as np
import pandas as pd

from bayesdesign.core.design import INTERCEPT, DesignMatrix
from bayesdesign.utils.helpers import coerce_frame

if TYPE_CHECKING:  # pragma: no cover - typing only
    from collections.abc import Iterable

__all__ = [
    "DEFAULT_POOLING",
    "Finder",
    "add_pooling_effect",
    "effects_metadata",
    "member_finder",
    "prefix_finder",
    "regex_finder",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_POOLING = "sd"

Finder = Callable[..., Sequence[bool]]


def prefix_finder(effects: Sequence[str], prefix: str) -> np.ndarray:
    """Effects whose name starts with ``prefix``."""
    return np.array([str(e).startswith(prefix) for e in effects], dtype=bool)


def regex_finder(effects: Sequence[str], pattern: str | re.Pattern[str]) -> np.ndarray:
    """Effects matched by ``pattern`` (``re.search`` semantics)."""
    rx = re.compile(pattern)
    return np.array([rx.search(str(e)) is not None for e in effects], dtype=bool)


def member_finder(effects: Sequence[str], members: Iterable[str]) -> np.ndarray:
    """Effects listed in ``members``."""
    wanted = set(members)
    return np.array([e in wanted for e in effects], dtype=bool)


def effects_metadata(design: DesignMatrix | pd.DataFrame | Sequence[str]) -> pd.DataFrame:
    """One row per non-intercept column: ``effects`` (name) and ``fixed`` (1)."""
    if isinstance(design, DesignMatrix):
        names = design.columns
    elif isinstance(design, pd.DataFrame):
        names = [str(c) for c in design.columns]
    else:
        names = [str(c) for c in design]
    names = [n for n in names if n != INTERCEPT]
    return pd.DataFrame({"effects": pd.Series(names, dtype=object), "fixed": 1})


def add_pooling_effect(
    effects: pd.DataFrame,
    var_name: str = DEFAULT_POOLING,
    finder_fn: Finder = prefix_finder,
    *,
    copy: bool = True,
    **finder_kwargs: Any,
) -> pd.DataFrame:
    """Tag the effects selected by ``finder_fn`` as pooled under ``var_name``.

    ``var_name`` is set to 1.0 for matched effects and 0.0 otherwise, and
    ``fixed`` is cleared for matched effects. Rows are never added, dropped
    or reordered, so tags can be layered by calling this repeatedly with
    different ``var_name``. With ``copy=False`` the caller's table is
    updated in place.

    Examples
    --------
    >>> meta = effects_metadata(["Intercept", "a[T.b]", "x"])
    >>> add_pooling_effect(meta, prefix="a")["sd"].tolist()
    [1.0, 0.0]

    """
    effects = coerce_frame(effects, required_cols=["effects", "fixed"], copy=copy)
    matched = np.asarray(finder_fn(list(effects["effects"]), **finder_kwargs), dtype=bool)
    if matched.shape != (len(effects),):
        msg = (
            f"finder_fn returned {matched.shape[0] if matched.ndim else 'a scalar'} "
            f"values for {len(effects)} effects."
        )
        raise ValueError(msg)
    effects[var_name] = matched.astype(np.float64)
    effects.loc[matched, "fixed"] = 0
    LOGGER.debug("Pooling '%s' covers %d of %d effects", var_name, int(matched.sum()), len(effects))
    return effects
