"""Model formulas with fixed, random and random-walk effects.

A single lme4-flavoured right-hand side is split into a fixed-effects design
and a random-effects design:

``1 + x + (1 | g) + (x | g) + rw(week) + rw(week, by)``

Ordinary patsy terms are fixed effects. A random term ``(1 | g)`` adds every
level of ``g`` (no reference level) to the fixed design and pools them under
one standard deviation; ``(x | g)`` does the same for the slopes ``x:g``.
``rw(t)`` adds cumulative membership features of ``t`` (interacted with
``by`` when given) pooled under one standard deviation, i.e. a random walk.

The random-effects design has one row per non-intercept fixed column and
columns ``fixed`` plus one indicator per pooling group.
"""

from __future__ import annotations

import logging
import re
import warnings
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from bayesdesign.core.design import DesignMatrix, design_from_frame, design_matrix, term_key
from bayesdesign.core.effects import add_pooling_effect, effects_metadata, member_finder
from bayesdesign.core.encoding import add_cumulative_membership, cumulative_feature_columns
from bayesdesign.utils.errors import FormulaSyntaxError
from bayesdesign.utils.helpers import coerce_frame, require_columns

__all__ = ["ModelFormula", "RandomTerm", "model_formula", "parse_formula"]

LOGGER = logging.getLogger(__name__)

_RANDOM_PAT = re.compile(r"^\(\s*(?P<lhs>[^|()]+?)\s*\|\s*(?P<group>[^|()]+?)\s*\)$")
_RW_PAT = re.compile(
    r"^rw\(\s*(?P<time>[^,()]+?)\s*(?:,\s*(?:by\s*=\s*)?(?P<by>[^,()]+?)\s*)?\)$",
)


@dataclass
class RandomTerm:
    """A pooled block of fixed-design columns.

    Attributes
    ----------
    label : str
        The term as written in the formula.
    pooling : str
        Name of the pooling group (its column in the random design).
    terms : list[str]
        Patsy terms added to the fixed-effects formula.
    keys : list[str]
        :func:`~bayesdesign.core.design.term_key` of each added term.
    no_contrasts : list[str]
        Factors expanded without a reference level.
    time : str | None
        Random-walk time feature (``rw`` terms only).

    """

    label: str
    pooling: str
    terms: list[str] = field(default_factory=list)
    keys: list[str] = field(default_factory=list)
    no_contrasts: list[str] = field(default_factory=list)
    time: str | None = None


@dataclass
class ModelFormula:
    """Fixed and random designs derived from one formula."""

    formula: str
    expanded: str
    fixed: DesignMatrix
    random: DesignMatrix
    metadata: pd.DataFrame
    random_terms: list[RandomTerm]
    data: pd.DataFrame


def _split_terms(rhs: str) -> list[str]:
    """Split on ``+`` outside parentheses."""
    parts: list[str] = []
    depth = 0
    start = 0
    for i, ch in enumerate(rhs):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                msg = f"Unbalanced parentheses in formula '{rhs}'."
                raise FormulaSyntaxError(msg)
        elif ch == "+" and depth == 0:
            parts.append(rhs[start:i])
            start = i + 1
    if depth != 0:
        msg = f"Unbalanced parentheses in formula '{rhs}'."
        raise FormulaSyntaxError(msg)
    parts.append(rhs[start:])
    return [p.strip() for p in parts if p.strip()]


def _check_name(name: str, label: str) -> str:
    if not name.isidentifier():
        msg = f"Expected a column name in '{label}', got '{name}'."
        raise FormulaSyntaxError(msg)
    return name


def _random_terms(label: str, lhs: str, group: str) -> list[RandomTerm]:
    group = _check_name(group.strip(), label)
    out = []
    for effect in _split_terms(lhs):
        if effect == "0":
            continue
        if effect == "1":
            out.append(RandomTerm(
                label=label, pooling=f"sd_{group}", terms=[group],
                keys=[term_key([group])], no_contrasts=[group],
            ))
        else:
            effect = _check_name(effect, label)
            out.append(RandomTerm(
                label=label, pooling=f"sd_{effect}:{group}", terms=[f"{effect}:{group}"],
                keys=[term_key([effect, group])], no_contrasts=[group],
            ))
    return out


def parse_formula(formula: str) -> tuple[list[str], list[RandomTerm]]:
    """Split ``formula`` into fixed patsy terms and random/random-walk terms.

    Random-walk terms are returned without their patsy terms; those depend on
    the levels present in the data and are filled in by :func:`model_formula`.
    """
    rhs = formula.split("~", 1)[1] if "~" in formula else formula
    fixed: list[str] = []
    random: list[RandomTerm] = []
    for part in _split_terms(rhs):
        m_re = _RANDOM_PAT.match(part)
        m_rw = _RW_PAT.match(part)
        if m_re:
            random.extend(_random_terms(part, m_re.group("lhs"), m_re.group("group")))
        elif m_rw:
            time = _check_name(m_rw.group("time"), part)
            by = m_rw.group("by")
            pooling = f"sd_rw_{time}" if by is None else f"sd_rw_{time}_{_check_name(by, part)}"
            random.append(RandomTerm(
                label=part, pooling=pooling, time=time,
                no_contrasts=[] if by is None else [by],
            ))
        elif "|" in part or part.startswith("rw("):
            msg = f"Could not parse random effect term '{part}'."
            raise FormulaSyntaxError(msg)
        else:
            fixed.append(part)

    pools = [r.pooling for r in random]
    dup = sorted({p for p in pools if pools.count(p) > 1})
    if dup:
        msg = f"Random effects specified more than once: {dup}."
        raise FormulaSyntaxError(msg)
    return fixed, random


def _expand_random_walk(term: RandomTerm, frame: pd.DataFrame) -> pd.DataFrame:
    frame = add_cumulative_membership(frame, term.time, copy=False)
    cols = cumulative_feature_columns(frame, term.time)
    by = term.no_contrasts[0] if term.no_contrasts else None
    if not cols:
        warnings.warn(
            f"'{term.label}' has a single time step and adds no effects.",
            UserWarning,
            stacklevel=3,
        )
    for col in cols:
        quoted = f"Q({col!r})"
        term.terms.append(quoted if by is None else f"{by}:{quoted}")
        term.keys.append(term_key([col] if by is None else [by, col]))
    return frame


def model_formula(
    formula: str,
    data: Any,
    *,
    sparse: bool = True,
    copy: bool = True,
) -> ModelFormula:
    """Build the fixed and random designs of ``formula`` over ``data``.

    Parameters
    ----------
    formula : str
        Right-hand side (a left-hand side is ignored) mixing patsy terms,
        ``(1 | g)``/``(x | g)`` random effects and ``rw(t)``/``rw(t, by)``
        random walks.
    data : DataFrame-like
        Observation table. Random walks add cumulative membership columns;
        with ``copy=False`` they are added to the caller's table.
    sparse : bool
        Deduplicate the fixed design (see
        :func:`~bayesdesign.core.design.design_matrix`).

    Examples
    --------
    >>> df = pd.DataFrame({"g": ["a", "b", "a"], "week": [1, 2, 3]})
    >>> f = model_formula("~ 1 + (1 | g) + rw(week)", df)
    >>> f.random.columns
    ['fixed', 'sd_g', 'sd_rw_week']

    """
    frame = coerce_frame(data, copy=copy)
    fixed_terms, random_terms = parse_formula(formula)

    for term in random_terms:
        if term.time is not None:
            frame = _expand_random_walk(term, frame)

    expanded_terms = fixed_terms + [t for r in random_terms for t in r.terms]
    expanded = "~ " + (" + ".join(expanded_terms) if expanded_terms else "1")
    no_contrasts = sorted({n for r in random_terms for n in r.no_contrasts})
    # grouping variables are factors even when coded as numbers
    require_columns(frame, no_contrasts)
    for name in no_contrasts:
        frame[name] = pd.Categorical(frame[name])
    LOGGER.debug("Expanded '%s' to '%s' (no contrasts: %s)", formula, expanded, no_contrasts)

    fixed = design_matrix(
        expanded, frame, no_contrasts=no_contrasts, sparse=sparse, copy=False,
    )

    metadata = effects_metadata(fixed)
    for term in random_terms:
        members = [c for key in term.keys for c in fixed.terms.get(key, [])]
        metadata = add_pooling_effect(
            metadata, term.pooling, member_finder, copy=False, members=members,
        )

    pooling = [r.pooling for r in random_terms]
    random = design_from_frame(
        metadata.loc[:, ["fixed", *pooling]],
        formula="~ 0 + " + " + ".join(["fixed", *pooling]),
        sparse=False,
    )
    return ModelFormula(
        formula=formula,
        expanded=expanded,
        fixed=fixed,
        random=random,
        metadata=metadata,
        random_terms=random_terms,
        data=frame,
    )
