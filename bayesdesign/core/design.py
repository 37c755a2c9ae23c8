"""Design matrix construction.

Patsy-based expansion of a formula over an observation table into a numeric
design matrix, with optional row deduplication. A deduplicated ("sparse")
design keeps only the distinct rows, in order of first appearance, together
with a 1-based index mapping every original row onto its distinct row.
"""

from __future__ import annotations

import ast
import builtins
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

import numpy as np
import pandas as pd
import patsy
import patsy.builtins

from bayesdesign.utils.errors import ReconstructionError, SchemaError
from bayesdesign.utils.helpers import coerce_frame

if TYPE_CHECKING:  # pragma: no cover - typing only
    from collections.abc import Iterable, Sequence

__all__ = [
    "INTERCEPT",
    "DesignMatrix",
    "FullRank",
    "design_from_frame",
    "design_matrix",
    "formula_variables",
    "term_key",
]

LOGGER = logging.getLogger(__name__)

INTERCEPT = "Intercept"

FormulaLike = Union[str, patsy.ModelDesc]

_FULLRANK_PAT = re.compile(r"C\((?P<inner>.+?),\s*FullRank\)")
_Q_PAT = re.compile(r"""Q\((?P<quote>['"])(?P<name>.+?)(?P=quote)\)""")


class FullRank:
    """Patsy contrast coding every level with its own indicator column.

    Unlike treatment coding no reference level is dropped, whether or not the
    formula carries an intercept.
    """

    def _coding(self, levels: Sequence[Any]) -> patsy.ContrastMatrix:
        return patsy.ContrastMatrix(
            np.eye(len(levels)), [f"[{level}]" for level in levels],
        )

    def code_with_intercept(self, levels: Sequence[Any]) -> patsy.ContrastMatrix:
        return self._coding(levels)

    def code_without_intercept(self, levels: Sequence[Any]) -> patsy.ContrastMatrix:
        return self._coding(levels)


_NAMESPACE: dict[str, Any] = {"FullRank": FullRank, "np": np}
_EVAL_ENV = patsy.EvalEnvironment([_NAMESPACE])
_KNOWN_NAMES = (
    frozenset(dir(builtins)) | frozenset(patsy.builtins.__all__) | frozenset(_NAMESPACE)
)


@dataclass
class DesignMatrix:
    """A (possibly deduplicated) design matrix and its reconstruction index.

    Attributes
    ----------
    formula : str
        Right-hand side the matrix was expanded from.
    design : pd.DataFrame
        Named float columns; one row per distinct covariate pattern when
        deduplicated, one row per observation otherwise.
    index : np.ndarray
        1-based positions into ``design``, one per original observation.
    terms : dict[str, list[str]]
        Columns generated by each formula term, keyed by :func:`term_key` of
        the columns the term's factors refer to. The intercept is not listed.

    """

    formula: str
    design: pd.DataFrame
    index: np.ndarray
    terms: dict[str, list[str]] = field(default_factory=dict)

    @property
    def nrow(self) -> int:
        return int(self.design.shape[0])

    @property
    def ncol(self) -> int:
        return int(self.design.shape[1])

    @property
    def columns(self) -> list[str]:
        return [str(c) for c in self.design.columns]

    @property
    def has_intercept(self) -> bool:
        return INTERCEPT in self.columns

    def full_design(self) -> pd.DataFrame:
        """Apply the index, returning one row per original observation."""
        return self.design.iloc[self.index - 1].reset_index(drop=True)


def _model_desc(formula: FormulaLike) -> patsy.ModelDesc:
    # Only the right-hand side is expanded; a response, if given, is ignored.
    if isinstance(formula, patsy.ModelDesc):
        desc = formula
    else:
        desc = patsy.ModelDesc.from_formula(str(formula))
    return patsy.ModelDesc([], list(desc.rhs_termlist))


def _factor_column(code: str) -> str | None:
    """Column referenced directly by a factor (``x`` or ``Q("x")``), if any."""
    if code.isidentifier():
        return code
    m = _Q_PAT.fullmatch(code)
    return m.group("name") if m else None


def _factor_names(code: str) -> list[str]:
    """Data columns a factor refers to.

    A bare factor (``id``, ``Q("a b")``) is always a column, even when it
    shadows a builtin. Inside an expression, call targets and attribute
    bases (``np`` in ``np.log(z)``) are never columns and other known names
    (``FullRank``, ``True``) are skipped.
    """
    column = _factor_column(code)
    if column is not None:
        return [column]
    tree = ast.parse(code, mode="eval")
    callables = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
            callables.add(id(node.func))
        elif isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
            callables.add(id(node.value))
    names: list[str] = []
    for node in ast.walk(tree):
        if (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id == "Q"
            and node.args
            and isinstance(node.args[0], ast.Constant)
            and isinstance(node.args[0].value, str)
        ):
            names.append(node.args[0].value)
        elif (
            isinstance(node, ast.Name)
            and id(node) not in callables
            and node.id not in _KNOWN_NAMES
        ):
            names.append(node.id)
    return names


def _referenced_names(desc: patsy.ModelDesc) -> list[str]:
    names: list[str] = []
    for term in desc.rhs_termlist:
        for factor in term.factors:
            names.extend(_factor_names(factor.code))
    return list(dict.fromkeys(names))


def formula_variables(formula: FormulaLike) -> list[str]:
    """Data columns a formula refers to, in order of first appearance."""
    return _referenced_names(_model_desc(formula))


def _is_categorical(col: pd.Series) -> bool:
    return not pd.api.types.is_numeric_dtype(col) or pd.api.types.is_bool_dtype(col)


def _as_factors(frame: pd.DataFrame, columns: Iterable[str]) -> pd.DataFrame:
    """Turn non-numeric columns into categoricals holding only observed levels."""
    for col in columns:
        s = frame[col]
        if isinstance(s.dtype, pd.CategoricalDtype):
            frame[col] = s.cat.remove_unused_categories()
        elif _is_categorical(s):
            frame[col] = pd.Categorical(s)
    return frame


def _resolve_no_contrasts(
    no_contrasts: bool | str | Sequence[str] | None,
    frame: pd.DataFrame,
    desc: patsy.ModelDesc,
) -> set[str]:
    if no_contrasts is None or no_contrasts is False:
        return set()
    in_formula = {
        _factor_column(factor.code)
        for term in desc.rhs_termlist
        for factor in term.factors
    }
    in_formula.discard(None)
    if no_contrasts is True:
        requested = list(frame.columns)
    elif isinstance(no_contrasts, str):
        requested = [no_contrasts]
    else:
        requested = list(no_contrasts)
    return {
        name
        for name in requested
        if name in in_formula and name in frame.columns and _is_categorical(frame[name])
    }


def _without_contrasts(desc: patsy.ModelDesc, names: set[str]) -> patsy.ModelDesc:
    terms = []
    for term in desc.rhs_termlist:
        factors = [
            patsy.EvalFactor(f"C({factor.code}, FullRank)")
            if _factor_column(factor.code) in names
            else factor
            for factor in term.factors
        ]
        terms.append(patsy.Term(factors))
    return patsy.ModelDesc([], terms)


def _clean_column_name(name: str) -> str:
    name = _FULLRANK_PAT.sub(r"\g<inner>", name)
    return _Q_PAT.sub(r"\g<name>", name)


def term_key(factors: Iterable[str]) -> str:
    """Order-free key for a term given the names of its factors."""
    return ":".join(sorted(str(f) for f in factors))


def _term_columns(design_info: patsy.DesignInfo, columns: Sequence[str]) -> dict[str, list[str]]:
    out: dict[str, list[str]] = {}
    for term, span in design_info.term_slices.items():
        if not term.factors:
            continue
        key = term_key(_clean_column_name(f.name()) for f in term.factors)
        out[key] = list(columns[span])
    return out


def _deduplicate(values: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Distinct rows of ``values`` in order of first appearance.

    Returns the row positions of the distinct rows and, for every row, the
    1-based position of its distinct row.
    """
    n, k = values.shape
    if n == 0:
        return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int64)
    if k == 0:
        # Zero-width rows are all equal.
        return np.zeros(1, dtype=np.int64), np.ones(n, dtype=np.int64)
    _, first, inverse = np.unique(
        values, axis=0, return_index=True, return_inverse=True,
    )
    order = np.argsort(first, kind="stable")
    position = np.empty_like(order)
    position[order] = np.arange(order.size)
    index = position[np.asarray(inverse).reshape(-1)] + 1
    return first[order].astype(np.int64), index.astype(np.int64)


def _finalize(
    design: pd.DataFrame,
    formula: str,
    *,
    sparse: bool,
    terms: dict[str, list[str]] | None = None,
) -> DesignMatrix:
    design = design.astype(np.float64).reset_index(drop=True)
    terms = {} if terms is None else terms
    n = design.shape[0]
    if not sparse:
        return DesignMatrix(formula, design, np.arange(1, n + 1, dtype=np.int64), terms)

    values = design.to_numpy(dtype=np.float64)
    keep, index = _deduplicate(values)
    unique = design.iloc[keep].reset_index(drop=True)
    if not np.array_equal(unique.to_numpy(dtype=np.float64)[index - 1], values):
        msg = f"Internal error: reconstruction index does not reproduce the design matrix for '{formula}'."
        raise ReconstructionError(msg)
    LOGGER.debug(
        "Deduplicated design '%s': %d rows -> %d distinct rows (%d columns)",
        formula, n, unique.shape[0], unique.shape[1],
    )
    return DesignMatrix(formula, unique, index, terms)


def design_matrix(
    formula: FormulaLike,
    data: Any,
    *,
    no_contrasts: bool | str | Sequence[str] = False,
    sparse: bool = True,
    copy: bool = True,
) -> DesignMatrix:
    """Expand ``formula`` over ``data`` into a design matrix.

    Parameters
    ----------
    formula : str or patsy.ModelDesc
        Patsy/R-style formula. Only the right-hand side is used.
    data : DataFrame-like
        Observation table. Non-numeric (and boolean) columns are treated as
        categorical factors; unused levels are dropped before expansion.
    no_contrasts : bool, str or sequence of str
        Categorical columns to expand without a reference level (one
        indicator per level). ``True`` selects every categorical column in
        the formula, ``False`` none. Names not used as factors in the formula
        are ignored.
    sparse : bool
        If True (default) keep only distinct rows and return the index
        mapping each observation to its row. If False the full matrix is
        returned with the identity index.
    copy : bool
        If False, factor conversion is applied to the caller's DataFrame.

    Returns
    -------
    DesignMatrix

    Raises
    ------
    SchemaError
        When the formula refers to columns missing from ``data``.
    patsy.PatsyError
        When the formula cannot be parsed or a referenced column holds
        missing values.

    """
    frame = coerce_frame(data, copy=copy)
    desc = _model_desc(formula)
    rhs = desc.describe()

    referenced = _referenced_names(desc)
    missing = [n for n in referenced if n not in frame.columns]
    if missing:
        raise SchemaError(missing, context=f"data for formula '{rhs}'")
    frame = _as_factors(frame, [n for n in referenced if n in frame.columns])

    uncontrasted = _resolve_no_contrasts(no_contrasts, frame, desc)
    if uncontrasted:
        LOGGER.debug("Expanding %s without contrasts", sorted(uncontrasted))
        desc = _without_contrasts(desc, uncontrasted)

    design = patsy.dmatrix(
        desc,
        frame,
        eval_env=_EVAL_ENV,
        NA_action=patsy.NAAction(on_NA="raise", NA_types=["None", "NaN"]),
        return_type="dataframe",
    )
    info = design.design_info
    columns = [_clean_column_name(c) for c in info.column_names]
    design = pd.DataFrame(design.to_numpy(), columns=columns)
    if design.columns.has_duplicates:
        dup = sorted(set(design.columns[design.columns.duplicated()]))
        msg = f"Design matrix column names are not unique: {dup}."
        raise ValueError(msg)
    return _finalize(design, rhs, sparse=sparse, terms=_term_columns(info, columns))


def design_from_frame(
    frame: pd.DataFrame, *, formula: str = "", sparse: bool = False,
) -> DesignMatrix:
    """Wrap an existing numeric table as a :class:`DesignMatrix`."""
    return _finalize(frame.copy(), formula, sparse=sparse)
