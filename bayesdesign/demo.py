"""Demonstration of the bayesdesign data-preparation pipeline.

Builds a toy observation table, expands a formula with random effects and a
random walk, merges prior overrides and prints the resulting sampler payload.
Run with ``python -m bayesdesign.demo``.
"""

from __future__ import annotations

import logging
from typing import Callable

import numpy as np
import pandas as pd

from .core.data_list import combine_data_lists, formula_as_data_list, priors_as_data_list
from .core.design import design_matrix
from .core.effects import add_pooling_effect, effects_metadata
from .core.encoding import add_cumulative_membership
from .core.formula import model_formula
from .core.priors import replace_priors
from .utils.errors import FeatureTypeError, FormulaSyntaxError, SchemaError

_LOGGER = logging.getLogger(__name__)
SOFT_FAILURE_EXCEPTIONS: tuple[type[Exception], ...] = (
    FeatureTypeError,
    FormulaSyntaxError,
    SchemaError,
    KeyError,
    TypeError,
    ValueError,
)


def _run_demo_block(label: str, func: Callable[[], None]) -> None:
    """Execute a demonstration function, logging any soft failures."""
    try:
        func()
    except SOFT_FAILURE_EXCEPTIONS as exc:
        _LOGGER.debug("%s demo failed: %s", label, exc)
        print(f"\n[{label} demo failed: {exc}]")


def simulate_observations(n_weeks: int = 4, seed: int = 42) -> pd.DataFrame:
    """Weekly observations for three locations, two age groups each."""
    rng = np.random.default_rng(seed)
    rows = []
    for loc in ("north", "south", "west"):
        for age in ("00-59", "60+"):
            for week in range(1, n_weeks + 1):
                rows.append({
                    "location": loc,
                    "age_group": age,
                    "week": week,
                    "temperature": float(np.round(rng.normal(15.0, 5.0), 1)),
                    ".group": f"{loc}/{age}",
                })
    return pd.DataFrame(rows)


def demo_design():
    """Sparse design matrix and its reconstruction index."""
    print("\n" + "=" * 70)
    print(" 1. DESIGN MATRIX")
    print("=" * 70)
    obs = simulate_observations()
    dm = design_matrix("~ 1 + location + age_group", obs)
    print(f"\n{len(obs)} observations -> {dm.nrow} distinct rows")
    print(dm.design)
    print(f"index: {dm.index.tolist()}")


def demo_effects():
    """Effect metadata with a pooling tag."""
    print("\n" + "=" * 70)
    print(" 2. EFFECT METADATA")
    print("=" * 70)
    obs = simulate_observations()
    dm = design_matrix("~ 1 + location + age_group", obs, no_contrasts=["location"])
    meta = add_pooling_effect(effects_metadata(dm), "sd_location", prefix="location")
    print(meta)


def demo_cumulative():
    """Cumulative membership features within groups."""
    print("\n" + "=" * 70)
    print(" 3. CUMULATIVE MEMBERSHIP")
    print("=" * 70)
    obs = simulate_observations(n_weeks=3)
    print(add_cumulative_membership(obs, "week").head(6))


def demo_payload():
    """Full sampler payload from a formula and custom priors."""
    print("\n" + "=" * 70)
    print(" 4. SAMPLER PAYLOAD")
    print("=" * 70)
    obs = simulate_observations()
    formula = model_formula("~ 1 + temperature + (1 | location) + rw(week)", obs)
    print(f"\nexpanded: {formula.expanded}")
    print(formula.metadata)

    defaults = pd.DataFrame({
        "variable": ["expr_beta_sd", "expr_r_int"],
        "mean": [0.0, 0.0],
        "sd": [1.0, 1.0],
    })
    custom = pd.DataFrame({"variable": ["expr_r_int"], "mean": [-2.0], "sd": [0.5]})
    priors = replace_priors(defaults, custom)

    payload = combine_data_lists(
        formula_as_data_list(formula, prefix="expr"),
        formula_as_data_list(prefix="refp"),
        priors_as_data_list(priors),
    )
    for key, value in payload.items():
        shape = getattr(value, "shape", ())
        print(f"  {key:<20} {shape if shape else value}")


def main() -> None:
    _run_demo_block("Design matrix", demo_design)
    _run_demo_block("Effect metadata", demo_effects)
    _run_demo_block("Cumulative membership", demo_cumulative)
    _run_demo_block("Payload", demo_payload)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(name)s %(levelname)s: %(message)s")
    main()
