import numpy as np
import pandas as pd
import pytest

from bayesdesign.core.data_list import (
    FORMULA_FIELDS,
    combine_data_lists,
    formula_as_data_list,
    priors_as_data_list,
)
from bayesdesign.core.formula import model_formula


def test_missing_formula_gives_empty_record():
    data = formula_as_data_list(prefix="expr")
    assert sorted(data) == sorted(f"expr_{f}" for f in FORMULA_FIELDS)
    assert data["expr_fdesign"].shape == (0, 0)
    assert data["expr_rdesign"].shape == (0, 0)
    assert data["expr_findex"].shape == (0,)
    for name in ("fintercept", "fnrow", "fnindex", "fncol", "rncol"):
        assert data[f"expr_{name}"] == 0


def test_empty_and_populated_records_share_keys(obs):
    empty = formula_as_data_list(prefix="expr")
    full = formula_as_data_list(model_formula("~ 1 + x", obs), prefix="expr")
    assert set(empty) == set(full)


def test_populated_record(obs):
    f = model_formula("~ 1 + x + (1 | g)", obs)
    data = formula_as_data_list(f, prefix="expr")
    assert data["expr_fintercept"] == 1
    assert data["expr_fnrow"] == f.fixed.nrow == 4
    assert data["expr_fdesign"].shape == (4, 5)
    assert data["expr_findex"].tolist() == f.fixed.index.tolist()
    assert data["expr_findex"].dtype == np.int64
    assert data["expr_fnindex"] == len(obs)
    assert data["expr_fncol"] == 4
    assert data["expr_rdesign"].shape == (4, 2)
    assert data["expr_rncol"] == 1


def test_fncol_without_intercept(obs):
    f = model_formula("~ 0 + x", obs)
    data = formula_as_data_list(f, prefix="expr")
    assert data["expr_fintercept"] == 0
    assert data["expr_fncol"] == 1


def test_drop_intercept_is_not_subtracted_twice(obs):
    f = model_formula("~ 1 + x", obs)
    assert formula_as_data_list(f, prefix="expr", drop_intercept=True)["expr_fncol"] == 1
    g = model_formula("~ 0 + x", obs)
    assert formula_as_data_list(g, prefix="expr", drop_intercept=True)["expr_fncol"] == 0


def test_formula_must_be_a_model_formula(obs):
    with pytest.raises(TypeError, match="ModelFormula"):
        formula_as_data_list("~ 1 + x", prefix="expr")


def test_priors_as_data_list():
    priors = pd.DataFrame(
        {"variable": ["alpha", "beta"], "mean": [0.0, 1.0], "sd": [1.0, 2.0], "note": ["", ""]},
    )
    data = priors_as_data_list(priors)
    assert sorted(data) == ["alpha_p", "beta_p"]
    assert data["beta_p"].tolist() == [1.0, 2.0]


def test_duplicate_priors_are_rejected():
    priors = pd.DataFrame({"variable": ["a", "a"], "mean": [0.0, 0.0], "sd": [1.0, 1.0]})
    with pytest.raises(ValueError, match="Duplicate prior"):
        priors_as_data_list(priors)


def test_combine_data_lists(obs):
    data = combine_data_lists(
        formula_as_data_list(model_formula("~ 1 + x", obs), prefix="expr"),
        formula_as_data_list(prefix="refp"),
        {"n": 5},
    )
    assert data["n"] == 5
    assert "expr_fdesign" in data
    assert "refp_fdesign" in data


def test_combine_rejects_repeated_keys():
    with pytest.raises(ValueError, match="'a'"):
        combine_data_lists({"a": 1, "b": 2}, {"a": 3})
