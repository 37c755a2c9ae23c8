import pandas as pd
import pytest

from bayesdesign.core.formula import model_formula, parse_formula
from bayesdesign.utils.errors import FormulaSyntaxError, SchemaError


def test_parse_formula_splits_fixed_and_random():
    fixed, random = parse_formula("y ~ 1 + x + (1 + x | g) + rw(t) + rw(t, by = h)")
    assert fixed == ["1", "x"]
    assert [r.pooling for r in random] == ["sd_g", "sd_x:g", "sd_rw_t", "sd_rw_t_h"]
    assert random[0].terms == ["g"]
    assert random[1].terms == ["x:g"]
    assert random[2].time == "t"
    assert random[3].no_contrasts == ["h"]


def test_fixed_only_formula(obs):
    f = model_formula("~ 1 + x", obs)
    assert f.fixed.columns == ["Intercept", "x"]
    assert f.random.columns == ["fixed"]
    assert f.random.design.to_numpy().tolist() == [[1.0]]
    assert f.metadata["effects"].tolist() == ["x"]


def test_random_intercept_is_pooled_without_reference_level(obs):
    f = model_formula("~ 1 + (1 | g)", obs)
    assert f.expanded == "~ 1 + g"
    assert f.fixed.columns == ["Intercept", "g[a]", "g[b]", "g[c]"]
    assert f.metadata["sd_g"].tolist() == [1.0, 1.0, 1.0]
    assert f.metadata["fixed"].tolist() == [0, 0, 0]
    assert f.random.columns == ["fixed", "sd_g"]
    assert f.random.design.shape == (3, 2)


def test_numeric_grouping_variable_is_a_factor():
    df = pd.DataFrame({"g": [1, 2, 1]})
    f = model_formula("~ 1 + (1 | g)", df)
    assert f.fixed.columns == ["Intercept", "g[1]", "g[2]"]


def test_random_slopes(obs):
    f = model_formula("~ 1 + x + (1 | g) + (x | g)", obs)
    meta = f.metadata
    assert f.random.columns == ["fixed", "sd_g", "sd_x:g"]
    assert meta["sd_g"].sum() == 3
    assert meta["sd_x:g"].sum() == 3
    assert meta.loc[meta["effects"] == "x", "fixed"].tolist() == [1]
    assert meta["fixed"].sum() == 1


def test_random_walk(obs):
    f = model_formula("~ 1 + rw(week)", obs)
    assert f.fixed.columns == ["Intercept", "cweek2", "cweek3"]
    assert f.metadata["sd_rw_week"].tolist() == [1.0, 1.0]
    full = f.fixed.full_design()
    assert full["cweek2"].tolist() == [0.0, 1.0, 1.0, 1.0, 1.0]
    assert full["cweek3"].tolist() == [0.0, 0.0, 1.0, 1.0, 1.0]
    assert "cweek2" in f.data.columns
    assert "cweek2" not in obs.columns


def test_grouped_random_walk(obs):
    f = model_formula("~ 1 + rw(week, g)", obs)
    assert f.fixed.ncol == 1 + 2 * 3
    assert f.metadata["sd_rw_week_g"].sum() == 6


def test_random_walk_on_single_step_warns():
    df = pd.DataFrame({"week": [1, 1]})
    with pytest.warns(UserWarning, match="single time step"):
        f = model_formula("~ 1 + rw(week)", df)
    assert f.random.columns == ["fixed", "sd_rw_week"]
    assert f.metadata.empty


def test_fixed_index_reconstructs_observations(obs):
    f = model_formula("~ 1 + x + (1 | g)", obs)
    dense = model_formula("~ 1 + x + (1 | g)", obs, sparse=False)
    assert f.fixed.nrow == 4
    pd.testing.assert_frame_equal(f.fixed.full_design(), dense.fixed.design)
    assert dense.fixed.index.tolist() == [1, 2, 3, 4, 5]


@pytest.mark.parametrize(
    "formula",
    ["~ (1 | )", "~ (1 | a b)", "~ 1 + rw(week", "~ (1 | g) + (1 | g)", "~ x | g"],
)
def test_malformed_formulas(obs, formula):
    with pytest.raises(FormulaSyntaxError):
        model_formula(formula, obs)


def test_missing_grouping_column(obs):
    with pytest.raises(SchemaError, match="'zz'"):
        model_formula("~ 1 + (1 | zz)", obs)


def test_missing_fixed_column(obs):
    with pytest.raises(SchemaError, match="'zz'"):
        model_formula("~ 1 + zz + (1 | g)", obs)


def test_random_walks_on_similarly_named_features_stay_separate():
    df = pd.DataFrame({"week": [1, 2, 3, 1], "week2": [5, 6, 5, 6]})
    f = model_formula("~ 1 + rw(week) + rw(week2)", df)
    assert set(f.fixed.columns) == {"Intercept", "cweek2", "cweek3", "cweek26"}
    meta = f.metadata.set_index("effects")
    assert meta.loc[["cweek2", "cweek3"], "sd_rw_week"].tolist() == [1.0, 1.0]
    assert meta.loc["cweek26", "sd_rw_week2"] == 1.0
    assert (meta[["sd_rw_week", "sd_rw_week2"]].sum(axis=1) == 1).all()
