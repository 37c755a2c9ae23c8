import numpy as np
import pandas as pd
import pytest

from bayesdesign.core.design import design_matrix
from bayesdesign.core.effects import (
    add_pooling_effect,
    effects_metadata,
    member_finder,
    prefix_finder,
    regex_finder,
)
from bayesdesign.utils.errors import SchemaError


@pytest.fixture
def metadata():
    return effects_metadata(["Intercept", "g[a]", "g[b]", "x", "gx"])


def test_metadata_has_one_row_per_non_intercept_column(obs):
    dm = design_matrix("~ g + x", obs)
    meta = effects_metadata(dm)
    assert meta["effects"].tolist() == ["g[T.b]", "g[T.c]", "x"]
    assert meta["fixed"].tolist() == [1, 1, 1]
    assert list(meta.columns) == ["effects", "fixed"]


def test_metadata_without_intercept(obs):
    dm = design_matrix("~ 0 + x", obs)
    assert effects_metadata(dm)["effects"].tolist() == ["x"]


def test_metadata_of_intercept_only_design_is_empty(obs):
    meta = effects_metadata(design_matrix("~ 1", obs))
    assert meta.empty
    assert list(meta.columns) == ["effects", "fixed"]


def test_prefix_pooling(metadata):
    out = add_pooling_effect(metadata, prefix="g[")
    assert out["sd"].tolist() == [1.0, 1.0, 0.0, 0.0]
    assert out["fixed"].tolist() == [0, 0, 1, 1]
    assert out["effects"].tolist() == metadata["effects"].tolist()


def test_pooling_is_idempotent(metadata):
    once = add_pooling_effect(metadata, prefix="g")
    twice = add_pooling_effect(once, prefix="g")
    pd.testing.assert_frame_equal(once, twice)


def test_pooling_tags_layer(metadata):
    out = add_pooling_effect(metadata, "sd_g", prefix="g[")
    out = add_pooling_effect(out, "sd_x", member_finder, members=["x"])
    assert out["sd_g"].tolist() == [1.0, 1.0, 0.0, 0.0]
    assert out["sd_x"].tolist() == [0.0, 0.0, 1.0, 0.0]
    assert out["fixed"].tolist() == [0, 0, 0, 1]


def test_regex_finder(metadata):
    out = add_pooling_effect(metadata, finder_fn=regex_finder, pattern=r"^g\[")
    assert out["sd"].tolist() == [1.0, 1.0, 0.0, 0.0]


def test_finders_return_one_flag_per_effect():
    names = ["a1", "b1", "a2"]
    assert prefix_finder(names, "a").tolist() == [True, False, True]
    assert regex_finder(names, "1$").tolist() == [True, True, False]
    assert member_finder(names, {"b1"}).tolist() == [False, True, False]


def test_no_match_adds_zero_column(metadata):
    out = add_pooling_effect(metadata, prefix="zzz")
    assert out["sd"].tolist() == [0.0] * 4
    assert out["fixed"].tolist() == [1] * 4


def test_copy_semantics(metadata):
    add_pooling_effect(metadata, prefix="g")
    assert "sd" not in metadata.columns
    add_pooling_effect(metadata, prefix="g", copy=False)
    assert metadata["sd"].tolist() == [1.0, 1.0, 0.0, 1.0]


def test_finder_with_wrong_length_is_rejected(metadata):
    with pytest.raises(ValueError, match="finder_fn returned"):
        add_pooling_effect(metadata, finder_fn=lambda effects: np.array([True]))


def test_missing_metadata_columns():
    with pytest.raises(SchemaError, match="'fixed'"):
        add_pooling_effect(pd.DataFrame({"effects": ["a"]}), prefix="a")
