"""bayesdesign: design matrices and data payloads for hierarchical Bayesian models.

This package expands formulas into deduplicated design matrices, tags pooled
(random) effects, derives one-hot and cumulative membership features, merges
prior overrides, and flattens the result into the data mapping consumed by an
external sampler.
"""
from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

__all__ = [
    "DesignMatrix",
    "FeatureTypeError",
    "FormulaSyntaxError",
    "ModelFormula",
    "ReconstructionError",
    "SchemaError",
    "add_cumulative_membership",
    "add_pooling_effect",
    "combine_data_lists",
    "design_matrix",
    "effects_metadata",
    "formula_as_data_list",
    "member_finder",
    "model_formula",
    "one_hot_encode_feature",
    "prefix_finder",
    "priors_as_data_list",
    "regex_finder",
    "replace_priors",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "DesignMatrix": ("bayesdesign.core.design", "DesignMatrix"),
    "design_matrix": ("bayesdesign.core.design", "design_matrix"),
    "effects_metadata": ("bayesdesign.core.effects", "effects_metadata"),
    "add_pooling_effect": ("bayesdesign.core.effects", "add_pooling_effect"),
    "prefix_finder": ("bayesdesign.core.effects", "prefix_finder"),
    "regex_finder": ("bayesdesign.core.effects", "regex_finder"),
    "member_finder": ("bayesdesign.core.effects", "member_finder"),
    "one_hot_encode_feature": ("bayesdesign.core.encoding", "one_hot_encode_feature"),
    "add_cumulative_membership": ("bayesdesign.core.encoding", "add_cumulative_membership"),
    "ModelFormula": ("bayesdesign.core.formula", "ModelFormula"),
    "model_formula": ("bayesdesign.core.formula", "model_formula"),
    "formula_as_data_list": ("bayesdesign.core.data_list", "formula_as_data_list"),
    "priors_as_data_list": ("bayesdesign.core.data_list", "priors_as_data_list"),
    "combine_data_lists": ("bayesdesign.core.data_list", "combine_data_lists"),
    "replace_priors": ("bayesdesign.core.priors", "replace_priors"),
    "SchemaError": ("bayesdesign.utils.errors", "SchemaError"),
    "FeatureTypeError": ("bayesdesign.utils.errors", "FeatureTypeError"),
    "ReconstructionError": ("bayesdesign.utils.errors", "ReconstructionError"),
    "FormulaSyntaxError": ("bayesdesign.utils.errors", "FormulaSyntaxError"),
}


def __getattr__(name: str) -> Any:
    """Lazily import public functions and types on first access."""
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = import_module(module_name)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'bayesdesign' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Ensure dir() exposes lazily imported names."""
    return sorted(set(globals()) | set(__all__))
