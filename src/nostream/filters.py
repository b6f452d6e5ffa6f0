from typing import Iterable, Literal

from .types import ModelInfo

FilterMode = Literal["whitelist", "blacklist"]


def whitelist(models: Iterable[ModelInfo], model_ids: frozenset[str] | set[str]) -> list[ModelInfo]:
    """Models whose id is listed, in upstream order."""
    return [model for model in models if model.id in model_ids]


def blacklist(models: Iterable[ModelInfo], model_ids: frozenset[str] | set[str]) -> list[ModelInfo]:
    """Models whose id is not listed, in upstream order."""
    return [model for model in models if model.id not in model_ids]


def apply_filter(
    models: Iterable[ModelInfo],
    model_ids: frozenset[str] | set[str],
    mode: FilterMode,
) -> list[ModelInfo]:
    if mode == "whitelist":
        return whitelist(models, model_ids)
    if mode == "blacklist":
        return blacklist(models, model_ids)
    raise ValueError(f"unknown filter mode '{mode}'")
