import pytest

from nostream.filters import apply_filter, blacklist, whitelist
from nostream.types import ModelInfo


def _models(*ids: str) -> list[ModelInfo]:
    return [ModelInfo(id=model_id) for model_id in ids]


def test_whitelist_keeps_listed_models_in_upstream_order() -> None:
    models = _models("c", "a", "b")

    kept = whitelist(models, {"b", "c", "missing"})

    assert [m.id for m in kept] == ["c", "b"]


def test_blacklist_drops_listed_models() -> None:
    models = _models("c", "a", "b")

    kept = blacklist(models, frozenset({"a"}))

    assert [m.id for m in kept] == ["c", "b"]


def test_whitelist_and_blacklist_partition_the_input() -> None:
    models = _models("gpt-4o", "gpt-4o-mini", "embed", "whisper")
    ids = frozenset({"gpt-4o", "whisper"})

    allowed = apply_filter(models, ids, "whitelist")
    denied = apply_filter(models, ids, "blacklist")

    assert {m.id for m in allowed} | {m.id for m in denied} == {m.id for m in models}
    assert not {m.id for m in allowed} & {m.id for m in denied}


def test_empty_id_set() -> None:
    models = _models("a", "b")

    assert apply_filter(models, frozenset(), "whitelist") == []
    assert [m.id for m in apply_filter(models, frozenset(), "blacklist")] == ["a", "b"]


def test_unknown_mode_raises() -> None:
    with pytest.raises(ValueError):
        apply_filter(_models("a"), frozenset(), "greylist")  # type: ignore[arg-type]
