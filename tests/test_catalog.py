import json
from pathlib import Path

import pytest

from catalog import CATALOG, CatalogConfigError, ContentCatalog


def _write(tmp_path: Path, data, name="catalog.json") -> Path:
    cfg = tmp_path / name
    cfg.write_text(json.dumps(data), encoding="utf-8")
    return cfg


def _minimal(**overrides):
    data = {
        "modules": [
            {"id": 1, "title": "Registers 101", "xp": 100},
            {"id": 2, "title": "Memory", "xp": 150},
        ],
        "challenges": [{"id": "a", "module_id": 1, "prompt": "mov eax, 1", "xp": 10}],
    }
    data.update(overrides)
    return data


def test_default_catalog_exposes_course():
    assert CATALOG.module_ids() == tuple(range(1, 11))
    assert CATALOG.get_module(1).title == "Registers 101"
    assert [c.id for c in CATALOG.challenges_for(1)] == ["c1_1", "c1_2"]
    assert all(CATALOG.challenges_for(module_id) for module_id in CATALOG.module_ids())
    assert len(CATALOG.concepts_for(1)) == 3
    assert CATALOG.get_challenge("c10_1").xp == 200
    assert CATALOG.achievement_events() == frozenset({"perfect_score"})
    assert {pair.register for pair in CATALOG.drill_pairs} == {"EAX", "EBX", "ECX", "EDX", "ESP", "EBP"}


def test_default_achievements_have_single_predicate():
    kinds = {a.id: a.kind for a in CATALOG.achievements}
    assert kinds["first_step"] == "module"
    assert kinds["xp500"] == "xp"
    assert kinds["perfect"] == "event"


def test_unknown_lookups_return_empty():
    assert CATALOG.get_module(99) is None
    assert CATALOG.get_challenge("nope") is None
    assert CATALOG.concepts_for(99) == ()
    assert CATALOG.challenges_for(99) == []


def test_custom_catalog_sorts_modules(tmp_path: Path):
    data = _minimal(modules=[{"id": 2, "title": "Memory", "xp": 150}, {"id": 1, "title": "Registers", "xp": 100}])
    catalog = ContentCatalog(_write(tmp_path, data))

    assert catalog.module_ids() == (1, 2)
    assert catalog.achievements == []
    assert catalog.drill_pairs == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"modules": []},
        {"modules": [{"id": 1, "title": "One", "xp": 1}, {"id": 3, "title": "Three", "xp": 1}]},
        {"modules": [{"id": 1, "title": "", "xp": 1}]},
        {"modules": [{"id": 1, "title": "One", "xp": -5}]},
        {"challenges": [{"id": "a", "module_id": 9, "prompt": "x", "xp": 1}]},
        {
            "challenges": [
                {"id": "a", "module_id": 1, "prompt": "x", "xp": 1},
                {"id": "a", "module_id": 2, "prompt": "y", "xp": 1},
            ]
        },
        {"achievements": [{"id": "x", "title": "X"}]},
        {"achievements": [{"id": "x", "title": "X", "module_required": 1, "xp_required": 100}]},
        {"achievements": [{"id": "x", "title": "X", "module_required": 7}]},
        {"concepts": {"5": [{"title": "Nowhere"}]}},
        {"concepts": {"1": ["not an object"]}},
        {"register_drill": [{"register": "EAX", "role": "A"}, {"register": "EAX", "role": "B"}]},
    ],
)
def test_invalid_catalog_is_rejected(tmp_path: Path, overrides):
    with pytest.raises(CatalogConfigError):
        ContentCatalog(_write(tmp_path, _minimal(**overrides)))


def test_missing_catalog_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        ContentCatalog(tmp_path / "absent.json")


def test_default_catalog_ships_in_content_directory():
    assert CATALOG.path.name == "catalog.json"
    assert CATALOG.path.parent.name == "content"
    assert CATALOG.path.is_file()
