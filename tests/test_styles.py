from __future__ import annotations

import json
from pathlib import Path

import pytest

from folio.styles import (
    StyleProperty,
    format_style_properties,
    load_user_properties,
    preset_value,
    resolve_style_properties,
)


def _write_properties(path: Path, entries: list[object]) -> Path:
    path.write_text(json.dumps(entries), encoding="utf-8")
    return path


def test_missing_override_source_is_empty(tmp_path: Path) -> None:
    assert load_user_properties(None) == []
    assert load_user_properties(tmp_path / "missing.json") == []
    assert resolve_style_properties(tmp_path / "missing.json", {"scroll": True}) == []


def test_malformed_override_source_is_empty(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("[{\"name\": ", encoding="utf-8")
    assert resolve_style_properties(broken, {}) == []

    not_a_list = _write_properties(tmp_path / "object.json", {"name": "x"})  # type: ignore[arg-type]
    assert load_user_properties(not_a_list) == []

    missing_value = _write_properties(tmp_path / "partial.json", [{"name": "--USER__fontSize"}])
    assert load_user_properties(missing_value) == []


@pytest.mark.parametrize("value", [True, 12, None, ["140%"]])
def test_non_string_override_value_is_malformed(tmp_path: Path, value) -> None:
    path = _write_properties(
        tmp_path / "props.json",
        [
            {"name": "--USER__appearance", "value": "readium-night-on"},
            {"name": "--USER__fontSize", "value": value},
        ],
    )
    assert load_user_properties(path) == []


def test_entries_may_be_json_encoded_strings(tmp_path: Path) -> None:
    path = _write_properties(
        tmp_path / "props.json",
        [
            json.dumps({"name": "--USER__appearance", "value": "readium-night-on"}),
            {"name": "--USER__fontSize", "value": "140%"},
        ],
    )
    assert load_user_properties(path) == [
        StyleProperty("--USER__appearance", "readium-night-on"),
        StyleProperty("--USER__fontSize", "140%"),
    ]


def test_active_preset_wins_over_literal_value(tmp_path: Path) -> None:
    path = _write_properties(tmp_path / "props.json", [{"name": "scroll", "value": "manual"}])
    resolved = resolve_style_properties(path, {"scroll": True})
    assert resolved == [StyleProperty("scroll", "readium-scroll-on")]


def test_presets_match_css_variable_names_and_keep_order(tmp_path: Path) -> None:
    path = _write_properties(
        tmp_path / "props.json",
        [
            {"name": "--USER__fontSize", "value": "150%"},
            {"name": "--USER__backgroundColor", "value": "#000"},
            {"name": "--USER__textAlign", "value": "left"},
            {"name": "--USER__scroll", "value": "readium-scroll-on"},
            {"name": "--USER__lineHeight", "value": "2"},
        ],
    )
    resolved = resolve_style_properties(
        path,
        {"fontSize": True, "textAlignment": False, "scroll": False, "lineHeight": True},
    )
    assert resolved == [
        StyleProperty("--USER__fontSize", "100%"),
        StyleProperty("--USER__backgroundColor", "#000"),
        StyleProperty("--USER__textAlign", "left"),
        StyleProperty("--USER__scroll", "readium-scroll-off"),
        StyleProperty("--USER__lineHeight", "1.0"),
    ]


def test_later_duplicate_wins_in_first_position(tmp_path: Path) -> None:
    path = _write_properties(
        tmp_path / "props.json",
        [
            {"name": "a", "value": "1"},
            {"name": "b", "value": "2"},
            {"name": "a", "value": "3"},
        ],
    )
    assert resolve_style_properties(path) == [StyleProperty("a", "3"), StyleProperty("b", "2")]


def test_format_style_properties() -> None:
    flattened = format_style_properties(
        [StyleProperty("--USER__fontSize", "100%"), StyleProperty("--USER__hyphens", "")]
    )
    assert flattened == " --USER__fontSize: 100%; --USER__hyphens: ;"


def test_preset_value_rejects_unknown_capability() -> None:
    assert preset_value("columnCount", True) == "auto"
    with pytest.raises(KeyError):
        preset_value("fontColor", True)
