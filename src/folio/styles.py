from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

__all__ = [
    "PRESET_REFS",
    "StyleProperty",
    "format_style_properties",
    "load_user_properties",
    "preset_value",
    "resolve_style_properties",
]

# capability name -> ReadiumCSS user variable
PRESET_REFS: dict[str, str] = {
    "hyphens": "--USER__bodyHyphens",
    "fontOverride": "--USER__fontOverride",
    "appearance": "--USER__appearance",
    "publisherDefault": "--USER__advancedSettings",
    "columnCount": "--USER__colCount",
    "pageMargins": "--USER__pageMargins",
    "lineHeight": "--USER__lineHeight",
    "ligatures": "--USER__ligatures",
    "fontFamily": "--USER__fontFamily",
    "fontSize": "--USER__fontSize",
    "wordSpacing": "--USER__wordSpacing",
    "letterSpacing": "--USER__letterSpacing",
    "textAlignment": "--USER__textAlign",
    "paraIndent": "--USER__paraIndent",
    "scroll": "--USER__scroll",
}

_PRESET_VALUES: dict[str, str] = {
    "hyphens": "",
    "fontOverride": "readium-font-off",
    "appearance": "readium-default-on",
    "publisherDefault": "",
    "columnCount": "auto",
    "pageMargins": "0.5",
    "lineHeight": "1.0",
    "ligatures": "",
    "fontFamily": "Original",
    "fontSize": "100%",
    "wordSpacing": "0.0rem",
    "letterSpacing": "0.0em",
    "textAlignment": "justify",
    "paraIndent": "",
}

_CAPABILITY_BY_NAME: dict[str, str] = {}
for _capability, _ref in PRESET_REFS.items():
    _CAPABILITY_BY_NAME[_capability] = _capability
    _CAPABILITY_BY_NAME[_ref] = _capability


@dataclass(frozen=True)
class StyleProperty:
    name: str
    value: str


def preset_value(capability: str, enabled: bool) -> str:
    if capability == "scroll":
        return "readium-scroll-on" if enabled else "readium-scroll-off"
    try:
        return _PRESET_VALUES[capability]
    except KeyError as exc:
        raise KeyError(f"Unknown style capability: {capability}") from exc


def load_user_properties(path: Path | str | None) -> list[StyleProperty]:
    """
    Read the user's CSS overrides: a JSON array of {"name", "value"} records.

    Entries may be objects or JSON-encoded strings of objects; both fields
    must be strings. A missing, unreadable or malformed file yields an empty
    list.
    """
    if path is None:
        return []
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return []
    if not isinstance(raw, list):
        return []
    properties: list[StyleProperty] = []
    for entry in raw:
        if isinstance(entry, str):
            try:
                entry = json.loads(entry)
            except json.JSONDecodeError:
                return []
        if not isinstance(entry, Mapping):
            return []
        name = entry.get("name")
        value = entry.get("value")
        if not isinstance(name, str) or not isinstance(value, str):
            return []
        properties.append(StyleProperty(name=name, value=value))
    return properties


def resolve_style_properties(
    user_properties_path: Path | str | None,
    presets: Mapping[str, bool] | None = None,
) -> list[StyleProperty]:
    """
    Merge the user's override file with the reader's active presets.

    Overrides are applied first in file order; every name covered by an
    enabled preset (or by ``scroll``, whose flag picks on/off) then takes the
    preset's fixed value in place.
    """
    return merge_style_properties(load_user_properties(user_properties_path), presets or {})


def merge_style_properties(
    overrides: Iterable[StyleProperty],
    presets: Mapping[str, bool],
) -> list[StyleProperty]:
    active = {
        _CAPABILITY_BY_NAME[key]: bool(flag)
        for key, flag in presets.items()
        if key in _CAPABILITY_BY_NAME
    }
    merged: dict[str, str] = {}
    for prop in overrides:
        merged[prop.name] = prop.value
    for name in merged:
        capability = _CAPABILITY_BY_NAME.get(name)
        if capability is None or capability not in active:
            continue
        enabled = active[capability]
        if enabled or capability == "scroll":
            merged[name] = preset_value(capability, enabled)
    return [StyleProperty(name=name, value=value) for name, value in merged.items()]


def format_style_properties(properties: Iterable[StyleProperty]) -> str:
    return "".join(f" {prop.name}: {prop.value};" for prop in properties)
