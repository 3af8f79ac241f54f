from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Mapping

__all__ = [
    "INJECTABLE_SCRIPT",
    "INJECTABLE_STYLE",
    "CustomResources",
    "FilterConfig",
    "load_filter_config",
    "parse_custom_resource_flag",
    "parse_preset_flag",
]

# URL path segment used when serving injected assets
INJECTABLE_SCRIPT = "scripts"
INJECTABLE_STYLE = "styles"

_INJECTABLE_ALIASES = {
    "script": INJECTABLE_SCRIPT,
    "scripts": INJECTABLE_SCRIPT,
    "style": INJECTABLE_STYLE,
    "styles": INJECTABLE_STYLE,
}

_TRUE_FLAGS = {"1", "true", "yes", "on"}
_FALSE_FLAGS = {"0", "false", "no", "off"}


class CustomResources:
    """Read-only registry of extra scripts/stylesheets injected into reflowable HTML."""

    def __init__(self, entries: Mapping[str, str] | None = None) -> None:
        self._entries: dict[str, tuple[str, str]] = {}
        for key, kind in (entries or {}).items():
            normalized = _INJECTABLE_ALIASES.get(str(kind).strip().lower())
            if normalized is None:
                continue
            self._entries[key] = (normalized, key)

    def __iter__(self) -> Iterator[tuple[str, tuple[str, str]]]:
        return iter(self._entries.items())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def kind_of(self, key: str) -> str | None:
        entry = self._entries.get(key)
        return entry[0] if entry else None


@dataclass(slots=True)
class FilterConfig:
    user_properties_path: Path | None = None
    presets: dict[str, bool] = field(default_factory=dict)
    custom_resources: CustomResources = field(default_factory=CustomResources)


def parse_preset_flag(raw: str) -> tuple[str, bool]:
    name, sep, flag = raw.partition("=")
    name = name.strip()
    if not sep or not name:
        raise ValueError(f"Preset must look like name=on|off, got {raw!r}")
    lowered = flag.strip().lower()
    if lowered in _TRUE_FLAGS:
        return name, True
    if lowered in _FALSE_FLAGS:
        return name, False
    raise ValueError(f"Preset {name!r} must be on or off, got {flag!r}")


def parse_custom_resource_flag(raw: str) -> tuple[str, str]:
    key, sep, kind = raw.partition("=")
    key = key.strip()
    if not sep or not key:
        raise ValueError(f"Custom resource must look like KEY=script|style, got {raw!r}")
    normalized = _INJECTABLE_ALIASES.get(kind.strip().lower())
    if normalized is None:
        raise ValueError(f"Custom resource {key!r} must be 'script' or 'style', got {kind!r}")
    return key, normalized


def load_filter_config(path: Path) -> FilterConfig:
    try:
        with path.open("rb") as fh:
            raw = tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ValueError(f"Failed to parse filter config: {path}") from exc

    user_properties = raw.get("user_properties")
    if user_properties is not None and not isinstance(user_properties, str):
        raise ValueError(f"{path.name}: 'user_properties' must be a string path.")
    user_properties_path = None
    if user_properties:
        user_properties_path = Path(user_properties).expanduser()
        if not user_properties_path.is_absolute():
            user_properties_path = path.parent / user_properties_path

    presets_payload = raw.get("presets", {})
    if not isinstance(presets_payload, dict):
        raise ValueError(f"{path.name}: [presets] must be a table of booleans.")
    presets: dict[str, bool] = {}
    for name, flag in presets_payload.items():
        if not isinstance(flag, bool):
            raise ValueError(f"{path.name}: preset {name!r} must be true or false.")
        presets[name] = flag

    resources_payload = raw.get("custom_resources", {})
    if not isinstance(resources_payload, dict):
        raise ValueError(f"{path.name}: [custom_resources] must map keys to 'script' or 'style'.")
    for key, kind in resources_payload.items():
        if not isinstance(kind, str) or kind.strip().lower() not in _INJECTABLE_ALIASES:
            raise ValueError(f"{path.name}: custom resource {key!r} must be 'script' or 'style'.")

    return FilterConfig(
        user_properties_path=user_properties_path,
        presets=presets,
        custom_resources=CustomResources(resources_payload),
    )
