from __future__ import annotations

import argparse
import json
import sys
from importlib import metadata
from pathlib import Path

import tomllib
from rich.console import Console
from rich.table import Table

from .config import (
    CustomResources,
    FilterConfig,
    load_filter_config,
    parse_custom_resource_flag,
    parse_preset_flag,
)
from .containers import ContainerError
from .decoders import DecryptionError
from .logging_utils import set_debug_logging
from .parsers import OpenedPublication, open_publication


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("folio")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"folio {__version__}",
    )


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    _add_version_flag(parser)
    parser.add_argument(
        "publication",
        help="Path to an .epub, .cbz or Readium package (.lcpdf) file.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging (skipped transforms, page-count failures).",
    )


def build_positions_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="folio positions",
        description="List the positions (locators) of a publication's reading order.",
    )
    _add_common_arguments(ap)
    ap.add_argument(
        "--json",
        action="store_true",
        help="Print the positions as a JSON array instead of a table.",
    )
    return ap


def build_resource_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="folio resource",
        description="Run one resource through the content filters and write the result.",
    )
    _add_common_arguments(ap)
    ap.add_argument("href", help="Path of the resource inside the publication.")
    ap.add_argument(
        "-o",
        "--output",
        help="Write the filtered bytes here (default: stdout).",
    )
    ap.add_argument(
        "--config",
        help="TOML file with user_properties, [presets] and [custom_resources].",
    )
    ap.add_argument(
        "--user-properties",
        help="JSON array of {name, value} CSS overrides (overrides the config file).",
    )
    ap.add_argument(
        "--preset",
        action="append",
        default=[],
        metavar="NAME=on|off",
        help="Reader style preset, e.g. scroll=on (repeatable).",
    )
    ap.add_argument(
        "--custom-resource",
        action="append",
        default=[],
        metavar="KEY=script|style",
        help="Extra asset to inject into reflowable HTML (repeatable).",
    )
    return ap


def build_info_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="folio info",
        description="Show publication metadata and its reading order.",
    )
    _add_common_arguments(ap)
    return ap


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Reading-app resource filters and position lists. Commands: positions, resource, info.",
    )
    _add_version_flag(ap)
    ap.add_argument("command", choices=["positions", "resource", "info"])
    return ap


def _open(args: argparse.Namespace) -> OpenedPublication:
    set_debug_logging(bool(getattr(args, "debug", False)))
    try:
        return open_publication(Path(args.publication))
    except ContainerError as exc:
        raise SystemExit(str(exc)) from exc


def _build_filter_config(args: argparse.Namespace) -> FilterConfig:
    config = FilterConfig()
    if args.config:
        try:
            config = load_filter_config(Path(args.config).expanduser())
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
    if args.user_properties:
        config.user_properties_path = Path(args.user_properties).expanduser()
    try:
        for raw in args.preset:
            name, enabled = parse_preset_flag(raw)
            config.presets[name] = enabled
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    if args.custom_resource:
        entries = {key: kind for key, (kind, _) in config.custom_resources}
        try:
            for raw in args.custom_resource:
                key, kind = parse_custom_resource_flag(raw)
                entries[key] = kind
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
        config.custom_resources = CustomResources(entries)
    return config


def _run_positions(args: argparse.Namespace) -> int:
    opened = _open(args)
    locators = opened.positions()
    if args.json:
        print(json.dumps([locator.to_dict() for locator in locators], ensure_ascii=False, indent=2))
        return 0
    console = Console()
    table = Table(title=opened.publication.metadata.title or Path(args.publication).name)
    table.add_column("#", justify="right")
    table.add_column("href")
    table.add_column("type")
    table.add_column("fragment")
    table.add_column("progression", justify="right")
    table.add_column("total", justify="right")
    for locator in locators:
        locations = locator.locations
        table.add_row(
            str(locations.position),
            locator.href,
            locator.type,
            ", ".join(locations.fragments),
            f"{locations.progression:.4f}",
            f"{locations.total_progression:.4f}",
        )
    console.print(table)
    if not locators:
        console.print("No positions: the reading order has no pages.")
    return 0


def _run_resource(args: argparse.Namespace) -> int:
    opened = _open(args)
    config = _build_filter_config(args)
    try:
        data = opened.read_resource(args.href, config)
    except (ContainerError, DecryptionError) as exc:
        raise SystemExit(str(exc)) from exc
    if args.output:
        Path(args.output).expanduser().write_bytes(data)
    else:
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
    return 0


def _run_info(args: argparse.Namespace) -> int:
    opened = _open(args)
    publication = opened.publication
    meta = publication.metadata
    console = Console()
    console.print(f"[bold]{meta.title or Path(args.publication).name}[/bold]")
    console.print(f"kind: {opened.kind}")
    console.print(f"identifier: {meta.identifier or '-'}")
    console.print(f"languages: {', '.join(meta.languages) or '-'}")
    console.print(f"layout: {meta.layout}")
    console.print(f"reading progression: {meta.reading_progression}")
    console.print(f"content layout: {publication.content_layout}")
    table = Table(title="Reading order")
    table.add_column("#", justify="right")
    table.add_column("href")
    table.add_column("type")
    table.add_column("layout")
    table.add_column("title")
    for index, link in enumerate(publication.reading_order, start=1):
        table.add_row(
            str(index),
            link.href,
            link.media_type or "",
            link.layout or "",
            link.title or "",
        )
    console.print(table)
    return 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    if argv and argv[0] == "positions":
        return _run_positions(build_positions_parser().parse_args(argv[1:]))
    if argv and argv[0] == "resource":
        return _run_resource(build_resource_parser().parse_args(argv[1:]))
    if argv and argv[0] == "info":
        return _run_info(build_info_parser().parse_args(argv[1:]))
    build_parser().parse_args(argv)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
