from __future__ import annotations

from rich.console import Console

_DEBUG_LOG = False
_CONSOLE = Console(stderr=True, highlight=False)


def set_debug_logging(enabled: bool) -> None:
    global _DEBUG_LOG
    _DEBUG_LOG = enabled


def debug_enabled() -> bool:
    return _DEBUG_LOG


def debug_log(message: str) -> None:
    """Print a diagnostic line to stderr when --debug is active."""
    if _DEBUG_LOG:
        _CONSOLE.print(f"[folio debug] {message}", markup=False)


__all__ = ["debug_enabled", "debug_log", "set_debug_logging"]
