"""
Runtime configuration for the Harlowe value runtime.

Settings are read from the environment at the point of use, so tests and
hosts can change them without re-importing anything.
"""
import os
import sys
from pathlib import Path
from typing import Optional

DEFAULT_MAX_REPEAT = 1000


def debug_enabled() -> bool:
    return bool(os.environ.get("HARLOWE_DEBUG"))


def max_repeat() -> int:
    """Largest explicit repetition count accepted by (p-many:)."""
    raw = os.environ.get("HARLOWE_MAX_REPEAT")
    if raw is None:
        return DEFAULT_MAX_REPEAT
    try:
        return int(raw)
    except ValueError:
        return DEFAULT_MAX_REPEAT


def error_catalogue_path() -> Path:
    """Path of the YAML catalogue holding error explanations and message templates."""
    override: Optional[str] = os.environ.get("HARLOWE_ERROR_MESSAGES")
    if override:
        return Path(override)
    return Path(__file__).parent / "error_messages.yaml"


def dbg(*parts):
    if debug_enabled():
        print("[DBG]", *parts, file=sys.stderr)
