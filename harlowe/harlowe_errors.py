"""
Error values for the Harlowe value runtime.

User-facing failures are never raised. They are returned as `HarloweError`
values and carried through every operation until someone displays them.
Python exceptions are reserved for host programming mistakes.
"""
import functools
from typing import Any, Dict, Optional

import pystache
import yaml

from harlowe.harlowe_config import error_catalogue_path

_renderer = pystache.Renderer(escape=lambda u: u)


@functools.lru_cache(maxsize=None)
def _catalogue() -> Dict[str, Dict[str, str]]:
    with error_catalogue_path().open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    data.setdefault("explanations", {})
    data.setdefault("messages", {})
    return data


def reload_catalogue():
    """Drops the cached catalogue so the next lookup re-reads HARLOWE_ERROR_MESSAGES."""
    _catalogue.cache_clear()


def explanation_for(kind: str) -> Optional[str]:
    return _catalogue()["explanations"].get(kind)


def render_message(key: str, **params: Any) -> str:
    """Renders one of the catalogue's message templates with the given fields."""
    template = _catalogue()["messages"].get(key)
    if template is None:
        raise KeyError(f"No message template named '{key}'")
    return _renderer.render(template, {k: v if isinstance(v, (str, bool)) else str(v) for k, v in params.items()})


class HarloweError:
    """A runtime error value: a kind, a message, and an explanation for the reader."""

    TYPE_ID = "error"
    TYPE_NAME = "an error"

    def __init__(self, kind: str, message: str, explanation: Optional[str] = None, warning: bool = False):
        self.kind = kind
        self.message = message
        self.explanation = explanation
        self.warning = warning

    @classmethod
    def create(cls, kind: str, message: str, explanation: Optional[str] = None) -> "HarloweError":
        if not isinstance(message, str) or not message:
            raise ValueError("HarloweError.create() needs a non-empty message string")
        if not explanation and explanation_for(kind) is None:
            raise ValueError(f"HarloweError.create() called with unknown kind '{kind}' and no explanation")
        if kind != "user":
            message = message[0].upper() + message[1:]
        return cls(kind, message, explanation)

    @classmethod
    def create_warning(cls, kind: str, message: str, explanation: Optional[str] = None) -> "HarloweError":
        err = cls.create(kind, message, explanation)
        err.warning = True
        return err

    @classmethod
    def from_exception(cls, exc: BaseException) -> "HarloweError":
        """Wraps an exception raised by host code, e.g. a changer's mutation function."""
        text = str(exc) or type(exc).__name__
        return cls.create("python", "☕ " + text)

    @property
    def full_explanation(self) -> str:
        return self.explanation or explanation_for(self.kind) or ""

    @property
    def object_name(self) -> str:
        return self.TYPE_NAME

    def __eq__(self, other):
        if not isinstance(other, HarloweError):
            return NotImplemented
        return (self.kind, self.message) == (other.kind, other.message)

    def __hash__(self):
        return hash((self.kind, self.message))

    def __repr__(self):
        flag = " warning" if self.warning else ""
        return f"<HarloweError{flag} {self.kind}: {self.message}>"


def contains_error(*values) -> HarloweError | bool:
    """
    Returns the first error among `values`, looking inside arrays but no
    other collection, or False when there is none.
    """
    for value in values:
        if isinstance(value, HarloweError):
            return value
        if isinstance(value, list):
            found = contains_error(*value)
            if found:
                return found
    return False
