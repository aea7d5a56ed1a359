"""
Structural operations over runtime values.

These are the comparisons and conversions every other part of the runtime
leans on: structural equality, pattern matching, containment, cloning,
source printing, and the human-readable names used in error messages.
"""
import json
import re
from typing import Any, List, Optional, Sequence

from harlowe.harlowe_datatypes import (
    Datamap, Dataset, HarloweValue, format_number, is_number,
)
from harlowe.harlowe_errors import HarloweError, contains_error

__all__ = [
    "equals", "matches", "contains", "clone", "to_source", "contains_error",
    "is_a", "object_name", "type_name", "unstorable_value", "valid_datamap_name",
    "collection_type", "subset", "range_of", "unique", "natural_sort_key",
    "nth", "and_list", "insensitive_name",
]


def _primitive_kind(value) -> Optional[str]:
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    return None


# =================================================================
# Equality and matching
# =================================================================

def equals(l: Any, r: Any) -> bool:
    """Structural equality, the `is` operator."""
    lk, rk = _primitive_kind(l), _primitive_kind(r)
    if lk or rk:
        return lk == rk and l == r
    if isinstance(l, (list, tuple)) and isinstance(r, (list, tuple)):
        return len(l) == len(r) and all(equals(a, b) for a, b in zip(l, r))
    if isinstance(l, Datamap) and isinstance(r, Datamap):
        if len(l) != len(r):
            return False
        return all(key in r and equals(l[key], r[key]) for key in l)
    if isinstance(l, Dataset) and isinstance(r, Dataset):
        return len(l) == len(r) and all(item in r for item in l)
    if isinstance(l, HarloweValue):
        return l.is_(r)
    if isinstance(l, dict) and isinstance(r, dict):
        return l.keys() == r.keys() and all(equals(l[k], r[k]) for k in l)
    return l is r


def _type_checker(value) -> bool:
    return isinstance(value, HarloweValue) and callable(getattr(value, "is_type_of", None))


def _is_spread_type(value) -> bool:
    return _type_checker(value) and getattr(value, "rest", False)


def matches(l: Any, r: Any) -> bool | HarloweError:
    """
    The `matches` operator: like `equals`, but a datatype on either side
    matches any value of that type, at any depth of arrays, datamaps and
    datasets. Errors from a datatype's check are returned as-is.
    """
    type_match = False
    for a, b in ((l, r), (r, l)):
        if _type_checker(a):
            result = a.is_type_of(b)
            if isinstance(result, HarloweError):
                return result
            type_match = type_match or result is True
    if type_match:
        return True

    if isinstance(l, list) and isinstance(r, list):
        return _match_arrays(l, r)
    if isinstance(l, Datamap) and isinstance(r, Datamap):
        if len(l) != len(r) or any(key not in r for key in l):
            return False
        for key in l:
            result = matches(l[key], r[key])
            if result is not True:
                return result
        return True
    if isinstance(l, Dataset) and isinstance(r, Dataset):
        return _match_sets(list(l), list(r))
    return equals(l, r)


def _match_arrays(l: list, r: list) -> bool | HarloweError:
    if any(_is_spread_type(x) for x in r):
        return _match_spread(l, r, 0, 0)
    if any(_is_spread_type(x) for x in l):
        return _match_spread(r, l, 0, 0)
    if len(l) != len(r):
        return False
    for a, b in zip(l, r):
        result = matches(a, b)
        if result is not True:
            return result
    return True


def _match_spread(values: list, pattern: list, i: int, j: int) -> bool | HarloweError:
    if j == len(pattern):
        return i == len(values)
    p = pattern[j]
    if _is_spread_type(p):
        k = i
        while True:
            result = _match_spread(values, pattern, k, j + 1)
            if result is not False:
                return result
            if k == len(values):
                return False
            step = p.is_type_of(values[k])
            if isinstance(step, HarloweError):
                return step
            if step is not True:
                return False
            k += 1
    if i == len(values):
        return False
    result = matches(values[i], p)
    if result is not True:
        return result
    return _match_spread(values, pattern, i + 1, j + 1)


def _match_sets(l: list, r: list) -> bool | HarloweError:
    # Find a one-to-one pairing of members that all match.
    if len(l) != len(r):
        return False
    used = [False] * len(r)

    def assign(i: int):
        if i == len(l):
            return True
        for j, candidate in enumerate(r):
            if used[j]:
                continue
            result = matches(l[i], candidate)
            if isinstance(result, HarloweError):
                return result
            if result:
                used[j] = True
                sub = assign(i + 1)
                if sub is not False:
                    return sub
                used[j] = False
        return False

    return assign(0)


def contains(container: Any, item: Any) -> bool | HarloweError:
    """The `contains` operator."""
    if isinstance(container, str):
        if not isinstance(item, str):
            return HarloweError.create(
                "operation",
                f"{object_name(container)} can only contain strings, not {object_name(item)}.",
            )
        return item in container
    if isinstance(container, (list, Dataset)):
        return any(equals(member, item) for member in container)
    if isinstance(container, Datamap):
        return any(equals(key, item) for key in container)
    return HarloweError.create(
        "operation",
        f"{object_name(container)} cannot contain any values, let alone {object_name(item)}",
    )


def is_a(value: Any, datatype: Any) -> bool | HarloweError:
    """The `is a` operator."""
    if not _type_checker(datatype):
        return HarloweError.create(
            "operation",
            f"\"is a\" should only be used to compare type names, not {object_name(datatype)}.",
        )
    return datatype.is_type_of(value)


# =================================================================
# Copying and printing
# =================================================================

def clone(value: Any) -> Any:
    """A copy of `value` that can be mutated without affecting the original."""
    if isinstance(value, list):
        return list(value)
    if isinstance(value, (Datamap, Dataset)):
        return value.copy()
    if isinstance(value, HarloweValue):
        return value.clone()
    return value


def to_source(value: Any) -> str:
    err = contains_error(value)
    if err:
        raise ValueError(f"to_source() can't print an error value: {err!r}")
    from harlowe.harlowe_printer import SourcePrinter
    return SourcePrinter().pformat(value)


def unstorable_value(value: Any) -> Any:
    """The first value in `value` (or one level inside it) that can't be stored in a variable."""
    if isinstance(value, HarloweValue) and value.UNSTORABLE:
        return value
    if isinstance(value, (list, Dataset)):
        members = value
    elif isinstance(value, Datamap):
        members = value.values()
    else:
        return None
    for member in members:
        if isinstance(member, HarloweValue) and member.UNSTORABLE:
            return member
    return None


# =================================================================
# Names
# =================================================================

def object_name(value: Any) -> str:
    """A human-readable description of a value, for error messages."""
    if isinstance(value, bool):
        return f"the boolean value '{'true' if value else 'false'}'"
    if isinstance(value, str):
        return "the string " + json.dumps(value, ensure_ascii=False)
    if is_number(value):
        return "the number " + format_number(value)
    if isinstance(value, list):
        return "an array"
    if isinstance(value, (Datamap, Dataset, HarloweValue, HarloweError)):
        return value.object_name if hasattr(value, "object_name") else value.TYPE_NAME
    if value is None:
        return "an empty variable"
    return "...whatever this is"


def type_name(value: Any) -> str:
    """Names a Python type or a value's type ("a string", "a datamap")."""
    names = {
        str: "a string",
        int: "a number",
        float: "a number",
        bool: "a boolean",
        list: "an array",
        type(None): "an empty variable",
    }
    if isinstance(value, type):
        if value in names:
            return names[value]
        return getattr(value, "TYPE_NAME", "") or value.__name__
    if type(value) in names:
        return names[type(value)]
    return getattr(value, "TYPE_NAME", "") or object_name(value)


def valid_datamap_name(datamap: Datamap, name: Any) -> bool | HarloweError:
    """
    Checks that `name` may be used as a data name in `datamap`: it must be a
    string or number, and must not textually equal an existing name of the
    other kind.
    """
    err = contains_error(name)
    if err:
        return err
    if not (isinstance(name, str) or is_number(name)):
        return HarloweError.create(
            "property",
            f"Only strings and numbers can be used as data names for {object_name(datamap)}, not {object_name(name)}.",
        )
    text = name if isinstance(name, str) else format_number(name)
    for key in datamap.keys():
        if isinstance(key, str) == isinstance(name, str):
            continue
        key_text = key if isinstance(key, str) else format_number(key)
        if key_text == text:
            return HarloweError.create(
                "property",
                f"You mustn't use both {object_name(key)} and {object_name(name)} as data names in the same datamap.",
            )
    return True


def collection_type(value: Any) -> str:
    if isinstance(value, list):
        return "array"
    if isinstance(value, Datamap):
        return "datamap"
    if isinstance(value, Dataset):
        return "dataset"
    if isinstance(value, str):
        return "string"
    return ""


def nth(num: int) -> str:
    if 10 <= num % 100 <= 20:
        return f"{num}th"
    suffix = {1: "st", 2: "nd", 3: "rd"}.get(num % 10, "th")
    return f"{num}{suffix}"


def and_list(items: Sequence[str]) -> str:
    if len(items) == 1:
        return items[0]
    return ", ".join(items[:-1]) + " and " + items[-1]


def insensitive_name(name: Any) -> str:
    return re.sub(r"[-_]", "", str(name).lower())


# =================================================================
# Sequences
# =================================================================

def subset(sequence: Sequence, a: int, b: int) -> Any:
    """
    1-indexed, inclusive slicing. Negative indices count from the end and a
    descending pair gives the same range. Index 0 is an error.
    """
    if a == 0 or b == 0:
        return HarloweError.create(
            "macrocall",
            f"I can't get a sub{collection_type(sequence) or 'section'} beginning or ending at position 0.",
            "The first position is 1, and the last position is -1.",
        )
    length = len(sequence)
    if a < 0:
        a = length + a + 1
    if b < 0:
        b = length + b + 1
    if a > b:
        a, b = b, a
    start = max(a - 1, 0)
    result = sequence[start:b]
    return "".join(result) if isinstance(sequence, str) else list(result)


def range_of(a: int, b: int) -> List[int]:
    """Every whole number from `a` to `b` inclusive, counting up or down."""
    step = 1 if b >= a else -1
    return list(range(a, b + step, step))


def unique(values: Sequence) -> list:
    result: List[Any] = []
    for value in values:
        if not any(equals(value, seen) for seen in result):
            result.append(value)
    return result


_NUMBER_CHUNK = re.compile(r"(\d+(?:\.\d+)?)")


def natural_sort_key(value: Any) -> tuple:
    """
    Sort key ordering values the way a person would: numbers by value,
    strings case-insensitively with embedded digit runs compared as numbers,
    and anything else by its printed source.
    """
    if is_number(value):
        return ((0, float(value), ""),)
    text = value if isinstance(value, str) else to_source(value)
    key = []
    for chunk in _NUMBER_CHUNK.split(text):
        if not chunk:
            continue
        if _NUMBER_CHUNK.fullmatch(chunk):
            key.append((0, float(chunk), chunk))
        else:
            key.append((1, chunk.casefold(), chunk))
    return tuple(key)
