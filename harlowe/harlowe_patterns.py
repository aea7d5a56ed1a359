"""
Datatypes and string patterns.

A `Datatype` is a named predicate over values (`number`, `even`, `digit`,
...). A `Pattern` is a datatype built by the pattern macros out of strings,
string-kinded datatypes and other patterns; it compiles to a regular
expression and matches whole strings only.
"""
import copy
import functools
import math
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from harlowe.harlowe_config import dbg, max_repeat
from harlowe.harlowe_datatypes import (
    Changer, Colour, CustomMacro, Datamap, Dataset, Gradient, HarloweValue, TypedVar, is_number,
)
from harlowe.harlowe_errors import HarloweError, contains_error
from harlowe.harlowe_lambda import Lambda
from harlowe.harlowe_values import object_name, to_source

# =================================================================
# Character classes
# =================================================================

@functools.lru_cache(maxsize=None)
def _case_class(kind: str) -> str:
    """A regex character class of every BMP character that is uppercase, lowercase or cased."""
    tests = {
        "upper": lambda c: c != c.lower(),
        "lower": lambda c: c != c.upper(),
        "cased": lambda c: c.lower() != c.upper(),
    }
    test = tests[kind]
    ranges: List[List[int]] = []
    for code in range(0x10000):
        if 0xD800 <= code <= 0xDFFF:
            continue
        if not test(chr(code)):
            continue
        if ranges and ranges[-1][1] == code - 1:
            ranges[-1][1] = code
        else:
            ranges.append([code, code])
    parts = []
    for start, end in ranges:
        if start == end:
            parts.append(re.escape(chr(start)))
        else:
            parts.append(re.escape(chr(start)) + "-" + re.escape(chr(end)))
    return "[" + "".join(parts) + "]"


_ALNUM = r"[^\W_]"
_WHITESPACE = r"\s"
_DIGIT = r"\d"
_NEWLINE = r"(?:\r\n|\r|\n)"


def _string_fragment(name: str, insensitive: bool = False) -> Optional[str]:
    if name == "alphanumeric":
        return _ALNUM
    if name == "whitespace":
        return _WHITESPACE
    if name == "uppercase":
        return _case_class("cased" if insensitive else "upper")
    if name == "lowercase":
        return _case_class("cased" if insensitive else "lower")
    if name == "anycase":
        return _case_class("cased")
    if name == "digit":
        return _DIGIT
    if name == "newline":
        return _NEWLINE
    return None


def _single_char_of(name: str) -> Callable[[Any], bool]:
    def check(value) -> bool:
        return isinstance(value, str) and re.fullmatch(_string_fragment(name), value) is not None
    return check


def _storable(value) -> bool:
    if contains_error(value):
        return False
    return not (isinstance(value, HarloweValue) and value.UNSTORABLE)


def _integer(value) -> bool:
    return is_number(value) and not math.isinf(value) and float(value).is_integer()


TYPE_CHECKS: Dict[str, Callable[[Any], bool]] = {
    "array": lambda v: isinstance(v, list),
    "datamap": lambda v: isinstance(v, Datamap),
    "dataset": lambda v: isinstance(v, Dataset),
    "datatype": lambda v: isinstance(v, Datatype),
    "changer": lambda v: isinstance(v, Changer),
    "colour": lambda v: isinstance(v, Colour),
    "gradient": lambda v: isinstance(v, Gradient),
    "lambda": lambda v: isinstance(v, Lambda),
    "macro": lambda v: isinstance(v, CustomMacro),
    "string": lambda v: isinstance(v, str),
    "number": is_number,
    "boolean": lambda v: isinstance(v, bool),
    "integer": _integer,
    "even": lambda v: _integer(v) and int(abs(v)) % 2 == 0,
    "odd": lambda v: _integer(v) and int(abs(v)) % 2 == 1,
    "empty": lambda v: isinstance(v, (str, list, Datamap, Dataset)) and len(v) == 0,
    "uppercase": _single_char_of("uppercase"),
    "lowercase": _single_char_of("lowercase"),
    "anycase": _single_char_of("anycase"),
    "alphanumeric": _single_char_of("alphanumeric"),
    "whitespace": _single_char_of("whitespace"),
    "digit": _single_char_of("digit"),
    "newline": _single_char_of("newline"),
    "anything": _storable,
}

ALIASES = {
    "dm": "datamap",
    "ds": "dataset",
    "color": "colour",
    "str": "string",
    "num": "number",
    "bool": "boolean",
    "int": "integer",
    "alnum": "alphanumeric",
    "any": "anything",
}

NUMBER_TYPES = frozenset({"number", "integer", "even", "odd"})


# =================================================================
# Datatypes
# =================================================================

class Datatype(HarloweValue):
    """A named predicate over values, usable on the right of `is a` and `matches`."""
    TYPE_ID = "datatype"
    TYPE_NAME = "a datatype"

    def __init__(self, name: str, rest: bool = False):
        self.name = name
        self.rest = rest

    @classmethod
    def create(cls, name: str) -> "Datatype | HarloweError":
        canonical = ALIASES.get(name, name)
        if canonical not in TYPE_CHECKS:
            return HarloweError.create("syntax", f"There isn't a datatype named '{name}'.")
        return cls(canonical)

    @classmethod
    def of(cls, value) -> "Datatype | None":
        """The most specific built-in datatype describing `value`."""
        for name in ("boolean", "number", "string", "array", "datamap", "dataset", "datatype",
                     "changer", "colour", "gradient", "lambda", "macro"):
            if TYPE_CHECKS[name](value):
                return cls(name)
        return None

    def spread(self) -> "Datatype":
        """The 'zero or more' form of this datatype, written `...name`."""
        spread = copy.copy(self)
        spread.rest = True
        return spread

    def is_type_of(self, value) -> bool | HarloweError:
        return TYPE_CHECKS[self.name](value)

    def regex_fragment(self, macro_name: str, insensitive: bool = False) -> str | HarloweError:
        """This datatype's piece of a string pattern's regular expression."""
        if self.name == "string":
            return ".*?"
        fragment = _string_fragment(self.name, insensitive)
        if fragment is not None:
            return fragment + ("*" if self.rest else "")
        if self.name in NUMBER_TYPES:
            return HarloweError.create(
                "datatype",
                f"Please use string datatypes like 'digit' in ({macro_name}:) instead of number datatypes.",
            )
        return HarloweError.create(
            "datatype",
            f"The ({macro_name}:) macro must only be given string-related datatypes, not {object_name(self)}.",
        )

    @property
    def object_name(self) -> str:
        return f"the {self.to_source()} datatype"

    def is_(self, other) -> bool:
        return type(other) is Datatype and other.name == self.name and other.rest == self.rest

    def to_source(self) -> str:
        return ("..." if self.rest else "") + self.name


class Pattern(Datatype):
    """
    A string datatype compiled from pattern macro arguments.

    `full_args` are every argument the macro was given (including
    (p-many:)'s bounds) and are what `to_source()` prints; `args` are only
    the fragments. Matching is always anchored at both ends.
    """

    def __init__(self, name: str, full_args: Sequence, args: Sequence, make_regex: Callable[[List[str]], str],
                 regex: str, insensitive: bool = False, can_contain_typed_vars: bool = True,
                 usable_standalone: bool = True):
        super().__init__(name)
        self.full_args = tuple(full_args)
        self.args = tuple(args)
        self.make_regex = make_regex
        self.regex = regex
        self.is_insensitive = insensitive
        self.can_contain_typed_vars = can_contain_typed_vars
        self.usable_standalone = usable_standalone

    def _full_regex(self) -> str:
        return "(?:" + self.regex + ")*" if self.rest else self.regex

    def _fullmatch(self, text: str):
        return re.fullmatch(self._full_regex(), text, re.DOTALL)

    def is_type_of(self, value) -> bool | HarloweError:
        if not self.usable_standalone:
            return HarloweError.create(
                "operation", f"A ({self.name}:) datatype must only be used with a (p:) macro."
            )
        return isinstance(value, str) and self._fullmatch(value) is not None

    def regex_fragment(self, macro_name: str, insensitive: bool = False) -> str:
        regex = self.insensitive().regex if insensitive else self.regex
        return "(?:" + regex + ")*" if self.rest else regex

    def insensitive(self) -> "Pattern":
        """A case-insensitive recompilation of this pattern and every sub-pattern."""
        if self.is_insensitive:
            return self
        args = [a.insensitive() if isinstance(a, Pattern) else a for a in self.args]
        result = create_pattern(
            self.name, args, self.make_regex, full_args=self.full_args, insensitive=True,
            can_contain_typed_vars=self.can_contain_typed_vars, usable_standalone=self.usable_standalone,
        )
        if self.rest:
            result = result.spread()
        return result

    def typed_vars(self) -> List[TypedVar]:
        """Every typed variable in this pattern, in the order their captures appear."""
        found: List[TypedVar] = []
        for arg in self.args:
            if isinstance(arg, TypedVar):
                if self.is_insensitive:
                    found.append(TypedVar(insensitive_of(arg.datatype), arg.name, arg.rest))
                else:
                    found.append(arg)
                arg = arg.datatype
            if isinstance(arg, Pattern):
                found.extend(arg.typed_vars())
        return found

    def destructure(self, value) -> List[Tuple[TypedVar, str]] | HarloweError:
        """Matches `value` and pairs each typed variable with the text it captured."""
        if not isinstance(value, str):
            return HarloweError.create(
                "operation",
                f"I can't de-structure {object_name(value)} into {self.to_source()} because it isn't a string.",
            )
        typed_vars = self.typed_vars()
        if not typed_vars:
            return []
        m = self._fullmatch(value)
        if m is None:
            return HarloweError.create(
                "operation",
                f"I can't de-structure {object_name(value)} because it doesn't match the pattern {self.to_source()}.",
            )
        return [(tv, text or "") for tv, text in zip(typed_vars, m.groups())]

    @property
    def object_name(self) -> str:
        return f"a ({self.name}:) datatype"

    def is_(self, other) -> bool:
        return (
            isinstance(other, Pattern)
            and other.is_insensitive == self.is_insensitive
            and other.to_source() == self.to_source()
        )

    def to_source(self) -> str:
        body = f"({self.name}:" + ",".join(to_source(a) for a in self.full_args) + ")"
        return ("..." if self.rest else "") + body


# =================================================================
# Pattern construction
# =================================================================

def _case_variants(match) -> str:
    # Multi-character case mappings (sharp s to SS) can't go in a character class.
    char = match.group(0)
    variants = [v for v in (char.upper(), char.lower()) if len(v) == 1 and v != char]
    return "[" + char + "".join(dict.fromkeys(variants)) + "]"


def _escape(text: str, insensitive: bool) -> str:
    text = re.escape(text)
    if insensitive:
        cased = re.compile(_case_class("cased"))
        text = cased.sub(_case_variants, text)
    return text


def create_pattern(name: str, args: Sequence, make_regex: Callable[[List[str]], str], full_args: Optional[Sequence] = None,
                   insensitive: bool = False, can_contain_typed_vars: bool = True,
                   usable_standalone: bool = True) -> Pattern | HarloweError:
    """Compiles fragments into a Pattern, or returns the first construction error."""

    def mapper(fragment) -> str | HarloweError:
        if isinstance(fragment, TypedVar):
            if not can_contain_typed_vars:
                return HarloweError.create(
                    "operation",
                    f"Optional string patterns, like ({name}:){' with min 0' if name == 'p-many' else ''}, "
                    "can't have typed variables inside them.",
                )
            datatype = fragment.datatype.spread() if fragment.rest else fragment.datatype
            sub = mapper(datatype)
            return sub if isinstance(sub, HarloweError) else "(" + sub + ")"
        if isinstance(fragment, Datatype):
            return fragment.regex_fragment(name, insensitive)
        if isinstance(fragment, str):
            return _escape(fragment, insensitive)
        return HarloweError.create(
            "datatype",
            f"The ({name}:) macro must only be given strings and datatypes, not {object_name(fragment)}.",
        )

    compiled = [mapper(a) for a in args]
    err = contains_error(compiled)
    if err:
        return err
    regex = make_regex(compiled)
    dbg("PATTERN", name, "regex", regex)
    return Pattern(
        name, full_args if full_args is not None else args, args, make_regex, regex,
        insensitive=insensitive, can_contain_typed_vars=can_contain_typed_vars,
        usable_standalone=usable_standalone,
    )


def _join(parts: List[str]) -> str:
    return "".join(parts)


def _alternation(parts: List[str]) -> str:
    return "(?:" + "|".join(parts) + ")"


def _optional(parts: List[str]) -> str:
    return "(?:" + "".join(parts) + ")?"


def _lookahead(parts: List[str]) -> str:
    return "(?!" + "".join(parts) + ")"


def sequence(*fragments) -> Pattern | HarloweError:
    """(p:) - every fragment in order."""
    return create_pattern("p", fragments, _join)


def either_of(*fragments) -> Pattern | HarloweError:
    """(p-either:) - the first fragment that matches."""
    return create_pattern("p-either", fragments, _alternation, can_contain_typed_vars=False)


def optional_of(*fragments) -> Pattern | HarloweError:
    """(p-opt:) - the sequence, or nothing."""
    return create_pattern("p-opt", fragments, _optional, can_contain_typed_vars=False)


def insensitive_of(*fragments) -> Pattern | HarloweError:
    """(p-ins:) - the sequence, ignoring letter case."""
    return create_pattern("p-ins", fragments, _join, insensitive=True)


def not_before(*fragments) -> Pattern | HarloweError:
    """(p-not-before:) - asserts the sequence doesn't follow; only usable inside another pattern."""
    return create_pattern("p-not-before", fragments, _lookahead, usable_standalone=False)


def repeat(*args) -> Pattern | HarloweError:
    """
    (p-many:) - the sequence repeated. Optional leading min and max numbers
    bound the count; a lone min means at least that many, and no bounds
    means one or more.
    """
    full_args = args
    args = list(args)
    minimum = maximum = None
    if args and is_number(args[0]):
        minimum = args.pop(0)
        maximum = args.pop(0) if args and is_number(args[0]) else math.inf
    limit = max_repeat()
    bounds = [minimum] if minimum is not None else []
    # An infinite max is how callers spell "no upper bound".
    if maximum is not None and not (math.isinf(maximum) and maximum > 0):
        bounds.append(maximum)
    for bound in bounds:
        if bound < 0 or not _integer(bound):
            return HarloweError.create(
                "datatype",
                f"The (p-many:) macro's min and max numbers must be non-negative whole numbers, not {object_name(bound)}.",
            )
        if bound > limit:
            return HarloweError.create(
                "datatype", f"The (p-many:) macro can't be given a min or max number larger than {limit}."
            )
    if maximum is not None and maximum < minimum:
        return HarloweError.create(
            "datatype", "The (p-many:) macro's max number must not be smaller than its min number."
        )
    if not args:
        return HarloweError.create(
            "datatype", "The (p-many:) macro needs to be given string patterns, not just min and max numbers."
        )
    bad = next((a for a in args if not isinstance(a, (str, Datatype, TypedVar))), None)
    if bad is not None:
        return HarloweError.create(
            "datatype",
            "This (p-many:) macro can only be given a min and max number followed by datatypes or strings, "
            f"but was also given {object_name(bad)}.",
        )
    if minimum is None:
        quantifier = "+"
    elif math.isinf(maximum):
        quantifier = "{%d,}" % minimum
    elif maximum == minimum:
        quantifier = "{%d}" % minimum
    else:
        quantifier = "{%d,%d}" % (minimum, maximum)

    def make_regex(parts: List[str]) -> str:
        return "(?:" + "".join(parts) + ")" + quantifier

    return create_pattern(
        "p-many", args, make_regex, full_args=full_args,
        can_contain_typed_vars=minimum is None or minimum > 0,
    )
