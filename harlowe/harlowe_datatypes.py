"""
Defines the composite data types of the Harlowe value runtime.

Primitive values are plain Python objects: numbers are `int`/`float`,
strings are `str`, booleans are `bool` and arrays are `list`. Everything
else a story can hold is defined here, on top of the `HarloweValue`
capability interface.
"""
import collections.abc
import colorsys
import math
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from harlowe.harlowe_errors import HarloweError, contains_error


def is_number(value: Any) -> bool:
    # bool is a subclass of int, so rule it out first
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return not math.isnan(value)
    return isinstance(value, int)


def format_number(n) -> str:
    if isinstance(n, float):
        if math.isinf(n):
            return "Infinity" if n > 0 else "-Infinity"
        if n.is_integer():
            return str(int(n))
        return repr(n)
    return str(n)


# =================================================================
# Capability interface
# =================================================================

class HarloweValue(ABC):
    """
    Base class for every composite value.

    Subclasses provide a type identifier, a human-readable type name, their
    own notion of structural identity (`is_`), cloning and source printing.
    Types that cannot be stored in variables set `UNSTORABLE`.
    """
    TYPE_ID = ""
    TYPE_NAME = ""
    UNSTORABLE = False

    @property
    def object_name(self) -> str:
        return self.TYPE_NAME

    def is_(self, other) -> bool:
        return self is other

    def clone(self):
        return self

    @abstractmethod
    def to_source(self) -> str:
        ...

    def __eq__(self, other):
        if not isinstance(other, HarloweValue):
            return NotImplemented
        return self.is_(other)

    def __hash__(self):
        return hash((self.TYPE_ID, self.to_source()))

    def __repr__(self):
        return f"<{type(self).__name__} {self.to_source()}>"


# =================================================================
# Collections
# =================================================================

class Datamap(collections.abc.MutableMapping):
    """A mapping from string or number names to values."""
    TYPE_ID = "datamap"
    TYPE_NAME = "a datamap"

    def __init__(self, data=None):
        self._data: Dict[Any, Any] = {}
        if data:
            items = data.items() if isinstance(data, collections.abc.Mapping) else data
            for key, value in items:
                self[key] = value

    @classmethod
    def create(cls, *args) -> "Datamap | HarloweError":
        """Builds a datamap from alternating names and values, as (dm:) does."""
        from harlowe.harlowe_values import clone, object_name, unstorable_value, valid_datamap_name
        if len(args) % 2:
            return HarloweError.create(
                "macrocall",
                f"{object_name(args[-1])} lacks a matching value.",
                "Datamaps must be given pairs of names and values, one after another.",
            )
        dm = cls()
        for key, value in zip(args[::2], args[1::2]):
            err = contains_error(key, value)
            if err:
                return err
            valid = valid_datamap_name(dm, key)
            if valid is not True:
                return valid
            if key in dm._data:
                return HarloweError.create(
                    "operation",
                    f"You used the same data name ({object_name(key)}) twice in the same datamap.",
                )
            bad = unstorable_value(value)
            if bad is not None:
                return HarloweError.create("operation", f"{object_name(bad)} can't be stored in a datamap.")
            dm._data[key] = clone(value)
        return dm

    def get_property(self, name) -> Any:
        """Looks up a data name, returning a `property` error when it is missing or malformed."""
        from harlowe.harlowe_values import object_name, valid_datamap_name
        valid = valid_datamap_name(self, name)
        if valid is not True:
            return HarloweError.create("property", valid.message)
        if name not in self._data:
            return HarloweError.create("property", f"I can't find {object_name(name)} as a data name in this datamap.")
        return self._data[name]

    def __getitem__(self, key):
        return self._data[key]

    def __setitem__(self, key, value):
        from harlowe.harlowe_values import valid_datamap_name
        if isinstance(key, bool) or not (isinstance(key, str) or is_number(key)):
            raise TypeError(f"Datamap key must be a str or a number, not {type(key)}")
        valid = valid_datamap_name(self, key)
        if valid is not True:
            raise KeyError(valid.message)
        self._data[key] = value

    def __delitem__(self, key):
        del self._data[key]

    def __iter__(self):
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def copy(self) -> "Datamap":
        dm = Datamap()
        dm._data = dict(self._data)
        return dm

    def to_source(self) -> str:
        from harlowe.harlowe_printer import SourcePrinter
        return SourcePrinter().pformat(self)

    def __repr__(self):
        return f"<Datamap {self.to_source()}>"


class Dataset(collections.abc.MutableSet):
    """
    An unordered collection of unique values.

    Uniqueness is structural (two arrays with equal contents are the same
    member), and iteration always yields members in natural sort order of
    their printed form, so two datasets with equal members iterate alike.
    """
    TYPE_ID = "dataset"
    TYPE_NAME = "a dataset"

    def __init__(self, values: Iterable = ()):
        self._items: List[Any] = []
        for value in values:
            self.add(value)

    @classmethod
    def _from_iterable(cls, it):
        return cls(it)

    @classmethod
    def create(cls, *values) -> "Dataset | HarloweError":
        from harlowe.harlowe_values import clone, object_name, unstorable_value
        err = contains_error(*values)
        if err:
            return err
        for value in values:
            bad = unstorable_value(value)
            if bad is not None:
                return HarloweError.create("operation", f"{object_name(bad)} can't be stored in a dataset.")
        return cls(clone(v) for v in values)

    def __contains__(self, value) -> bool:
        from harlowe.harlowe_values import equals
        return any(equals(item, value) for item in self._items)

    def __iter__(self):
        from harlowe.harlowe_values import natural_sort_key
        return iter(sorted(self._items, key=natural_sort_key))

    def __len__(self) -> int:
        return len(self._items)

    def add(self, value):
        if value not in self:
            self._items.append(value)

    def discard(self, value):
        from harlowe.harlowe_values import equals
        self._items = [item for item in self._items if not equals(item, value)]

    def copy(self) -> "Dataset":
        ds = Dataset()
        ds._items = list(self._items)
        return ds

    def to_source(self) -> str:
        from harlowe.harlowe_printer import SourcePrinter
        return SourcePrinter().pformat(self)

    def __repr__(self):
        return f"<Dataset {self.to_source()}>"


class Spread(HarloweValue):
    """Marks a value written with `...` so the dispatcher expands it into separate arguments."""
    TYPE_ID = "spread"
    TYPE_NAME = "a spread value"
    UNSTORABLE = True

    def __init__(self, value: Any):
        self.value = value

    def is_(self, other) -> bool:
        from harlowe.harlowe_values import equals
        return isinstance(other, Spread) and equals(self.value, other.value)

    def to_source(self) -> str:
        from harlowe.harlowe_values import to_source
        return "..." + to_source(self.value)


# =================================================================
# Changers and commands
# =================================================================

class Changer(HarloweValue):
    """
    A styling instruction: one node of an immutable chain of macro calls.

    Each node remembers the macro that made it and that macro's arguments.
    Running the chain hands a descriptor to every node's mutation function
    in order.
    """
    TYPE_ID = "changer"
    TYPE_NAME = "a changer"

    _mutators: Dict[str, Callable] = {}

    def __init__(self, macro_name: str, params: Iterable = (), next: Optional["Changer"] = None):
        self.macro_name = macro_name
        self.params: Tuple[Any, ...] = tuple(params)
        self.next = next

    @classmethod
    def register(cls, macro_name: str, fn: Callable):
        existing = cls._mutators.get(macro_name)
        if existing is not None and existing is not fn:
            raise ValueError(f"A changer mutation for '{macro_name}' is already registered")
        cls._mutators[macro_name] = fn

    def nodes(self):
        node = self
        while node is not None:
            yield node
            node = node.next

    def compose(self, other: Optional["Changer"]) -> "Changer":
        head = other
        for node in reversed(list(self.nodes())):
            head = Changer(node.macro_name, node.params, head)
        return head

    def __add__(self, other):
        if not isinstance(other, Changer):
            return NotImplemented
        return self.compose(other)

    def run(self, descriptor) -> Any:
        """Applies every node to `descriptor`, stopping at the first error."""
        for node in self.nodes():
            fn = self._mutators.get(node.macro_name)
            if fn is None:
                raise KeyError(f"No changer mutation registered for '{node.macro_name}'")
            try:
                result = fn(descriptor, *node.params)
            except Exception as e:
                return HarloweError.from_exception(e)
            err = contains_error(result)
            if err:
                return err
        return descriptor

    def summary(self, descriptor_factory: Callable[[], Any]) -> Any:
        return self.run(descriptor_factory())

    def is_(self, other) -> bool:
        from harlowe.harlowe_values import equals
        if not isinstance(other, Changer):
            return False
        mine, theirs = list(self.nodes()), list(other.nodes())
        if len(mine) != len(theirs):
            return False
        return all(
            a.macro_name == b.macro_name and equals(list(a.params), list(b.params))
            for a, b in zip(mine, theirs)
        )

    def clone(self) -> "Changer":
        return self.compose(None)

    @property
    def object_name(self) -> str:
        from harlowe.harlowe_values import to_source
        first = f"({self.macro_name}:"
        if self.params and isinstance(self.params[0], (str, int, float)):
            first += to_source(self.params[0])
        first += ")"
        others = [f"({n.macro_name}:)" for n in list(self.nodes())[1:]]
        name = f"a {first} changer"
        if not others:
            return name
        if len(others) > 2:
            shown = others[:2] + [f"{len(others) - 2} other changer{'s' if len(others) > 3 else ''}"]
        else:
            shown = others
        joined = shown[0] if len(shown) == 1 else ", ".join(shown[:-1]) + " and " + shown[-1]
        return f"{name} combined with {joined}"

    def to_source(self) -> str:
        from harlowe.harlowe_values import to_source
        parts = []
        for node in self.nodes():
            parts.append(f"({node.macro_name}:" + ",".join(to_source(p) for p in node.params) + ")")
        return "+".join(parts)


class Command(HarloweValue):
    """A deferred macro call, run later by whoever renders it."""
    TYPE_ID = "command"
    TYPE_NAME = "a command"

    def __init__(self, macro_name: str, params: Iterable, run_fn: Callable):
        self.macro_name = macro_name
        self.params = tuple(params)
        self._run_fn = run_fn

    def run(self, context) -> Any:
        return self._run_fn(context, *self.params)

    @property
    def object_name(self) -> str:
        return f"a ({self.macro_name}:) command"

    def to_source(self) -> str:
        from harlowe.harlowe_values import to_source
        return f"({self.macro_name}:" + ",".join(to_source(p) for p in self.params) + ")"


# =================================================================
# Colours
# =================================================================

_HEX_RE = re.compile(r"^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


class Colour(HarloweValue):
    TYPE_ID = "colour"
    TYPE_NAME = "a colour"

    def __init__(self, r: float, g: float, b: float, a: float = 1):
        self.r, self.g, self.b, self.a = r, g, b, a

    @classmethod
    def from_hex(cls, text: str) -> Optional["Colour"]:
        m = _HEX_RE.match(text)
        if not m:
            return None
        digits = m.group(1)
        if len(digits) == 3:
            digits = "".join(c * 2 for c in digits)
        return cls(int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))

    @classmethod
    def from_hsl(cls, h: float, s: float, l: float, a: float = 1) -> "Colour":
        """Hue is in degrees and wraps around; saturation and lightness are fractions."""
        r, g, b = colorsys.hls_to_rgb((h % 360) / 360, l, s)
        return cls(round(r * 255), round(g * 255), round(b * 255), a)

    def to_hsla(self) -> Dict[str, float]:
        h, l, s = colorsys.rgb_to_hls(self.r / 255, self.g / 255, self.b / 255)
        return {"h": round(h * 360) % 360, "s": s, "l": l, "a": self.a}

    def compose(self, other: "Colour") -> "Colour":
        return Colour(
            min(round((self.r + other.r) * 0.6), 255),
            min(round((self.g + other.g) * 0.6), 255),
            min(round((self.b + other.b) * 0.6), 255),
            (self.a + other.a) / 2,
        )

    def __add__(self, other):
        if not isinstance(other, Colour):
            return NotImplemented
        return self.compose(other)

    def is_(self, other) -> bool:
        return isinstance(other, Colour) and (self.r, self.g, self.b, self.a) == (other.r, other.g, other.b, other.a)

    def clone(self) -> "Colour":
        return Colour(self.r, self.g, self.b, self.a)

    def to_css(self) -> str:
        return f"rgba({format_number(self.r)}, {format_number(self.g)}, {format_number(self.b)}, {format_number(self.a)})"

    def to_source(self) -> str:
        parts = (self.r, self.g, self.b, self.a)
        return "(rgba:" + ",".join(format_number(p) for p in parts) + ")"


class Gradient(HarloweValue):
    TYPE_ID = "gradient"
    TYPE_NAME = "a gradient"

    def __init__(self, angle: float, stops: Iterable[Tuple[float, Colour]]):
        self.angle = angle
        self.stops: Tuple[Tuple[float, Colour], ...] = tuple(sorted(stops, key=lambda s: s[0]))

    def is_(self, other) -> bool:
        if not isinstance(other, Gradient) or self.angle != other.angle:
            return False
        if len(self.stops) != len(other.stops):
            return False
        return all(s1 == s2 and c1.is_(c2) for (s1, c1), (s2, c2) in zip(self.stops, other.stops))

    def clone(self) -> "Gradient":
        return Gradient(self.angle, [(s, c.clone()) for s, c in self.stops])

    def to_source(self) -> str:
        parts = [format_number(self.angle)]
        for stop, colour in self.stops:
            parts.append(format_number(stop))
            parts.append(colour.to_source())
        return "(gradient:" + ",".join(parts) + ")"


# =================================================================
# Names: hooks, typed variables, custom macros
# =================================================================

class HookSet(HarloweValue):
    """A selector over one or more named hooks."""
    TYPE_ID = "hookname"
    TYPE_NAME = "a hook name"

    def __init__(self, names: Iterable[str]):
        self.names: Tuple[str, ...] = tuple(names)

    @classmethod
    def create(cls, name: str) -> "HookSet | HarloweError":
        name = name.lstrip("?")
        if not name or not re.fullmatch(r"[\w-]+", name):
            return HarloweError.create("syntax", f"'{name}' isn't a valid hook name.")
        return cls((name,))

    def compose(self, other: "HookSet") -> "HookSet":
        return HookSet(self.names + tuple(n for n in other.names if n not in self.names))

    def __add__(self, other):
        if not isinstance(other, HookSet):
            return NotImplemented
        return self.compose(other)

    @property
    def object_name(self) -> str:
        return f"the hook name {self.to_source()}" if len(self.names) == 1 else f"the hook names {self.to_source()}"

    def is_(self, other) -> bool:
        return isinstance(other, HookSet) and set(self.names) == set(other.names)

    def to_source(self) -> str:
        return " + ".join("?" + n for n in self.names)


class TypedVar(HarloweValue):
    """A variable name with a datatype restriction, as in `num-type _x`."""
    TYPE_ID = "typedvar"
    TYPE_NAME = "a typed variable name"
    UNSTORABLE = True

    def __init__(self, datatype, name: str, rest: bool = False):
        self.datatype = datatype
        self.name = name
        self.rest = rest

    @classmethod
    def create(cls, datatype, name: str) -> "TypedVar | HarloweError":
        from harlowe.harlowe_patterns import Datatype
        from harlowe.harlowe_values import object_name
        if not isinstance(name, str) or not name:
            raise TypeError(f"TypedVar name must be a non-empty str, not {name!r}")
        err = contains_error(datatype)
        if err:
            return err
        if not isinstance(datatype, Datatype):
            return HarloweError.create(
                "operation",
                f"I can't use {object_name(datatype)} as the type of the variable {name}.",
            )
        return cls(datatype, name)

    def spread(self) -> "TypedVar":
        return TypedVar(self.datatype, self.name, rest=True)

    @property
    def object_name(self) -> str:
        return f"the typed variable name {self.to_source()}"

    def is_(self, other) -> bool:
        return (
            isinstance(other, TypedVar)
            and other.name == self.name
            and other.rest == self.rest
            and self.datatype.is_(other.datatype)
        )

    def to_source(self) -> str:
        return ("..." if self.rest else "") + self.datatype.to_source() + "-type " + self.name


class CustomMacro(HarloweValue):
    """
    A macro defined by the story: typed parameters and a body.

    The body is a host callable taking the evaluation context; it reads its
    arguments from the top frame's temp variables and returns its output.
    """
    TYPE_ID = "macro"
    TYPE_NAME = "a custom macro"

    def __init__(self, params: Iterable[TypedVar], body: Callable, source: str = ""):
        self.params: Tuple[TypedVar, ...] = tuple(params)
        self.body = body
        self.source = source

    @classmethod
    def create(cls, params: Iterable[Any], body: Callable, source: str = "") -> "CustomMacro | HarloweError":
        from harlowe.harlowe_values import object_name
        params = list(params)
        err = contains_error(*params)
        if err:
            return err
        seen = set()
        for i, param in enumerate(params):
            if not isinstance(param, TypedVar):
                return HarloweError.create(
                    "datatype",
                    f"The (macro:) macro must only be given typed variable names, not {object_name(param)}.",
                )
            if param.rest and i != len(params) - 1:
                return HarloweError.create(
                    "datatype",
                    f"The spread typed variable {param.name} must be the last one given to (macro:).",
                )
            if param.name in seen:
                return HarloweError.create("datatype", f"This custom macro has two variables named '{param.name}'.")
            seen.add(param.name)
        return cls(params, body, source)

    def to_source(self) -> str:
        if self.source:
            return self.source
        return "(macro:" + "".join(p.to_source() + "," for p in self.params) + "[])"
