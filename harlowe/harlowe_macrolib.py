"""
The standard macro library.

`install(registry)` registers every built-in macro. Each macro function
takes the evaluation context followed by its already type-checked
arguments, and returns a value or an error.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List

from harlowe.harlowe_datatypes import (
    Changer, Colour, Datamap, Dataset, Gradient, HookSet, TypedVar, is_number,
)
from harlowe.harlowe_errors import HarloweError, contains_error
from harlowe.harlowe_lambda import FILTERED, Lambda
from harlowe.harlowe_macros import (
    ANY, ARRAY, BOOLEAN, DATAMAP, INTEGER, NUMBER, STRING,
    MacroRegistry, either, insensitive_set, lambda_shape, non_negative_integer,
    number_range, one_or_more, percent, zero_or_more,
)
from harlowe.harlowe_patterns import (
    Datatype, either_of, insensitive_of, not_before, optional_of, repeat, sequence,
)
from harlowe.harlowe_values import (
    clone, equals, insensitive_name, natural_sort_key, object_name, range_of, subset, to_source, unstorable_value,
)


@dataclass
class ChangeDescriptor:
    """A minimal description of the styling a chain of changers produces."""
    styles: List[Dict[str, Any]] = field(default_factory=list)


# =================================================================
# Data structures
# =================================================================

def _array(context, *values):
    return [clone(v) for v in values]


def _datamap(context, *args):
    return Datamap.create(*args)


def _dataset(context, *values):
    return Dataset.create(*values)


def _source(context, value):
    return to_source(value)


def _datatype(context, value):
    datatype = Datatype.of(value)
    if datatype is None:
        return HarloweError.create("datatype", f"I can't determine the datatype of {object_name(value)}.")
    return datatype


def _range(context, a, b):
    return range_of(int(a), int(b))


def _subarray(context, array, a, b):
    return subset(array, int(a), int(b))


def _substring(context, string, a, b):
    return subset(string, int(a), int(b))


def _count(context, container, *values):
    if isinstance(container, str):
        bad = next((v for v in values if not isinstance(v, str) or not v), None)
        if bad is not None:
            return HarloweError.create(
                "datatype",
                f"If (count:) is given a string, it can only count non-empty substrings, not {object_name(bad)}.",
            )
        return sum(container.count(v) for v in values)
    return sum(1 for item in container for v in values if equals(item, v))


# =================================================================
# Lambda macros
# =================================================================

def _find(context, lam, *values):
    return lam.filter(context, values)


def _altered(context, lam, *values):
    result = []
    for pos, value in enumerate(values, 1):
        altered = lam.apply(context, loop=value, pos=pos)
        err = contains_error(altered)
        if err:
            return err
        result.append(value if altered is FILTERED else altered)
    return result


def _dm_altered(context, lam, datamap):
    result = datamap.copy()
    for pos, key in enumerate(sorted(datamap.keys(), key=natural_sort_key), 1):
        entry = Datamap.create("name", key, "value", datamap[key])
        altered = lam.apply(context, loop=entry, pos=pos)
        err = contains_error(altered)
        if err:
            return err
        if altered is FILTERED:
            continue
        bad = unstorable_value(altered)
        if bad is not None:
            return HarloweError.create("operation", f"{object_name(bad)} can't be stored in a datamap.")
        result[key] = altered
    return result


def _passing(test):
    def run(context, lam, *values):
        passed = lam.filter(context, values)
        if isinstance(passed, HarloweError):
            return passed
        return test(len(passed), len(values))
    return run


def _folded(context, lam, *values):
    return lam.fold(context, values)


def _sorted(context, *args):
    values = list(args)
    keys = values
    if values and isinstance(values[0], Lambda):
        lam = values.pop(0)
        if lam.shape != frozenset({"via"}):
            return HarloweError.create(
                "datatype", f"The (sorted:) macro's 1st value should be a \"via\" lambda, not {object_name(lam)}."
            )
        keys = []
        for pos, value in enumerate(values, 1):
            key = lam.apply(context, loop=value, pos=pos)
            err = contains_error(key)
            if err:
                return err
            keys.append(key)
    bad = next((k for k in keys if not (isinstance(k, str) or is_number(k))), None)
    if bad is not None:
        return HarloweError.create(
            "datatype", f"(sorted:) can only sort strings and numbers, not {object_name(bad)}."
        )
    order = sorted(range(len(values)), key=lambda i: natural_sort_key(keys[i]))
    return [values[i] for i in order]


# =================================================================
# Colours
# =================================================================

def _rgb(context, r, g, b, a=1):
    return Colour(r, g, b, a)


def _hsl(context, h, s, l, a=1):
    return Colour.from_hsl(h, s, l, a)


def _gradient(context, angle, *stops):
    if len(stops) < 4 or len(stops) % 2:
        return HarloweError.create(
            "datatype",
            "(gradient:) must be given a degree angle followed by at least two pairs of percentages and colours.",
        )
    pairs = []
    for stop, colour in zip(stops[::2], stops[1::2]):
        if not is_number(stop) or not isinstance(colour, Colour):
            return HarloweError.create(
                "datatype",
                f"(gradient:) expected a percentage followed by a colour, not {object_name(stop)} "
                f"followed by {object_name(colour)}.",
            )
        pairs.append((stop, colour))
    return Gradient(angle, pairs)


# =================================================================
# Changers
# =================================================================

def _changer_maker(name: str):
    def make(context, *args):
        return Changer(name, args)
    return make


def _css_colour(value) -> str:
    if isinstance(value, Colour):
        return value.to_css()
    parsed = Colour.from_hex(value)
    return parsed.to_css() if parsed is not None else value


def _text_colour_mutation(descriptor, colour):
    descriptor.styles.append({"color": _css_colour(colour)})


def _text_style_mutation(descriptor, style):
    canonical = next(s for s in TEXT_STYLES if insensitive_name(s) == insensitive_name(style))
    descriptor.styles.append({"text-style": canonical})


def _font_mutation(descriptor, font):
    descriptor.styles.append({"font-family": font})


TEXT_STYLES = (
    "none", "bold", "italic", "underline", "double-underline", "wavy-underline", "strike",
    "double-strike", "wavy-strike", "superscript", "subscript", "blink", "shudder", "mark",
    "condense", "expand", "outline", "shadow", "emboss", "smear", "blur", "blurrier", "mirror",
    "upside-down", "tall", "flat", "fade-in-out", "rumble", "sway", "buoy", "fidget",
)


# =================================================================
# Misc
# =================================================================

def _hook(context, name):
    return HookSet.create(name)


def _error(context, message):
    if not message:
        return HarloweError.create("datatype", "The (error:) macro needs a non-empty message string.")
    return HarloweError.create("user", message)


def _run_assert(context, condition):
    if condition:
        return ""
    return HarloweError.create("assertion", "An assertion failed: the condition was false.")


def _pattern_fragment():
    return zero_or_more(either(STRING, Datatype, TypedVar))


def install(registry: MacroRegistry) -> MacroRegistry:
    """Registers the standard library into `registry`."""
    byte = number_range(0, 255)
    (registry
        # Data structures
        .add(["a", "array"], _array, [zero_or_more(ANY)])
        .add(["dm", "datamap"], _datamap, [zero_or_more(ANY)])
        .add(["ds", "dataset"], _dataset, [zero_or_more(ANY)])
        .add("source", _source, [ANY])
        .add("datatype", _datatype, [ANY])
        .add("range", _range, [INTEGER, INTEGER])
        .add("subarray", _subarray, [ARRAY, INTEGER, INTEGER])
        .add("substring", _substring, [STRING, INTEGER, INTEGER])
        .add("count", _count, [either(STRING, ARRAY), one_or_more(ANY)])

        # Lambdas
        .add("find", _find, [lambda_shape("where"), zero_or_more(ANY)])
        .add("altered", _altered, [either(lambda_shape("via"), lambda_shape("where", "via")), zero_or_more(ANY)])
        .add("dm-altered", _dm_altered, [either(lambda_shape("via"), lambda_shape("where", "via")), DATAMAP])
        .add(["all-pass", "pass"], _passing(lambda passed, total: passed == total),
             [lambda_shape("where"), zero_or_more(ANY)])
        .add("some-pass", _passing(lambda passed, total: passed > 0), [lambda_shape("where"), zero_or_more(ANY)])
        .add("none-pass", _passing(lambda passed, total: passed == 0), [lambda_shape("where"), zero_or_more(ANY)])
        .add("folded", _folded,
             [either(lambda_shape("making", "via"), lambda_shape("making", "via", "where")), one_or_more(ANY)])
        .add("sorted", _sorted, [zero_or_more(ANY)])

        # Patterns
        .add(["p", "pattern"], lambda context, *args: sequence(*args), [_pattern_fragment()])
        .add(["p-either", "pattern-either"], lambda context, *args: either_of(*args),
             [one_or_more(either(STRING, Datatype, TypedVar))])
        .add(["p-opt", "pattern-opt", "p-optional", "pattern-optional"],
             lambda context, *args: optional_of(*args), [_pattern_fragment()])
        .add(["p-many", "pattern-many"], lambda context, *args: repeat(*args),
             [zero_or_more(either(non_negative_integer(), STRING, Datatype, TypedVar))])
        .add(["p-ins", "pattern-ins", "p-insensitive", "pattern-insensitive"],
             lambda context, *args: insensitive_of(*args), [_pattern_fragment()])
        .add(["p-not-before", "pattern-not-before"], lambda context, *args: not_before(*args),
             [_pattern_fragment()])

        # Colours
        .add("rgb", _rgb, [byte, byte, byte])
        .add("rgba", _rgb, [byte, byte, byte, percent()])
        .add("hsl", _hsl, [NUMBER, percent(), percent()])
        .add("hsla", _hsl, [NUMBER, percent(), percent(), percent()])
        .add("gradient", _gradient, [NUMBER, one_or_more(either(percent(), Colour))])

        # Changers
        .add_changer(["text-colour", "text-color", "colour", "color"], _changer_maker("text-colour"),
                     _text_colour_mutation, [either(STRING, Colour)])
        .add_changer("text-style", _changer_maker("text-style"), _text_style_mutation,
                     [insensitive_set(*TEXT_STYLES)])
        .add_changer("font", _changer_maker("font"), _font_mutation, [STRING])

        # Misc
        .add("hook", _hook, [STRING])
        .add("error", _error, [STRING])
        .add_command("assert", None, _run_assert, [BOOLEAN])
     )
    return registry
