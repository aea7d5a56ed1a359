"""
The macro registry and dispatcher.

Macros are registered once, at start-up, under one or more names together
with a type signature. `MacroRegistry.run()` checks a call's arguments
against that signature before the macro's function ever sees them, so
macro implementations can trust their inputs.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from harlowe.harlowe_config import dbg
from harlowe.harlowe_context import EvaluationContext, Frame, VarScope
from harlowe.harlowe_datatypes import (
    Changer, Command, CustomMacro, Datamap, Dataset, HarloweValue, Spread, TypedVar, is_number,
)
from harlowe.harlowe_errors import HarloweError, contains_error, render_message
from harlowe.harlowe_lambda import Lambda
from harlowe.harlowe_values import and_list, insensitive_name, nth, object_name, type_name

# =================================================================
# Type signatures
# =================================================================

STRING, NUMBER, INTEGER, BOOLEAN, ARRAY, DATAMAP, DATASET = (
    "string", "number", "integer", "boolean", "array", "datamap", "dataset",
)

_KIND_CHECKS: Dict[str, Callable[[Any], bool]] = {
    STRING: lambda v: isinstance(v, str),
    NUMBER: is_number,
    INTEGER: lambda v: is_number(v) and not math.isinf(v) and float(v).is_integer(),
    BOOLEAN: lambda v: isinstance(v, bool),
    ARRAY: lambda v: isinstance(v, list),
    DATAMAP: lambda v: isinstance(v, Datamap),
    DATASET: lambda v: isinstance(v, Dataset),
}

_KIND_NAMES = {
    STRING: "a string",
    NUMBER: "a number",
    INTEGER: "a whole number",
    BOOLEAN: "a boolean",
    ARRAY: "an array",
    DATAMAP: "a datamap",
    DATASET: "a dataset",
}


@dataclass(frozen=True)
class Exact:
    """A primitive kind name, or a composite class checked with isinstance."""
    kind: Any


@dataclass(frozen=True)
class Optional_:
    inner: Any


@dataclass(frozen=True)
class Rest:
    """Every remaining argument, at least `minimum` of them."""
    inner: Any
    minimum: int = 0


@dataclass(frozen=True)
class Either:
    options: Tuple[Any, ...]


@dataclass(frozen=True)
class Wrapped:
    """A type whose mismatch error uses `message` as its explanation."""
    inner: Any
    message: str


@dataclass(frozen=True)
class Range:
    predicate: Callable[[Any], bool] = field(compare=False)
    name: str = ""


@dataclass(frozen=True)
class InsensitiveSet:
    names: Tuple[str, ...]


@dataclass(frozen=True)
class LambdaShape:
    clauses: frozenset


class AnyType:
    """Any storable value."""

    def __repr__(self):
        return "ANY"


ANY = AnyType()


def _entry(sig) -> Any:
    return sig if isinstance(sig, (Exact, Optional_, Rest, Either, Wrapped, Range,
                                   InsensitiveSet, LambdaShape, AnyType)) else Exact(sig)


def optional(sig) -> Optional_:
    return Optional_(_entry(sig))


def zero_or_more(sig) -> Rest:
    return Rest(_entry(sig), 0)


def rest(sig) -> Rest:
    return Rest(_entry(sig), 0)


def one_or_more(sig) -> Rest:
    return Rest(_entry(sig), 1)


def either(*sigs) -> Either:
    return Either(tuple(_entry(s) for s in sigs))


def wrapped(sig, message: str) -> Wrapped:
    return Wrapped(_entry(sig), message)


def number_range(minimum: float = 0, maximum: float = math.inf, integer: bool = False) -> Range:
    name = "a" + (" positive" if minimum > 0 else "") + (" whole" if integer else "") + " number"
    if minimum == 0 and maximum != math.inf:
        name += f" between 0 and {maximum}"
    elif maximum != math.inf:
        name += f" up to {maximum}"
    if minimum == 0 and maximum == math.inf:
        name = "a non-negative" + (" whole" if integer else "") + " number"

    def check(value) -> bool:
        if not is_number(value) or not minimum <= value <= maximum:
            return False
        return not integer or float(value).is_integer()

    return Range(check, name)


def non_negative_integer() -> Range:
    return number_range(0, math.inf, integer=True)


def positive_integer() -> Range:
    return number_range(1, math.inf, integer=True)


def positive_number() -> Range:
    return Range(lambda v: is_number(v) and v >= 0.0001, "a positive number")


def non_negative_number() -> Range:
    return number_range(0, math.inf)


def percent() -> Range:
    return number_range(0, 1)


def insensitive_set(*names: str) -> InsensitiveSet:
    return InsensitiveSet(tuple(names))


def lambda_shape(*clauses: str) -> LambdaShape:
    return LambdaShape(frozenset(clauses))


def signature_type_name(sig) -> str:
    """Names a signature entry for error messages ("a number", "(optional) a string")."""
    match sig:
        case Exact(kind=str(kind)):
            return _KIND_NAMES[kind]
        case Exact(kind=kind):
            return type_name(kind)
        case Optional_(inner=inner):
            return "(optional) " + signature_type_name(inner)
        case Rest(inner=inner) | Wrapped(inner=inner):
            return signature_type_name(inner)
        case Either(options=options):
            return " or ".join(signature_type_name(o) for o in options)
        case Range(name=name):
            return name
        case InsensitiveSet():
            return "a case-insensitive string name"
        case LambdaShape(clauses=clauses):
            ordered = [c for c in ("making", "where", "when", "via") if c in clauses]
            return 'a "' + " ".join(f"{c} ..." for c in ordered) + '" lambda'
        case AnyType():
            return "anything"
    raise TypeError(f"Not a type signature entry: {sig!r}")


_MISSING = object()

# Lambda clause-mismatch messages list clauses in this order.
_CLAUSE_ORDER = ("where", "when", "making", "via")


def check_type(arg: Any, sig) -> bool:
    match sig:
        case Optional_(inner=inner):
            return arg is _MISSING or check_type(arg, inner)
        case Either(options=options):
            return any(check_type(arg, o) for o in options)
        case Rest(inner=inner) | Wrapped(inner=inner):
            return check_type(arg, inner)
    if arg is _MISSING:
        return False
    match sig:
        case AnyType():
            return not (isinstance(arg, HarloweValue) and arg.UNSTORABLE)
        case Exact(kind=str(kind)):
            return _KIND_CHECKS[kind](arg)
        case Exact(kind=kind):
            return isinstance(arg, kind)
        case Range(predicate=predicate):
            return predicate(arg) is True
        case InsensitiveSet(names=names):
            return isinstance(arg, str) and insensitive_name(arg) in {insensitive_name(n) for n in names}
        case LambdaShape(clauses=clauses):
            return isinstance(arg, Lambda) and arg.shape == clauses
    raise TypeError(f"Not a type signature entry: {sig!r}")


@dataclass(frozen=True)
class Signature:
    """A compiled signature: the fixed entries, then at most one rest entry."""
    fixed: Tuple[Any, ...]
    rest: Optional[Rest] = None

    @property
    def entries(self) -> Tuple[Any, ...]:
        return self.fixed + ((self.rest,) if self.rest is not None else ())


def compile_signature(entries: Any) -> Signature:
    if isinstance(entries, Signature):
        return entries
    if not isinstance(entries, (list, tuple)):
        entries = [entries]
    entries = [_entry(e) for e in entries]
    for i, e in enumerate(entries):
        if isinstance(e, Rest) and i != len(entries) - 1:
            raise ValueError("A rest entry must be the last entry of a macro signature")
    if entries and isinstance(entries[-1], Rest):
        return Signature(tuple(entries[:-1]), entries[-1])
    return Signature(tuple(entries))


# =================================================================
# Registry
# =================================================================

@dataclass(frozen=True)
class MacroEntry:
    names: Tuple[str, ...]
    fn: Callable
    signature: Signature
    returns: str = "any"


def spread_arguments(args: Sequence) -> List[Any]:
    """Expands every Spread argument into the values it holds."""
    result: List[Any] = []
    for arg in args:
        if not isinstance(arg, Spread):
            result.append(arg)
            continue
        value = arg.value
        if isinstance(value, HarloweError):
            result.append(value)
        elif isinstance(value, str):
            result.extend(value)
        elif isinstance(value, (list, Dataset)):
            result.extend(value)
        elif isinstance(value, TypedVar):
            result.append(value.spread())
        else:
            result.append(HarloweError.create("operation", render_message("cannot_spread", actual=object_name(value))))
    return result


class MacroRegistry:
    """Maps insensitive macro names to their functions and signatures."""

    def __init__(self):
        self._macros: Dict[str, MacroEntry] = {}
        self._frozen = False

    def _private_add(self, names, fn: Callable, signature, returns: str) -> "MacroRegistry":
        if self._frozen:
            raise RuntimeError("Macros can't be registered after the registry is frozen")
        if isinstance(names, str):
            names = [names]
        entry = MacroEntry(tuple(names), fn, compile_signature(signature), returns)
        for name in names:
            key = insensitive_name(name)
            if key in self._macros:
                raise ValueError(f"A macro named '{name}' is already registered")
            self._macros[key] = entry
        return self

    def add(self, names, fn: Callable, signature=()) -> "MacroRegistry":
        """Registers a value macro: `fn(context, *args)` returns its result."""
        return self._private_add(names, fn, signature, "any")

    def add_changer(self, names, fn: Callable, mutation_fn: Callable, signature=()) -> "MacroRegistry":
        """
        Registers a changer macro. `fn(context, *args)` returns the Changer;
        `mutation_fn(descriptor, *params)` is what running it does.
        """
        first = names if isinstance(names, str) else names[0]
        Changer.register(first, mutation_fn)
        return self._private_add(names, fn, signature, "changer")

    def add_command(self, names, check_fn: Optional[Callable], run_fn: Callable, signature=()) -> "MacroRegistry":
        """
        Registers a command macro. `check_fn(*args)` may return an error up
        front; otherwise the call produces a Command that runs `run_fn` later.
        """
        first = names if isinstance(names, str) else names[0]

        def make_command(context, *args):
            if check_fn is not None:
                err = contains_error(check_fn(*args))
                if err:
                    return err
            return Command(first, args, run_fn)

        return self._private_add(names, make_command, signature, "command")

    def freeze(self) -> "MacroRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def has(self, name: str) -> bool:
        return insensitive_name(name) in self._macros

    def get(self, name: str) -> Optional[MacroEntry]:
        return self._macros.get(insensitive_name(name))

    def names(self) -> List[str]:
        return sorted({n for entry in self._macros.values() for n in entry.names})

    def run(self, name: str, args: Sequence, context: Optional[EvaluationContext] = None) -> Any:
        entry = self.get(name)
        if entry is None:
            return HarloweError.create(
                "macrocall",
                render_message("unknown_macro", name=name),
                render_message("unknown_macro_explanation"),
            )
        return _type_check_and_run(name, entry, args, context)

    def run_custom(self, macro: Any, args: Sequence, context: EvaluationContext) -> Any:
        """Calls a custom macro value with the same argument checks as a registered macro."""
        if not isinstance(macro, CustomMacro):
            return HarloweError.create("macrocall", render_message("not_custom_macro", actual=object_name(macro)))
        entry = MacroEntry((), _custom_macro_fn(macro), custom_macro_signature(macro))
        return _type_check_and_run(None, entry, args, context)


def _signature_info(label: str, invocation: str, signature: Signature) -> str:
    entries = signature.entries
    if not entries:
        return render_message("signature_empty", label=label, invocation=invocation)
    return render_message(
        "signature_info", label=label,
        types=and_list([signature_type_name(e) for e in entries]),
        ordered=len(entries) > 1,
    )


def _type_check_and_run(name: Optional[str], entry: MacroEntry, args: Sequence, context) -> Any:
    err = contains_error(*args)
    if err:
        return err
    args = spread_arguments(args)
    invocation = f"({name}:)" if name else ""
    label = f"the {invocation} macro" if name else "this custom macro"
    signature = entry.signature
    entries = signature.entries

    for ind in range(max(len(args), len(entries))):
        arg = args[ind] if ind < len(args) else _MISSING
        if arg is not _MISSING:
            err = contains_error(arg)
            if err:
                return err
        if ind < len(signature.fixed):
            sig = signature.fixed[ind]
        elif signature.rest is not None:
            sig = signature.rest.inner
            if arg is _MISSING:
                if ind - len(signature.fixed) < signature.rest.minimum:
                    return _argument_error(label, invocation, signature, ind, arg, sig)
                break
        else:
            return HarloweError.create(
                "datatype",
                render_message("too_many_values", count=len(args) - len(entries), label=label),
                _signature_info(label, invocation, signature),
            )
        if not check_type(arg, sig):
            return _argument_error(label, invocation, signature, ind, arg, sig)

    dbg("DISPATCH", name or "custom macro", "argc", len(args))
    return entry.fn(context, *args)


def _argument_error(label: str, invocation: str, signature: Signature, ind: int, arg: Any, sig) -> HarloweError:
    dbg("DISPATCH FAILED", label, "position", ind + 1)
    info = sig.message if isinstance(sig, Wrapped) else _signature_info(label, invocation, signature)
    if arg is _MISSING:
        count = len(signature.entries) - ind
        return HarloweError.create(
            "datatype",
            render_message("not_enough_values", label=label, count=count, plural="s" if count > 1 else ""),
            info,
        )
    if isinstance(arg, HarloweValue) and arg.UNSTORABLE and isinstance(sig, AnyType):
        return HarloweError.create(
            "datatype",
            render_message("unstorable_value", label=label, nth=nth(ind + 1), actual=object_name(arg)),
            info,
        )
    if isinstance(arg, Lambda) and isinstance(sig, LambdaShape):
        expected = and_list([f"a '{c}' clause" for c in _CLAUSE_ORDER if c in sig.clauses])
        actual = and_list([f"a '{c}' clause" for c in _CLAUSE_ORDER if c in arg.shape]) if arg.shape else "no clauses"
        return HarloweError.create(
            "datatype",
            render_message("wrong_lambda", label=label, nth=nth(ind + 1), expected=expected, actual=actual),
            info,
        )
    if isinstance(arg, str) and isinstance(sig, InsensitiveSet):
        return HarloweError.create(
            "datatype",
            render_message("wrong_name", actual=object_name(arg), label=label),
            render_message("wrong_name_explanation", names=and_list([f"'{n}'" for n in sig.names])),
        )
    return HarloweError.create(
        "datatype",
        render_message(
            "wrong_type", label=label, nth=nth(ind + 1),
            actual=object_name(arg), expected=signature_type_name(sig),
        ),
        info,
    )


# =================================================================
# Custom macros
# =================================================================

_BASE_TYPES = {
    "string": Exact(STRING),
    "number": Exact(NUMBER),
    "integer": Exact(INTEGER),
    "boolean": Exact(BOOLEAN),
    "array": Exact(ARRAY),
    "datamap": Exact(DATAMAP),
    "dataset": Exact(DATASET),
    "anything": ANY,
}


def custom_macro_signature(macro: CustomMacro) -> Signature:
    """The signature a custom macro's typed parameters describe."""
    entries = []
    for param in macro.params:
        datatype = param.datatype
        sig = None
        if not datatype.rest:
            sig = _BASE_TYPES.get(datatype.to_source())
        if sig is None:
            sig = Range(lambda v, dt=datatype: dt.is_type_of(v) is True, datatype.object_name)
        entries.append(Rest(sig, 0) if param.rest else sig)
    return compile_signature(entries)


def _custom_macro_fn(macro: CustomMacro) -> Callable:
    def run(context: EvaluationContext, *args):
        scope = VarScope(name="this custom macro")
        for i, param in enumerate(macro.params):
            value = list(args[i:]) if param.rest else args[i] if i < len(args) else None
            if value is None:
                continue
            if not param.rest:
                scope.define_type(param.name, param.datatype)
            result = scope.set(param.name, value)
            if result is not True:
                return result
        context.push_frame(Frame.derive(context.stack_top, temp_variables=scope))
        try:
            output = macro.body(context)
        finally:
            context.pop_frame()
        err = contains_error(output)
        if err:
            return HarloweError.create("custommacro", render_message("custom_macro_errors", errors=err.message))
        if output is None:
            return HarloweError.create("custommacro", render_message("custom_macro_no_output"))
        return output

    return run


# =================================================================
# The process-wide registry
# =================================================================

_default: Optional[MacroRegistry] = None


def default_registry() -> MacroRegistry:
    """The shared registry, loaded with the standard library and frozen on first use."""
    global _default
    if _default is None:
        from harlowe.harlowe_macrolib import install
        registry = MacroRegistry()
        install(registry)
        _default = registry.freeze()
    return _default
