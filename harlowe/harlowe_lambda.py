"""
Lambdas: user-written functions made of named clauses.

A lambda has an optional loop variable and up to four clauses:
`making _x` (an accumulator variable), `where` or `when` (a guard) and
`via` (a transform). Clause bodies are expression text; they are evaluated
by the host's EvaluationContext inside a frame this module pushes.
"""
from typing import Any, Iterable, List, Optional

from harlowe.harlowe_config import dbg
from harlowe.harlowe_context import EvaluationContext, Frame, VarScope
from harlowe.harlowe_datatypes import HarloweValue, TypedVar
from harlowe.harlowe_errors import HarloweError, contains_error
from harlowe.harlowe_values import object_name

CLAUSES = ("making", "where", "when", "via")


class _Filtered:
    """The result of a lambda whose guard rejected its value."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "FILTERED"

    def __bool__(self):
        return False


FILTERED = _Filtered()
_UNSET = object()


def _syntax_error(message: str, explanation: Optional[str] = None) -> HarloweError:
    return HarloweError.create("syntax", message, explanation)


def _variable(subject) -> tuple:
    """Splits a lambda variable into (name, datatype)."""
    if isinstance(subject, TypedVar):
        return subject.name, subject.datatype
    return subject, None


class Lambda(HarloweValue):
    """An immutable lambda value. Adding a clause with `create()` returns a new lambda."""
    TYPE_ID = "lambda"
    TYPE_NAME = "a lambda"

    def __init__(self, loop: Optional[str] = None, loop_type=None, making: Optional[str] = None, making_type=None,
                 where: Optional[str] = None, when: Optional[str] = None, via: Optional[str] = None,
                 source: str = ""):
        self.loop = loop
        self.loop_type = loop_type
        self.making = making
        self.making_type = making_type
        self.where = where
        self.when = when
        self.via = via
        self.source = source

    def _fields(self) -> dict:
        return {
            "loop": self.loop, "loop_type": self.loop_type,
            "making": self.making, "making_type": self.making_type,
            "where": self.where, "when": self.when, "via": self.via,
        }

    @classmethod
    def create(cls, subject: Any, clause_type: str, clause: Any, source: str = "") -> "Lambda | HarloweError":
        """
        Builds a lambda from a subject and one clause.

        `subject` is None, a temp variable name, a TypedVar, or an existing
        lambda to add the clause to. `clause` is expression text, or a
        variable name/TypedVar for `making`.
        """
        if clause_type not in CLAUSES:
            raise ValueError(f"Unknown lambda clause type '{clause_type}'")
        err = contains_error(subject)
        if err:
            return err

        if isinstance(subject, Lambda):
            if clause_type == "when" or subject.when is not None:
                other = next((c for c in CLAUSES if c != "when" and subject.has(c)), clause_type)
                return _syntax_error(f"A 'when' lambda cannot have any other clauses, such as '{other}'.")
            if subject.has(clause_type) and not (clause_type == "where" and subject.where == "true"):
                return _syntax_error(f"This lambda has two '{clause_type}' clauses.")
            fields = subject._fields()
        else:
            if clause_type == "when" and subject is not None:
                return _syntax_error(
                    "A 'when' lambda shouldn't begin with a temporary variable "
                    "(just use 'when' followed by the condition)."
                )
            if subject is not None and not isinstance(subject, (str, TypedVar)):
                return _syntax_error("This lambda needs to start with a single temporary variable.")
            loop, loop_type = _variable(subject)
            fields = {"loop": loop, "loop_type": loop_type}

        if clause_type == "making":
            if not isinstance(clause, (str, TypedVar)):
                return _syntax_error("A 'making' clause needs a temporary variable after it.")
            fields["making"], fields["making_type"] = _variable(clause)
        else:
            if not isinstance(clause, str):
                raise TypeError(f"Lambda '{clause_type}' clause must be expression text, not {type(clause)}")
            fields[clause_type] = clause

        result = cls(source=source, **fields)
        names = [n for n in (result.making, result.loop) if n]
        if len(set(names)) != len(names):
            return _syntax_error(
                f"This lambda has two variables named '{names[0]}'.",
                "Lambdas should have all-unique parameter names.",
            )
        return result

    @classmethod
    def each(cls, subject: Any, source: str = "") -> "Lambda | HarloweError":
        """`each _x`, shorthand for `_x where true`."""
        if subject is None:
            return _syntax_error("This 'each' lambda needs a temporary variable after 'each'.")
        if not source and isinstance(subject, str):
            source = f"each {subject}"
        return cls.create(subject, "where", "true", source)

    def has(self, clause_type: str) -> bool:
        return getattr(self, clause_type) is not None

    @property
    def shape(self) -> frozenset:
        return frozenset(c for c in CLAUSES if self.has(c))

    # ---------------------------------------------------------------

    def apply(self, context: EvaluationContext, *, loop: Any = _UNSET, pos: Optional[int] = None,
              making: Any = _UNSET, pass_value: Any = True, fail_value: Any = FILTERED,
              ignore_via: bool = False, temp_variables: Optional[VarScope] = None) -> Any:
        """
        Runs the lambda once. A guard that fails gives `fail_value`; a guard
        that passes with no `via` (or with `ignore_via`) gives `pass_value`.
        """
        caller = context.stack_top
        if temp_variables is None:
            temp_variables = VarScope(parent=caller.temp_variables if caller is not None else None)

        for name, datatype, value in ((self.loop, self.loop_type, loop), (self.making, self.making_type, making)):
            if not name or value is _UNSET:
                continue
            if datatype is not None:
                temp_variables.define_type(name, datatype)
            result = temp_variables.set(name, value)
            if result is not True:
                return result

        if self.making is None and self.when is None and loop is not _UNSET:
            it = loop
        else:
            it = HarloweError.create("operation", f"I can't use 'it', or an implied 'it', in {object_name(self)}.")
        frame = Frame.derive(
            caller, temp_variables=temp_variables, lambda_pos=None if self.when is not None else pos, it=it,
        )
        dbg("LAMBDA", sorted(self.shape), "pos", pos)

        context.push_frame(frame)
        try:
            guard = self.where if self.where is not None else self.when
            if guard is not None:
                condition = context.evaluate(guard)
                err = contains_error(condition)
                if err:
                    return err
                if not isinstance(condition, bool):
                    clause = "where" if self.where is not None else "when"
                    return HarloweError.create(
                        "operation",
                        f"This lambda's '{clause}' clause must evaluate to true or false, not {object_name(condition)}.",
                    )
                if not condition:
                    return fail_value
            if self.via is not None and not ignore_via:
                return context.evaluate(self.via)
            return pass_value
        finally:
            context.pop_frame()

    def filter(self, context: EvaluationContext, items: Iterable,
               temp_variables: Optional[VarScope] = None) -> List[Any] | HarloweError:
        """The items whose guard passes, stopping at the first error."""
        result = []
        for pos, item in enumerate(items, 1):
            passed = self.apply(context, loop=item, pos=pos, fail_value=False, ignore_via=True,
                                temp_variables=temp_variables)
            err = contains_error(passed)
            if err:
                return err
            if passed:
                result.append(item)
        return result

    def fold(self, context: EvaluationContext, items: Iterable) -> Any:
        """
        Filters `items` with the guard, then folds the survivors left to
        right with `via`, starting from the first survivor.
        """
        items = list(items)
        if self.where is not None:
            items = self.filter(context, items)
            if isinstance(items, HarloweError):
                return items
        if not items:
            return HarloweError.create(
                "operation",
                f"There were no values left for {object_name(self)} to fold after filtering.",
            )
        total = items[0]
        for pos, item in enumerate(items[1:], 2):
            result = self.apply(context, loop=item, making=total, pos=pos)
            err = contains_error(result)
            if err:
                return err
            if result is not FILTERED:
                total = result
        return total

    # ---------------------------------------------------------------

    @property
    def object_name(self) -> str:
        clauses = "".join(f"{c} ... " for c in CLAUSES if self.has(c)).rstrip()
        return f'a "{clauses}" lambda'

    def to_source(self) -> str:
        if self.source:
            return self.source
        parts = []
        if self.loop:
            parts.append(self.loop if self.loop_type is None else f"{self.loop_type.to_source()}-type {self.loop}")
        if self.making:
            making = self.making if self.making_type is None else f"{self.making_type.to_source()}-type {self.making}"
            parts.append("making " + making)
        parts.extend(f"{c} {getattr(self, c)}" for c in CLAUSES[1:] if self.has(c))
        return " ".join(parts)
