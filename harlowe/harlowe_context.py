"""
The evaluation context contract.

The runtime never parses or evaluates expression text itself. Whoever embeds
it supplies an `EvaluationContext` whose `evaluate()` runs a piece of source
text against the frame on top of the context's stack. Lambdas and custom
macros push frames onto that stack to bind their temporary variables.
"""
from abc import ABC, abstractmethod
from collections import ChainMap
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from harlowe.harlowe_errors import HarloweError, contains_error


class VarScope:
    """Named temporary variables, with lookups falling through to a parent scope."""

    def __init__(self, parent: Optional["VarScope"] = None, name: str = "this place"):
        self.bindings: Dict[str, Any] = {}
        self.type_defs: Dict[str, Any] = {}
        self.parent = parent
        self.name = name

    def find_owner(self, key: str) -> Optional["VarScope"]:
        scope = self
        while scope is not None:
            if key in scope.bindings:
                return scope
            scope = scope.parent
        return None

    def __contains__(self, key: str) -> bool:
        return self.find_owner(key) is not None

    def get(self, key: str) -> Any:
        owner = self.find_owner(key)
        if owner is None:
            return HarloweError.create("property", f"There isn't a temp variable named {key} in {self.name}.")
        return owner.bindings[key]

    def define_type(self, key: str, datatype):
        """Restricts what `key` may hold in this scope."""
        self.type_defs[key] = datatype

    def set(self, key: str, value: Any) -> bool | HarloweError:
        """Binds `key` in this scope to a clone of `value`, honouring any type restriction."""
        from harlowe.harlowe_values import clone, object_name, unstorable_value
        err = contains_error(value)
        if err:
            return err
        bad = unstorable_value(value)
        if bad is not None:
            return HarloweError.create("operation", f"{object_name(bad)} can't be stored.")
        datatype = self.type_defs.get(key)
        if datatype is not None:
            ok = datatype.is_type_of(value)
            if isinstance(ok, HarloweError):
                return ok
            if not ok:
                return HarloweError.create(
                    "operation",
                    f"I can't set {key} to {object_name(value)} because it's been restricted to "
                    f"{datatype.to_source()}-type data.",
                )
        self.bindings[key] = clone(value)
        return True


@dataclass
class Frame:
    """One level of the evaluation stack."""
    temp_variables: VarScope
    lambda_pos: Optional[int] = None
    it: Any = None
    ambient: ChainMap = field(default_factory=ChainMap)

    @classmethod
    def derive(cls, parent: Optional["Frame"], **fields) -> "Frame":
        """A frame whose ambient fields fall through to `parent`'s."""
        ambient = parent.ambient.new_child() if parent is not None else ChainMap()
        return cls(ambient=ambient, **fields)


class EvaluationContext(ABC):
    """
    The host's side of the bargain: a stack of frames and a way to evaluate
    expression text in the top one.
    """

    def __init__(self):
        self.stack: List[Frame] = []

    @property
    def stack_top(self) -> Optional[Frame]:
        return self.stack[-1] if self.stack else None

    def push_frame(self, frame: Frame):
        self.stack.append(frame)

    def pop_frame(self) -> Frame:
        return self.stack.pop()

    def temp_variable(self, name: str) -> Any:
        top = self.stack_top
        if top is None:
            return HarloweError.create("property", f"There isn't a temp variable named {name} in this place.")
        return top.temp_variables.get(name)

    @abstractmethod
    def evaluate(self, source: str) -> Any:
        """Evaluates expression text in the current top frame, returning a value or an error."""
        ...
