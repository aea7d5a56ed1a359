import pytest

from harlowe.harlowe_context import EvaluationContext
from harlowe.harlowe_errors import reload_catalogue
from harlowe.harlowe_macrolib import install
from harlowe.harlowe_macros import MacroRegistry


class ScriptedContext(EvaluationContext):
    """
    Evaluates expression text by looking it up in a table of Python callables.

    Each callable receives the top frame. Temp variables are read with
    `var(frame, "_a")`.
    """

    def __init__(self, scripts=None):
        super().__init__()
        self.scripts = {
            "true": lambda frame: True,
            "false": lambda frame: False,
            "it": lambda frame: frame.it,
            "pos": lambda frame: frame.lambda_pos,
        }
        self.scripts.update(scripts or {})
        self.evaluated = []

    def evaluate(self, source):
        self.evaluated.append(source)
        return self.scripts[source](self.stack_top)


def var(frame, name):
    return frame.temp_variables.get(name)


@pytest.fixture
def context():
    return ScriptedContext()


@pytest.fixture
def registry():
    return install(MacroRegistry())


@pytest.fixture(autouse=True)
def fresh_catalogue():
    reload_catalogue()
    yield
    reload_catalogue()
