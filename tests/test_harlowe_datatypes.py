import pytest

from harlowe.harlowe_datatypes import (
    Changer, Colour, Command, CustomMacro, Datamap, Dataset, Gradient, HookSet, Spread, TypedVar,
    format_number, is_number,
)
from harlowe.harlowe_errors import HarloweError
from harlowe.harlowe_patterns import Datatype

NUM = Datatype("number")


# --- numbers ---

def test_is_number():
    assert is_number(1) and is_number(1.5) and is_number(float("inf"))
    assert not is_number(True)
    assert not is_number(float("nan"))
    assert not is_number("1")


def test_format_number():
    assert format_number(2.0) == "2"
    assert format_number(2.25) == "2.25"
    assert format_number(float("-inf")) == "-Infinity"
    assert format_number(7) == "7"


# --- datamaps ---

def test_datamap_create():
    dm = Datamap.create("a", 1, "b", [2])
    assert isinstance(dm, Datamap)
    assert dict(dm) == {"a": 1, "b": [2]}


def test_datamap_create_clones_values():
    inner = [1]
    dm = Datamap.create("a", inner)
    inner.append(2)
    assert dm["a"] == [1]


def test_datamap_create_odd_arguments():
    err = Datamap.create("a", 1, "b")
    assert err.kind == "macrocall"
    assert err.message == 'The string "b" lacks a matching value.'


def test_datamap_create_duplicate_name():
    err = Datamap.create("a", 1, "a", 2)
    assert err.message == 'You used the same data name (the string "a") twice in the same datamap.'


def test_datamap_create_mixed_name_kinds():
    err = Datamap.create(1, "x", "1", "y")
    assert err.kind == "property"


def test_datamap_create_unstorable_value():
    err = Datamap.create("a", Spread([1]))
    assert err.message == "A spread value can't be stored in a datamap."


def test_datamap_create_propagates_errors():
    inner = HarloweError.create("user", "inner")
    assert Datamap.create("a", inner) is inner


def test_datamap_get_property():
    dm = Datamap({"a": 1})
    assert dm.get_property("a") == 1
    err = dm.get_property("z")
    assert err.kind == "property"
    assert err.message == 'I can\'t find the string "z" as a data name in this datamap.'
    assert dm.get_property([1]).kind == "property"


def test_datamap_setitem_guards_keys():
    dm = Datamap({1: "x"})
    with pytest.raises(TypeError):
        dm[True] = 1
    with pytest.raises(TypeError):
        dm[(1,)] = 1
    with pytest.raises(KeyError):
        dm["1"] = "y"
    dm[2] = "z"
    assert len(dm) == 2


def test_datamap_copy_is_independent():
    dm = Datamap({"a": 1})
    copied = dm.copy()
    del copied["a"]
    assert "a" in dm and "a" not in copied


# --- datasets ---

def test_dataset_dedupes_structurally():
    ds = Dataset([[1], [1], 2, 2.0])
    assert len(ds) == 2
    assert [1] in ds
    assert 2 in ds


def test_dataset_iterates_in_natural_order():
    assert list(Dataset(["b", 10, "a", 2])) == [2, 10, "a", "b"]


def test_dataset_set_operations():
    union = Dataset([1, 2]) | Dataset([2, 3])
    assert isinstance(union, Dataset)
    assert list(union) == [1, 2, 3]
    ds = Dataset([1, 2])
    ds.discard(1)
    assert list(ds) == [2]


def test_dataset_create_errors():
    inner = HarloweError.create("user", "inner")
    assert Dataset.create(1, inner) is inner
    err = Dataset.create(1, TypedVar(NUM, "_x"))
    assert err.message == "The typed variable name number-type _x can't be stored in a dataset."


# --- changers ---

def _append_mutation(descriptor, value):
    descriptor.append(value)


def _failing_mutation(descriptor, value):
    return HarloweError.create("user", f"refused {value}")


def _raising_mutation(descriptor, value):
    raise ZeroDivisionError("division by zero")


@pytest.fixture(autouse=True)
def registered_mutations():
    Changer.register("test-append", _append_mutation)
    Changer.register("test-fail", _failing_mutation)
    Changer.register("test-raise", _raising_mutation)


def test_changer_compose_does_not_mutate_operands():
    a = Changer("test-append", ("a",))
    b = Changer("test-append", ("b",))
    combined = a + b
    assert a.next is None
    assert combined is not a
    assert combined.next is b
    assert [n.params[0] for n in combined.nodes()] == ["a", "b"]


def test_changer_run_applies_nodes_in_order():
    chain = Changer("test-append", (1,)) + Changer("test-append", (2,)) + Changer("test-append", (3,))
    assert chain.run([]) == [1, 2, 3]
    assert chain.summary(list) == [1, 2, 3]


def test_changer_run_stops_at_first_error():
    descriptor = []
    chain = Changer("test-append", (1,)) + Changer("test-fail", ("x",)) + Changer("test-append", (2,))
    err = chain.run(descriptor)
    assert err.message == "refused x"
    assert descriptor == [1]


def test_changer_run_converts_host_exceptions():
    err = Changer("test-raise", (1,)).run([])
    assert err.kind == "python"


def test_changer_run_unregistered_mutation():
    with pytest.raises(KeyError):
        Changer("no-such-changer").run([])


def test_changer_register_conflict():
    with pytest.raises(ValueError):
        Changer.register("test-append", _failing_mutation)


def test_changer_object_name():
    single = Changer("font", ("Skia",))
    assert single.object_name == 'a (font:"Skia") changer'
    two = single + Changer("x")
    assert two.object_name == 'a (font:"Skia") changer combined with (x:)'
    four = single + Changer("x") + Changer("y") + Changer("z")
    assert four.object_name == 'a (font:"Skia") changer combined with (x:), (y:) and 1 other changer'
    five = four + Changer("w")
    assert five.object_name.endswith("and 2 other changers")


def test_changer_to_source_and_clone():
    chain = Changer("font", ("Skia",)) + Changer("text-colour", ("red",))
    assert chain.to_source() == '(font:"Skia")+(text-colour:"red")'
    copied = chain.clone()
    assert copied is not chain
    assert copied == chain


# --- commands ---

def test_command_runs_later():
    calls = []
    cmd = Command("say", ("hi",), lambda context, text: calls.append((context, text)) or text)
    assert calls == []
    assert cmd.run("ctx") == "hi"
    assert calls == [("ctx", "hi")]
    assert cmd.object_name == "a (say:) command"
    assert cmd.to_source() == '(say:"hi")'


# --- colours and gradients ---

def test_colour_blend():
    blended = Colour(100, 0, 0) + Colour(0, 100, 0)
    assert (blended.r, blended.g, blended.b, blended.a) == (60, 60, 0, 1)
    bright = Colour(255, 200, 0, 0) + Colour(255, 200, 0, 1)
    assert (bright.r, bright.g, bright.a) == (255, 240, 0.5)


def test_colour_from_hex():
    assert Colour.from_hex("#f00") == Colour(255, 0, 0)
    assert Colour.from_hex("#00ff80") == Colour(0, 255, 128)
    assert Colour.from_hex("bad") is None
    assert Colour.from_hex("red") is None


def test_colour_from_hsl_wraps_hue():
    assert Colour.from_hsl(0, 1, 0.5) == Colour(255, 0, 0)
    assert Colour.from_hsl(480, 1, 0.5) == Colour(0, 255, 0)


def test_colour_to_hsla():
    hsla = Colour(0, 0, 255).to_hsla()
    assert hsla["h"] == 240
    assert hsla["s"] == 1
    assert hsla["l"] == 0.5


def test_colour_printing():
    colour = Colour(1, 2, 3, 0.5)
    assert colour.to_css() == "rgba(1, 2, 3, 0.5)"
    assert colour.to_source() == "(rgba:1,2,3,0.5)"


def test_gradient_sorts_stops():
    black, white = Colour(0, 0, 0), Colour(255, 255, 255)
    gradient = Gradient(90, [(1, white), (0, black)])
    assert gradient.to_source() == "(gradient:90,0,(rgba:0,0,0,1),1,(rgba:255,255,255,1))"
    assert gradient == Gradient(90, [(0, black), (1, white)])
    assert gradient != Gradient(45, [(0, black), (1, white)])
    copied = gradient.clone()
    assert copied == gradient and copied.stops[0][1] is not black


# --- hook sets ---

def test_hookset_create():
    hooks = HookSet.create("?intro")
    assert hooks.names == ("intro",)
    assert HookSet.create("?").kind == "syntax"
    assert HookSet.create("two words").kind == "syntax"


def test_hookset_union():
    combined = HookSet(("a",)) + HookSet(("b", "a"))
    assert combined.names == ("a", "b")
    assert combined.to_source() == "?a + ?b"
    assert combined == HookSet(("b", "a"))
    assert combined.object_name == "the hook names ?a + ?b"


# --- typed variables and custom macros ---

def test_typed_var_create():
    tv = TypedVar.create(NUM, "_x")
    assert tv.to_source() == "number-type _x"
    assert tv.spread().to_source() == "...number-type _x"
    err = TypedVar.create(5, "_x")
    assert err.kind == "operation"
    assert err.message == "I can't use the number 5 as the type of the variable _x."
    with pytest.raises(TypeError):
        TypedVar.create(NUM, "")


def test_custom_macro_create():
    body = lambda context: 1  # noqa: E731
    macro = CustomMacro.create([TypedVar(NUM, "_a"), TypedVar(NUM, "_b").spread()], body)
    assert isinstance(macro, CustomMacro)
    assert macro.to_source() == "(macro:number-type _a,...number-type _b,[])"


def test_custom_macro_create_errors():
    body = lambda context: 1  # noqa: E731
    err = CustomMacro.create([5], body)
    assert err.kind == "datatype"
    assert err.message == "The (macro:) macro must only be given typed variable names, not the number 5."
    err = CustomMacro.create([TypedVar(NUM, "_a").spread(), TypedVar(NUM, "_b")], body)
    assert err.message == "The spread typed variable _a must be the last one given to (macro:)."
    err = CustomMacro.create([TypedVar(NUM, "_a"), TypedVar(NUM, "_a")], body)
    assert err.message == "This custom macro has two variables named '_a'."
