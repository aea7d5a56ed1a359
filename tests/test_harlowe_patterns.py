import math

import pytest

from harlowe.harlowe_datatypes import Datamap, TypedVar
from harlowe.harlowe_patterns import (
    Datatype, Pattern, either_of, insensitive_of, not_before, optional_of, repeat, sequence,
)
from harlowe.harlowe_values import equals, to_source

DIGIT = Datatype("digit")


# --- datatypes ---

# Test cases: (id, datatype, value, expected)
TYPE_CHECK_TEST_CASES = [
    ("even", "even", 4, True),
    ("even_odd_value", "even", 3, False),
    ("odd_negative", "odd", -3, True),
    ("integer_whole_float", "integer", 2.0, True),
    ("integer_fraction", "integer", 2.5, False),
    ("integer_infinity", "integer", math.inf, False),
    ("number_not_bool", "number", True, False),
    ("boolean", "boolean", False, True),
    ("empty_string", "empty", "", True),
    ("empty_datamap", "empty", Datamap(), True),
    ("empty_array_with_item", "empty", [0], False),
    ("uppercase", "uppercase", "A", True),
    ("uppercase_two_chars", "uppercase", "AB", False),
    ("lowercase_accented", "lowercase", "é", True),
    ("anycase_digit", "anycase", "1", False),
    ("digit", "digit", "5", True),
    ("whitespace", "whitespace", " ", True),
    ("newline_crlf", "newline", "\r\n", True),
    ("alphanumeric_underscore", "alphanumeric", "_", False),
    ("alphanumeric_letter", "alphanumeric", "q", True),
    ("anything", "anything", 5, True),
    ("anything_unstorable", "anything", TypedVar(Datatype("number"), "_x"), False),
]


@pytest.mark.parametrize(
    "case_id, name, value, expected", TYPE_CHECK_TEST_CASES, ids=[c[0] for c in TYPE_CHECK_TEST_CASES]
)
def test_datatype_is_type_of(case_id, name, value, expected):
    assert Datatype(name).is_type_of(value) is expected


def test_datatype_create_resolves_aliases():
    assert Datatype.create("dm") == Datatype("datamap")
    assert Datatype.create("num").name == "number"
    err = Datatype.create("nope")
    assert err.kind == "syntax"
    assert err.message == "There isn't a datatype named 'nope'."


def test_datatype_of():
    assert Datatype.of(5) == Datatype("number")
    assert Datatype.of(True) == Datatype("boolean")
    assert Datatype.of(Datamap()) == Datatype("datamap")
    assert Datatype.of(DIGIT) == Datatype("datatype")
    assert Datatype.of(None) is None


def test_datatype_spread_is_a_copy():
    spread = DIGIT.spread()
    assert spread.rest and not DIGIT.rest
    assert spread != DIGIT
    assert spread.to_source() == "...digit"


# --- patterns ---

def test_patterns_match_whole_strings():
    foo = sequence("foo")
    assert foo.is_type_of("foo") is True
    assert foo.is_type_of("xfooy") is False
    assert foo.is_type_of(5) is False


def test_sequence_escapes_strings():
    dots = sequence("a.b")
    assert dots.is_type_of("a.b") is True
    assert dots.is_type_of("axb") is False


def test_sequence_with_datatypes():
    scp = sequence("SCP-", repeat(DIGIT))
    assert isinstance(scp, Pattern)
    assert scp.is_type_of("SCP-991") is True
    assert scp.is_type_of("SCP-") is False
    assert sequence("a", Datatype("string"), "z").is_type_of("a\nbc\nz") is True


def test_spread_datatype_fragment():
    digits = sequence(DIGIT.spread())
    assert digits.is_type_of("") is True
    assert digits.is_type_of("123") is True
    assert digits.is_type_of("12a") is False


def test_spread_pattern_repeats():
    ab = sequence("ab").spread()
    assert ab.is_type_of("abab") is True
    assert ab.is_type_of("aba") is False
    assert ab.to_source() == '...(p:"ab")'


def test_either_of():
    pet = either_of("cat", "dog")
    assert pet.is_type_of("dog") is True
    assert pet.is_type_of("catdog") is False


def test_optional_of():
    ac = sequence("a", optional_of("b"), "c")
    assert ac.is_type_of("ac") is True
    assert ac.is_type_of("abc") is True
    assert ac.is_type_of("abbc") is False


def test_insensitive_of():
    ab = insensitive_of("ab")
    assert ab.is_type_of("AB") is True
    assert ab.is_type_of("aB") is True
    assert ab.is_type_of("ac") is False
    assert insensitive_of(Datatype("uppercase")).is_type_of("a") is True
    assert sequence(Datatype("uppercase")).is_type_of("a") is False


def test_insensitive_skips_multi_character_case_mappings():
    sharp_s = insensitive_of("\N{LATIN SMALL LETTER SHARP S}")
    assert sharp_s.is_type_of("\N{LATIN SMALL LETTER SHARP S}") is True
    assert sharp_s.is_type_of("S") is False
    assert sharp_s.is_type_of("SS") is False


def test_insensitive_reaches_sub_patterns():
    inner = sequence("x", either_of("y", "z"))
    outer = insensitive_of(inner)
    assert outer.is_type_of("XZ") is True
    assert inner.is_type_of("XZ") is False


def test_not_before_inside_sequence():
    a_not_b = sequence("a", not_before("b"), Datatype("string"))
    assert a_not_b.is_type_of("ac") is True
    assert a_not_b.is_type_of("a") is True
    assert a_not_b.is_type_of("ab") is False


def test_not_before_standalone_is_an_error():
    err = not_before("b").is_type_of("a")
    assert err.kind == "operation"
    assert err.message == "A (p-not-before:) datatype must only be used with a (p:) macro."


# --- repetition ---

def test_repeat_quantifiers():
    assert repeat("a").is_type_of("aaa") is True
    assert repeat("a").is_type_of("") is False
    at_least_two = repeat(2, "a")
    assert at_least_two.is_type_of("aa") is True
    assert at_least_two.is_type_of("aaaa") is True
    assert at_least_two.is_type_of("a") is False
    exactly_two = repeat(2, 2, "a")
    assert exactly_two.is_type_of("aa") is True
    assert exactly_two.is_type_of("aaa") is False
    two_or_three = repeat(2, 3, "ab")
    assert two_or_three.is_type_of("abab") is True
    assert two_or_three.is_type_of("ababab") is True
    assert two_or_three.is_type_of("ab") is False
    at_least_one = repeat(1, math.inf, "a")
    assert at_least_one.is_type_of("a" * 50) is True
    assert repeat(0, 1, "a").is_type_of("") is True


def test_repeat_bound_errors():
    err = repeat(3, 1, "a")
    assert err.kind == "datatype"
    assert err.message == "The (p-many:) macro's max number must not be smaller than its min number."
    err = repeat(-1, "a")
    assert err.message == "The (p-many:) macro's min and max numbers must be non-negative whole numbers, not the number -1."
    err = repeat(1.5, "a")
    assert "not the number 1.5" in err.message
    err = repeat(1, 2)
    assert err.message == "The (p-many:) macro needs to be given string patterns, not just min and max numbers."
    err = repeat(1, [1])
    assert err.message.startswith("This (p-many:) macro can only be given a min and max number")


def test_repeat_limit(monkeypatch):
    err = repeat(1001, "a")
    assert err.message == "The (p-many:) macro can't be given a min or max number larger than 1000."
    monkeypatch.setenv("HARLOWE_MAX_REPEAT", "5")
    assert repeat(5, "a").is_type_of("aaaaa") is True
    assert repeat(6, "a").message == "The (p-many:) macro can't be given a min or max number larger than 5."


# --- construction errors ---

def test_number_datatypes_are_rejected():
    err = sequence(Datatype("number"))
    assert err.kind == "datatype"
    assert err.message == "Please use string datatypes like 'digit' in (p:) instead of number datatypes."


def test_non_string_datatypes_are_rejected():
    err = either_of(Datatype("array"))
    assert err.message == "The (p-either:) macro must only be given string-related datatypes, not the array datatype."


def test_non_fragment_arguments_are_rejected():
    err = sequence(5)
    assert err.message == "The (p:) macro must only be given strings and datatypes, not the number 5."


def test_optional_patterns_refuse_typed_vars():
    tv = TypedVar(DIGIT, "_d")
    err = optional_of(tv)
    assert err.message == "Optional string patterns, like (p-opt:), can't have typed variables inside them."
    err = repeat(0, tv)
    assert err.message == "Optional string patterns, like (p-many:) with min 0, can't have typed variables inside them."
    assert isinstance(repeat(1, tv), Pattern)
    err = either_of(tv, "x")
    assert err.kind == "operation"
    assert err.message == "Optional string patterns, like (p-either:), can't have typed variables inside them."


# --- typed variables ---

def test_destructure_typed_vars():
    num = TypedVar(repeat(DIGIT), "_num")
    scp = sequence("SCP-", num)
    assert scp.typed_vars() == [num]
    assert scp.destructure("SCP-991") == [(num, "991")]


def test_destructure_nested_typed_vars():
    first = TypedVar(Datatype("alphanumeric"), "_first")
    word = TypedVar(sequence(first, repeat(Datatype("alphanumeric"))), "_word")
    pattern = sequence(word, " ", repeat(DIGIT))
    captured = pattern.destructure("hello 42")
    assert [(tv.name, text) for tv, text in captured] == [("_word", "hello"), ("_first", "h")]


def test_destructure_errors():
    scp = sequence("SCP-", TypedVar(repeat(DIGIT), "_num"))
    assert scp.destructure("SCP-x").kind == "operation"
    err = scp.destructure(5)
    assert err.message.startswith("I can't de-structure the number 5")
    assert sequence("x").destructure("x") == []


# --- identity and printing ---

def test_pattern_to_source():
    assert to_source(sequence("a", DIGIT)) == '(p:"a",digit)'
    assert to_source(repeat(2, 3, "ab")) == '(p-many:2,3,"ab")'
    assert sequence("a").object_name == "a (p:) datatype"


def test_pattern_equality():
    assert equals(sequence("a", DIGIT), sequence("a", DIGIT))
    assert not equals(sequence("a"), sequence("b"))
    assert not equals(sequence("a"), insensitive_of("a"))
    assert not equals(sequence("a"), Datatype("string"))


def test_debug_output(monkeypatch, capsys):
    monkeypatch.setenv("HARLOWE_DEBUG", "1")
    sequence("q")
    assert "[DBG] PATTERN p regex q" in capsys.readouterr().err
