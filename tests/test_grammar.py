import pytest

from hypothesis import given
from hypothesis.strategies import lists, sampled_from, tuples

from llparse import (
    EOS,
    ERROR,
    ConflictError,
    Grammar,
    GrammarError,
    LeftRecursionError,
    Rule,
)


def expression_grammar() -> Grammar:
    G = Grammar()
    G.add("E", "T", "E'")
    G.add("E'", "+", "T", "E'")
    G.add("E'")
    G.add("T", "F", "T'")
    G.add("T'", "*", "F", "T'")
    G.add("T'")
    G.add("F", "(", "E", ")")
    G.add("F", "int")
    return G


grammars = lists(
    tuples(
        sampled_from(["A", "B", "C"]),
        lists(sampled_from(["A", "B", "C", "x", "y", "z"]), max_size=4),
    ),
    min_size=1,
    max_size=8,
).map(lambda rules: Grammar([Rule(left, tuple(right)) for left, right in rules]))


def test_start_defaults_to_first_rule():
    G = expression_grammar()
    assert G.start == "E"

    G.start = "T"
    assert G.start == "T"

    G.start = None
    assert G.start == "E"

    # An explicit start symbol is used as given, even an empty one.
    G.start = ""
    assert G.start == ""
    assert Grammar([Rule("S", ("a",))], start="").start == ""


def test_start_of_empty_grammar():
    with pytest.raises(ValueError):
        Grammar().start


def test_vocabulary():
    G = expression_grammar()
    assert G.non_terminals() == ["E", "E'", "T", "T'", "F"]
    assert G.terminals() == ["+", "*", "(", ")", "int", EOS, ERROR]
    assert G.symbols() == G.non_terminals() + G.terminals()
    assert G.is_non_terminal("T'")
    assert not G.is_non_terminal("int")
    assert not G.is_non_terminal(None)


def test_reserved_terminals_always_present():
    G = Grammar([Rule("S")])
    assert G.terminals() == [EOS, ERROR]


@given(grammars)
def test_vocabulary_partitions_symbols(G: Grammar):
    non_terminals = set(G.non_terminals())
    terminals = set(G.terminals())
    assert non_terminals.isdisjoint(terminals)

    mentioned = set()
    for rule in G.rules:
        mentioned.add(rule.left)
        mentioned.update(rule.right)
    assert mentioned | {EOS, ERROR} == non_terminals | terminals

    assert len(G.non_terminals()) == len(non_terminals), "Non-terminals are unique"
    assert len(G.terminals()) == len(terminals), "Terminals are unique"


def test_str():
    G = Grammar()
    G.add("S", "a", "S")
    G.add("S")
    assert str(G) == "S -> a S\nS ->"


def test_predict():
    G = expression_grammar()
    predict = G.predict()

    E = Rule("E", ("T", "E'"))
    plus = Rule("E'", ("+", "T", "E'"))
    nil = Rule("E'", ())
    assert predict["E"] == {(E, "("), (E, "int")}
    assert predict["E'"] == {(plus, "+"), (nil, None)}
    assert predict["int"] == {(None, "int")}
    assert predict[EOS] == {(None, EOS)}


def test_follows():
    follows = expression_grammar().follows()
    assert follows["E"] == {EOS, ")"}
    assert follows["E'"] == {EOS, ")"}
    assert follows["T"] == {"+", EOS, ")"}
    assert follows["T'"] == {"+", EOS, ")"}
    assert follows["F"] == {"*", "+", EOS, ")"}


@given(grammars)
def test_closures_are_closed(G: Grammar):
    """Whatever the grammar, the closures finish, and nothing that comes out
    of them still refers to a non-terminal."""
    non_terminals = set(G.non_terminals())

    predict = G.predict()
    for entries in predict.values():
        for _, symbol in entries:
            assert symbol not in non_terminals

    follows = G.follows()
    for entries in follows.values():
        assert entries.isdisjoint(non_terminals)

    # And doing it again gives the same answer.
    assert G.predict() == predict
    assert G.follows() == follows


def test_augmented_start_is_unique():
    G = expression_grammar()
    assert G._augmented_start() == "E2'"

    G = Grammar([Rule("S", ("a",))])
    assert G._augmented_start() == "S'"


def test_parse_table():
    table = expression_grammar().build_table()
    assert table.start == "E"
    assert set(table.rows) == {"E", "E'", "T", "T'", "F"}

    assert table.lookup("E", "int") == Rule("E", ("T", "E'"))
    assert table.lookup("E", "(") == Rule("E", ("T", "E'"))
    assert table.lookup("E", "+") is None

    assert table.lookup("E'", "+") == Rule("E'", ("+", "T", "E'"))
    assert table.lookup("E'", ")") == Rule("E'", ())
    assert table.lookup("E'", EOS) == Rule("E'", ())

    assert table.lookup("T'", "*") == Rule("T'", ("*", "F", "T'"))
    assert set(table.row("T'")) == {"*", "+", ")", EOS}

    assert table.lookup("F", "int") == Rule("F", ("int",))
    assert table.lookup("nope", "int") is None
    assert "F" in table
    assert "int" not in table


def test_parse_table_format():
    text = expression_grammar().build_table().format()
    lines = text.splitlines()
    assert "int" in lines[0]
    assert lines[2].startswith("E ")
    assert "T E'" in lines[2]


@given(grammars)
def test_parse_table_is_a_function(G: Grammar):
    """Either the table builds with one rule per cell, or we say why not."""
    try:
        table = G.build_table()
    except GrammarError:
        return

    predict = G.predict()
    for nt, row in table.rows.items():
        for terminal, rule in row.items():
            assert rule.left == nt
            assert rule in G.rules
            assert terminal not in table.rows
            assert any(r == rule for r, _ in predict[nt])


def test_first_first_conflict():
    G = Grammar()
    G.add("S", "a", "b")
    G.add("S", "a", "c")

    with pytest.raises(ConflictError) as info:
        G.build_table()

    conflicts = info.value.conflicts
    assert len(conflicts) == 1
    assert conflicts[0].non_terminal == "S"
    assert conflicts[0].terminal == "a"
    assert conflicts[0].rules == (Rule("S", ("a", "b")), Rule("S", ("a", "c")))
    assert "grammar is not LL(1): conflicting rules for (S, a)" in str(info.value)


def test_first_follow_conflict():
    G = Grammar()
    G.add("S", "A", "a")
    G.add("A", "a")
    G.add("A")

    with pytest.raises(ConflictError) as info:
        G.build_table()

    assert [(c.non_terminal, c.terminal) for c in info.value.conflicts] == [("A", "a")]


def test_left_recursion():
    G = Grammar()
    G.add("E", "E", "+", "T")
    G.add("E", "T")
    G.add("T", "int")

    with pytest.raises(LeftRecursionError) as info:
        G.build_table()

    assert info.value.non_terminals == ["E"]
    assert isinstance(info.value, GrammarError)


def test_indirect_left_recursion():
    G = Grammar()
    G.add("A", "B", "x")
    G.add("B", "A", "y")
    G.add("B", "z")

    with pytest.raises(LeftRecursionError):
        G.build_table()


def test_left_recursion_behind_nullable_symbol():
    """N can match nothing, so A can start with A."""
    G = Grammar()
    G.add("A", "N", "A", "x")
    G.add("A", "y")
    G.add("N")

    assert G.nullable() == {"N"}
    with pytest.raises(LeftRecursionError) as info:
        G.build_table()
    assert info.value.non_terminals == ["A"]


def test_nullable():
    G = expression_grammar()
    assert G.nullable() == {"E'", "T'"}
    assert G.left_recursive() == []

    G = Grammar()
    G.add("S", "A", "B")
    G.add("A")
    G.add("B", "A")
    G.add("C", "S", "x")
    assert G.nullable() == {"S", "A", "B"}


def test_duplicate_rule_is_not_a_conflict():
    G = Grammar()
    G.add("S", "a")
    G.add("S", "a")

    table = G.build_table()
    assert table.lookup("S", "a") == Rule("S", ("a",))
