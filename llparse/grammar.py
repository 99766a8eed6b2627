"""Grammar analysis for LL(1) parsers.

A grammar is an ordered list of rules plus a start symbol. From it we derive
the predict table (FIRST, with the rule that predicted each terminal still
attached), the follow table (FOLLOW), and finally the parse table that the
runtime parser walks:

    grammar = Grammar(start="E")
    grammar.add("E", "T", "E'")
    grammar.add("E'", "+", "T", "E'")
    grammar.add("E'")
    grammar.add("T", "F", "T'")
    grammar.add("T'", "*", "F", "T'")
    grammar.add("T'")
    grammar.add("F", "(", "E", ")")
    grammar.add("F", "int")

    table = grammar.build_table()

There is no separate declaration of terminals. A symbol is a non-terminal if
and only if some rule has it on the left; everything else that shows up on a
right-hand side is a terminal. The terminals `#EOS` and `#ERROR` are always
part of the vocabulary.

All of the tables are recomputed from the current rules every time you ask
for them, so add every rule before you build anything.
"""

import dataclasses
import logging
import typing


EOS = "#EOS"
ERROR = "#ERROR"

grammar_log = logging.getLogger("llparse.grammar")


@dataclasses.dataclass(frozen=True)
class Rule:
    """A production. An empty right-hand side is a nil (epsilon) rule."""

    left: str
    right: typing.Tuple[str, ...] = ()

    @property
    def is_nil(self) -> bool:
        return len(self.right) == 0

    def __str__(self) -> str:
        if self.is_nil:
            return f"{self.left} ->"
        return f"{self.left} -> {' '.join(self.right)}"


# (rule that predicted it or None, terminal or None). A None terminal means
# "this rule matches by matching nothing".
PredictEntry = typing.Tuple[Rule | None, str | None]


class GrammarError(Exception):
    """The grammar cannot be turned into an LL(1) parse table."""


@dataclasses.dataclass
class Conflict:
    non_terminal: str
    terminal: str
    rules: typing.Tuple[Rule, ...]

    def __str__(self):
        lines = [
            f"grammar is not LL(1): conflicting rules for ({self.non_terminal}, {self.terminal})"
        ]
        lines.extend(f"- {rule}" for rule in self.rules)
        return "\n".join(lines)


class ConflictError(GrammarError):
    conflicts: list[Conflict]

    def __init__(self, conflicts: list[Conflict]):
        super().__init__(conflicts)
        self.conflicts = conflicts

    def __str__(self):
        return f"{len(self.conflicts)} conflicts:\n\n" + "\n\n".join(
            str(conflict) for conflict in self.conflicts
        )


class LeftRecursionError(GrammarError):
    non_terminals: list[str]

    def __init__(self, non_terminals: list[str]):
        super().__init__(non_terminals)
        self.non_terminals = non_terminals

    def __str__(self):
        return "grammar is left-recursive in: " + ", ".join(self.non_terminals)


@dataclasses.dataclass
class ParseTable:
    """The LL(1) parse table: rows[non_terminal][terminal] is the rule to
    expand `non_terminal` with when `terminal` is the lookahead.
    """

    start: str
    rows: dict[str, dict[str, Rule]]

    def row(self, non_terminal: str) -> dict[str, Rule] | None:
        return self.rows.get(non_terminal)

    def lookup(self, non_terminal: str, terminal: str) -> Rule | None:
        row = self.rows.get(non_terminal)
        if row is None:
            return None
        return row.get(terminal)

    def __contains__(self, non_terminal: str) -> bool:
        return non_terminal in self.rows

    def format(self) -> str:
        """Format a parse table so pretty."""
        terminals: list[str] = []
        for row in self.rows.values():
            for terminal in row.keys():
                if terminal not in terminals:
                    terminals.append(terminal)

        def format_rule(rule: Rule | None) -> str:
            if rule is None:
                return ""
            return " ".join(rule.right) or "ε"

        nt_width = max([len(nt) for nt in self.rows] + [4])
        widths = [
            max([len(terminal)] + [len(format_rule(row.get(terminal))) for row in self.rows.values()])
            for terminal in terminals
        ]

        header = "{nt} | {terms}".format(
            nt=" " * nt_width,
            terms=" | ".join(f"{t: <{w}}" for t, w in zip(terminals, widths)),
        )
        lines = [header, "-" * len(header)] + [
            "{nt: <{width}} | {rules}".format(
                nt=nt,
                width=nt_width,
                rules=" | ".join(
                    f"{format_rule(row.get(t)): <{w}}" for t, w in zip(terminals, widths)
                ),
            )
            for nt, row in self.rows.items()
        ]
        return "\n".join(line.rstrip() for line in lines)


class Grammar:
    """A context-free grammar: an ordered list of rules and a start symbol."""

    rules: list[Rule]
    _start: str | None

    def __init__(self, rules: typing.Iterable[Rule] | None = None, start: str | None = None):
        self.rules = list(rules) if rules is not None else []
        self._start = start

    @property
    def start(self) -> str:
        """The start symbol. If it was never set, the left side of the first
        rule.
        """
        if self._start is not None:
            return self._start
        if len(self.rules) == 0:
            raise ValueError("Grammar has no rules and no start symbol")
        return self.rules[0].left

    @start.setter
    def start(self, value: str | None):
        self._start = value

    def add(self, left: str, *right: str) -> Rule:
        """Append the rule `left -> right...` and return it. Call with only
        a left symbol to add a nil rule.
        """
        rule = Rule(left, tuple(right))
        self.rules.append(rule)
        return rule

    def __str__(self) -> str:
        return "\n".join(str(rule) for rule in self.rules)

    def non_terminals(self) -> list[str]:
        """Every left-hand symbol, in order of first appearance."""
        result: dict[str, None] = {}
        for rule in self.rules:
            result.setdefault(rule.left, None)
        return list(result)

    def terminals(self) -> list[str]:
        """Every right-hand symbol that is not a non-terminal, in order of
        first appearance, followed by #EOS and #ERROR.
        """
        non_terminals = set(self.non_terminals())
        result: dict[str, None] = {}
        for rule in self.rules:
            for symbol in rule.right:
                if symbol not in non_terminals:
                    result.setdefault(symbol, None)

        result.setdefault(EOS, None)
        result.setdefault(ERROR, None)
        return list(result)

    def symbols(self) -> list[str]:
        """The non-terminals followed by the terminals."""
        return self.non_terminals() + self.terminals()

    def is_non_terminal(self, symbol: str | None) -> bool:
        return any(rule.left == symbol for rule in self.rules)

    def predict(self) -> dict[str, set[PredictEntry]]:
        """Compute the predict table.

        predict[t] for a terminal t is just {(None, t)}. For a non-terminal
        n, every rule `n -> x ...` contributes (rule, x), and every nil rule
        `n ->` contributes (rule, None). Then, repeatedly, any entry (rule, m)
        where m is a non-terminal is replaced with (rule, y) for every
        (_, y) in predict[m], until only terminals (and Nones) are left.

        So this is FIRST, except we remember which of n's rules got us to
        each terminal, because that is what the parse table needs.
        """
        non_terminals = set(self.non_terminals())

        predict: dict[str, set[PredictEntry]] = {}
        for terminal in self.terminals():
            predict[terminal] = {(None, terminal)}

        for rule in self.rules:
            entries = predict.setdefault(rule.left, set())
            if rule.is_nil:
                entries.add((rule, None))
            else:
                entries.add((rule, rule.right[0]))

        # expanded[s] records every (rule, non-terminal) entry we have already
        # substituted in predict[s]. Re-adding one of those would just bring
        # back what we already copied, and on a left-recursive grammar would
        # go around in circles forever.
        expanded: dict[str, set[PredictEntry]] = {symbol: set() for symbol in predict}
        changed = True
        while changed:
            changed = False
            for symbol, entries in predict.items():
                for entry in list(entries):
                    rule, target = entry
                    if target not in non_terminals:
                        continue

                    changed = True
                    entries.discard(entry)
                    expanded[symbol].add(entry)
                    for _, first in list(predict[target]):
                        new_entry = (rule, first)
                        if new_entry not in expanded[symbol]:
                            entries.add(new_entry)

        return predict

    def nullable(self) -> set[str]:
        """The non-terminals that can derive the empty string."""
        result: set[str] = set()
        changed = True
        while changed:
            changed = False
            for rule in self.rules:
                if rule.left in result:
                    continue
                if all(symbol in result for symbol in rule.right):
                    result.add(rule.left)
                    changed = True
        return result

    def left_recursive(self) -> list[str]:
        """The non-terminals that can derive themselves as the leftmost
        symbol, in grammar order.

        The left corners of a rule are the non-terminals it can start with:
        its first symbol, and the one after that if the first can vanish,
        and so on. A non-terminal is left-recursive if following left
        corners from it leads back to it.
        """
        nullable = self.nullable()
        non_terminals = set(self.non_terminals())

        corners: dict[str, set[str]] = {nt: set() for nt in non_terminals}
        for rule in self.rules:
            for symbol in rule.right:
                if symbol in non_terminals:
                    corners[rule.left].add(symbol)
                if symbol not in nullable:
                    break

        result = []
        for nt in self.non_terminals():
            seen: set[str] = set()
            stack = list(corners[nt])
            while len(stack) > 0:
                symbol = stack.pop()
                if symbol in seen:
                    continue
                seen.add(symbol)
                stack.extend(corners[symbol])

            if nt in seen:
                result.append(nt)
        return result

    def _augmented_start(self) -> str:
        """Invent a name for the augmented start symbol: S', or S2', S3'...
        if that one is taken.
        """
        start = self.start
        symbols = set(self.symbols())
        name = start
        index = 1
        while True:
            candidate = f"{name}'"
            if candidate not in symbols:
                return candidate
            index += 1
            name = f"{start}{index}"

    def follows(self) -> dict[str, set[str]]:
        """Compute the follow table.

        We pretend the grammar starts with `S' -> S #EOS` so that the start
        symbol is always followed by #EOS. Then for every rule:

        - A non-terminal followed by a symbol x gets predict[x]. A nil
          prediction there means x can vanish, so we add x itself as a
          placeholder for FOLLOW(x).
        - A non-terminal at the end of a rule gets the rule's left symbol,
          again as a placeholder for FOLLOW(left).
        - A nil rule's left symbol gets itself.

        Finally the placeholders are replaced with the follow sets they stand
        for, repeatedly, until only terminals are left.
        """
        non_terminals = set(self.non_terminals())
        predict = self.predict()

        augmented = Rule(self._augmented_start(), (self.start, EOS))

        follows: dict[str, set[str]] = {}
        for rule in [augmented] + self.rules:
            if rule.is_nil:
                follows.setdefault(rule.left, set()).add(rule.left)
                continue

            for target, following in zip(rule.right, rule.right[1:]):
                if target not in non_terminals:
                    continue

                entries = follows.setdefault(target, set())
                for predicted_by, first in predict[following]:
                    if first is not None:
                        entries.add(first)
                    else:
                        assert predicted_by is not None
                        entries.add(predicted_by.left)

            last = rule.right[-1]
            if last in non_terminals:
                follows.setdefault(last, set()).add(rule.left)

        # Same trick as in the predict closure: never substitute the same
        # non-terminal into the same set twice.
        expanded: dict[str, set[str]] = {symbol: set() for symbol in follows}
        changed = True
        while changed:
            changed = False
            for symbol, entries in follows.items():
                for entry in list(entries):
                    if entry not in non_terminals:
                        continue

                    changed = True
                    entries.discard(entry)
                    expanded[symbol].add(entry)
                    for f in list(follows.get(entry, ())):
                        if f not in expanded[symbol]:
                            entries.add(f)

        return follows

    def build_table(self) -> ParseTable:
        """Build the LL(1) parse table.

        Every predict entry (rule, t) for a non-terminal n puts rule at
        [n][t]. A nil entry (rule, None) puts rule at [n][t] for every t in
        FOLLOW(n).

        Raises LeftRecursionError if the grammar is left-recursive, and
        ConflictError if any cell would get two different rules.
        """
        left_recursive = self.left_recursive()
        if left_recursive:
            raise LeftRecursionError(left_recursive)

        predict = self.predict()
        follows = self.follows()
        order = {rule: index for index, rule in reversed(list(enumerate(self.rules)))}

        conflicts: dict[typing.Tuple[str, str], list[Rule]] = {}
        rows: dict[str, dict[str, Rule]] = {}
        for nt in self.non_terminals():
            # Sort so that the table (and any conflict report) comes out in
            # grammar order rather than set order.
            entries = sorted(
                predict[nt],
                key=lambda e: (order[e[0]] if e[0] is not None else -1, e[1] or ""),
            )

            row: dict[str, Rule] = {}
            for rule, first in entries:
                assert rule is not None
                if first is not None:
                    lookaheads = [first]
                else:
                    lookaheads = sorted(follows.get(nt, ()))

                for terminal in lookaheads:
                    existing = row.get(terminal)
                    if existing is None:
                        row[terminal] = rule
                    elif existing != rule:
                        rules = conflicts.setdefault((nt, terminal), [existing])
                        if rule not in rules:
                            rules.append(rule)

            rows[nt] = row

        if conflicts:
            raise ConflictError(
                [
                    Conflict(non_terminal=nt, terminal=terminal, rules=tuple(rules))
                    for (nt, terminal), rules in conflicts.items()
                ]
            )

        if grammar_log.isEnabledFor(logging.DEBUG):
            grammar_log.debug(
                "built parse table: %d non-terminals, %d entries",
                len(rows),
                sum(len(row) for row in rows.values()),
            )

        return ParseTable(start=self.start, rows=rows)
