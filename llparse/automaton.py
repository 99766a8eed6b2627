"""A bare-bones NFA engine for building lexers.

There is no regular expression syntax here. You build machines directly out
of the combinators on `FA`:

    digits = FA.set("0123456789")
    number = FA.repeat(digits, "int")
    plus = FA.literal("+", "+")

    lexer = FA.lexer(plus, number)

Each state can have at most one transition per character; all of the
non-determinism lives in the epsilon transitions.

Every combinator clones its operands before wiring them together, so you can
reuse one sub-machine in as many places as you like. To find "the end" of an
operand, the combinators look for its accepting state, so every machine they
are handed must have exactly one. Everything the combinators return has
exactly one accepting state; `FA.lexer` is the exception, and so its result
cannot be combined any further.
"""

import typing


class FA:
    """An NFA state. A state accepts if it has an accept symbol.

    The graph reachable from a state is the machine. The graph is usually
    cyclic, so everything here walks it by reachability with an explicit
    stack.
    """

    accept: str | None
    transitions: dict[str, "FA"]
    epsilons: list["FA"]

    def __init__(self, accept: str | None = None):
        self.accept = accept
        self.transitions = {}
        self.epsilons = []

    def __repr__(self):
        return f"FA{id(self)}"

    def _walk(self, follow_transitions: bool) -> list["FA"]:
        # Depth first, transitions before epsilons, in insertion order.
        result: dict[FA, None] = {}
        stack: list[FA] = [self]
        while len(stack) > 0:
            state = stack.pop()
            if state in result:
                continue
            result[state] = None

            children: list[FA] = []
            if follow_transitions:
                children.extend(state.transitions.values())
            children.extend(state.epsilons)
            stack.extend(reversed(children))

        return list(result)

    def closure(self) -> list["FA"]:
        """Every state reachable from this one on any transition, including
        this one. This state is always first.
        """
        return self._walk(follow_transitions=True)

    def epsilon_closure(self) -> list["FA"]:
        """Every state reachable from this one on no input, including this
        one.
        """
        return self._walk(follow_transitions=False)

    @staticmethod
    def move(states: typing.Iterable["FA"], char: str) -> list["FA"]:
        """The states we can be in after reading `char` from any of `states`.

        Each state is epsilon-closed first, so `states` does not need to be.
        """
        result: dict[FA, None] = {}
        for state in states:
            for reachable in state.epsilon_closure():
                target = reachable.transitions.get(char)
                if target is not None:
                    result.setdefault(target, None)
        return list(result)

    def clone(self) -> "FA":
        """Deep copy the whole machine reachable from this state."""
        closure = self.closure()
        index = {state: i for i, state in enumerate(closure)}
        copies = [FA(state.accept) for state in closure]
        for state, copy in zip(closure, copies):
            for char, target in state.transitions.items():
                copy.transitions[char] = copies[index[target]]
            for target in state.epsilons:
                copy.epsilons.append(copies[index[target]])
        return copies[0]

    def first_accepting_state(self) -> "FA | None":
        for state in self.closure():
            if state.accept is not None:
                return state
        return None

    def accepting_states(self) -> list["FA"]:
        return [state for state in self.closure() if state.accept is not None]

    def _end(self) -> "FA":
        """The one accepting state, which is where the combinators attach
        whatever comes next.
        """
        accepting = self.accepting_states()
        if len(accepting) != 1:
            raise ValueError(
                f"Cannot combine a machine with {len(accepting)} accepting states; "
                "exactly one is required"
            )
        return accepting[0]

    def dump_graph(self, name="nfa.dot"):
        closure = self.closure()
        index = {state: i for i, state in enumerate(closure)}
        with open(name, "w", encoding="utf8") as f:
            f.write("digraph G {\n")
            for state in closure:
                label = state.accept if state.accept is not None else ""
                label = label.replace('"', '\\"')
                f.write(f'  {index[state]} [label="{label}"];\n')
                for char, target in state.transitions.items():
                    label = repr(char)[1:-1].replace('"', '\\"')
                    f.write(f'  {index[state]} -> {index[target]} [label="{label}"];\n')
                for target in state.epsilons:
                    f.write(f'  {index[state]} -> {index[target]} [label="ε"];\n')
            f.write("}\n")

    ###########################################################################
    # Combinators
    ###########################################################################
    @classmethod
    def literal(cls, value: typing.Iterable[str], accept: str = "") -> "FA":
        """Match the characters of `value` in order."""
        start = FA()
        current = start
        for char in value:
            following = FA()
            current.transitions[char] = following
            current = following
        current.accept = accept
        return start

    @classmethod
    def set(cls, chars: typing.Iterable[str], accept: str = "") -> "FA":
        """Match any one of `chars`."""
        start = FA()
        end = FA(accept)
        for char in chars:
            start.transitions[char] = end
        if len(start.transitions) == 0:
            raise ValueError("Cannot build a set from no characters")
        return start

    @classmethod
    def concat(cls, exprs: typing.Iterable["FA | None"], accept: str = "") -> "FA":
        """Match each of `exprs` one after the other."""
        start: FA | None = None
        end: FA | None = None
        for expr in exprs:
            if expr is None:
                continue

            expr = expr.clone()
            if start is None:
                start = expr
            else:
                assert end is not None
                end.accept = None
                end.epsilons.append(expr)
            end = expr._end()

        if start is None or end is None:
            raise ValueError("Cannot concatenate nothing")
        end.accept = accept
        return start

    @classmethod
    def alt(cls, exprs: typing.Iterable["FA | None"], accept: str = "") -> "FA":
        """Match any one of `exprs`. The operands lose their own accept
        symbols: the result accepts `accept` whichever one matched.
        """
        start = FA()
        end = FA(accept)
        for expr in exprs:
            if expr is None:
                continue

            expr = expr.clone()
            expr_end = expr._end()
            expr_end.accept = None
            expr_end.epsilons.append(end)
            start.epsilons.append(expr)

        if len(start.epsilons) == 0:
            raise ValueError("Cannot build an alternation of nothing")
        return start

    @classmethod
    def repeat(cls, expr: "FA", accept: str | None = None) -> "FA":
        """Match `expr` one or more times. With no `accept`, the result
        keeps the accept symbol of `expr`.
        """
        result = expr.clone()
        end = result._end()
        end.epsilons.append(result)
        if accept is not None:
            end.accept = accept
        return result

    @classmethod
    def optional(cls, expr: "FA", accept: str | None = None) -> "FA":
        """Match `expr` or nothing at all."""
        result = expr.clone()
        end = result._end()
        if accept is not None:
            end.accept = accept
        result.epsilons.append(end)
        return result

    @classmethod
    def kleene(cls, expr: "FA", accept: str | None = None) -> "FA":
        """Match `expr` zero or more times."""
        return cls.optional(cls.repeat(expr), accept)

    @classmethod
    def lexer(cls, *exprs: "FA") -> "FA":
        """Combine tagged machines into one lexer.

        Unlike `alt`, every operand keeps its own accept symbol. When more
        than one of them accepts the same text, the one passed first wins.
        """
        root = FA()
        for expr in exprs:
            root.epsilons.append(expr.clone())
        return root

    def plus(self) -> "FA":
        return FA.repeat(self)

    def star(self) -> "FA":
        return FA.kleene(self)

    def question(self) -> "FA":
        return FA.optional(self)

    def __add__(self, value: "FA", /) -> "FA":
        return FA.concat([self, value], value._end().accept or "")

    def __or__(self, value: "FA", /) -> "FA":
        return FA.alt([self, value], self._end().accept or "")


def accepting_symbol(states: typing.Iterable[FA]) -> str | None:
    """The accept symbol of the first accepting state in `states`, or None.

    The order of `states` decides ties, which means that when two tagged
    machines in a lexer accept the same text the one that was built into the
    lexer first wins.
    """
    for state in states:
        if state.accept is not None:
            return state.accept
    return None
