import enum
import logging
import typing
from dataclasses import dataclass, field

from . import automaton
from . import grammar
from .automaton import FA
from .grammar import EOS, ERROR


###############################################################################
# Tokenizer
###############################################################################
@dataclass(frozen=True)
class Token:
    symbol: str
    line: int
    column: int
    position: int
    length: int
    value: str


lexer_log = logging.getLogger("llparse.lexer")


def _epsilon_closure(states: typing.Iterable[FA]) -> list[FA]:
    result: dict[FA, None] = {}
    for state in states:
        for reachable in state.epsilon_closure():
            result.setdefault(reachable, None)
    return list(result)


class Tokenizer:
    """Turns characters into tokens using a lexer machine.

    Iterating a tokenizer starts a brand new scan of the input, so as long as
    the input itself can be iterated more than once (a string, a list) every
    iteration produces the same tokens.
    """

    lexer: FA
    input: typing.Iterable[str]

    def __init__(self, lexer: FA, input: typing.Iterable[str]):
        self.lexer = lexer
        self.input = input

    def __iter__(self) -> "TokenEnumerator":
        return TokenEnumerator(self.lexer, self.input)


class LexState(enum.Enum):
    NOT_STARTED = 0
    RUNNING = 1
    EXHAUSTED = 2
    CLOSED = 3


class TokenEnumerator:
    """One scan over the input.

    Matching is greedy: we keep feeding characters to the machine for as
    long as any state survives, and then take whatever accept symbol the
    surviving states have. There is no backing up to a shorter match. If
    nothing accepts, the text we consumed (plus the character that stopped
    us) comes out as an #ERROR token and we start again after it. After the
    input runs out we produce exactly one #EOS token.
    """

    _lexer: FA
    _source: typing.Iterable[str]
    _input: typing.Iterator[str]
    _initial: list[FA]
    _current: str | None
    _state: LexState
    _line: int
    _column: int
    _position: int

    def __init__(self, lexer: FA, input: typing.Iterable[str]):
        self._lexer = lexer
        self._source = input
        self._initial = lexer.epsilon_closure()
        self._state = LexState.NOT_STARTED
        self.reset()

    def reset(self):
        """Go back to the start of the input."""
        if self._state == LexState.CLOSED:
            raise ValueError("Tokenizer is closed")

        self._input = iter(self._source)
        self._current = None
        self._state = LexState.NOT_STARTED
        self._line = 1
        self._column = 1
        self._position = 0

    @property
    def state(self) -> LexState:
        return self._state

    def close(self):
        self._state = LexState.CLOSED

    def __enter__(self) -> "TokenEnumerator":
        return self

    def __exit__(self, *args):
        self.close()

    def __iter__(self) -> "TokenEnumerator":
        return self

    def __next__(self) -> Token:
        match self._state:
            case LexState.CLOSED:
                raise ValueError("Tokenizer is closed")
            case LexState.EXHAUSTED:
                raise StopIteration
            case LexState.NOT_STARTED:
                self._current = next(self._input, None)
                self._state = LexState.RUNNING
            case LexState.RUNNING:
                pass

        line, column, position = self._line, self._column, self._position
        if self._current is None:
            self._state = LexState.EXHAUSTED
            token = Token(EOS, line, column, position, 0, "")
        else:
            symbol, value = self._lex()
            token = Token(symbol, line, column, position, len(value), value)

        if lexer_log.isEnabledFor(logging.DEBUG):
            lexer_log.debug(f"{token.line}:{token.column} {token.symbol} {token.value!r}")
        return token

    def _lex(self) -> typing.Tuple[str, str]:
        states = self._initial
        buffer: list[str] = []
        while self._current is not None:
            next_states = FA.move(states, self._current)
            if len(next_states) == 0:
                break

            buffer.append(self._current)
            states = next_states
            self._consume()

        symbol = None
        if len(buffer) > 0:
            symbol = automaton.accepting_symbol(_epsilon_closure(states))

        if symbol is None:
            # Either we couldn't take even one step, or we stopped somewhere
            # that doesn't accept. Take the character that stopped us along
            # with whatever we already ate, so that we always make progress.
            if self._current is not None:
                buffer.append(self._current)
                self._consume()
            symbol = ERROR

        return symbol, "".join(buffer)

    def _consume(self):
        assert self._current is not None
        self._position += 1
        if self._current == "\n":
            self._line += 1
            self._column = 1
        else:
            self._column += 1
        self._current = next(self._input, None)


###############################################################################
# Parser
###############################################################################
class NodeType(enum.Enum):
    INITIAL = 0
    NON_TERMINAL = 1
    END_NON_TERMINAL = 2
    TERMINAL = 3
    ERROR = 4
    END_DOCUMENT = 5


class EndMarker(typing.NamedTuple):
    """Sits on the parse stack below the symbols of an expanded non-terminal;
    popping it ends that non-terminal.
    """

    symbol: str


StackEntry = str | EndMarker


@dataclass
class ParseNode:
    symbol: str
    value: str | None = None
    children: list["ParseNode"] = field(default_factory=list)
    line: int | None = None
    column: int | None = None
    position: int | None = None

    @property
    def is_leaf(self) -> bool:
        return self.value is not None

    def leaves(self) -> typing.Iterator["ParseNode"]:
        stack: list[ParseNode] = [self]
        while len(stack) > 0:
            node = stack.pop()
            if node.is_leaf:
                yield node
            stack.extend(reversed(node.children))

    def format_lines(self) -> list[str]:
        lines = []
        stack: list[tuple[ParseNode, int]] = [(self, 0)]
        while len(stack) > 0:
            node, indent = stack.pop()
            if node.is_leaf:
                lines.append(
                    (" " * indent)
                    + f"{node.symbol}:{node.value!r} [{node.line}:{node.column}]"
                )
            else:
                lines.append((" " * indent) + node.symbol)
            stack.extend((child, indent + 2) for child in reversed(node.children))
        return lines

    def format(self) -> str:
        return "\n".join(self.format_lines())

    def __str__(self) -> str:
        return self.format()


action_log = logging.getLogger("llparse.action")
recover_log = logging.getLogger("llparse.recovery")


class Parser:
    """A pull parser for LL(1) tables.

    Call `read()` to move to the next node, then look at `node_type`,
    `symbol`, `value` and the location properties to see where you are, a
    bit like an XML reader:

        parser = Parser(table, Tokenizer(lexer, "3+5*7"))
        while parser.read():
            print(parser.node_type, parser.symbol, parser.value)

    Or call `parse_subtree()` to read a whole tree in one go.

    Syntax errors never raise. They show up as ERROR nodes carrying the text
    that was skipped, and the parser recovers and keeps going, so it always
    gets to END_DOCUMENT eventually.
    """

    table: grammar.ParseTable
    start: str

    _tokens: typing.Iterator[Token]
    _token: Token | None
    _error: Token | None
    _stack: list[StackEntry]
    _reported: bool

    def __init__(
        self,
        table: grammar.ParseTable,
        tokenizer: typing.Iterable[Token],
        start: str | None = None,
    ):
        self.table = table
        if start is None:
            start = table.start
        if not start:
            raise ValueError("Parser needs a start symbol")
        self.start = start

        self._tokens = iter(tokenizer)
        self._token = None
        self._error = None
        self._stack = []

        # Whether the symbol on top of the stack has already been reported.
        # Recovery can leave a new, unreported symbol on top, which the next
        # read() has to report before doing anything with it.
        self._reported = True

    @property
    def node_type(self) -> NodeType:
        if self._error is not None:
            return NodeType.ERROR
        if self._token is None:
            return NodeType.INITIAL
        if len(self._stack) > 0:
            top = self._stack[-1]
            if isinstance(top, EndMarker):
                return NodeType.END_NON_TERMINAL
            if top == self._token.symbol:
                return NodeType.TERMINAL
            return NodeType.NON_TERMINAL
        return NodeType.END_DOCUMENT

    @property
    def symbol(self) -> str | None:
        if self._error is not None:
            return self._error.symbol
        if len(self._stack) > 0:
            top = self._stack[-1]
            if isinstance(top, EndMarker):
                return top.symbol
            return top
        return None

    @property
    def value(self) -> str | None:
        match self.node_type:
            case NodeType.ERROR:
                assert self._error is not None
                return self._error.value
            case NodeType.TERMINAL:
                assert self._token is not None
                return self._token.value
            case _:
                return None

    def _location_token(self) -> Token | None:
        return self._error if self._error is not None else self._token

    @property
    def line(self) -> int | None:
        token = self._location_token()
        return token.line if token is not None else None

    @property
    def column(self) -> int | None:
        token = self._location_token()
        return token.column if token is not None else None

    @property
    def position(self) -> int | None:
        token = self._location_token()
        return token.position if token is not None else None

    def _advance(self):
        assert self._token is not None
        # Past the end of the stream we just sit on the #EOS token.
        self._token = next(self._tokens, self._token)

    def read(self) -> bool:
        """Move to the next node. Returns False once there is nothing left."""
        if self.node_type == NodeType.INITIAL:
            self._stack.append(self.start)
            self._token = next(self._tokens)
            self._check_top()
            return True

        assert self._token is not None
        if self._error is not None:
            self._error = None
            if self._token.symbol == EOS:
                # Nothing left to resynchronize with.
                self._stack.clear()
                return True
            if not self._reported:
                self._reported = True
                return True

        if len(self._stack) == 0:
            return False

        top = self._stack[-1]
        al = action_log
        if al.isEnabledFor(logging.INFO):
            al.info(
                "{stack: <40} {input: <10} {top}".format(
                    stack=repr(self._stack[-5:]), input=self._token.symbol, top=top
                )
            )

        if isinstance(top, EndMarker):
            self._stack.pop()
        elif top == self._token.symbol:
            self._advance()
            self._stack.pop()
        else:
            rule = self.table.lookup(top, self._token.symbol)
            if rule is None:
                self._panic()
                return True

            self._stack.pop()
            self._stack.append(EndMarker(top))
            self._stack.extend(reversed(rule.right))

        self._check_top()
        return True

    def _check_top(self):
        """Start recovery right away if what's now on top can never match:
        a terminal that isn't the lookahead, or an empty stack with input
        left over.
        """
        assert self._token is not None
        if len(self._stack) == 0:
            if self._token.symbol != EOS:
                self._panic()
            return

        top = self._stack[-1]
        if isinstance(top, EndMarker) or top in self.table or top == self._token.symbol:
            return
        self._panic()

    def _panic(self):
        """Panic-mode error recovery.

        Record an error at the lookahead. If the top of the stack is a
        non-terminal, skip tokens until one of them can start it. Otherwise
        skip tokens until we see one that matches a terminal somewhere on the
        stack, and throw away everything above that terminal. End markers
        are kept, so that every non-terminal we started still gets ended.

        Either a token is skipped or the stack shrinks, unless we're at the
        end of the input, in which case the next read() ends the document.
        """
        assert self._token is not None
        rl = recover_log

        start = self._token
        skipped: list[str] = []

        top = self._stack[-1] if len(self._stack) > 0 else None
        row = self.table.row(top) if isinstance(top, str) else None
        if row is not None:
            if rl.isEnabledFor(logging.INFO):
                rl.info(f"{start.line}:{start.column}: {start.symbol} cannot start {top}")
            while self._token.symbol not in row and self._token.symbol != EOS:
                skipped.append(self._token.value)
                self._advance()
        else:
            if rl.isEnabledFor(logging.INFO):
                rl.info(f"{start.line}:{start.column}: unexpected {start.symbol}, expected {top}")
            on_stack = {s for s in self._stack if not isinstance(s, EndMarker)}
            while self._token.symbol not in on_stack and self._token.symbol != EOS:
                skipped.append(self._token.value)
                self._advance()

            if self._token.symbol != EOS:
                target = max(
                    i for i, s in enumerate(self._stack) if s == self._token.symbol
                )
                discarded = self._stack[target + 1 :]
                del self._stack[target + 1 :]
                self._stack.extend(s for s in discarded if isinstance(s, EndMarker))
                if rl.isEnabledFor(logging.DEBUG):
                    rl.debug(f"  discarded {discarded}")
                self._reported = False

        value = "".join(skipped)
        if rl.isEnabledFor(logging.DEBUG):
            rl.debug(f"  skipped {value!r}, resuming at {self._token.symbol}")
        self._error = Token(ERROR, start.line, start.column, start.position, len(value), value)

    def parse_subtree(self, trim_empties: bool = False) -> ParseNode | None:
        """Read a whole subtree starting at the next node.

        Returns None when the next node ends the enclosing non-terminal or
        the document. With `trim_empties`, non-terminals that end up with no
        children (nil rules, mostly) are left out of the tree.
        """
        if not self.read():
            return None

        match self.node_type:
            case NodeType.NON_TERMINAL:
                pass
            case NodeType.TERMINAL | NodeType.ERROR:
                return self._leaf()
            case _:
                return None

        # The nodes we have opened and not yet closed. A non-terminal joins
        # its parent when it closes, which is when we know whether it is
        # empty.
        assert self.symbol is not None
        result = ParseNode(symbol=self.symbol)
        stack: list[ParseNode] = [result]
        while len(stack) > 0:
            node_type = self.node_type if self.read() else NodeType.END_DOCUMENT
            match node_type:
                case NodeType.NON_TERMINAL:
                    assert self.symbol is not None
                    stack.append(ParseNode(symbol=self.symbol))

                case NodeType.TERMINAL | NodeType.ERROR:
                    stack[-1].children.append(self._leaf())

                case _:
                    node = stack.pop()
                    if len(stack) > 0 and (not trim_empties or len(node.children) > 0):
                        stack[-1].children.append(node)

        return result

    def _leaf(self) -> ParseNode:
        assert self.symbol is not None
        return ParseNode(
            symbol=self.symbol,
            value=self.value,
            line=self.line,
            column=self.column,
            position=self.position,
        )


def parse(
    table: grammar.ParseTable,
    lexer: FA,
    text: typing.Iterable[str],
    *,
    trim_empties: bool = False,
) -> ParseNode | None:
    """Parse the provided text with the parse table and lexer."""
    return Parser(table, Tokenizer(lexer, text)).parse_subtree(trim_empties)
