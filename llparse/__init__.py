"""Build and run table-driven LL(1) parsers.

The pieces, in the order you use them:

- [grammar] analyzes a context-free grammar and builds a parse table.
- [automaton] builds NFA lexers out of simple combinators.
- [runtime] tokenizes text with a lexer and parses the tokens with a table.
"""
from . import automaton
from . import grammar
from . import runtime

from .automaton import FA, accepting_symbol
from .grammar import (
    EOS,
    ERROR,
    Conflict,
    ConflictError,
    Grammar,
    GrammarError,
    LeftRecursionError,
    ParseTable,
    Rule,
)
from .runtime import (
    NodeType,
    ParseNode,
    Parser,
    Token,
    TokenEnumerator,
    Tokenizer,
    parse,
)
