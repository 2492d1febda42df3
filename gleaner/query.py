"""
Boolean tag queries.

    expression := term (OR term)*
    term       := factor ((AND)? factor)*
    factor     := NOT factor | '(' expression ')' | TAG

Keywords are case-insensitive. Adjacent factors are joined with an
implicit AND, so ``work NOT meeting`` means ``work AND (NOT meeting)``.
Tags may be written with or without a leading '#'.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Union

from .errors import QuerySyntaxError
from .types import normalize_tag

_TAG_CHARS = re.compile(r"[A-Za-z0-9_-]+")
_KEYWORDS = {"AND", "OR", "NOT"}


@dataclass(frozen=True)
class Single:
    tag: str

    def matches(self, tags: Iterable[str]) -> bool:
        return self.tag in _as_set(tags)

    def __str__(self) -> str:
        return f"#{self.tag}"


@dataclass(frozen=True)
class And:
    left: "TagQuery"
    right: "TagQuery"

    def matches(self, tags: Iterable[str]) -> bool:
        tags = _as_set(tags)
        return self.left.matches(tags) and self.right.matches(tags)

    def __str__(self) -> str:
        return f"{self.left} AND {self.right}"


@dataclass(frozen=True)
class Or:
    left: "TagQuery"
    right: "TagQuery"

    def matches(self, tags: Iterable[str]) -> bool:
        tags = _as_set(tags)
        return self.left.matches(tags) or self.right.matches(tags)

    def __str__(self) -> str:
        return f"({self.left} OR {self.right})"


@dataclass(frozen=True)
class Not:
    inner: "TagQuery"

    def matches(self, tags: Iterable[str]) -> bool:
        return not self.inner.matches(tags)

    def __str__(self) -> str:
        if isinstance(self.inner, And):
            return f"NOT ({self.inner})"
        return f"NOT {self.inner}"


TagQuery = Union[Single, And, Or, Not]


def _as_set(tags: Iterable[str]):
    if isinstance(tags, (set, frozenset)):
        return tags
    return {t.lower() for t in tags}


@dataclass(frozen=True)
class _Token:
    kind: str  # TAG, AND, OR, NOT, LPAREN, RPAREN
    value: str
    position: int


def _tokenize(query: str) -> list[_Token]:
    tokens: list[_Token] = []
    i = 0
    while i < len(query):
        ch = query[i]
        if ch.isspace():
            i += 1
        elif ch == "(":
            tokens.append(_Token("LPAREN", ch, i))
            i += 1
        elif ch == ")":
            tokens.append(_Token("RPAREN", ch, i))
            i += 1
        else:
            start = i
            if ch == "#":
                i += 1
            m = _TAG_CHARS.match(query, i)
            if m is None:
                if ch == "#":
                    raise QuerySyntaxError("Empty tag name", query, start)
                raise QuerySyntaxError(f"Invalid character {ch!r}", query, start)
            i = m.end()
            if i < len(query) and not query[i].isspace() and query[i] not in "()":
                raise QuerySyntaxError(f"Invalid character {query[i]!r}", query, i)
            word = m.group(0)
            if ch != "#" and word.upper() in _KEYWORDS:
                tokens.append(_Token(word.upper(), word, start))
            else:
                tokens.append(_Token("TAG", normalize_tag(word), start))
    return tokens


class _Parser:
    def __init__(self, query: str, tokens: list[_Token]):
        self.query = query
        self.tokens = tokens
        self.pos = 0

    def peek(self):
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def error(self, message: str, token=None) -> QuerySyntaxError:
        position = token.position if token is not None else len(self.query)
        return QuerySyntaxError(message, self.query, position)

    def parse(self) -> TagQuery:
        if not self.tokens:
            raise QuerySyntaxError("Empty query", self.query, 0)
        result = self.expression()
        extra = self.peek()
        if extra is not None:
            if extra.kind == "RPAREN":
                raise self.error("Unmatched ')'", extra)
            raise self.error(f"Unexpected {extra.value!r}", extra)
        return result

    def expression(self) -> TagQuery:
        left = self.term()
        while self.peek() is not None and self.peek().kind == "OR":
            self.pos += 1
            left = Or(left, self.term())
        return left

    def term(self) -> TagQuery:
        left = self.factor()
        while True:
            token = self.peek()
            if token is None:
                break
            if token.kind == "AND":
                self.pos += 1
            elif token.kind not in ("TAG", "NOT", "LPAREN"):
                break
            left = And(left, self.factor())
        return left

    def factor(self) -> TagQuery:
        token = self.peek()
        if token is None:
            previous = self.tokens[self.pos - 1] if self.pos else None
            if previous is not None and previous.kind in _KEYWORDS:
                raise self.error(f"Dangling operator {previous.value!r}", previous)
            raise self.error("Unexpected end of query")
        if token.kind == "NOT":
            self.pos += 1
            return Not(self.factor())
        if token.kind == "LPAREN":
            self.pos += 1
            inner = self.expression()
            closing = self.peek()
            if closing is None or closing.kind != "RPAREN":
                raise self.error("Unmatched '('", token)
            self.pos += 1
            return inner
        if token.kind == "TAG":
            self.pos += 1
            return Single(token.value)
        if token.kind == "RPAREN":
            raise self.error("Unmatched ')'", token)
        raise self.error(f"Unexpected operator {token.value!r}", token)


def parse_query(query: str) -> TagQuery:
    """Parse a query string.

    >>> str(parse_query("work NOT meeting"))
    '#work AND NOT #meeting'

    Raises QuerySyntaxError with the character position of the problem.
    """
    return _Parser(query, _tokenize(query)).parse()
