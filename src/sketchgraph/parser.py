"""Parser for the minimal DOT-style digraph description language."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import ParseError
from .model import DIRECTIONS, GraphModel

GRAPH_MAX_NODES = 2000
GRAPH_MAX_EDGES = 8000

_KEYWORDS = {"strict", "graph", "digraph", "node", "edge", "subgraph"}

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<comment>//[^\n]*|\#[^\n]*|/\*.*?\*/)
  | (?P<string>"(?:[^"\\]|\\.)*")
  | (?P<number>-?(?:\.\d+|\d+(?:\.\d*)?))
  | (?P<ident>[A-Za-z_\u0080-\U0010ffff][A-Za-z0-9_.\u0080-\U0010ffff]*)
  | (?P<arrow>->)
  | (?P<undirected>--)
  | (?P<punct>[{}\[\];,=])
    """,
    re.VERBOSE | re.DOTALL,
)


@dataclass
class _Token:
    kind: str
    value: str
    raw: str
    line: int
    column: int


def parse(text: str) -> GraphModel:
    """Parse a digraph description into a fresh ``GraphModel``."""
    tokens = _tokenize(text)
    return _Parser(tokens).parse_graph()


def _tokenize(text: str) -> List[_Token]:
    tokens: List[_Token] = []
    pos = 0
    line = 1
    line_start = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            fragment = text[pos : pos + 20].split("\n", 1)[0]
            raise ParseError(
                "unexpected character",
                fragment=fragment,
                line=line,
                column=pos - line_start + 1,
            )
        kind = match.lastgroup or ""
        raw = match.group(0)
        if kind not in {"ws", "comment"}:
            value = _unquote(raw) if kind == "string" else raw
            if kind == "ident" and raw.lower() in _KEYWORDS:
                kind = "keyword"
                value = raw.lower()
            tokens.append(_Token(kind, value, raw, line, pos - line_start + 1))
        newlines = raw.count("\n")
        if newlines:
            line += newlines
            line_start = pos + raw.rfind("\n") + 1
        pos = match.end()
    tokens.append(_Token("eof", "", "", line, pos - line_start + 1))
    return tokens


def _unquote(raw: str) -> str:
    body = raw[1:-1]

    def _escape(match: "re.Match[str]") -> str:
        ch = match.group(1)
        if ch == "n":
            return "\n"
        if ch in {"l", "r"}:
            # DOT justified line breaks; rendered as plain breaks.
            return "\n"
        return ch

    return re.sub(r"\\(.)", _escape, body, flags=re.DOTALL)


class _Parser:
    def __init__(self, tokens: List[_Token]) -> None:
        self._tokens = tokens
        self._pos = 0
        self._graph = GraphModel()
        self._node_defaults: Dict[str, str] = {}

    def _peek(self, offset: int = 0) -> _Token:
        idx = min(self._pos + offset, len(self._tokens) - 1)
        return self._tokens[idx]

    def _advance(self) -> _Token:
        token = self._peek()
        if token.kind != "eof":
            self._pos += 1
        return token

    def _error(self, message: str, token: Optional[_Token] = None) -> ParseError:
        token = token or self._peek()
        fragment = token.raw if token.kind != "eof" else "<end of input>"
        return ParseError(message, fragment=fragment, line=token.line, column=token.column)

    def _expect_punct(self, value: str) -> _Token:
        token = self._peek()
        if token.kind not in {"punct", "arrow"} or token.value != value:
            raise self._error(f'expected "{value}"')
        return self._advance()

    def _is_punct(self, value: str, offset: int = 0) -> bool:
        token = self._peek(offset)
        return token.kind == "punct" and token.value == value

    def _expect_id(self, what: str) -> str:
        token = self._peek()
        if token.kind not in {"ident", "number", "string"}:
            raise self._error(f"expected {what}")
        self._advance()
        return token.value

    def parse_graph(self) -> GraphModel:
        token = self._peek()
        if token.kind == "keyword" and token.value == "strict":
            self._advance()
            token = self._peek()
        if token.kind == "keyword" and token.value == "graph":
            raise self._error("undirected graphs are not supported; use digraph")
        if not (token.kind == "keyword" and token.value == "digraph"):
            raise self._error('expected "digraph"')
        self._advance()
        if self._peek().kind in {"ident", "number", "string"}:
            self._graph.name = self._advance().value
        self._expect_punct("{")
        self._parse_statements()
        self._expect_punct("}")
        if self._peek().kind != "eof":
            raise self._error("unexpected content after graph block")
        self._check_limits()
        return self._graph

    def _parse_statements(self) -> None:
        while not self._is_punct("}"):
            if self._peek().kind == "eof":
                raise self._error('unterminated graph block, expected "}"')
            self._parse_statement()
            if self._is_punct(";"):
                self._advance()
                continue
            if not self._is_punct("}"):
                raise self._error('expected ";" after statement')

    def _parse_statement(self) -> None:
        token = self._peek()
        if token.kind == "keyword":
            if token.value in {"graph", "node", "edge"}:
                self._advance()
                attrs = self._parse_attr_list(required=True)
                self._apply_attr_stmt(token.value, attrs, token)
                return
            raise self._error(f'unsupported statement "{token.raw}"')
        if token.kind not in {"ident", "number", "string"}:
            raise self._error("expected a node id or attribute statement")
        first = self._expect_id("node id")

        if self._is_punct("="):
            self._advance()
            value_token = self._peek()
            value = self._expect_id("attribute value")
            self._apply_graph_attrs({first: value}, value_token)
            return

        nxt = self._peek()
        if nxt.kind == "undirected":
            raise self._error('undirected edge "--" is not supported; use "->"', nxt)
        if nxt.kind == "arrow":
            chain = [first]
            while self._peek().kind == "arrow":
                self._advance()
                chain.append(self._expect_id("edge target node id"))
            if self._is_punct("["):
                # Edge attributes are accepted but carry no meaning here.
                self._parse_attr_list(required=True)
            created = [node_id for node_id in chain if node_id not in self._graph.nodes]
            for source, target in zip(chain, chain[1:]):
                self._graph.add_edge(source, target)
            self._apply_node_defaults(created)
            return

        attrs: Dict[str, str] = {}
        if self._is_punct("["):
            attrs = self._parse_attr_list(required=True)
        existed = first in self._graph.nodes
        label = attrs.get("label")
        if label is None and not existed:
            label = self._node_defaults.get("label")
        self._graph.add_node(first, label)

    def _apply_node_defaults(self, node_ids: List[str]) -> None:
        default_label = self._node_defaults.get("label")
        if default_label is None:
            return
        for node_id in node_ids:
            self._graph.nodes[node_id].label = default_label

    def _parse_attr_list(self, *, required: bool) -> Dict[str, str]:
        attrs: Dict[str, str] = {}
        if not self._is_punct("["):
            if required:
                raise self._error('expected "["')
            return attrs
        self._advance()
        while not self._is_punct("]"):
            key = self._expect_id("attribute name")
            self._expect_punct("=")
            attrs[key] = self._expect_id(f'value for attribute "{key}"')
            if self._is_punct(",") or self._is_punct(";"):
                self._advance()
            elif not self._is_punct("]"):
                raise self._error('expected "," or "]" in attribute list')
        self._advance()
        return attrs

    def _apply_attr_stmt(self, kind: str, attrs: Dict[str, str], token: _Token) -> None:
        if kind == "graph":
            self._apply_graph_attrs(attrs, token)
        elif kind == "node":
            self._node_defaults.update(attrs)

    def _apply_graph_attrs(self, attrs: Dict[str, str], token: _Token) -> None:
        for key, value in attrs.items():
            lowered = key.lower()
            if lowered == "rankdir":
                direction = value.upper()
                if direction not in DIRECTIONS:
                    raise self._error(
                        f'invalid rankdir "{value}" (expected one of {", ".join(DIRECTIONS)})',
                        token,
                    )
                self._graph.direction = direction
            elif lowered in {"nodesep", "ranksep"}:
                gap = _parse_gap(value)
                if gap is None:
                    raise self._error(f'invalid {lowered} "{value}"', token)
                if lowered == "nodesep":
                    self._graph.node_gap = gap
                else:
                    self._graph.rank_gap = gap

    def _check_limits(self) -> None:
        if len(self._graph.nodes) > GRAPH_MAX_NODES or len(self._graph.edges) > GRAPH_MAX_EDGES:
            raise ParseError(
                "graph exceeds configured limits: "
                f"nodes={len(self._graph.nodes)} (max {GRAPH_MAX_NODES}), "
                f"edges={len(self._graph.edges)} (max {GRAPH_MAX_EDGES})"
            )


def _parse_gap(value: str) -> Optional[float]:
    try:
        gap = float(value)
    except ValueError:
        return None
    if not math.isfinite(gap) or gap < 0:
        return None
    return gap

