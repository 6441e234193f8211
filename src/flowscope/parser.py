"""Flowchart DSL parser: tokenizer, statement grammar and label classifier.

The DSL is line oriented. Each line is either structural (diagram header,
``subgraph``/``end``, style declarations, comments), or one or more
``;``-separated statements of the form::

    group (ARROW [|label|] group)*
    group := ref ('&' ref)*
    ref   := IDENT [SHAPE] [:::class]

Shapes and arrows are matched against ordered tables so that precedence
between overlapping syntaxes (``[(`` vs ``[``, ``-- text -->`` vs ``--``) is
explicit. Parsing never raises: lines that fail to tokenize or match the
grammar are skipped and reported through ``Graph.warn``.
"""
from __future__ import annotations

import html
import logging
import random
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .model import Edge, EdgeStyle, Graph, Node, NodeShape, NodeType, words

log = logging.getLogger(__name__)

DEFAULT_COMPLEXITY = 5.0
DEFAULT_IMPORTANCE = 5.0

_DIRECTIONS = {"TD", "TB", "BT", "LR", "RL"}
_HEADER_KEYWORDS = {"graph", "flowchart"}
_IGNORED_KEYWORDS = {"classDef", "class", "style", "linkStyle", "click", "direction"}
_STRUCTURAL_KEYWORDS = _HEADER_KEYWORDS | _IGNORED_KEYWORDS | {"subgraph", "end"}
# A keyword followed by one of these is a node id starting a statement.
_STATEMENT_CONTINUATIONS = ("-", "=", "~", "&", ";", ":::", "|")

# (open, close, shape), most specific first.
SHAPE_TABLE: Tuple[Tuple[str, str, NodeShape], ...] = (
    ("((", "))", NodeShape.CIRCLE),
    ("[[", "]]", NodeShape.SUBROUTINE),
    ("[(", ")]", NodeShape.CYLINDER),
    ("[/", "/]", NodeShape.PARALLELOGRAM),
    ("[\\", "\\]", NodeShape.PARALLELOGRAM_ALT),
    ("[", "]", NodeShape.RECT),
    ("{", "}", NodeShape.DIAMOND),
    (">", "]", NodeShape.ASYMMETRIC),
    ("(", ")", NodeShape.ROUND),
)

# (pattern, style), tried in order at the current position.
ARROW_TABLE: Tuple[Tuple["re.Pattern[str]", EdgeStyle], ...] = (
    (re.compile(r"--\s+(?P<label>[^\s-].*?)\s*-->"), EdgeStyle.SOLID),
    (re.compile(r"-\.\s+(?P<label>[^.]+?)\s*\.->"), EdgeStyle.DOTTED),
    (re.compile(r"-\.->"), EdgeStyle.DOTTED),
    (re.compile(r"==\s+(?P<label>[^=]+?)\s*==>"), EdgeStyle.THICK),
    (re.compile(r"==>"), EdgeStyle.THICK),
    (re.compile(r"-->"), EdgeStyle.SOLID),
    (re.compile(r"---+"), EdgeStyle.PLAIN),
    (re.compile(r"--"), EdgeStyle.PLAIN),
    (re.compile(r"->"), EdgeStyle.SOLID),
)

_IDENT_RE = re.compile(r"[A-Za-z0-9_]+")
_CLASS_RE = re.compile(r":::([A-Za-z0-9_-]+)")
_PIPE_RE = re.compile(r"\|([^|]*)\|")

# Checked in order; the first rule with a keyword that prefixes a label word wins.
TYPE_RULES: Tuple[Tuple[NodeType, Tuple[str, ...]], ...] = (
    (NodeType.ENTRY, ("entry", "main", "start", "app", "index")),
    (NodeType.SERVICE, ("auth", "login", "user", "service")),
    (NodeType.DATABASE, ("database", "db", "sql", "mongo", "storage", "redis", "postgres")),
    (NodeType.API, ("api", "endpoint", "rest", "graphql", "route")),
    (NodeType.HOOK, ("hook", "use")),
    (NodeType.UTIL, ("util", "helper", "common")),
    (NodeType.TEST, ("test", "spec")),
    (NodeType.CONFIG, ("config", "env", "settings", "setting")),
    (NodeType.COMPONENT, ("core", "component", "view", "page", "widget", "ui")),
    (NodeType.MODULE, ("module", "lib", "package")),
    (NodeType.EXTERNAL, ("external", "third", "aws", "vendor")),
)


class DslSyntaxError(ValueError):
    """A line that does not tokenize or match the statement grammar."""

    def __init__(self, message: str, column: int) -> None:
        super().__init__(message)
        self.message = message
        self.column = column

    def __str__(self) -> str:
        return f"{self.message} (column {self.column + 1})"


class TokenKind(Enum):
    IDENT = "ident"
    SHAPE = "shape"
    ARROW = "arrow"
    PIPE_LABEL = "pipe_label"
    CLASS_SUFFIX = "class_suffix"
    AMP = "amp"
    SEMI = "semi"


@dataclass
class Token:
    kind: TokenKind
    text: str
    pos: int
    label: Optional[str] = None
    shape: Optional[NodeShape] = None
    style: Optional[EdgeStyle] = None


@dataclass
class NodeRef:
    node_id: str
    label: Optional[str] = None
    shape: Optional[NodeShape] = None
    style_class: Optional[str] = None

    @property
    def is_declaration(self) -> bool:
        return self.label is not None


@dataclass
class Link:
    style: EdgeStyle
    label: Optional[str]


@dataclass
class Statement:
    groups: List[List[NodeRef]] = field(default_factory=list)
    links: List[Link] = field(default_factory=list)


def tokenize(line: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    length = len(line)
    while pos < length:
        ch = line[pos]
        if ch.isspace():
            pos += 1
            continue
        ident = _IDENT_RE.match(line, pos)
        if ident:
            tokens.append(Token(TokenKind.IDENT, ident.group(0), pos))
            pos = ident.end()
            shape_token = _match_shape(line, pos)
            if shape_token is not None:
                tokens.append(shape_token)
                pos += len(shape_token.text)
            suffix = _CLASS_RE.match(line, pos)
            if suffix:
                tokens.append(Token(TokenKind.CLASS_SUFFIX, suffix.group(0), pos, label=suffix.group(1)))
                pos = suffix.end()
            continue
        if ch == "&":
            tokens.append(Token(TokenKind.AMP, ch, pos))
            pos += 1
            continue
        if ch == ";":
            tokens.append(Token(TokenKind.SEMI, ch, pos))
            pos += 1
            continue
        if ch == "|":
            pipe = _PIPE_RE.match(line, pos)
            if not pipe:
                raise DslSyntaxError("unterminated |label|", pos)
            tokens.append(Token(TokenKind.PIPE_LABEL, pipe.group(0), pos, label=_clean_label(pipe.group(1))))
            pos = pipe.end()
            continue
        arrow = _match_arrow(line, pos)
        if arrow is not None:
            tokens.append(arrow)
            pos += len(arrow.text)
            continue
        raise DslSyntaxError(f"unexpected character {ch!r}", pos)
    return tokens


def _match_shape(line: str, pos: int) -> Optional[Token]:
    for opener, closer, shape in SHAPE_TABLE:
        if not line.startswith(opener, pos):
            continue
        body_start = pos + len(opener)
        if line.startswith('"', body_start):
            quote_end = line.find('"', body_start + 1)
            if quote_end < 0:
                continue
            close_at = quote_end + 1
            while close_at < len(line) and line[close_at] == " ":
                close_at += 1
            if not line.startswith(closer, close_at):
                continue
            raw_label = line[body_start:quote_end + 1]
        else:
            close_at = line.find(closer, body_start)
            if close_at <= body_start:
                continue
            raw_label = line[body_start:close_at]
        end = close_at + len(closer)
        label = _clean_label(raw_label)
        if not label:
            continue
        return Token(TokenKind.SHAPE, line[pos:end], pos, label=label, shape=shape)
    return None


def _match_arrow(line: str, pos: int) -> Optional[Token]:
    for pattern, style in ARROW_TABLE:
        match = pattern.match(line, pos)
        if not match:
            continue
        label = match.groupdict().get("label")
        return Token(
            TokenKind.ARROW,
            match.group(0),
            pos,
            label=_clean_label(label) if label else None,
            style=style,
        )
    return None


def _clean_label(raw: str) -> str:
    text = raw.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        text = text[1:-1]
    return html.unescape(text).strip()


class _StatementParser:
    """Recursive-descent parser over one line's tokens."""

    def __init__(self, tokens: Sequence[Token]) -> None:
        self.tokens = tokens
        self.index = 0

    def parse(self) -> List[Statement]:
        statements: List[Statement] = []
        while not self._at_end():
            if self._peek(TokenKind.SEMI):
                self.index += 1
                continue
            statements.append(self._statement())
        return statements

    def _statement(self) -> Statement:
        statement = Statement(groups=[self._group()])
        while self._peek(TokenKind.ARROW):
            arrow = self.tokens[self.index]
            self.index += 1
            label = arrow.label
            if self._peek(TokenKind.PIPE_LABEL):
                label = self.tokens[self.index].label or label
                self.index += 1
            statement.links.append(Link(style=arrow.style or EdgeStyle.SOLID, label=label))
            statement.groups.append(self._group())
        if not self._at_end() and not self._peek(TokenKind.SEMI):
            token = self.tokens[self.index]
            raise DslSyntaxError(f"unexpected {token.kind.value} {token.text!r}", token.pos)
        return statement

    def _group(self) -> List[NodeRef]:
        refs = [self._ref()]
        while self._peek(TokenKind.AMP):
            self.index += 1
            refs.append(self._ref())
        return refs

    def _ref(self) -> NodeRef:
        if not self._peek(TokenKind.IDENT):
            if self._at_end():
                last = self.tokens[-1] if self.tokens else None
                raise DslSyntaxError("expected node id", (last.pos + len(last.text)) if last else 0)
            token = self.tokens[self.index]
            raise DslSyntaxError(f"expected node id, found {token.text!r}", token.pos)
        ref = NodeRef(node_id=self.tokens[self.index].text)
        self.index += 1
        if self._peek(TokenKind.SHAPE):
            token = self.tokens[self.index]
            ref.label = token.label
            ref.shape = token.shape
            self.index += 1
        if self._peek(TokenKind.CLASS_SUFFIX):
            ref.style_class = self.tokens[self.index].label
            self.index += 1
        return ref

    def _peek(self, kind: TokenKind) -> bool:
        return self.index < len(self.tokens) and self.tokens[self.index].kind is kind

    def _at_end(self) -> bool:
        return self.index >= len(self.tokens)


def parse_statements(line: str) -> List[Statement]:
    """Tokenize and parse one DSL line; raises ``DslSyntaxError``."""
    return _StatementParser(tokenize(line)).parse()


def classify_label(label: str) -> NodeType:
    tokens = words(label)
    for node_type, keywords in TYPE_RULES:
        for token in tokens:
            if any(token.startswith(keyword) for keyword in keywords):
                return node_type
    return NodeType.COMPONENT


def parse(text: str, *, seed: Optional[int] = None) -> Graph:
    """Parse flowchart DSL text into a ``Graph``.

    Without ``seed`` every node gets the default placeholder metrics; with a
    seed, complexity and importance are drawn from ``random.Random(seed)``.
    """
    graph = Graph()
    if not text or not text.strip():
        return graph
    rng = random.Random(seed) if seed is not None else None

    parsed: List[Tuple[int, List[Statement], Optional[str]]] = []
    subgraphs: List[str] = []
    for line_no, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("%%"):
            continue
        head = line.split(None, 1)
        keyword = _structural_keyword(head)
        if keyword in _HEADER_KEYWORDS:
            if len(head) > 1 and head[1].strip().upper() in _DIRECTIONS:
                graph.direction = head[1].strip().upper()
            continue
        if keyword == "subgraph":
            subgraphs.append(_subgraph_title(head[1] if len(head) > 1 else ""))
            continue
        if keyword == "end":
            if subgraphs:
                subgraphs.pop()
            continue
        if keyword in _IGNORED_KEYWORDS:
            continue
        try:
            statements = parse_statements(line)
        except DslSyntaxError as exc:
            graph.warn(f"line {line_no}: skipped ({exc}): {line!r}")
            continue
        if all(not st.links and not any(ref.is_declaration for ref in st.groups[0]) for st in statements):
            graph.warn(f"line {line_no}: skipped (no declaration or connection): {line!r}")
            continue
        parsed.append((line_no, statements, subgraphs[-1] if subgraphs else None))

    for _line_no, statements, subgraph in parsed:
        for statement in statements:
            for group in statement.groups:
                for ref in group:
                    if ref.is_declaration:
                        _declare(graph, ref, subgraph, rng)

    for _line_no, statements, _subgraph in parsed:
        for statement in statements:
            for index, link in enumerate(statement.links):
                for source in statement.groups[index]:
                    for target in statement.groups[index + 1]:
                        graph.add_edge(
                            Edge(source.node_id, target.node_id, label=link.label, style=link.style)
                        )

    log.debug("parsed %d nodes and %d edges", len(graph.nodes), len(graph.edges))
    return graph


def _structural_keyword(head: List[str]) -> Optional[str]:
    """The structural keyword opening a split line, or None for a statement."""
    if head[0] not in _STRUCTURAL_KEYWORDS:
        return None
    if len(head) > 1 and head[1].lstrip().startswith(_STATEMENT_CONTINUATIONS):
        return None
    return head[0]


def _declare(graph: Graph, ref: NodeRef, subgraph: Optional[str], rng: Optional[random.Random]) -> None:
    if ref.node_id in graph:
        log.debug("ignoring redeclaration of %r as %r", ref.node_id, ref.label)
        return
    label = ref.label or ref.node_id
    if rng is not None:
        complexity = float(rng.randint(1, 10))
        importance = float(rng.randint(1, 10))
    else:
        complexity, importance = DEFAULT_COMPLEXITY, DEFAULT_IMPORTANCE
    metadata = {}
    if subgraph:
        metadata["subgraph"] = subgraph
    if ref.style_class:
        metadata["class"] = ref.style_class
    graph.add_node(
        Node(
            id=ref.node_id,
            label=label,
            type=classify_label(label),
            complexity=complexity,
            importance=importance,
            shape=ref.shape or NodeShape.RECT,
            metadata=metadata,
        )
    )


def _subgraph_title(rest: str) -> str:
    rest = rest.strip()
    bracket = re.search(r"\[(.+)\]", rest)
    if bracket:
        return _clean_label(bracket.group(1))
    return _clean_label(rest)


__all__ = [
    "parse",
    "parse_statements",
    "tokenize",
    "classify_label",
    "DslSyntaxError",
    "Token",
    "TokenKind",
    "NodeRef",
    "Statement",
    "SHAPE_TABLE",
    "ARROW_TABLE",
    "TYPE_RULES",
]
