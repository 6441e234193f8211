"""Keyword-driven classification of free-text queries into view intents."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .model import Graph, Node, NodeType, label_mentions, words
from .viewstate import QueryMode, QueryResult, ViewState

log = logging.getLogger(__name__)

COMPLEXITY_THRESHOLD = 7.0
IMPORTANCE_THRESHOLD = 7.0
MAX_SUGGESTIONS = 6

_SHOW_WORDS = ("show", "display", "list")
_PATH_WORDS = ("path", "flow", "trace")


@dataclass(frozen=True)
class DomainRule:
    name: str
    triggers: Tuple[str, ...]
    types: Tuple[NodeType, ...]
    label_keywords: Tuple[str, ...]
    mode: QueryMode


# Priority order; the first rule whose trigger appears in the query wins.
DOMAIN_RULES: Tuple[DomainRule, ...] = (
    DomainRule("entry", ("entry", "main"), (NodeType.ENTRY,), ("entry", "main"), QueryMode.FILTER),
    DomainRule("api", ("api", "endpoint"), (NodeType.API,), ("api", "endpoint"), QueryMode.FILTER),
    DomainRule("database", ("database", "db"), (NodeType.DATABASE,), ("database", "db"), QueryMode.CLUSTER),
    DomainRule("test", ("test", "spec"), (NodeType.TEST,), ("test", "spec"), QueryMode.FILTER),
    DomainRule("config", ("config", "setting"), (NodeType.CONFIG,), ("config", "setting"), QueryMode.FILTER),
    DomainRule("service", ("service",), (NodeType.SERVICE,), ("service",), QueryMode.CLUSTER),
    DomainRule(
        "external",
        ("external", "dependenc"),
        (NodeType.EXTERNAL,),
        ("external", "third"),
        QueryMode.CLUSTER,
    ),
)


def _mentions(query_words: Sequence[str], keywords: Sequence[str]) -> bool:
    return any(word.startswith(keyword) for word in query_words for keyword in keywords)


def _label_contains(node: Node, keywords: Sequence[str]) -> bool:
    # Word-prefix match so "db" does not hit "Feedback".
    return label_mentions(node.label, keywords)


def find_entry_node(graph: Graph) -> Optional[str]:
    candidates = graph.entry_candidates()
    if candidates:
        return candidates[0]
    targets = {edge.target for edge in graph.edges}
    for node_id in graph.nodes:
        if node_id not in targets:
            return node_id
    return next(iter(graph.nodes), None)


def classify(query: str, graph: Graph) -> QueryResult:
    """Map ``query`` to a mode and a target node set.

    Rules are checked in priority order: show/display with a domain keyword,
    path/flow/trace, complex/important, then a plain substring search.
    """
    lowered = (query or "").strip().lower()
    query_words = words(lowered)

    if _mentions(query_words, _SHOW_WORDS):
        for rule in DOMAIN_RULES:
            if not _mentions(query_words, rule.triggers):
                continue
            targets = frozenset(
                node.id
                for node in graph
                if node.type in rule.types or _label_contains(node, rule.label_keywords)
            )
            log.debug("query %r matched domain rule %s (%d nodes)", query, rule.name, len(targets))
            return QueryResult(targets, rule.mode, rule=rule.name)

    if _mentions(query_words, _PATH_WORDS):
        entry = find_entry_node(graph)
        targets = frozenset([entry, *graph.outgoing(entry)]) if entry else frozenset()
        return QueryResult(targets, QueryMode.PATH_TRACE, rule="path")

    wants_complex = _mentions(query_words, ("complex",))
    wants_important = _mentions(query_words, ("important", "importance"))
    if wants_complex or wants_important:
        targets = frozenset(
            node.id
            for node in graph
            if (wants_complex and node.complexity > COMPLEXITY_THRESHOLD)
            or (wants_important and node.importance > IMPORTANCE_THRESHOLD)
        )
        return QueryResult(targets, QueryMode.HIGHLIGHT, rule="metrics")

    return QueryResult(frozenset(_search(graph, lowered)), QueryMode.FILTER, rule="search")


def _search(graph: Graph, term: str) -> List[str]:
    found: List[str] = []
    for node in graph:
        haystack = [node.label.lower(), node.type.value]
        if node.file_path:
            haystack.append(node.file_path.lower())
        haystack.extend(dep.lower() for dep in node.dependencies)
        if any(term in item for item in haystack):
            found.append(node.id)
    return found


def apply_query(view: ViewState, query: str, graph: Graph) -> QueryResult:
    """Classify ``query`` and write the outcome into ``view``."""
    result = classify(query, graph)
    view.apply_query(query, result)
    return result


def suggest_queries(graph: Graph, view: Optional[ViewState] = None) -> List[str]:
    present = {node.type for node in graph}
    has_auth = any(label_mentions(node.label, ("auth", "login")) for node in graph)
    suggestions: List[str] = []
    if NodeType.ENTRY in present or graph.entry_candidates():
        suggestions.append("trace the main flow")
    if NodeType.API in present:
        suggestions.append("show api endpoints")
    if NodeType.DATABASE in present:
        suggestions.append("show the database layer")
    if has_auth:
        suggestions.append("trace the authentication flow")
    if NodeType.TEST in present:
        suggestions.append("show tests")
    if NodeType.CONFIG in present:
        suggestions.append("show configuration")
    if view is not None:
        selected = graph.get(view.selected_node)
        if selected is not None:
            suggestions.insert(0, selected.label)
    if not graph.is_empty:
        suggestions.append("highlight complex components")

    seen = set()
    unique: List[str] = []
    for item in suggestions:
        key = item.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique[:MAX_SUGGESTIONS]


@dataclass
class InsightSummary:
    total_nodes: int = 0
    total_edges: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    average_complexity: float = 0.0
    coupling: float = 0.0
    visible_nodes: int = 0
    highlighted_nodes: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "total_nodes": self.total_nodes,
            "total_edges": self.total_edges,
            "by_type": dict(self.by_type),
            "average_complexity": self.average_complexity,
            "coupling": self.coupling,
            "visible_nodes": self.visible_nodes,
            "highlighted_nodes": self.highlighted_nodes,
        }


def summarize(graph: Graph, view: Optional[ViewState] = None) -> InsightSummary:
    summary = InsightSummary(total_nodes=len(graph.nodes), total_edges=len(graph.edges))
    for node in graph:
        summary.by_type[node.type.value] = summary.by_type.get(node.type.value, 0) + 1
    if graph.nodes:
        summary.average_complexity = round(
            sum(node.complexity for node in graph) / len(graph.nodes), 2
        )
        summary.coupling = round(len(graph.edges) / len(graph.nodes), 2)
    if view is None:
        summary.visible_nodes = summary.total_nodes
    else:
        summary.visible_nodes = sum(1 for node in graph if view.is_visible(node))
        summary.highlighted_nodes = len(view.highlighted_nodes & set(graph.nodes))
    return summary


__all__ = [
    "COMPLEXITY_THRESHOLD",
    "IMPORTANCE_THRESHOLD",
    "DOMAIN_RULES",
    "DomainRule",
    "InsightSummary",
    "QueryMode",
    "QueryResult",
    "apply_query",
    "classify",
    "find_entry_node",
    "suggest_queries",
    "summarize",
]
