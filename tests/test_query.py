from __future__ import annotations

import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from flowscope.model import Edge, Graph, Node, NodeType
from flowscope.parser import parse
from flowscope.query import apply_query, classify, find_entry_node, suggest_queries, summarize
from flowscope.viewstate import QueryMode, ViewState


def _graph() -> Graph:
    graph = Graph()
    graph.add_node(Node("app", "Main App", NodeType.ENTRY, complexity=3, importance=9))
    graph.add_node(Node("auth", "Auth Service", NodeType.SERVICE, complexity=8))
    graph.add_node(Node("db", "UserDatabase", NodeType.DATABASE, metadata={"file_path": "src/db/users.ts"}))
    graph.add_node(Node("routes", "Routes", NodeType.API, complexity=7))
    graph.add_node(Node("feedback", "Feedback Panel", NodeType.COMPONENT))
    graph.add_edge(Edge("app", "auth"))
    graph.add_edge(Edge("app", "routes"))
    graph.add_edge(Edge("auth", "db"))
    return graph


class ClassifyTests(unittest.TestCase):
    def test_show_database_is_cluster(self) -> None:
        result = classify("show me the database", _graph())
        self.assertIs(result.mode, QueryMode.CLUSTER)
        self.assertIn("db", result.target_ids)
        self.assertNotIn("feedback", result.target_ids)

    def test_show_api_is_filter(self) -> None:
        result = classify("list api endpoints", _graph())
        self.assertIs(result.mode, QueryMode.FILTER)
        self.assertEqual(result.target_ids, frozenset({"routes"}))

    def test_path_trace_from_entry(self) -> None:
        result = classify("trace the main flow", _graph())
        self.assertIs(result.mode, QueryMode.PATH_TRACE)
        self.assertEqual(result.target_ids, frozenset({"app", "auth", "routes"}))

    def test_complexity_is_strictly_above_threshold(self) -> None:
        result = classify("highlight complex parts", _graph())
        self.assertIs(result.mode, QueryMode.HIGHLIGHT)
        self.assertEqual(result.target_ids, frozenset({"auth"}))

    def test_importance(self) -> None:
        result = classify("what is important", _graph())
        self.assertEqual(result.target_ids, frozenset({"app"}))

    def test_fallback_search_covers_label_path_and_type(self) -> None:
        graph = _graph()
        self.assertEqual(classify("panel", graph).target_ids, frozenset({"feedback"}))
        self.assertEqual(classify("users.ts", graph).target_ids, frozenset({"db"}))
        result = classify("service", graph)
        self.assertIs(result.mode, QueryMode.FILTER)
        self.assertEqual(result.target_ids, frozenset({"auth"}))

    def test_show_without_domain_falls_through(self) -> None:
        result = classify("show panel", _graph())
        self.assertIs(result.mode, QueryMode.FILTER)
        self.assertEqual(result.rule, "search")

    def test_empty_graph(self) -> None:
        result = classify("trace the flow", Graph())
        self.assertEqual(result.target_ids, frozenset())

    def test_entry_node_fallbacks(self) -> None:
        self.assertEqual(find_entry_node(_graph()), "app")
        graph = parse("X[Alpha] --> Y[Beta]")
        self.assertEqual(find_entry_node(graph), "X")
        self.assertIsNone(find_entry_node(Graph()))


class ApplyQueryTests(unittest.TestCase):
    def test_apply_writes_view(self) -> None:
        graph = _graph()
        view = ViewState()
        apply_query(view, "show me the database", graph)
        self.assertIn("db", view.highlighted_nodes)
        self.assertEqual(view.query_history, ["show me the database"])
        apply_query(view, "panel", graph)
        self.assertFalse(view.is_visible(graph.nodes["db"]))
        self.assertEqual(view.highlighted_nodes, set())


class SuggestionAndSummaryTests(unittest.TestCase):
    def test_suggestions_reflect_graph(self) -> None:
        graph = _graph()
        view = ViewState()
        view.select("routes")
        suggestions = suggest_queries(graph, view)
        self.assertEqual(suggestions[0], "Routes")
        self.assertIn("show the database layer", suggestions)
        self.assertLessEqual(len(suggestions), 6)
        self.assertEqual(len(suggestions), len({s.lower() for s in suggestions}))

    def test_no_suggestions_for_empty_graph(self) -> None:
        self.assertEqual(suggest_queries(Graph()), [])

    def test_summary(self) -> None:
        graph = _graph()
        view = ViewState()
        apply_query(view, "show me the database", graph)
        summary = summarize(graph, view)
        self.assertEqual(summary.total_nodes, 5)
        self.assertEqual(summary.total_edges, 3)
        self.assertEqual(summary.by_type["database"], 1)
        self.assertEqual(summary.coupling, 0.6)
        self.assertEqual(summary.average_complexity, 5.6)
        self.assertEqual(summary.visible_nodes, 5)
        self.assertEqual(summary.highlighted_nodes, 1)
        self.assertEqual(summary.to_dict()["total_nodes"], 5)


if __name__ == "__main__":
    unittest.main()
