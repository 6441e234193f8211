from __future__ import annotations

import math
import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from flowscope.config import ViewConfig
from flowscope.model import Node, NodeType
from flowscope.viewstate import (
    SHOW_ALL,
    Annotation,
    IdFilter,
    InteractionState,
    QueryMode,
    QueryResult,
    ViewState,
)


class ViewportTests(unittest.TestCase):
    def test_forward_then_inverse_recovers_point(self) -> None:
        view = ViewState(scale=1.7, offset=(35.0, -12.5))
        for point in [(0.0, 0.0), (123.4, 56.7), (-40.0, 900.0)]:
            back = view.to_graph(view.to_surface(point))
            self.assertAlmostEqual(back[0], point[0], places=9)
            self.assertAlmostEqual(back[1], point[1], places=9)
            again = view.to_surface(view.to_graph(point))
            self.assertAlmostEqual(again[0], point[0], places=9)
            self.assertAlmostEqual(again[1], point[1], places=9)

    def test_scale_stays_clamped(self) -> None:
        view = ViewState()
        for _ in range(200):
            view.zoom_in()
            view.wheel(-1, (10.0, 10.0))
        self.assertEqual(view.scale, 3.0)
        for _ in range(200):
            view.zoom_out()
            view.wheel(1, (10.0, 10.0))
        self.assertEqual(view.scale, 0.1)

    def test_initial_scale_is_clamped(self) -> None:
        self.assertEqual(ViewState(scale=50.0).scale, 3.0)
        self.assertEqual(ViewState(scale=float("nan")).scale, 1.0)

    def test_non_finite_zoom_is_ignored(self) -> None:
        view = ViewState(scale=2.0)
        view.zoom_by(math.inf)
        self.assertEqual(view.scale, 2.0)

    def test_wheel_factors(self) -> None:
        view = ViewState()
        self.assertAlmostEqual(view.wheel(120), 0.9)
        view.reset_view()
        self.assertAlmostEqual(view.wheel(-120), 1.1)
        self.assertAlmostEqual(view.wheel(0), 1.1)

    def test_wheel_keeps_anchor_fixed(self) -> None:
        view = ViewState(offset=(15.0, 25.0))
        anchor = (200.0, 100.0)
        before = view.to_graph(anchor)
        view.wheel(-1, anchor)
        after = view.to_surface(before)
        self.assertAlmostEqual(after[0], anchor[0])
        self.assertAlmostEqual(after[1], anchor[1])

    def test_reset_view(self) -> None:
        view = ViewState(scale=2.5, offset=(40.0, 40.0))
        view.reset_view()
        self.assertEqual((view.scale, view.offset), (1.0, (0.0, 0.0)))

    def test_config_validation(self) -> None:
        with self.assertRaises(ValueError):
            ViewConfig(min_scale=2.0, max_scale=1.0)
        with self.assertRaises(ValueError):
            ViewConfig(query_delay=-1)

    def test_config_from_env(self) -> None:
        config = ViewConfig.from_env({"FLOWSCOPE_MAX_SCALE": "5", "FLOWSCOPE_QUERY_DELAY": "0"})
        self.assertEqual(config.max_scale, 5.0)
        self.assertEqual(config.query_delay, 0.0)
        self.assertEqual(config.min_scale, 0.1)
        with self.assertRaises(ValueError):
            ViewConfig.from_env({"FLOWSCOPE_MIN_SCALE": "tiny"})


class DragTests(unittest.TestCase):
    def test_drag_pans_offset(self) -> None:
        view = ViewState(offset=(5.0, 5.0))
        view.begin_drag(10.0, 10.0)
        self.assertIs(view.interaction_state, InteractionState.DRAGGING)
        self.assertTrue(view.drag_to(30.0, 40.0))
        self.assertEqual(view.offset, (25.0, 35.0))
        self.assertTrue(view.end_drag())
        self.assertIs(view.interaction_state, InteractionState.IDLE)

    def test_press_without_motion_is_not_a_drag(self) -> None:
        view = ViewState()
        view.begin_drag(10.0, 10.0)
        view.drag_to(11.0, 10.0)
        self.assertFalse(view.end_drag())

    def test_move_without_press_does_nothing(self) -> None:
        view = ViewState()
        self.assertFalse(view.drag_to(50.0, 50.0))
        self.assertEqual(view.offset, (0.0, 0.0))


class SelectionAndQueryTests(unittest.TestCase):
    def _node(self, node_id: str, node_type: NodeType = NodeType.COMPONENT) -> Node:
        return Node(id=node_id, label=node_id, type=node_type)

    def test_select_and_clear(self) -> None:
        view = ViewState()
        view.select("A", {"B", "C"})
        self.assertEqual(view.highlighted_nodes, {"A", "B", "C"})
        self.assertIs(view.interaction_state, InteractionState.NODE_SELECTED)
        view.clear_selection()
        self.assertIsNone(view.selected_node)
        self.assertEqual(view.highlighted_nodes, set())

    def test_filter_query(self) -> None:
        view = ViewState()
        view.select("B")
        view.apply_query("alpha", QueryResult(frozenset({"A"}), QueryMode.FILTER))
        self.assertIsInstance(view.active_filter, IdFilter)
        self.assertTrue(view.is_visible(self._node("A")))
        self.assertFalse(view.is_visible(self._node("B")))
        self.assertIsNone(view.selected_node)
        self.assertIs(view.mode, QueryMode.FILTER)

    def test_highlight_modes_keep_everything_visible(self) -> None:
        for mode in (QueryMode.HIGHLIGHT, QueryMode.CLUSTER, QueryMode.PATH_TRACE):
            view = ViewState()
            view.apply_query("q", QueryResult(frozenset({"A", "B"}), mode))
            self.assertIs(view.active_filter, SHOW_ALL)
            self.assertEqual(view.highlighted_nodes, {"A", "B"})

    def test_blank_query_resets(self) -> None:
        view = ViewState()
        view.apply_query("alpha", QueryResult(frozenset({"A"}), QueryMode.FILTER))
        view.apply_query("   ", None)
        self.assertIs(view.active_filter, SHOW_ALL)
        self.assertIsNone(view.mode)
        self.assertEqual(view.query_history, ["alpha"])

    def test_history_is_bounded_and_most_recent_first(self) -> None:
        view = ViewState()
        for i in range(12):
            view.push_history(f"q{i}")
        view.push_history("q11")
        self.assertEqual(len(view.query_history), 10)
        self.assertEqual(view.query_history[0], "q11")
        self.assertEqual(view.query_history[-1], "q2")

    def test_type_filter(self) -> None:
        view = ViewState()
        view.set_type_filter("database")
        self.assertTrue(view.is_visible(self._node("db", NodeType.DATABASE)))
        self.assertFalse(view.is_visible(self._node("ui")))
        view.set_type_filter("all")
        self.assertIs(view.active_filter, SHOW_ALL)
        with self.assertRaises(ValueError):
            view.set_type_filter("gizmo")

    def test_annotation(self) -> None:
        view = ViewState()
        view.set_annotation("complexity")
        self.assertIs(view.annotation, Annotation.COMPLEXITY)


if __name__ == "__main__":
    unittest.main()
