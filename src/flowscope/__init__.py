"""Public API for flowscope."""
from .controller import InteractionController
from .layout import LayoutResult, layout
from .model import Edge, Graph, Node, NodeType
from .parser import parse
from .query import classify, suggest_queries, summarize
from .render import Surface, render
from .viewstate import QueryMode, QueryResult, ViewState

__all__ = [
    "parse",
    "layout",
    "render",
    "classify",
    "suggest_queries",
    "summarize",
    "Graph",
    "Node",
    "Edge",
    "NodeType",
    "LayoutResult",
    "ViewState",
    "QueryMode",
    "QueryResult",
    "Surface",
    "InteractionController",
]
