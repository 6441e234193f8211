from __future__ import annotations

import io
import json
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from flowscope import cli

ROUND_TRIP = "graph TD\nA[Main Entry Point] --> B[Core Module]\nB --> C[Utility Functions]"
ANALYZER_GRAPH = {
    "nodes": [
        {"id": "app", "label": "App", "type": "entry"},
        {"id": "users", "label": "UserDatabase", "type": "database"},
        {"id": "api", "label": "Routes", "type": "api"},
    ],
    "edges": [{"from": "app", "to": "api"}, {"from": "api", "to": "users"}],
}


class _StdoutCapture:
    def __init__(self) -> None:
        self._text = io.StringIO()
        self.buffer = io.BytesIO()

    def write(self, value: str) -> int:
        return self._text.write(value)

    def flush(self) -> None:
        pass

    def get_text(self) -> str:
        return self._text.getvalue()


class CLIAcceptanceTests(unittest.TestCase):
    @staticmethod
    def _png_size(blob: bytes) -> tuple[int, int]:
        # PNG IHDR width/height are big-endian u32 at fixed offsets.
        if len(blob) < 24 or blob[:8] != b"\x89PNG\r\n\x1a\n":
            raise AssertionError("not a PNG payload")
        width = int.from_bytes(blob[16:20], "big")
        height = int.from_bytes(blob[20:24], "big")
        return width, height

    def run_cli(self, argv: list[str], stdin_text: str = "") -> tuple[int, str, bytes, str]:
        stdout = _StdoutCapture()
        stderr = io.StringIO()
        stdin = io.StringIO(stdin_text)
        with mock.patch("sys.stdout", stdout), mock.patch("sys.stderr", stderr), mock.patch("sys.stdin", stdin):
            code = cli.main(argv)
        return code, stdout.get_text(), stdout.buffer.getvalue(), stderr.getvalue()

    def test_requires_subcommand(self) -> None:
        code, _out, _png, err = self.run_cli([])
        self.assertEqual(code, 2)
        self.assertIn("E_ARGS", err)
        self.assertIn("subcommand", err)

    def test_unknown_option_is_usage_error(self) -> None:
        code, _out, _png, err = self.run_cli(["parse", "--bogus"])
        self.assertEqual(code, 2)
        self.assertIn("error[E_ARGS]", err)

    def test_parse_text_prints_graph_json(self) -> None:
        code, out, _png, err = self.run_cli(["parse", "--text", ROUND_TRIP, "--layout"])
        self.assertEqual(code, 0, err)
        payload = json.loads(out)
        self.assertEqual([node["id"] for node in payload["nodes"]], ["A", "B", "C"])
        self.assertEqual([node["type"] for node in payload["nodes"]], ["entry", "component", "util"])
        self.assertEqual(payload["layout"]["positions"]["C"]["layer"], 2)
        self.assertEqual(payload["nodes"][2]["layer"], 2)

    def test_parse_from_stdin(self) -> None:
        code, out, _png, err = self.run_cli(["parse"], stdin_text="A[One] --> B[Two]\n")
        self.assertEqual(code, 0, err)
        self.assertEqual(len(json.loads(out)["edges"]), 1)

    def test_render_file_writes_png(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "diagram.mmd"
            src.write_text(ROUND_TRIP)
            code, out, _png, err = self.run_cli(["render", str(src)])
            self.assertEqual(code, 0, err)
            target = Path(td) / "diagram.png"
            self.assertTrue(target.exists())
            self.assertIn("Wrote", out)
            self.assertEqual(self._png_size(target.read_bytes()), (800, 480))

    def test_render_stdout_and_scale(self) -> None:
        code, _out, png1, err = self.run_cli(["render", "--text", ROUND_TRIP, "--stdout", "--height", "300"])
        self.assertEqual(code, 0, err)
        self.assertEqual(self._png_size(png1), (800, 300))

        code, _out, png2, err = self.run_cli(
            ["render", "--text", ROUND_TRIP, "--stdout", "--height", "300", "--width", "400", "--scale", "2"]
        )
        self.assertEqual(code, 0, err)
        self.assertEqual(self._png_size(png2), (800, 600))

    def test_render_with_query_selection_and_view_mode(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            out_png = Path(td) / "out.png"
            code, _out, _png, err = self.run_cli(
                [
                    "render",
                    "--text",
                    ROUND_TRIP,
                    "-o",
                    str(out_png),
                    "--query",
                    "trace the main flow",
                    "--select",
                    "B",
                    "--view-mode",
                    "complexity",
                ]
            )
            self.assertEqual(code, 0, err)
            self.assertTrue(out_png.exists())

    def test_render_data_url(self) -> None:
        code, out, _png, err = self.run_cli(["render", "--text", ROUND_TRIP, "--data-url"])
        self.assertEqual(code, 0, err)
        self.assertTrue(out.startswith("data:image/png;base64,"))

    def test_render_empty_input_draws_placeholder(self) -> None:
        code, _out, png, err = self.run_cli(["render", "--text", "", "--stdout"])
        self.assertEqual(code, 0, err)
        self.assertEqual(self._png_size(png), (800, 200))

    def test_render_rejects_conflicting_outputs(self) -> None:
        code, _out, _png, err = self.run_cli(["render", "--text", ROUND_TRIP, "--stdout", "-o", "x.png"])
        self.assertEqual(code, 2)
        self.assertIn("mutually exclusive", err)

    def test_render_rejects_bad_scale(self) -> None:
        code, _out, _png, err = self.run_cli(["render", "--text", ROUND_TRIP, "--scale", "0"])
        self.assertEqual(code, 2)
        self.assertIn("--scale", err)

    def test_render_unknown_select(self) -> None:
        code, _out, _png, err = self.run_cli(["render", "--text", ROUND_TRIP, "--select", "Z", "--stdout"])
        self.assertEqual(code, 2)
        self.assertIn("unknown node id", err)

    def test_render_bad_type_filter(self) -> None:
        code, _out, _png, err = self.run_cli(["render", "--text", ROUND_TRIP, "--type", "gizmo", "--stdout"])
        self.assertEqual(code, 2)
        self.assertIn("E_ARGS", err)

    def test_text_and_file_are_exclusive(self) -> None:
        code, _out, _png, err = self.run_cli(["parse", "some.mmd", "--text", "A[One]"])
        self.assertEqual(code, 2)
        self.assertIn("--text cannot be combined", err)

    def test_missing_file(self) -> None:
        code, _out, _png, err = self.run_cli(["parse", "definitely_missing.mmd"])
        self.assertEqual(code, 2)
        self.assertIn("E_IO_READ", err)

    def test_query_on_analyzer_graph(self) -> None:
        code, out, _png, err = self.run_cli(
            ["query", "show me the database", "--graph-json", "--text", json.dumps(ANALYZER_GRAPH)]
        )
        self.assertEqual(code, 0, err)
        payload = json.loads(out)
        self.assertEqual(payload["mode"], "cluster")
        self.assertEqual(payload["rule"], "database")
        self.assertEqual(payload["targets"], ["users"])

    def test_json_file_suffix_implies_graph_json(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "graph.json"
            src.write_text(json.dumps(ANALYZER_GRAPH))
            code, out, _png, err = self.run_cli(["query", "trace the main flow", str(src)])
            self.assertEqual(code, 0, err)
            self.assertEqual(json.loads(out)["targets"], ["app", "api"])

    def test_invalid_graph_json_reports_position(self) -> None:
        code, _out, _png, err = self.run_cli(
            ["--error-format", "json", "stats", "--graph-json", "--text", "{nodes: ["]
        )
        self.assertEqual(code, 2)
        payload = json.loads(err.strip().splitlines()[-1])
        self.assertFalse(payload["ok"])
        self.assertEqual(payload["code"], "E_GRAPH_JSON")
        self.assertEqual(payload["line"], 1)

    def test_graph_json_must_be_object(self) -> None:
        code, _out, _png, err = self.run_cli(["stats", "--graph-json", "--text", "[1, 2]"])
        self.assertEqual(code, 2)
        self.assertIn("E_GRAPH_JSON", err)

    def test_stats_reports_warnings(self) -> None:
        code, out, _png, err = self.run_cli(["stats", "--text", "A[Start] --> Z"])
        self.assertEqual(code, 0, err)
        payload = json.loads(out)
        self.assertEqual(payload["total_nodes"], 1)
        self.assertEqual(payload["total_edges"], 0)
        self.assertEqual(len(payload["warnings"]), 1)

    def test_suggest(self) -> None:
        code, out, _png, err = self.run_cli(["suggest", "--graph-json", "--text", json.dumps(ANALYZER_GRAPH)])
        self.assertEqual(code, 0, err)
        lines = out.strip().splitlines()
        self.assertIn("show the database layer", lines)
        self.assertIn("show api endpoints", lines)

    def test_convert_json_to_mermaid_and_back(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            out_path = Path(td) / "graph.mmd"
            code, out, _png, err = self.run_cli(
                ["convert", "--graph-json", "--text", json.dumps(ANALYZER_GRAPH), "-o", str(out_path)]
            )
            self.assertEqual(code, 0, err)
            self.assertIn("Wrote", out)
            text = out_path.read_text()
            self.assertTrue(text.startswith("graph TD"))
            code, out, _png, err = self.run_cli(["convert", str(out_path), "--to", "json"])
            self.assertEqual(code, 0, err)
            self.assertEqual(len(json.loads(out)["edges"]), 2)

    def test_write_failure(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            target = Path(td) / "missing_dir" / "out.png"
            code, _out, _png, err = self.run_cli(["render", "--text", ROUND_TRIP, "-o", str(target)])
            self.assertEqual(code, 4)
            self.assertIn("E_IO_WRITE", err)

    def test_cheatsheet(self) -> None:
        code, out, _png, err = self.run_cli(["cheatsheet"])
        self.assertEqual(code, 0, err)
        self.assertIn("quick reference", out)
        self.assertIn("-.->", out)


if __name__ == "__main__":
    unittest.main()
