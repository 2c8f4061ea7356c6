from __future__ import annotations

import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(TESTS_DIR.parent / "src"))

from sketchgraph.errors import ParseError
from sketchgraph.parser import GRAPH_MAX_NODES, parse


class ParserTests(unittest.TestCase):
    def test_nodes_labels_and_edge(self) -> None:
        graph = parse('digraph { A[label="X"]; B[label="Y"]; A -> B; }')
        self.assertEqual(list(graph.nodes), ["A", "B"])
        self.assertEqual(graph.nodes["A"].label, "X")
        self.assertEqual(graph.nodes["B"].label, "Y")
        self.assertEqual([(e.source, e.target) for e in graph.edges], [("A", "B")])
        for node in graph:
            self.assertIsNone(node.width)
            self.assertIsNone(node.x)
        self.assertEqual(graph.edges[0].points, [])

    def test_whitespace_and_final_terminator_are_optional(self) -> None:
        graph = parse("digraph G{\n\n  A\t->\n B\n}")
        self.assertEqual(graph.name, "G")
        self.assertEqual([(e.source, e.target) for e in graph.edges], [("A", "B")])

    def test_edge_chain_and_implicit_nodes(self) -> None:
        graph = parse("digraph { a -> b -> c; }")
        self.assertEqual(list(graph.nodes), ["a", "b", "c"])
        self.assertEqual(graph.nodes["c"].label, "c")
        self.assertEqual([(e.source, e.target) for e in graph.edges], [("a", "b"), ("b", "c")])

    def test_redeclared_node_merges_label(self) -> None:
        graph = parse('digraph { A -> B; A [label="first"]; A [label="second"]; }')
        self.assertEqual(list(graph.nodes), ["A", "B"])
        self.assertEqual(graph.nodes["A"].label, "second")

    def test_quoted_strings_and_escapes(self) -> None:
        graph = parse(r'digraph { "node one" [label="say \"hi\"\nthere"]; "node one" -> 2; }')
        self.assertEqual(graph.nodes["node one"].label, 'say "hi"\nthere')
        self.assertIn("2", graph.nodes)

    def test_comments_are_ignored(self) -> None:
        graph = parse(
            """
            // leading comment
            digraph {
              A; # hash comment
              /* block
                 comment */ B;
              A -> B;
            }
            """
        )
        self.assertEqual(list(graph.nodes), ["A", "B"])

    def test_graph_attributes(self) -> None:
        graph = parse("digraph { rankdir=LR; graph [nodesep=12, ranksep=34]; A -> B; }")
        self.assertEqual(graph.direction, "LR")
        self.assertEqual(graph.node_gap, 12.0)
        self.assertEqual(graph.rank_gap, 34.0)

    def test_rejects_non_finite_and_negative_gaps(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            parse('digraph { nodesep="inf"; A; B; }')
        self.assertEqual(ctx.exception.fragment, '"inf"')
        for source in (
            "digraph { ranksep=nan; A -> B; }",
            "digraph { graph [nodesep=-inf]; A; }",
            'digraph { graph [ranksep="1e999"]; A; }',
            "digraph { nodesep=-5; A; }",
        ):
            with self.subTest(source=source):
                with self.assertRaises(ParseError):
                    parse(source)

    def test_unquoted_ids_accept_non_ascii_and_emoji(self) -> None:
        graph = parse("digraph { café -> 🚀; 🚀 -> naïve_1; }")
        self.assertEqual(list(graph.nodes), ["café", "🚀", "naïve_1"])
        self.assertEqual(graph.nodes["🚀"].label, "🚀")

    def test_node_defaults_apply_to_later_nodes(self) -> None:
        graph = parse('digraph { A; node [label="todo"]; B; A -> C; D [label="own"]; }')
        self.assertEqual(graph.nodes["A"].label, "A")
        self.assertEqual(graph.nodes["B"].label, "todo")
        self.assertEqual(graph.nodes["C"].label, "todo")
        self.assertEqual(graph.nodes["D"].label, "own")

    def test_edge_attributes_are_accepted(self) -> None:
        graph = parse("digraph { A -> B [color=red, style=dashed]; }")
        self.assertEqual(len(graph.edges), 1)

    def test_empty_graph(self) -> None:
        graph = parse("digraph {}")
        self.assertEqual(len(graph), 0)
        self.assertEqual(graph.edges, [])

    def test_missing_terminator_between_statements(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            parse("digraph { A B }")
        self.assertEqual(ctx.exception.fragment, "B")
        self.assertEqual(ctx.exception.line, 1)
        self.assertEqual(ctx.exception.column, 13)

    def test_unknown_syntax_reports_fragment_and_position(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            parse("digraph {\n  A => B;\n}")
        self.assertTrue(ctx.exception.fragment.startswith(">"))
        self.assertEqual(ctx.exception.line, 2)
        self.assertEqual(ctx.exception.column, 6)

    def test_rejects_undirected_graphs(self) -> None:
        with self.assertRaises(ParseError):
            parse("graph { A -- B; }")
        with self.assertRaises(ParseError) as ctx:
            parse("digraph { A -- B; }")
        self.assertEqual(ctx.exception.fragment, "--")

    def test_rejects_unterminated_and_trailing_input(self) -> None:
        with self.assertRaises(ParseError):
            parse("digraph { A -> B;")
        with self.assertRaises(ParseError):
            parse("digraph { A -> B; } extra")
        with self.assertRaises(ParseError):
            parse("")
        with self.assertRaises(ParseError):
            parse("digraph { A -> ; }")

    def test_rejects_invalid_rankdir_and_subgraphs(self) -> None:
        with self.assertRaises(ParseError):
            parse("digraph { rankdir=sideways; }")
        with self.assertRaises(ParseError):
            parse("digraph { subgraph cluster { A; } }")

    def test_parse_error_is_value_error(self) -> None:
        with self.assertRaises(ValueError):
            parse("digraph {")

    def test_node_limit(self) -> None:
        body = "; ".join(f"n{i}" for i in range(GRAPH_MAX_NODES + 1))
        with self.assertRaises(ParseError):
            parse(f"digraph {{ {body} }}")


if __name__ == "__main__":
    unittest.main()
