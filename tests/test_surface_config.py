from __future__ import annotations

import sys
import tempfile
import unittest
import xml.etree.ElementTree as ET
from pathlib import Path
from unittest import mock

TESTS_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(TESTS_DIR.parent / "src"))

from sketchgraph.config import RenderConfig
from sketchgraph.layout import layout
from sketchgraph.parser import parse
from sketchgraph.render import render
from sketchgraph.surface import FileSurface, MemorySurface


def _scene(text: str = "digraph { A -> B; }"):
    graph = parse(text)
    for node in graph:
        node.width, node.height = 50.0, 30.0
    layout(graph, engine="builtin")
    return render(graph)


class SurfaceTests(unittest.TestCase):
    def test_memory_surface_swaps_scene(self) -> None:
        surface = MemorySurface()
        first, second = _scene(), _scene("digraph { C; }")
        surface.replace(first)
        surface.replace(second)
        self.assertIs(surface.current, second)
        self.assertEqual(surface.generation, 2)

    def test_file_surface_writes_complete_svg(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            target = Path(tmpdir) / "out.svg"
            surface = FileSurface(target)
            surface.replace(_scene())
            surface.replace(_scene("digraph { C; D; }"))
            root = ET.parse(target).getroot()
            self.assertEqual(root.tag, "{http://www.w3.org/2000/svg}svg")
            groups = [g for g in root.iter("{http://www.w3.org/2000/svg}g") if g.get("class") == "node"]
            self.assertEqual([g.get("data-id") for g in groups], ["C", "D"])
            self.assertEqual(sorted(p.name for p in Path(tmpdir).iterdir()), ["out.svg"])
            self.assertEqual(surface.generation, 2)

    def test_failed_write_keeps_previous_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            target = Path(tmpdir) / "out.svg"
            surface = FileSurface(target)
            surface.replace(_scene())
            before = target.read_text(encoding="utf-8")
            with mock.patch("sketchgraph.surface.os.replace", side_effect=OSError("disk full")):
                with self.assertRaises(OSError):
                    surface.replace(_scene("digraph { C; }"))
            self.assertEqual(target.read_text(encoding="utf-8"), before)
            self.assertEqual(sorted(p.name for p in Path(tmpdir).iterdir()), ["out.svg"])
            self.assertEqual(surface.generation, 1)


class RenderConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = RenderConfig()
        self.assertEqual(config.seed, 0)
        self.assertEqual(config.engine, "auto")
        self.assertEqual(config.delay, 0.5)

    def test_validation(self) -> None:
        for bad in ({"sketchiness": -1}, {"delay": -0.1}, {"font_size": 0}, {"engine": "neato"}):
            with self.subTest(bad=bad):
                with self.assertRaises(ValueError):
                    RenderConfig(**bad)

    def test_overrides_skip_none(self) -> None:
        config = RenderConfig(sketchiness=1.5).with_overrides(sketchiness=None, margin=20.0)
        self.assertEqual(config.sketchiness, 1.5)
        self.assertEqual(config.margin, 20.0)

    def test_from_env(self) -> None:
        config = RenderConfig.from_env(
            {
                "SKETCHGRAPH_SKETCHINESS": "1.25",
                "SKETCHGRAPH_SEED": "none",
                "SKETCHGRAPH_ENGINE": "builtin",
                "SKETCHGRAPH_FONT_FAMILY": "",
                "UNRELATED": "x",
            }
        )
        self.assertEqual(config.sketchiness, 1.25)
        self.assertIsNone(config.seed)
        self.assertEqual(config.engine, "builtin")
        self.assertEqual(config.font_family, RenderConfig().font_family)

    def test_from_env_rejects_garbage(self) -> None:
        with self.assertRaises(ValueError):
            RenderConfig.from_env({"SKETCHGRAPH_DELAY": "soon"})
        with self.assertRaises(ValueError):
            RenderConfig.from_env({"SKETCHGRAPH_SEED": "1.5"})


if __name__ == "__main__":
    unittest.main()
