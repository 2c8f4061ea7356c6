from __future__ import annotations

import asyncio
import sys
import unittest
from pathlib import Path
from typing import List

TESTS_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(TESTS_DIR.parent / "src"))

from sketchgraph.config import RenderConfig
from sketchgraph.errors import LayoutError, ParseError
from sketchgraph.pipeline import Pipeline
from sketchgraph.scheduler import RenderScheduler
from sketchgraph.surface import MemorySurface

DELAY = 0.05
SETTLE = DELAY * 4


class RecordingPipeline:
    """Real pipeline that remembers every text it was asked to render."""

    def __init__(self) -> None:
        self.inner = Pipeline(RenderConfig(engine="builtin", font_family="sans-serif"))
        self.texts: List[str] = []

    def __call__(self, text: str):
        self.texts.append(text)
        return self.inner(text)


class RenderSchedulerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.pipeline = RecordingPipeline()
        self.errors: List[Exception] = []
        self.scheduler = RenderScheduler(self.pipeline, delay=DELAY, on_error=self.errors.append)
        self.surface = MemorySurface()

    async def test_burst_coalesces_into_one_run_with_latest_text(self) -> None:
        texts = ["digraph { A; }", "digraph { A -> B; }", "digraph { A -> B; B -> C; }"]
        for text in texts:
            self.scheduler.schedule(text, self.surface)
            await asyncio.sleep(DELAY / 5)
        await asyncio.sleep(SETTLE)
        self.assertEqual(self.pipeline.texts, [texts[-1]])
        self.assertEqual(self.scheduler.run_count, 1)
        self.assertEqual(self.surface.generation, 1)
        self.assertEqual(len(self.surface.current.node_shapes), 3)

    async def test_pending_and_idle(self) -> None:
        self.assertTrue(self.scheduler.idle)
        self.scheduler.schedule("digraph { A; }", self.surface)
        self.assertTrue(self.scheduler.pending(self.surface))
        self.assertFalse(self.scheduler.idle)
        await asyncio.sleep(SETTLE)
        self.assertFalse(self.scheduler.pending(self.surface))
        self.assertTrue(self.scheduler.idle)

    async def test_cancel_prevents_run(self) -> None:
        self.scheduler.schedule("digraph { A; }", self.surface)
        self.scheduler.cancel(self.surface)
        await asyncio.sleep(SETTLE)
        self.assertEqual(self.pipeline.texts, [])
        self.assertIsNone(self.surface.current)

    async def test_cancel_all(self) -> None:
        other = MemorySurface()
        self.scheduler.schedule("digraph { A; }", self.surface)
        self.scheduler.schedule("digraph { B; }", other)
        self.scheduler.cancel()
        await asyncio.sleep(SETTLE)
        self.assertEqual(self.scheduler.run_count, 0)
        self.assertTrue(self.scheduler.idle)

    async def test_failed_render_keeps_previous_output(self) -> None:
        self.scheduler.schedule("digraph { A -> B; }", self.surface)
        await asyncio.sleep(SETTLE)
        mounted = self.surface.current
        self.assertIsNotNone(mounted)

        self.scheduler.schedule("digraph { A -> B", self.surface)
        await asyncio.sleep(SETTLE)
        self.assertIs(self.surface.current, mounted)
        self.assertEqual(self.surface.generation, 1)
        self.assertEqual(len(self.errors), 1)
        self.assertIsInstance(self.errors[0], ParseError)

        self.scheduler.schedule("digraph { A -> B; B -> C; }", self.surface)
        await asyncio.sleep(SETTLE)
        self.assertIsNot(self.surface.current, mounted)
        self.assertEqual(self.surface.generation, 2)

    async def test_non_finite_spacing_is_reported_as_parse_failure(self) -> None:
        self.scheduler.schedule('digraph { nodesep="inf"; A; B; }', self.surface)
        await asyncio.sleep(SETTLE)
        self.assertIsNone(self.surface.current)
        self.assertEqual([type(exc) for exc in self.errors], [ParseError])

    async def test_layout_failure_is_reported(self) -> None:
        def failing(text: str):
            raise LayoutError("dot crashed")

        scheduler = RenderScheduler(failing, delay=0, on_error=self.errors.append)
        scheduler.schedule("digraph { A; }", self.surface)
        await asyncio.sleep(SETTLE)
        self.assertIsNone(self.surface.current)
        self.assertEqual([type(exc) for exc in self.errors], [LayoutError])

    async def test_surfaces_are_debounced_independently(self) -> None:
        other = MemorySurface()
        self.scheduler.schedule("digraph { A; }", self.surface)
        self.scheduler.schedule("digraph { B; C; }", other)
        await asyncio.sleep(SETTLE)
        self.assertEqual(self.scheduler.run_count, 2)
        self.assertEqual(len(self.surface.current.node_shapes), 1)
        self.assertEqual(len(other.current.node_shapes), 2)

    async def test_mount_failure_is_reported(self) -> None:
        class BrokenSurface:
            def replace(self, scene) -> None:
                raise PermissionError("read-only")

        self.scheduler.schedule("digraph { A; }", BrokenSurface())
        await asyncio.sleep(SETTLE)
        self.assertEqual(len(self.errors), 1)
        self.assertIsInstance(self.errors[0], PermissionError)


class RenderSchedulerConstructionTests(unittest.TestCase):
    def test_rejects_negative_delay(self) -> None:
        with self.assertRaises(ValueError):
            RenderScheduler(lambda text: None, delay=-0.1)

    def test_schedule_outside_a_loop_needs_explicit_loop(self) -> None:
        scheduler = RenderScheduler(lambda text: None, delay=0)
        with self.assertRaises(RuntimeError):
            scheduler.schedule("digraph {}", MemorySurface())


if __name__ == "__main__":
    unittest.main()
