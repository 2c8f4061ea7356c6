"""One pass of the rendering pipeline: parse, measure, lay out, draw."""
from __future__ import annotations

import logging
from typing import Optional

from .config import RenderConfig
from .layout import layout
from .measure import LabelMeasurer
from .model import GraphModel
from .parser import parse
from .render import RenderedScene, render

logger = logging.getLogger(__name__)


class Pipeline:
    """Callable turning description text into a ``RenderedScene``.

    The measurer (and its font cache) is reused across runs; every run gets
    its own freshly parsed ``GraphModel``.
    """

    def __init__(
        self,
        config: Optional[RenderConfig] = None,
        *,
        measurer: Optional[LabelMeasurer] = None,
    ) -> None:
        self.config = config or RenderConfig()
        self.measurer = measurer or LabelMeasurer(
            font_family=self.config.font_family,
            font_size=self.config.font_size,
            font_path=self.config.font_path,
            padding=self.config.padding,
        )

    def prepare(self, text: str) -> GraphModel:
        """Parse, measure and lay out ``text``; return the resolved graph."""
        graph = parse(text)
        graph.margin_x = graph.margin_y = self.config.margin
        self.measurer.measure_graph(graph)
        layout(graph, engine=self.config.engine)
        return graph

    def __call__(self, text: str) -> RenderedScene:
        graph = self.prepare(text)
        scene = render(
            graph,
            sketchiness=self.config.sketchiness,
            seed=self.config.seed,
            font_family=self.config.font_family,
            font_size=self.config.font_size,
        )
        logger.debug(
            "rendered %d nodes, %d edges into %sx%s scene",
            len(graph.nodes),
            len(graph.edges),
            scene.width,
            scene.height,
        )
        return scene


def render_description(
    text: str,
    config: Optional[RenderConfig] = None,
    *,
    measurer: Optional[LabelMeasurer] = None,
) -> RenderedScene:
    """Render description ``text`` to a scene in one call."""
    return Pipeline(config, measurer=measurer)(text)
