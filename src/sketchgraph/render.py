"""Sketch renderer: fully laid out graph to an SVG scene."""
from __future__ import annotations

import xml.etree.ElementTree as ET
from copy import deepcopy
from dataclasses import dataclass
from typing import List, Optional

from .config import DEFAULT_FONT_FAMILY, DEFAULT_FONT_SIZE, DEFAULT_SKETCHINESS
from .model import GraphModel, Node
from .sketch import Sketcher
from .svg import fmt, pretty_xml, q

ARROW_MARKER_ID = "arrow"
ARROW_OUTLINE = [(0.0, 0.0), (10.0, 4.0), (0.0, 8.0), (4.0, 4.0)]
# Node rectangles sit higher than their center so the baseline at y reads as centered.
LABEL_BASELINE_RATIO = 1.75
LINE_HEIGHT_EM = 1.2
STROKE = "#000"


@dataclass
class RenderedScene:
    root: ET.Element
    width: float
    height: float

    def to_svg(self) -> str:
        return pretty_xml(deepcopy(self.root))

    @property
    def markers(self) -> List[ET.Element]:
        return list(self.root.iter(q("marker")))

    @property
    def node_shapes(self) -> List[ET.Element]:
        return [el for el in self.root.iter(q("path")) if el.get("class") == "node-shape"]

    @property
    def labels(self) -> List[ET.Element]:
        return [el for el in self.root.iter(q("text")) if el.get("class") == "label"]

    @property
    def edge_paths(self) -> List[ET.Element]:
        return [el for el in self.root.iter(q("path")) if el.get("class") == "edge-path"]


def render(
    graph: GraphModel,
    *,
    sketchiness: float = DEFAULT_SKETCHINESS,
    seed: Optional[int] = 0,
    font_family: str = DEFAULT_FONT_FAMILY,
    font_size: float = DEFAULT_FONT_SIZE,
) -> RenderedScene:
    """Draw ``graph`` with hand-drawn strokes.

    The graph must be fully resolved: measured, laid out and routed. Nothing
    here measures text or moves nodes.
    """
    graph.require_laid_out()
    sketcher = Sketcher(sketchiness, seed=seed)
    # The marker lives in a 10x10 viewBox, so its jitter is scaled down to match.
    marker_sketcher = Sketcher(sketchiness, seed=seed, max_randomness_offset=0.5)

    svg = ET.Element(
        q("svg"),
        {
            "width": fmt(graph.width),
            "height": fmt(graph.height),
            "viewBox": f"0 0 {fmt(graph.width)} {fmt(graph.height)}",
            "font-family": f"{font_family}, sans-serif",
            "font-size": fmt(font_size),
        },
    )
    _append_arrow_marker(ET.SubElement(svg, q("defs")), marker_sketcher)

    for node in graph:
        _append_node(svg, node, sketcher)
    for edge in graph.edges:
        group = ET.SubElement(
            svg, q("g"), {"class": "edge", "data-source": edge.source, "data-target": edge.target}
        )
        ET.SubElement(
            group,
            q("path"),
            {
                "class": "edge-path",
                "d": sketcher.curve(edge.points),
                "stroke": STROKE,
                "stroke-width": "1",
                "fill": "none",
                "marker-end": f"url(#{ARROW_MARKER_ID})",
            },
        )
    return RenderedScene(root=svg, width=graph.width, height=graph.height)


def _append_arrow_marker(defs: ET.Element, sketcher: Sketcher) -> None:
    marker = ET.SubElement(
        defs,
        q("marker"),
        {
            "id": ARROW_MARKER_ID,
            "viewBox": "0 0 10 10",
            "refX": "9",
            "refY": "4",
            "markerUnits": "strokeWidth",
            "markerWidth": "10",
            "markerHeight": "10",
            "orient": "auto",
        },
    )
    ET.SubElement(
        marker,
        q("path"),
        {
            "class": "arrowhead-fill",
            "d": sketcher.polygon_fill(ARROW_OUTLINE),
            "fill": STROKE,
            "stroke": "none",
        },
    )
    ET.SubElement(
        marker,
        q("path"),
        {
            "class": "arrowhead",
            "d": sketcher.linear_path(ARROW_OUTLINE, close=True),
            "stroke": STROKE,
            "stroke-width": "0.5",
            "fill": "none",
        },
    )


def _append_node(svg: ET.Element, node: Node, sketcher: Sketcher) -> None:
    group = ET.SubElement(svg, q("g"), {"class": "node", "data-id": node.id})
    top = node.y - node.height / LABEL_BASELINE_RATIO
    ET.SubElement(
        group,
        q("path"),
        {
            "class": "node-shape",
            "d": sketcher.rectangle(node.x - node.width / 2.0, top, node.width, node.height),
            "stroke": STROKE,
            "stroke-width": "1",
            "fill": "none",
        },
    )
    text = ET.SubElement(
        group,
        q("text"),
        {"class": "label", "x": fmt(node.x), "y": fmt(node.y), "text-anchor": "middle"},
    )
    lines = node.label.split("\n")
    if len(lines) == 1:
        text.text = node.label
        return
    # First baseline moves up so the block of lines stays centered on y.
    first_dy = -(len(lines) - 1) * LINE_HEIGHT_EM / 2.0
    for idx, line in enumerate(lines):
        dy = first_dy if idx == 0 else LINE_HEIGHT_EM
        tspan = ET.SubElement(text, q("tspan"), {"x": fmt(node.x), "dy": f"{fmt(dy)}em"})
        tspan.text = line
