"""Public API for sketchgraph."""
from .config import RenderConfig
from .errors import (
    LayoutError,
    LayoutPreconditionError,
    MeasurementError,
    ParseError,
    SketchgraphError,
)
from .layout import layout
from .measure import LabelMeasurer
from .model import Edge, GraphModel, LayoutResult, Node
from .parser import parse
from .pipeline import Pipeline, render_description
from .render import RenderedScene, render
from .scheduler import RenderScheduler
from .surface import FileSurface, MemorySurface

__all__ = [
    "Edge",
    "FileSurface",
    "GraphModel",
    "LabelMeasurer",
    "LayoutError",
    "LayoutPreconditionError",
    "LayoutResult",
    "MeasurementError",
    "MemorySurface",
    "Node",
    "ParseError",
    "Pipeline",
    "RenderConfig",
    "RenderScheduler",
    "RenderedScene",
    "SketchgraphError",
    "layout",
    "parse",
    "render",
    "render_description",
]
