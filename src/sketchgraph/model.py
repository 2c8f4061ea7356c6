"""Graph model shared by the parser, measurer, layout engine and renderer.

A ``GraphModel`` is created fresh by every parse and owned by exactly one
pipeline run. Stages annotate that single instance in place: the measurer
fills ``Node.width``/``Node.height``, the layout engine fills ``Node.x``/
``Node.y``, ``Edge.points`` and the graph bounding size. Nothing else holds a
reference to it, so no stage ever observes another run's geometry.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from .errors import LayoutPreconditionError

Point = Tuple[float, float]

DIRECTIONS = ("TB", "BT", "LR", "RL")


@dataclass
class Node:
    id: str
    label: str
    width: Optional[float] = None
    height: Optional[float] = None
    x: Optional[float] = None
    y: Optional[float] = None

    @property
    def is_sized(self) -> bool:
        return self.width is not None and self.height is not None

    @property
    def is_placed(self) -> bool:
        return self.x is not None and self.y is not None

    def bbox(self) -> Tuple[float, float, float, float]:
        if not (self.is_sized and self.is_placed):
            raise LayoutPreconditionError(f'node "{self.id}" has no resolved geometry')
        half_w = self.width / 2.0
        half_h = self.height / 2.0
        return self.x - half_w, self.y - half_h, self.x + half_w, self.y + half_h


@dataclass
class Edge:
    source: str
    target: str
    points: List[Point] = field(default_factory=list)

    @property
    def is_routed(self) -> bool:
        return len(self.points) >= 2


@dataclass
class GraphModel:
    name: Optional[str] = None
    nodes: Dict[str, Node] = field(default_factory=dict)
    edges: List[Edge] = field(default_factory=list)
    direction: str = "TB"
    margin_x: float = 10.0
    margin_y: float = 10.0
    node_gap: float = 50.0
    rank_gap: float = 50.0
    width: Optional[float] = None
    height: Optional[float] = None

    def add_node(self, node_id: str, label: Optional[str] = None) -> Node:
        """Return the node with ``node_id``, creating it if needed."""
        node = self.nodes.get(node_id)
        if node is None:
            node = Node(id=node_id, label=node_id if label is None else label)
            self.nodes[node_id] = node
        elif label is not None:
            node.label = label
        return node

    def add_edge(self, source: str, target: str) -> Edge:
        self.add_node(source)
        self.add_node(target)
        edge = Edge(source=source, target=target)
        self.edges.append(edge)
        return edge

    def node(self, node_id: str) -> Node:
        return self.nodes[node_id]

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes.values())

    def __len__(self) -> int:
        return len(self.nodes)

    def require_sized(self) -> None:
        missing = [node.id for node in self.nodes.values() if not node.is_sized]
        if missing:
            raise LayoutPreconditionError(
                f"layout requires measured nodes; missing width/height for: {', '.join(missing)}"
            )

    def require_laid_out(self) -> None:
        self.require_sized()
        unplaced = [node.id for node in self.nodes.values() if not node.is_placed]
        if unplaced:
            raise LayoutPreconditionError(
                f"rendering requires laid out nodes; missing x/y for: {', '.join(unplaced)}"
            )
        for edge in self.edges:
            if not edge.is_routed:
                raise LayoutPreconditionError(
                    f'rendering requires routed edges; "{edge.source}" -> "{edge.target}" has no points'
                )
        if self.width is None or self.height is None:
            raise LayoutPreconditionError("rendering requires the graph bounding size")


@dataclass
class LayoutResult:
    width: float
    height: float
    graph: GraphModel
