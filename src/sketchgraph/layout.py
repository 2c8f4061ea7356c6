"""Layered layout for sized graphs.

Two engines write the same geometry back onto the ``GraphModel``: Graphviz
``dot`` (run as a subprocess in ``-Tplain`` mode) and a builtin pure-Python
layered layout used when Graphviz is not installed.
"""
from __future__ import annotations

import logging
import math
import re
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple, Union

from .errors import LayoutError
from .model import GraphModel, LayoutResult, Node, Point

logger = logging.getLogger(__name__)

PX_PER_INCH = 96.0
GRAPHVIZ_TIMEOUT = 5.0
ORDERING_SWEEPS = 4
SELF_LOOP_SIZE = 20.0

BBox = Tuple[float, float, float, float]


@dataclass
class _PlainLayout:
    centers: Dict[str, Point]
    edge_points: List[List[Point]]


@dataclass(frozen=True)
class _VirtualNode:
    """Placeholder for a long edge passing through an intermediate rank."""

    edge: int
    rank: int


RankMember = Union[str, _VirtualNode]


def layout(graph: GraphModel, *, engine: str = "auto") -> LayoutResult:
    """Position nodes and route edges of ``graph`` in place.

    Every node must already carry its measured width and height.
    """
    graph.require_sized()
    if engine not in {"auto", "builtin", "graphviz"}:
        raise ValueError(f'unknown layout engine "{engine}"')

    plain: Optional[_PlainLayout] = None
    if engine != "builtin" and graph.nodes:
        dot_path = shutil.which("dot")
        if dot_path:
            plain = _layout_with_graphviz(graph, dot_path)
        elif engine == "graphviz":
            raise LayoutError('layout engine "graphviz" requires the Graphviz "dot" executable')

    if plain is not None:
        for node_id, (x, y) in plain.centers.items():
            node = graph.nodes[node_id]
            node.x, node.y = x, y
        for edge, points in zip(graph.edges, plain.edge_points):
            edge.points = points
    else:
        waypoints = _place_layered(graph)
        _route_edges(graph, waypoints)

    width, height = _normalize(graph)
    graph.width, graph.height = width, height
    logger.debug(
        "laid out %d nodes and %d edges (%s) in %.1fx%.1f",
        len(graph.nodes),
        len(graph.edges),
        "graphviz" if plain is not None else "builtin",
        width,
        height,
    )
    return LayoutResult(width=width, height=height, graph=graph)


def _place_layered(graph: GraphModel) -> Dict[int, List[Point]]:
    """Assign ranks and in-rank order, then write node centers.

    Edges spanning more than one rank are split into virtual nodes, one per
    rank in between. Returns their centers per edge index, ordered from the
    edge's source to its target.
    """
    node_order = list(graph.nodes)
    edges = graph.edges

    outgoing: Dict[str, List[int]] = {node_id: [] for node_id in node_order}
    for idx, edge in enumerate(edges):
        outgoing[edge.source].append(idx)

    reversed_edges: Set[int] = set()
    state: Dict[str, int] = {node_id: 0 for node_id in node_order}
    for root in node_order:
        if state[root] != 0:
            continue
        # Iterative DFS; back edges found here are reversed.
        state[root] = 1
        stack: List[Tuple[str, int]] = [(root, 0)]
        while stack:
            node_id, cursor = stack[-1]
            if cursor >= len(outgoing[node_id]):
                state[node_id] = 2
                stack.pop()
                continue
            stack[-1] = (node_id, cursor + 1)
            edge_idx = outgoing[node_id][cursor]
            target = edges[edge_idx].target
            if state[target] == 0:
                state[target] = 1
                stack.append((target, 0))
            elif state[target] == 1:
                reversed_edges.add(edge_idx)

    dag_edges: List[Tuple[int, str, str]] = []
    dag_outgoing: Dict[str, List[str]] = {node_id: [] for node_id in node_order}
    indegree: Dict[str, int] = {node_id: 0 for node_id in node_order}
    for idx, edge in enumerate(edges):
        if edge.source == edge.target:
            continue
        if idx in reversed_edges:
            u, v = edge.target, edge.source
        else:
            u, v = edge.source, edge.target
        dag_edges.append((idx, u, v))
        dag_outgoing[u].append(v)
        indegree[v] += 1

    queue: List[str] = [node_id for node_id in node_order if indegree[node_id] == 0]
    topo: List[str] = []
    cursor = 0
    while cursor < len(queue):
        u = queue[cursor]
        cursor += 1
        topo.append(u)
        for v in dag_outgoing[u]:
            indegree[v] -= 1
            if indegree[v] == 0:
                queue.append(v)

    rank: Dict[RankMember, int] = {node_id: 0 for node_id in node_order}
    for u in topo:
        for v in dag_outgoing[u]:
            if rank[v] < rank[u] + 1:
                rank[v] = rank[u] + 1

    order_index: Dict[RankMember, int] = {node_id: idx for idx, node_id in enumerate(node_order)}
    chains: Dict[int, List[_VirtualNode]] = {}
    segments: List[Tuple[RankMember, RankMember]] = []
    for idx, u, v in dag_edges:
        previous: RankMember = u
        chain: List[_VirtualNode] = []
        for r in range(rank[u] + 1, rank[v]):
            virtual = _VirtualNode(idx, r)
            rank[virtual] = r
            order_index[virtual] = len(order_index)
            chain.append(virtual)
            segments.append((previous, virtual))
            previous = virtual
        segments.append((previous, v))
        if chain:
            chains[idx] = chain

    rank_to_nodes: Dict[int, List[RankMember]] = {}
    for node_id in order_index:
        rank_to_nodes.setdefault(rank[node_id], []).append(node_id)
    max_rank = max(rank_to_nodes, default=0)
    ranks = [rank_to_nodes.get(r, []) for r in range(max_rank + 1)]

    preds: Dict[RankMember, List[RankMember]] = {node_id: [] for node_id in order_index}
    succs: Dict[RankMember, List[RankMember]] = {node_id: [] for node_id in order_index}
    for u, v in segments:
        preds[v].append(u)
        succs[u].append(v)

    for sweep in range(ORDERING_SWEEPS):
        downward = sweep % 2 == 0
        sequence = range(1, len(ranks)) if downward else range(len(ranks) - 2, -1, -1)
        for r in sequence:
            fixed = ranks[r - 1] if downward else ranks[r + 1]
            neighbours = preds if downward else succs
            ranks[r] = _order_by_median(ranks[r], fixed, neighbours, order_index)

    horizontal = graph.direction in {"LR", "RL"}

    def _cross_main(node_id: RankMember) -> Tuple[float, float]:
        if isinstance(node_id, _VirtualNode):
            return 0.0, 0.0
        node = graph.nodes[node_id]
        if horizontal:
            return node.height, node.width
        return node.width, node.height

    spans: List[float] = []
    bands: List[float] = []
    for members in ranks:
        sizes = [_cross_main(node_id) for node_id in members]
        span = sum(cross for cross, _ in sizes) + graph.node_gap * max(len(members) - 1, 0)
        spans.append(span)
        bands.append(max((main for _, main in sizes), default=0.0))
    max_span = max(spans, default=0.0)

    virtual_centers: Dict[_VirtualNode, Point] = {}
    main_cursor = 0.0
    for r, members in enumerate(ranks):
        band_center = main_cursor + bands[r] / 2.0
        cross_cursor = (max_span - spans[r]) / 2.0
        for node_id in members:
            cross, _main = _cross_main(node_id)
            center = _orient(graph.direction, cross_cursor + cross / 2.0, band_center)
            if isinstance(node_id, _VirtualNode):
                virtual_centers[node_id] = center
            else:
                node = graph.nodes[node_id]
                node.x, node.y = center
            cross_cursor += cross + graph.node_gap
        main_cursor += bands[r] + graph.rank_gap

    waypoints: Dict[int, List[Point]] = {}
    for idx, chain in chains.items():
        points = [virtual_centers[virtual] for virtual in chain]
        if idx in reversed_edges:
            points.reverse()
        waypoints[idx] = points
    return waypoints


def _orient(direction: str, cross: float, main: float) -> Point:
    """Map (position within rank, rank axis position) onto x/y for ``direction``."""
    if direction == "TB":
        return cross, main
    if direction == "BT":
        return cross, -main
    if direction == "LR":
        return main, cross
    return -main, cross


def _order_by_median(
    members: List[RankMember],
    fixed: List[RankMember],
    neighbours: Dict[RankMember, List[RankMember]],
    order_index: Dict[RankMember, int],
) -> List[RankMember]:
    fixed_pos = {node_id: idx for idx, node_id in enumerate(fixed)}
    current_pos = {node_id: idx for idx, node_id in enumerate(members)}
    keys: Dict[RankMember, float] = {}
    for node_id in members:
        positions = sorted(fixed_pos[n] for n in neighbours[node_id] if n in fixed_pos)
        if not positions:
            keys[node_id] = float(current_pos[node_id])
            continue
        mid = len(positions) // 2
        if len(positions) % 2 == 1:
            keys[node_id] = float(positions[mid])
        else:
            keys[node_id] = 0.5 * (positions[mid - 1] + positions[mid])
    return sorted(members, key=lambda n: (keys[n], current_pos[n], order_index[n]))


def _route_edges(graph: GraphModel, waypoints: Dict[int, List[Point]]) -> None:
    pair_counts: Dict[Tuple[str, str], int] = {}
    for edge in graph.edges:
        key = tuple(sorted((edge.source, edge.target)))
        pair_counts[key] = pair_counts.get(key, 0) + 1
    pair_seen: Dict[Tuple[str, str], int] = {}

    for idx, edge in enumerate(graph.edges):
        source = graph.nodes[edge.source]
        target = graph.nodes[edge.target]
        if edge.source == edge.target:
            edge.points = _self_loop_points(source.bbox())
            continue
        key = tuple(sorted((edge.source, edge.target)))
        slot = pair_seen.get(key, 0)
        pair_seen[key] = slot + 1

        via = waypoints.get(idx)
        if via is None:
            mid = ((source.x + target.x) / 2.0, (source.y + target.y) / 2.0)
            if pair_counts[key] > 1:
                bend = (slot - (pair_counts[key] - 1) / 2.0) * graph.node_gap / 2.0
                # Perpendicular of the pair in canonical order, so A->B and B->A bow apart.
                first, second = graph.nodes[key[0]], graph.nodes[key[1]]
                dx, dy = second.x - first.x, second.y - first.y
                length = math.hypot(dx, dy) or 1.0
                mid = (mid[0] - dy / length * bend, mid[1] + dx / length * bend)
            via = [mid]
        edge.points = [_border_point(source, via[0]), *via, _border_point(target, via[-1])]


def _self_loop_points(bbox: BBox) -> List[Point]:
    left, top, right, bottom = bbox
    quarter = (bottom - top) / 4.0
    cy = (top + bottom) / 2.0
    return [
        (right, cy - quarter),
        (right + SELF_LOOP_SIZE, cy - quarter - SELF_LOOP_SIZE / 2.0),
        (right + SELF_LOOP_SIZE, cy + quarter + SELF_LOOP_SIZE / 2.0),
        (right, cy + quarter),
    ]


def _border_point(node: Node, toward: Point) -> Point:
    """Where the line from the node's center toward ``toward`` leaves its box."""
    dx = toward[0] - node.x
    dy = toward[1] - node.y
    if dx == 0 and dy == 0:
        return node.x, node.y
    # Scale the direction until it reaches the nearer of the vertical or horizontal sides.
    scale_x = node.width / 2.0 / abs(dx) if dx else math.inf
    scale_y = node.height / 2.0 / abs(dy) if dy else math.inf
    scale = min(scale_x, scale_y)
    return node.x + dx * scale, node.y + dy * scale


def _normalize(graph: GraphModel) -> Tuple[float, float]:
    """Shift geometry so the top-left corner sits at the margin; return total size."""
    if not graph.nodes:
        return 2 * graph.margin_x, 2 * graph.margin_y
    xs: List[float] = []
    ys: List[float] = []
    for node in graph:
        left, top, right, bottom = node.bbox()
        xs.extend((left, right))
        ys.extend((top, bottom))
    for edge in graph.edges:
        for px, py in edge.points:
            xs.append(px)
            ys.append(py)
    min_x, max_x = min(xs), max(xs)
    min_y, max_y = min(ys), max(ys)
    shift_x = graph.margin_x - min_x
    shift_y = graph.margin_y - min_y
    for node in graph:
        node.x += shift_x
        node.y += shift_y
    for edge in graph.edges:
        edge.points = [(px + shift_x, py + shift_y) for px, py in edge.points]
    return max_x - min_x + 2 * graph.margin_x, max_y - min_y + 2 * graph.margin_y


def _layout_with_graphviz(graph: GraphModel, dot_path: str) -> _PlainLayout:
    dot_text = build_graphviz_dot(graph)
    try:
        proc = subprocess.run(
            [dot_path, "-Kdot", "-Tplain"],
            input=dot_text,
            text=True,
            capture_output=True,
            check=False,
            timeout=GRAPHVIZ_TIMEOUT,
        )
    except subprocess.TimeoutExpired as exc:
        raise LayoutError("graph layout timed out") from exc
    except OSError as exc:
        raise LayoutError(f"failed to execute Graphviz: {exc}") from exc
    if proc.returncode != 0:
        detail = (proc.stderr or "").strip()
        if len(detail) > 240:
            detail = detail[:240] + "..."
        raise LayoutError(f"Graphviz failed: {detail or 'unknown error'}")
    return parse_graphviz_plain(proc.stdout, graph)


def build_graphviz_dot(graph: GraphModel) -> str:
    """Serialize the sized graph for ``dot``; sizes are fixed, labels are empty."""
    nodesep_in = max(0.02, graph.node_gap / PX_PER_INCH)
    ranksep_in = max(0.02, graph.rank_gap / PX_PER_INCH)
    lines: List[str] = ["digraph G {"]
    lines.append(
        f'  graph [rankdir="{graph.direction}", splines="polyline", '
        f'nodesep="{nodesep_in:.4f}", ranksep="{ranksep_in:.4f}", pad="0"];'
    )
    lines.append('  node [shape="box", fixedsize="true", margin="0", label=""];')
    lines.append('  edge [arrowhead="none"];')
    for node in graph:
        width_in = max(0.01, node.width / PX_PER_INCH)
        height_in = max(0.01, node.height / PX_PER_INCH)
        lines.append(f'  {_dot_id(node.id)} [width="{width_in:.4f}", height="{height_in:.4f}"];')
    for edge in graph.edges:
        lines.append(f"  {_dot_id(edge.source)} -> {_dot_id(edge.target)};")
    lines.append("}")
    return "\n".join(lines)


_DOT_SPECIAL_RE = re.compile(r'(["\\])')


def _dot_id(node_id: str) -> str:
    """Quoted DOT identifier for a node id; quotes and backslashes are escaped."""
    return '"' + _DOT_SPECIAL_RE.sub(r"\\\1", node_id) + '"'


def parse_graphviz_plain(plain_text: str, graph: GraphModel) -> _PlainLayout:
    """Read node centers and edge points (in pixels, y down) from ``-Tplain`` output."""
    lines = [ln.strip() for ln in plain_text.splitlines() if ln.strip()]
    if not lines or not lines[0].startswith("graph "):
        raise LayoutError("unexpected Graphviz plain output: missing graph header")
    header = shlex.split(lines[0])
    try:
        graph_height_in = float(header[3])
    except (IndexError, ValueError) as exc:
        raise LayoutError("unexpected Graphviz plain output: malformed graph header") from exc

    def _px(x_in: str, y_in: str) -> Point:
        return float(x_in) * PX_PER_INCH, (graph_height_in - float(y_in)) * PX_PER_INCH

    centers: Dict[str, Point] = {}
    routes: Dict[Tuple[str, str], List[List[Point]]] = {}
    for line in lines[1:]:
        if line == "stop":
            break
        parts = shlex.split(line)
        kind = parts[0]
        try:
            if kind == "node":
                centers[parts[1]] = _px(parts[2], parts[3])
            elif kind == "edge":
                count = int(parts[3])
                coords = parts[4 : 4 + 2 * count]
                if len(coords) < 2 * count:
                    raise LayoutError("unexpected Graphviz plain output: truncated edge points")
                points = [_px(coords[i], coords[i + 1]) for i in range(0, len(coords), 2)]
                routes.setdefault((parts[1], parts[2]), []).append(points)
        except (IndexError, ValueError) as exc:
            raise LayoutError(f"unexpected Graphviz plain output: malformed {kind} line") from exc

    for node in graph:
        if node.id not in centers:
            raise LayoutError(f'Graphviz output missing node "{node.id}"')

    edge_points: List[List[Point]] = []
    for edge in graph.edges:
        candidates = routes.get((edge.source, edge.target))
        if not candidates:
            raise LayoutError(
                f'Graphviz output missing edge "{edge.source}" -> "{edge.target}"'
            )
        points = candidates.pop(0)
        if len(points) < 2:
            raise LayoutError("unexpected Graphviz plain output: edge with fewer than two points")
        edge_points.append(points)
    return _PlainLayout(centers=centers, edge_points=edge_points)

