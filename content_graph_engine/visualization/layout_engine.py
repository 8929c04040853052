"""
Layout Engine

Positions content nodes in 2D:
- Force-directed simulation (repulsion, spring attraction, centering),
  vectorized with numpy and runnable in cancellable batches
- Circular, grid and hierarchical placements
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import networkx as nx
import numpy as np

from ..data.schemas import LayoutKind, ORDERING_TYPES, Position
from ..errors import LayoutCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag checked between layout batches"""

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class LayoutProgress:
    iteration: int
    total_iterations: int
    positions: Dict[str, Position] = field(default_factory=dict)
    finished: bool = False
    timed_out: bool = False


def _node_ids(nodes: Iterable[Any]) -> List[str]:
    """Ids in input order, duplicates dropped; accepts ids or objects with `.id`."""
    ids = {}
    for node in nodes:
        node_id = node if isinstance(node, str) else getattr(node, "id", None)
        if node_id is not None:
            ids[node_id] = None
    return list(ids)


def _edge_tuple(edge: Any) -> Optional[Tuple[str, str, float, Any]]:
    """(source, target, strength, type) from a Relationship or a tuple."""
    if hasattr(edge, "source_id") and hasattr(edge, "target_id"):
        return edge.source_id, edge.target_id, float(getattr(edge, "strength", 1.0)), getattr(edge, "type", None)
    if isinstance(edge, (tuple, list)) and len(edge) in (2, 3):
        strength = edge[2] if len(edge) == 3 else 1.0
        try:
            return edge[0], edge[1], float(strength), None
        except (TypeError, ValueError):
            return None
    return None


def _resolve_edges(ids: List[str], edges: Iterable[Any]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    index = {node_id: i for i, node_id in enumerate(ids)}
    src, dst, weight = [], [], []
    skipped = 0
    for edge in edges:
        parsed = _edge_tuple(edge)
        if parsed is None or parsed[0] not in index or parsed[1] not in index or parsed[0] == parsed[1]:
            skipped += 1
            continue
        src.append(index[parsed[0]])
        dst.append(index[parsed[1]])
        weight.append(parsed[2])
    if skipped:
        logger.debug(f"Layout skipped {skipped} edges with unknown endpoints")
    return (
        np.array(src, dtype=int),
        np.array(dst, dtype=int),
        np.array(weight, dtype=float)
    )


def _bounds(width: float, height: float, node_radius: float) -> Tuple[np.ndarray, np.ndarray]:
    """Clamp box [r, dim - r]; collapses to the centre when dim < 2r."""
    dims = np.array([width, height], dtype=float)
    lo = np.minimum(node_radius, dims / 2)
    hi = np.maximum(dims - node_radius, dims / 2)
    return lo, hi


def _to_positions(ids: List[str], coords: np.ndarray) -> Dict[str, Position]:
    return {node_id: Position(float(coords[i, 0]), float(coords[i, 1])) for i, node_id in enumerate(ids)}


class ForceDirectedLayout:
    """
    Force-directed layout with bounded, damped integration.

    Per iteration:
        repulsion  k_repulsion / d^2 between every pair
        attraction k_attraction * strength * d along each edge
        centering  centering * (centre - position)
        velocity = (velocity + force) * damping, step capped at max_displacement
    Coordinates are clamped to [node_radius, dimension - node_radius].
    """

    def __init__(
        self,
        iterations: int = 100,
        repulsion: float = 2000.0,
        attraction: float = 0.01,
        damping: float = 0.85,
        centering: float = 0.01,
        node_radius: float = 20.0,
        max_displacement: float = 50.0,
        batch_size: int = 10,
        time_budget: Optional[float] = None
    ):
        if not 0 < damping < 1:
            raise ValueError(f"damping must be in (0, 1), got {damping}")
        self.iterations = iterations
        self.repulsion = repulsion
        self.attraction = attraction
        self.damping = damping
        self.centering = centering
        self.node_radius = node_radius
        self.max_displacement = max_displacement
        self.batch_size = max(1, batch_size)
        self.time_budget = time_budget

    def initial_positions(self, n: int, width: float, height: float) -> np.ndarray:
        """Nodes evenly spaced on a circle of radius 0.4 * min(width, height)."""
        radius = 0.4 * min(width, height)
        angles = 2 * np.pi * np.arange(n) / max(n, 1)
        coords = np.column_stack([
            width / 2 + radius * np.cos(angles),
            height / 2 + radius * np.sin(angles)
        ])
        lo, hi = _bounds(width, height, self.node_radius)
        return np.clip(coords, lo, hi)

    def _forces(self, pos: np.ndarray, src: np.ndarray, dst: np.ndarray, weight: np.ndarray,
                center: np.ndarray) -> np.ndarray:
        n = len(pos)
        delta = pos[:, None, :] - pos[None, :, :]
        dist = np.sqrt((delta ** 2).sum(axis=-1))

        # Coincident nodes repel along a fixed per-pair direction
        coincident = dist < 1e-9
        np.fill_diagonal(coincident, False)
        if coincident.any():
            idx = np.arange(n)
            jitter = np.column_stack([np.cos(idx), np.sin(idx)])
            delta = np.where(coincident[..., None], jitter[:, None, :] - jitter[None, :, :], delta)
            dist = np.sqrt((delta ** 2).sum(axis=-1))

        np.fill_diagonal(dist, np.inf)
        force = (self.repulsion * delta / dist[..., None] ** 3).sum(axis=1)

        if len(src):
            spring = self.attraction * weight[:, None] * (pos[dst] - pos[src])
            np.add.at(force, src, spring)
            np.add.at(force, dst, -spring)

        force += self.centering * (center - pos)
        return force

    def _step(self, pos, vel, src, dst, weight, center, lo, hi):
        force = self._forces(pos, src, dst, weight, center)
        vel = (vel + force) * self.damping
        speed = np.linalg.norm(vel, axis=1)
        scale = np.minimum(1.0, self.max_displacement / np.maximum(speed, 1e-12))
        vel = vel * scale[:, None]
        pos = np.clip(pos + vel, lo, hi)
        return pos, vel

    def iter_layout(
        self,
        nodes: Iterable[Any],
        edges: Iterable[Any],
        width: float,
        height: float,
        iterations: Optional[int] = None,
        token: Optional[CancellationToken] = None,
        time_budget: Optional[float] = None
    ) -> Iterator[LayoutProgress]:
        """
        Run the simulation, yielding progress after every batch.

        Raises:
            LayoutCancelledError: the token was cancelled before the run
                finished; no positions are returned in that case
        """
        total = self.iterations if iterations is None else iterations
        time_budget = self.time_budget if time_budget is None else time_budget
        ids = _node_ids(nodes)
        if not ids:
            yield LayoutProgress(iteration=0, total_iterations=total, finished=True)
            return

        src, dst, weight = _resolve_edges(ids, edges)
        lo, hi = _bounds(width, height, self.node_radius)
        center = np.array([width / 2, height / 2], dtype=float)
        pos = self.initial_positions(len(ids), width, height)
        vel = np.zeros_like(pos)

        started = time.monotonic()
        done = 0
        while True:
            if token is not None and token.cancelled:
                logger.info(f"Layout cancelled at iteration {done}")
                raise LayoutCancelledError(done)

            steps = min(self.batch_size, total - done)
            for _ in range(steps):
                pos, vel = self._step(pos, vel, src, dst, weight, center, lo, hi)
            done += steps

            timed_out = (
                time_budget is not None
                and done < total
                and time.monotonic() - started >= time_budget
            )
            finished = done >= total or timed_out
            if timed_out:
                logger.warning(f"Layout time budget {time_budget}s hit after {done}/{total} iterations")
            yield LayoutProgress(
                iteration=done,
                total_iterations=total,
                positions=_to_positions(ids, pos),
                finished=finished,
                timed_out=timed_out
            )
            if finished:
                return

    def compute_layout(
        self,
        nodes: Iterable[Any],
        edges: Iterable[Any],
        width: float,
        height: float,
        iterations: Optional[int] = None,
        token: Optional[CancellationToken] = None,
        time_budget: Optional[float] = None
    ) -> Dict[str, Position]:
        last = None
        for last in self.iter_layout(nodes, edges, width, height, iterations, token, time_budget):
            pass
        if token is not None and token.cancelled:
            raise LayoutCancelledError(last.iteration)
        return last.positions

    async def compute_layout_async(
        self,
        nodes: Iterable[Any],
        edges: Iterable[Any],
        width: float,
        height: float,
        iterations: Optional[int] = None,
        token: Optional[CancellationToken] = None,
        time_budget: Optional[float] = None
    ) -> Dict[str, Position]:
        """Same as compute_layout, yielding to the event loop between batches."""
        last = None
        for last in self.iter_layout(nodes, edges, width, height, iterations, token, time_budget):
            await asyncio.sleep(0)
        if token is not None and token.cancelled:
            raise LayoutCancelledError(last.iteration)
        return last.positions

    def apply_layout(
        self,
        kind: LayoutKind,
        nodes: Iterable[Any],
        edges: Iterable[Any],
        width: float,
        height: float,
        levels: Optional[Dict[str, int]] = None
    ) -> Dict[str, Position]:
        kind = LayoutKind(kind)
        if kind is LayoutKind.FORCE_DIRECTED:
            return self.compute_layout(nodes, edges, width, height)
        if kind is LayoutKind.CIRCULAR:
            return circular_layout(nodes, width, height)
        if kind is LayoutKind.GRID:
            return grid_layout(nodes, width, height)
        if kind is LayoutKind.HIERARCHICAL:
            nodes = _node_ids(nodes)
            if levels is None:
                levels = levels_from_edges(nodes, edges)
            return hierarchical_layout(nodes, levels, width, height, margin=self.node_radius)
        raise ValueError(f"Unsupported layout: {kind}")


def circular_layout(nodes: Iterable[Any], width: float, height: float) -> Dict[str, Position]:
    ids = _node_ids(nodes)
    radius = min(width, height) * 0.4
    positions = {}
    for index, node_id in enumerate(ids):
        angle = index / len(ids) * 2 * math.pi
        positions[node_id] = Position(width / 2 + math.cos(angle) * radius, height / 2 + math.sin(angle) * radius)
    return positions


def grid_layout(nodes: Iterable[Any], width: float, height: float) -> Dict[str, Position]:
    ids = _node_ids(nodes)
    if not ids:
        return {}
    cols = math.ceil(math.sqrt(len(ids)))
    rows = math.ceil(len(ids) / cols)
    cell_width = width / cols
    cell_height = height / rows
    return {
        node_id: Position(
            (index % cols) * cell_width + cell_width / 2,
            (index // cols) * cell_height + cell_height / 2
        )
        for index, node_id in enumerate(ids)
    }


def levels_from_edges(nodes: Iterable[Any], edges: Iterable[Any]) -> Dict[str, int]:
    """Longest ordering-edge depth per node (cycles collapse to one level)."""
    ids = _node_ids(nodes)
    G = nx.DiGraph()
    G.add_nodes_from(ids)
    for edge in edges:
        parsed = _edge_tuple(edge)
        if parsed is None or parsed[0] not in G or parsed[1] not in G or parsed[0] == parsed[1]:
            continue
        if parsed[3] is None or parsed[3] in ORDERING_TYPES:
            G.add_edge(parsed[0], parsed[1])

    C = nx.condensation(G)
    depth: Dict[int, int] = {}
    for component in nx.topological_sort(C):
        depth[component] = max((depth[p] + 1 for p in C.predecessors(component)), default=0)
    return {node_id: depth[C.graph["mapping"][node_id]] for node_id in ids}


def hierarchical_layout(
    nodes: Iterable[Any],
    levels: Dict[str, int],
    width: float,
    height: float,
    margin: float = 20.0
) -> Dict[str, Position]:
    """Rows by level (top to bottom), nodes spread evenly within each row."""
    ids = _node_ids(nodes)
    by_level: Dict[int, List[str]] = {}
    for node_id in ids:
        by_level.setdefault(levels.get(node_id, 0), []).append(node_id)
    if not by_level:
        return {}

    max_level = max(by_level)
    margin = min(margin, height / 2)
    positions = {}
    for level, level_nodes in by_level.items():
        if max_level == 0:
            y = height / 2
        else:
            y = margin + level * (height - 2 * margin) / max_level
        for index, node_id in enumerate(level_nodes):
            positions[node_id] = Position(width * (index + 1) / (len(level_nodes) + 1), y)
    return positions
