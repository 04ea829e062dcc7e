import logging
from enum import IntEnum
from typing import Callable, List, Optional

import numpy as np

from graph_inpainting.models.compositor import Compositor
from graph_inpainting.models.errors import SchedulerInvariantError
from graph_inpainting.models.params import InpaintingParams
from graph_inpainting.models.patch_graph import PatchGraph
from graph_inpainting.models.patches import unknown_counts
from graph_inpainting.models.priorities import PriorityEngine

logger = logging.getLogger(__name__)


class VertexState(IntEnum):
    KNOWN = 0
    UNVISITED = 1
    FRONTIER = 2
    INPAINTED = 3


class InpaintingScheduler:
    """
    Grow the patch graph into the missing region, one vertex at a time.

    The scheduler owns the graph, the patch matrix and the pixel vector and mutates
    them in place. Vertices with missing pixels go through
    Unvisited -> Frontier -> Inpainted and never come back.

    A vertex whose patch never gets below `max_unknown_pixels` unknown pixels (for
    instance in the middle of a uniform hole larger than a patch with nothing
    inpainted around it) never qualifies. Such vertices are left Unvisited and
    reported by `residual`, they are not treated as failures.
    """

    def __init__(
        self,
        graph: PatchGraph,
        patches: np.ndarray,
        pixels: np.ndarray,
        footprint: np.ndarray,
        params: InpaintingParams,
        on_step: Optional[Callable[["InpaintingScheduler", int], None]] = None,
    ) -> None:
        self.graph = graph
        self.patches = patches
        self.pixels = pixels
        self.footprint = footprint
        self.params = params
        self.on_step = on_step

        N = graph.N
        if patches.shape[0] != N or pixels.shape[0] != N:
            raise SchedulerInvariantError(
                f"Graph has {N} vertices but {patches.shape[0]} patches and {pixels.shape[0]} pixels."
            )

        self.counts = unknown_counts(patches, params.patch_size)
        self.known = np.flatnonzero(self.counts == 0)
        incomplete = np.flatnonzero(self.counts > 0)
        if incomplete.size + self.known.size != N:
            raise SchedulerInvariantError("Missing vertices !")

        logger.info(f"There are {incomplete.size} incomplete patches:")
        logger.info(f"  {np.count_nonzero(self.counts == params.patch_area)} without any information")

        self._known_set = set(self.known.tolist())
        self.unvisited = set(incomplete.tolist())
        self.frontier: List[int] = []
        self.inpainted: List[int] = []
        self._inpainted_set = set()

        self.resolved = np.zeros(N, dtype=bool)
        self.resolved[self.known] = True

        self.priorities = PriorityEngine(pixels, footprint, params)
        self.compositor = Compositor(params, graph.shape, footprint)
        # Combined priority of each selected vertex, in selection order.
        self.selected_priorities: List[float] = []

    @property
    def residual(self) -> List[int]:
        """Vertices with missing pixels that were never inpainted."""
        return sorted(self.unvisited)

    def vertex_states(self) -> np.ndarray:
        states = np.full(self.graph.N, VertexState.KNOWN, dtype=np.int8)
        states[list(self.unvisited)] = VertexState.UNVISITED
        states[self.frontier] = VertexState.FRONTIER
        states[self.inpainted] = VertexState.INPAINTED
        return states

    def check_partition(self) -> None:
        """Known, Unvisited, Frontier and Inpainted must partition the vertices."""
        frontier = set(self.frontier)
        sets = [self._known_set, self.unvisited, frontier, self._inpainted_set]
        if sum(len(s) for s in sets) != self.graph.N or len(set().union(*sets)) != self.graph.N:
            raise SchedulerInvariantError("Vertex sets do not partition the graph.")
        if frontier & self._inpainted_set:
            raise SchedulerInvariantError("A vertex could be visited again !")

    def _current_counts(self) -> np.ndarray:
        if self.params.incremental_counts:
            return self.counts
        return unknown_counts(self.patches, self.params.patch_size)

    def _qualifying(self, counts) -> List[int]:
        """Unvisited vertices with few enough unknown pixels, in index order."""
        return sorted(v for v in self.unvisited if counts[v] <= self.params.max_unknown_pixels)

    def step(self) -> Optional[int]:
        """
        One pass of the state machine: connect the newly reachable vertices,
        select the highest priority vertex and inpaint it.

        Returns:
        int: The inpainted vertex, or None if no vertex could be selected.
        """
        counts = self._current_counts()

        news = self._qualifying(counts)
        if any(v in self._inpainted_set for v in news) or any(v in self._inpainted_set for v in self.frontier):
            raise SchedulerInvariantError("A vertex could be visited again !")

        # Connect the newly reachable vertices to the resolved ones.
        targets = np.flatnonzero(self.resolved)
        connected = self.graph.connect(news, targets, self.patches, self.params)
        for vertex in connected:
            self.unvisited.discard(vertex)
            self.frontier.append(vertex)

        # Compute their priorities, i.e. update the priority signal.
        self.priorities.update_structure(connected, self.graph, self.resolved)

        vertex = self.priorities.select()
        if vertex is None:
            return None
        if vertex not in self.frontier:
            raise SchedulerInvariantError(f"Selected vertex {vertex} is not on the frontier.")

        self.selected_priorities.append(float(self.priorities.combined()[vertex]))
        self.priorities.disqualify(vertex)

        self.compositor.inpaint(
            vertex, self.graph, self.pixels, self.patches, self.priorities,
            counts=self.counts if self.params.incremental_counts else None,
        )

        self.frontier.remove(vertex)
        self.inpainted.append(vertex)
        self._inpainted_set.add(vertex)
        self.resolved[vertex] = True

        logger.info(f"Inpainted vertices : {len(self.inpainted)} ({len(self.frontier)} waiting)")
        if self.on_step is not None:
            self.on_step(self, vertex)
        return vertex

    def run(self) -> List[int]:
        """
        Run until no vertex is waiting on the frontier and no unvisited vertex
        qualifies anymore.

        Returns:
        list: Inpainted vertices in selection order.
        """
        # Every step inpaints one vertex, so this stops after at most N steps.
        while self.step() is not None:
            self.check_partition()

        if self.unvisited:
            logger.warning(f"{len(self.unvisited)} vertices were never inpainted.")
        return self.inpainted
