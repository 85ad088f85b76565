"""
Path summary result types.

A path summary is the immutable outcome of reconstructing a route from one
(unidirectional) or two (bidirectional) predecessor trees: the ordered edge
chain from start to end, the vertices the contributing searches visited, and
an explicit outcome that tells a zero-length path apart from a disconnected
query (both have an empty edge chain).
"""

from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Any, List, Tuple


class PathOutcome(Enum):
    """Result of a reconstruction."""

    DISCONNECTED = "disconnected"
    ZERO_LENGTH = "zero_length"
    FOUND = "found"


def simple_path(path) -> List[Any]:
    """
    Vertex sequence of an edge chain.

    Returns the origin of every edge followed by the destination of the last
    one (unless the chain ends on a self edge). An empty chain gives an empty list.
    """
    if not path:
        return []

    vertices = [edge.origin for edge in path]
    last = path[-1].destination
    if vertices[-1] != last:
        vertices.append(last)
    return vertices


@dataclass(frozen=True)
class PathSummary:
    start: Any
    end: Any
    path: Tuple[Any, ...]
    outcome: PathOutcome

    bidirectional = False

    def is_found(self) -> bool:
        """True for a route, including the zero-length route of start == end."""
        return self.outcome is not PathOutcome.DISCONNECTED

    def simple_path(self) -> List[Any]:
        if self.outcome is PathOutcome.ZERO_LENGTH:
            return [self.start]
        return simple_path(self.path)

    def number_of_vertices(self) -> int:
        return len(self.simple_path())

    def total_distance(self, distance_calculator) -> float:
        """
        Sum of edge lengths measured with ``distance_calculator.distance`` between
        the points of each edge's endpoints.
        """
        return float(sum(
            distance_calculator.distance(edge.origin.point, edge.destination.point)
            for edge in self.path
        ))


@dataclass(frozen=True)
class SingleDirectionalPathSummary(PathSummary):
    """Path reconstructed from a single predecessor tree."""

    searched_vertices: AbstractSet[Any] = frozenset()

    def total_visited_vertices(self) -> int:
        return len(self.searched_vertices)


@dataclass(frozen=True)
class BidirectionalPathSummary(PathSummary):
    """
    Path reconstructed from a forward and a backward predecessor tree meeting
    at ``middle``.

    The visited sets are the objects handed in by the caller (by default the
    trees' key views), not copies.
    """

    middle: Any = None
    searched_vertices_from_start: AbstractSet[Any] = frozenset()
    searched_vertices_from_end: AbstractSet[Any] = frozenset()

    bidirectional = True

    @property
    def searched_vertices(self) -> AbstractSet[Any]:
        return set(self.searched_vertices_from_start) | set(self.searched_vertices_from_end)

    def total_visited_vertices(self) -> int:
        return len(self.searched_vertices_from_start) + len(self.searched_vertices_from_end)
