"""
Utilities module for the pymapmatcher library.

This module provides geometry primitives and distance metrics, projection and
DataFrame helpers, and the graph model with its igraph adapters.
"""

from pymapmatcher.utilities.geometry import Point, EuclideanCalculator, GeodeticCalculator
from pymapmatcher.utilities.projection import get_cached_aeqd_transformer, project_trajectory
from pymapmatcher.utilities.graph import (
    Node,
    Edge,
    build_igraph_graph,
    node_from_vertex,
    predecessor_tree,
    shortest_path_summary,
)

__all__ = [
    # Geometry
    'Point',
    'EuclideanCalculator',
    'GeodeticCalculator',
    # Projection
    'get_cached_aeqd_transformer',
    'project_trajectory',
    # Graph
    'Node',
    'Edge',
    'build_igraph_graph',
    'node_from_vertex',
    'predecessor_tree',
    'shortest_path_summary',
]
