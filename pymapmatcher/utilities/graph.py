"""
Graph utilities module for pymapmatcher.

This module provides the minimal graph data model consumed by path
reconstruction (Node, Edge) and the adapters that turn an igraph road
network and its shortest-path search into predecessor trees.

A predecessor tree is a flat mapping ``{vertex: incoming_edge}``: for every
vertex reached by a search other than its root, the single edge through which
it was reached. The root has no entry.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Optional, Tuple

import igraph as ig
import numpy as np
import pandas as pd
from pyproj import Geod

from pymapmatcher.reconstructing.path import reconstruct_unidirectional_path
from pymapmatcher.utilities.geometry import Point


@dataclass(frozen=True)
class Node:
    """Graph vertex. Identity is the ``id``; the point is informational."""

    id: Hashable
    point: Optional[Point] = field(default=None, compare=False)

    def __repr__(self):
        return f"Node({self.id!r})"


@dataclass(frozen=True)
class Edge:
    """Directed edge from ``origin`` to ``destination``."""

    origin: Any
    destination: Any
    id: Optional[Hashable] = None
    weight: Optional[float] = field(default=None, compare=False)

    @classmethod
    def self_edge(cls, node) -> "Edge":
        return cls(node, node)

    def reversed(self) -> "Edge":
        """Same edge walked the other way (origin and destination swapped)."""
        return Edge(self.destination, self.origin, self.id, self.weight)

    def __repr__(self):
        return f"Edge({self.origin!r} -> {self.destination!r})"


def build_igraph_graph(nodes: pd.DataFrame, edges: pd.DataFrame, directed: bool = False) -> ig.Graph:
    """
    Build igraph.Graph from nodes and edges DataFrames.

    Parameters
    ----------
    nodes : pd.DataFrame
        Nodes with columns 'id', 'lat', 'lon' (WGS84 degrees).
    edges : pd.DataFrame
        Edges with columns 'u', 'v' (node ids) and optionally 'id'.
    directed : bool, default=False
        Build a directed graph (one-way roads) instead of an undirected one.

    Returns
    -------
    igraph.Graph
        Graph with attributes:
        - Vertex attributes: 'node_id' (original id), 'x' (lon), 'y' (lat)
        - Edge attributes: 'length' (geodesic metres), 'edge_id' (original id or None)

    Notes
    -----
    Edges referencing unknown node ids are dropped.
    """
    # ========== Node Factorization ==========
    # igraph requires vertex indices to be 0, 1, 2, ..., n-1
    nodes = nodes.reset_index(drop=True)
    edges = edges.copy()
    id_to_idx = pd.Series(np.arange(len(nodes)), index=nodes['id'])

    # ========== Edge Index Mapping and Validation ==========
    edges['u_idx'] = edges['u'].map(id_to_idx)
    edges['v_idx'] = edges['v'].map(id_to_idx)
    valid_edges_mask = edges['u_idx'].notna() & edges['v_idx'].notna()
    edges = edges.loc[valid_edges_mask].copy()
    edges['u_idx'] = edges['u_idx'].astype(int)
    edges['v_idx'] = edges['v_idx'].astype(int)

    # ========== Graph Construction ==========
    g = ig.Graph(n=len(nodes), edges=edges[['u_idx', 'v_idx']].values.tolist(), directed=directed)
    g.vs['node_id'] = nodes['id'].tolist()
    g.vs['x'] = nodes['lon'].astype(float).tolist()
    g.vs['y'] = nodes['lat'].astype(float).tolist()

    # ========== Geodesic Length Calculation ==========
    if len(edges) > 0:
        geod = Geod(ellps='WGS84')
        node_coords = nodes[['lon', 'lat']].to_numpy(dtype=float)
        u_coords = node_coords[edges['u_idx'].to_numpy()]
        v_coords = node_coords[edges['v_idx'].to_numpy()]
        _, _, distances = geod.inv(u_coords[:, 0], u_coords[:, 1], v_coords[:, 0], v_coords[:, 1])
        g.es['length'] = np.asarray(distances, dtype=float).tolist()
        g.es['edge_id'] = edges['id'].tolist() if 'id' in edges.columns else [None] * len(edges)

    return g


def node_from_vertex(graph: ig.Graph, index: int) -> Node:
    """Wrap igraph vertex ``index`` as a Node, attaching its (x, y) point when present."""
    vertex = graph.vs[index]
    attributes = vertex.attributes()
    point = None
    if attributes.get('x') is not None and attributes.get('y') is not None:
        point = Point(float(attributes['x']), float(attributes['y']))
    return Node(index, point)


def predecessor_tree(
    graph: ig.Graph,
    source: int,
    weights: Optional[str] = "length",
    mode: str = "out",
) -> Tuple[Dict[Node, Edge], set]:
    """
    Run igraph's shortest-path search from ``source`` and return its predecessor tree.

    Parameters
    ----------
    graph : igraph.Graph
        Road network.
    source : int
        Vertex index the search starts from.
    weights : str or None, default="length"
        Edge attribute used as weight; None for unweighted (hop count) search.
    mode : {"out", "in", "all"}, default="out"
        Search direction on directed graphs. With "in" the tree describes how
        each vertex reaches ``source``, which is the tree a backward search of
        a bidirectional query produces.

    Returns
    -------
    tree : dict
        ``{Node: Edge}`` with each edge oriented along the search direction
        (its destination is the key).
    visited : set
        Nodes reached by the search, including the source.
    """
    if weights is not None and weights not in graph.es.attributes():
        weights = None

    epaths = graph.get_shortest_paths(source, to=None, weights=weights, mode=mode, output="epath")

    nodes = {}

    def _node(index):
        if index not in nodes:
            nodes[index] = node_from_vertex(graph, index)
        return nodes[index]

    tree = {}
    visited = {_node(source)}
    for target, epath in enumerate(epaths):
        if not epath:
            continue

        # walk the path from the source to orient undirected edges
        current = source
        previous = source
        for eid in epath:
            e = graph.es[eid]
            previous = current
            current = e.target if e.source == current else e.source

        weight = graph.es[epath[-1]][weights] if weights is not None else 1.0
        target_node = _node(target)
        tree[target_node] = Edge(_node(previous), target_node, epath[-1], weight)
        visited.add(target_node)

    return tree, visited


def shortest_path_summary(graph: ig.Graph, start: int, end: int, weights: Optional[str] = "length"):
    """
    Shortest path from ``start`` to ``end`` as a path summary.

    Returns
    -------
    SingleDirectionalPathSummary
        Disconnected summary if ``end`` is unreachable.
    """
    tree, visited = predecessor_tree(graph, start, weights=weights)
    return reconstruct_unidirectional_path(
        node_from_vertex(graph, start), node_from_vertex(graph, end), tree, searched_vertices=visited
    )
