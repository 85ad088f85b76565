"""Tests for geometry, projection and graph utilities."""
import igraph as ig
import numpy as np
import pandas as pd
import pytest

from pymapmatcher.reconstructing import PathOutcome, reconstruct_bidirectional_path
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


class TestEuclideanCalculator:

    def test_point_distance(self):
        assert EuclideanCalculator().distance(Point(0.0, 0.0), Point(3.0, 4.0)) == pytest.approx(5.0)

    @pytest.mark.parametrize("point, expected", [
        (Point(5.0, 3.0), 3.0),     # perpendicular, interior
        (Point(-4.0, 3.0), 5.0),    # beyond the start
        (Point(13.0, 0.0), 3.0),    # beyond the end
        (Point(2.0, 0.0), 0.0),     # on the segment
    ])
    def test_segment_distance(self, point, expected):
        calc = EuclideanCalculator()
        assert calc(Point(0.0, 0.0), Point(10.0, 0.0), point) == pytest.approx(expected)

    def test_degenerate_segment(self):
        calc = EuclideanCalculator()
        assert calc(Point(1.0, 1.0), Point(1.0, 1.0), Point(4.0, 5.0)) == pytest.approx(5.0)


class TestGeodeticCalculator:

    def test_one_degree_of_latitude(self):
        d = GeodeticCalculator().distance(Point(24.0, 56.0), Point(24.0, 57.0))
        assert d == pytest.approx(111_400, rel=0.01)

    def test_cross_track(self):
        calc = GeodeticCalculator()
        # 0.001 degrees of latitude north of an east-west segment, ~111 m
        d = calc(Point(24.10, 56.95), Point(24.13, 56.95), Point(24.115, 56.951))
        assert d == pytest.approx(111.3, abs=1.0)

    def test_degenerate_segment(self):
        calc = GeodeticCalculator()
        p = Point(24.10, 56.95)
        q = Point(24.10, 56.951)
        assert calc(p, p, q) == pytest.approx(calc.distance(p, q))

    @pytest.mark.parametrize("point, endpoint", [
        (Point(24.09, 56.95), 0),   # west of the segment start
        (Point(24.14, 56.951), 1),  # east of the segment end
    ])
    def test_cross_track_beyond_segment_uses_endpoint(self, point, endpoint):
        calc = GeodeticCalculator()
        segment = (Point(24.10, 56.95), Point(24.13, 56.95))
        assert calc(segment[0], segment[1], point) == pytest.approx(calc.distance(segment[endpoint], point))

    def test_cross_track_matches_local_projection(self):
        calc = GeodeticCalculator()
        a, b, p = Point(24.10, 56.95), Point(24.13, 56.96), Point(24.11, 56.957)
        fwd, _ = get_cached_aeqd_transformer(a.y, a.x)
        xs, ys = fwd.transform([a.x, b.x, p.x], [a.y, b.y, p.y])
        planar = EuclideanCalculator()(Point(xs[0], ys[0]), Point(xs[1], ys[1]), Point(xs[2], ys[2]))
        assert calc(a, b, p) == pytest.approx(planar, rel=0.01)


class TestProjection:

    def test_transformer_is_cached(self):
        first = get_cached_aeqd_transformer(56.95, 24.10)
        second = get_cached_aeqd_transformer(56.95, 24.10)
        assert first is second

    def test_round_trip(self):
        lats = np.array([56.95, 56.951, 56.952])
        lons = np.array([24.10, 24.101, 24.102])
        xs, ys, inv = project_trajectory(lats, lons)
        lon_back, lat_back = inv.transform(xs, ys)
        np.testing.assert_allclose(lat_back, lats, atol=1e-9)
        np.testing.assert_allclose(lon_back, lons, atol=1e-9)
        # centred on the centroid: the middle point sits near the origin
        assert abs(xs[1]) < 1.0 and abs(ys[1]) < 1.0

    def test_web_mercator(self):
        xs, ys, inv = project_trajectory(np.array([0.0]), np.array([0.0]), use_aeqd=False)
        assert xs[0] == pytest.approx(0.0, abs=1e-6)


@pytest.fixture
def road_network():
    nodes = pd.DataFrame({
        'id': [100, 101, 102, 103, 104],
        'lat': [56.950, 56.950, 56.950, 56.951, 56.960],
        'lon': [24.100, 24.101, 24.102, 24.101, 24.200],
    })
    # 104 is isolated
    edges = pd.DataFrame({
        'id': [1, 2, 3, 4],
        'u': [100, 101, 100, 103],
        'v': [101, 102, 103, 102],
    })
    return build_igraph_graph(nodes, edges)


class TestGraph:

    def test_build_igraph_graph(self, road_network):
        assert isinstance(road_network, ig.Graph)
        assert road_network.vcount() == 5
        assert road_network.ecount() == 4
        assert road_network.vs[0]['node_id'] == 100
        assert road_network.es[0]['length'] == pytest.approx(61.0, rel=0.05)

    def test_drops_edges_to_unknown_nodes(self):
        nodes = pd.DataFrame({'id': [1, 2], 'lat': [0.0, 0.0], 'lon': [0.0, 0.001]})
        edges = pd.DataFrame({'u': [1, 1], 'v': [2, 99]})
        g = build_igraph_graph(nodes, edges)
        assert g.ecount() == 1
        assert g.es[0]['edge_id'] is None

    def test_node_from_vertex(self, road_network):
        node = node_from_vertex(road_network, 3)
        assert node == Node(3)
        assert node.point == Point(24.101, 56.951)

    def test_predecessor_tree(self, road_network):
        tree, visited = predecessor_tree(road_network, 0)
        assert Node(0) not in tree
        assert Node(4) not in tree
        assert tree[Node(1)] == Edge(Node(0), Node(1), 0)
        assert tree[Node(2)].origin == Node(1)
        assert visited == {Node(0), Node(1), Node(2), Node(3)}

    def test_undirected_edges_oriented_along_search(self, road_network):
        tree, _ = predecessor_tree(road_network, 2)
        # edge 1 is stored as 101 -> 102 but reached 101 from 102
        assert tree[Node(1)].origin == Node(2)
        assert tree[Node(1)].destination == Node(1)

    def test_shortest_path_summary_matches_igraph(self, road_network):
        summary = shortest_path_summary(road_network, 0, 2)
        expected = road_network.get_shortest_paths(0, to=2, weights='length', output='vpath')[0]
        assert [n.id for n in summary.simple_path()] == expected
        assert summary.total_distance(GeodeticCalculator()) == pytest.approx(
            sum(road_network.es[e.id]['length'] for e in summary.path)
        )

    def test_unreachable_vertex(self, road_network):
        summary = shortest_path_summary(road_network, 0, 4)
        assert summary.outcome is PathOutcome.DISCONNECTED
        assert summary.total_visited_vertices() == 4

    def test_bidirectional_from_igraph_trees(self):
        g = ig.Graph(n=5, edges=[(0, 1), (1, 2), (2, 3), (3, 4)], directed=True)
        g.es['length'] = [1.0] * 4
        tree_start, visited_start = predecessor_tree(g, 0, mode="out")
        tree_end, visited_end = predecessor_tree(g, 4, mode="in")

        summary = reconstruct_bidirectional_path(
            Node(0), Node(2), Node(4), tree_start, tree_end, visited_start, visited_end
        )
        assert [n.id for n in summary.simple_path()] == [0, 1, 2, 3, 4]
        assert all(e.origin.id + 1 == e.destination.id for e in summary.path)
