"""
Path reconstruction module for pymapmatcher.

This module turns the output of an external shortest-path search into a
route. A search records, for every vertex it reaches, the single edge through
which it reached it (a predecessor tree); walking those edges backward from
the target and reversing the result yields the forward path.

Two reconstructions are supported:

1. Unidirectional: one tree rooted at ``start``, walked back from ``end``.
2. Bidirectional: a forward tree rooted at ``start`` and a backward tree
   rooted at ``end`` that meet at ``middle``. The end-side half is reversed
   and each of its edges flipped before being appended to the start-side half.

Disconnection is a normal outcome, reported as a summary with an empty edge
chain and ``PathOutcome.DISCONNECTED``; it is never raised.
"""

from typing import AbstractSet, Any, List, Mapping, Optional, Tuple

from pymapmatcher.reconstructing.path_summary import (
    PathOutcome,
    SingleDirectionalPathSummary,
    BidirectionalPathSummary,
)


def _walk_predecessor_tree(source, target, predecessor_tree: Mapping) -> Tuple[bool, List]:
    """
    Walk ``predecessor_tree`` backward from ``source`` until ``target``.

    Returns
    -------
    reached : bool
        Whether the walk arrived at ``target``.
    edges : list
        Edges collected in walk order (``source`` towards ``target``); empty
        if ``target`` was not reached.
    """
    edges = []
    current = source
    # a well-formed tree never needs more steps than it has entries
    max_steps = len(predecessor_tree)
    while current != target and current in predecessor_tree:
        if len(edges) >= max_steps:
            return False, []
        edge = predecessor_tree[current]
        edges.append(edge)
        current = edge.origin

    if current != target:
        return False, []
    return True, edges


def reconstruct_unidirectional_path(
    start,
    end,
    predecessor_tree: Mapping[Any, Any],
    searched_vertices: Optional[AbstractSet[Any]] = None,
) -> SingleDirectionalPathSummary:
    """
    Reconstruct the path ``start`` -> ``end`` from a predecessor tree.

    Parameters
    ----------
    start : vertex
        Root of the search that produced ``predecessor_tree``.
    end : vertex
        Target vertex.
    predecessor_tree : mapping
        ``{vertex: incoming_edge}`` where ``incoming_edge.destination`` is the
        key and ``incoming_edge.origin`` its predecessor.
    searched_vertices : set, optional
        Vertices visited by the search. Defaults to the tree's key view.

    Returns
    -------
    SingleDirectionalPathSummary
        Edges in forward order. Empty with outcome DISCONNECTED when ``end``
        does not lead back to ``start``, and empty with outcome ZERO_LENGTH
        when ``start == end``.

    Examples
    --------
    >>> a, b, c = Node("A"), Node("B"), Node("C")
    >>> tree = {b: Edge(a, b), c: Edge(b, c)}
    >>> reconstruct_unidirectional_path(a, c, tree).path
    (Edge(Node('A') -> Node('B')), Edge(Node('B') -> Node('C')))
    """
    if searched_vertices is None:
        searched_vertices = predecessor_tree.keys()

    reached, from_end_to_start = _walk_predecessor_tree(end, start, predecessor_tree)
    from_end_to_start.reverse()

    if not reached:
        outcome = PathOutcome.DISCONNECTED
    elif not from_end_to_start:
        outcome = PathOutcome.ZERO_LENGTH
    else:
        outcome = PathOutcome.FOUND

    return SingleDirectionalPathSummary(
        start=start,
        end=end,
        path=tuple(from_end_to_start),
        outcome=outcome,
        searched_vertices=searched_vertices,
    )


def reconstruct_bidirectional_path(
    start,
    middle,
    end,
    predecessor_tree_start: Mapping[Any, Any],
    predecessor_tree_end: Mapping[Any, Any],
    searched_vertices_from_start: Optional[AbstractSet[Any]] = None,
    searched_vertices_from_end: Optional[AbstractSet[Any]] = None,
) -> BidirectionalPathSummary:
    """
    Reconstruct ``start`` -> ``end`` from two searches meeting at ``middle``.

    Parameters
    ----------
    start, middle, end : vertex
        Query endpoints and the meeting vertex of the two searches.
    predecessor_tree_start : mapping
        Tree of the forward search rooted at ``start``.
    predecessor_tree_end : mapping
        Tree of the backward search rooted at ``end``; its edges point away
        from ``end``.
    searched_vertices_from_start, searched_vertices_from_end : set, optional
        Visited sets of each search. Default to the trees' key views.

    Returns
    -------
    BidirectionalPathSummary
        DISCONNECTED (empty) if either half fails to reach its root while that
        root differs from ``middle``, even when the other half succeeds.
        ZERO_LENGTH when ``start == middle == end``.

    Notes
    -----
    The end-side half is walked from ``middle`` to ``end``; its edges already
    come out in ``middle`` -> ``end`` order but point the opposite way, so each
    is flipped with ``Edge.reversed()``.
    """
    if searched_vertices_from_start is None:
        searched_vertices_from_start = predecessor_tree_start.keys()
    if searched_vertices_from_end is None:
        searched_vertices_from_end = predecessor_tree_end.keys()

    reached_start, from_mid_to_start = _walk_predecessor_tree(middle, start, predecessor_tree_start)
    from_mid_to_start.reverse()

    reached_end, from_mid_to_end = _walk_predecessor_tree(middle, end, predecessor_tree_end)

    if (start != middle and not from_mid_to_start) or (end != middle and not from_mid_to_end) \
            or not (reached_start and reached_end):
        outcome = PathOutcome.DISCONNECTED
        path = ()
    else:
        path = tuple(from_mid_to_start) + tuple(edge.reversed() for edge in from_mid_to_end)
        outcome = PathOutcome.FOUND if path else PathOutcome.ZERO_LENGTH

    return BidirectionalPathSummary(
        start=start,
        end=end,
        path=path,
        outcome=outcome,
        middle=middle,
        searched_vertices_from_start=searched_vertices_from_start,
        searched_vertices_from_end=searched_vertices_from_end,
    )
