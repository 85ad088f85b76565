"""
Reconstructing module for pymapmatcher.

This module turns the predecessor trees of shortest-path searches into routes,
for both single searches and bidirectional searches meeting at a middle vertex.
"""

from pymapmatcher.reconstructing.path import reconstruct_unidirectional_path, reconstruct_bidirectional_path
from pymapmatcher.reconstructing.path_summary import (
    PathOutcome,
    PathSummary,
    SingleDirectionalPathSummary,
    BidirectionalPathSummary,
    simple_path,
)

__all__ = [
    'reconstruct_unidirectional_path',
    'reconstruct_bidirectional_path',
    'PathOutcome',
    'PathSummary',
    'SingleDirectionalPathSummary',
    'BidirectionalPathSummary',
    'simple_path',
]
