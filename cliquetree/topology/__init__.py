"""
Topology module: model structure, moralization and triangulation.
"""

from cliquetree.topology.structure import ModelStructure, moralize, graph_from_adjacency, build_structure
from cliquetree.topology.triangulate import Triangulation, triangulate, elimination_order, maximal_cliques

__all__ = [
    "ModelStructure",
    "moralize",
    "graph_from_adjacency",
    "build_structure",
    "Triangulation",
    "triangulate",
    "elimination_order",
    "maximal_cliques",
]
