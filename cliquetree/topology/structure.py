"""
cliquetree/topology/structure.py

Model structure over integer variables.

A discrete model consists of:
- Variables 0..d-1 with cardinalities
- Factor scopes (ordered tuples of variables)
- Optional structural edges, possibly directed
"""

from __future__ import annotations

from itertools import combinations
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import networkx as nx
import numpy as np

from cliquetree.core.errors import StructureError


class ModelStructure:
    """
    Structure of a discrete model (topology only, no values).

    Maintains:
    - Variable cardinalities
    - Factor scopes
    - Variable-to-factor incidence
    - Extra structural edges (undirected, after moralization)
    """

    def __init__(self, cards: Sequence[int]):
        self.cards: Tuple[int, ...] = tuple(int(c) for c in cards)
        for v, c in enumerate(self.cards):
            if c < 1:
                raise StructureError(f"variable {v} must have at least one state, got {c}")
        self.scopes: List[Tuple[int, ...]] = []
        self.var_to_factors: Dict[int, List[int]] = {v: [] for v in range(len(self.cards))}
        self.extra_edges: List[Tuple[int, int]] = []

    @property
    def num_vars(self) -> int:
        return len(self.cards)

    def add_factor(self, scope: Iterable[int]) -> int:
        """Add a factor scope; returns the factor id."""
        scope_t = tuple(int(v) for v in scope)
        if len(set(scope_t)) != len(scope_t):
            raise StructureError(f"factor scope has duplicates: {scope_t}")
        for v in scope_t:
            self._check_var(v)
        fid = len(self.scopes)
        self.scopes.append(scope_t)
        for v in scope_t:
            self.var_to_factors[v].append(fid)
        return fid

    def add_graph(self, graph: nx.Graph) -> None:
        """
        Add structural edges from an external graph.

        Directed graphs are moralized first.
        """
        if graph.is_directed():
            graph = moralize(graph)
        for u, v in graph.edges():
            self._check_var(u)
            self._check_var(v)
            if u != v:
                self.extra_edges.append((int(u), int(v)))

    def _check_var(self, v: int) -> None:
        if not 0 <= int(v) < self.num_vars:
            raise StructureError(f"variable {v} out of range for a model with {self.num_vars} variables")

    def interface(self, f1: int, f2: int) -> Tuple[int, ...]:
        """Get the shared variables between two factors."""
        return tuple(sorted(set(self.scopes[f1]).intersection(self.scopes[f2])))

    def factors_containing(self, v: int) -> List[int]:
        """Get all factors containing a variable."""
        return self.var_to_factors.get(v, [])

    def interaction_graph(self) -> nx.Graph:
        """
        Undirected graph over all variables.

        Two variables are adjacent if they co-occur in a factor scope or share a
        structural edge.
        """
        g = nx.Graph()
        g.add_nodes_from(range(self.num_vars))
        for scope in self.scopes:
            g.add_edges_from(combinations(scope, 2))
        g.add_edges_from(self.extra_edges)
        return g

    def markov_blanket(self, v: int) -> Tuple[int, ...]:
        """Neighbours of v in the interaction graph."""
        self._check_var(v)
        return tuple(sorted(self.interaction_graph().neighbors(v)))

    def __repr__(self) -> str:
        return f"ModelStructure(vars={self.num_vars}, factors={len(self.scopes)})"


def moralize(dag: nx.DiGraph) -> nx.Graph:
    """
    Moral graph of a directed graph.

    Parents sharing a child are married, then direction is dropped.
    """
    g = nx.Graph()
    g.add_nodes_from(dag.nodes())
    g.add_edges_from(dag.edges())
    for child in dag.nodes():
        parents = sorted(dag.predecessors(child))
        g.add_edges_from(combinations(parents, 2))
    return g


def graph_from_adjacency(adj, directed: bool = False) -> nx.Graph:
    """Build a networkx graph from a dense 0/1 adjacency matrix."""
    a = np.asarray(adj)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise StructureError(f"adjacency matrix must be square, got shape {a.shape}")
    g = nx.DiGraph() if directed else nx.Graph()
    g.add_nodes_from(range(a.shape[0]))
    rows, cols = np.nonzero(a)
    g.add_edges_from((int(i), int(j)) for i, j in zip(rows, cols) if i != j)
    return g


def build_structure(
    cards: Sequence[int],
    scopes: Iterable[Iterable[int]],
    graph: Optional[nx.Graph] = None,
) -> ModelStructure:
    struct = ModelStructure(cards)
    for scope in scopes:
        struct.add_factor(scope)
    if graph is not None:
        struct.add_graph(graph)
    return struct
