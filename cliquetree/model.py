"""
cliquetree/model.py

Undirected (or moralized directed) graphical model with tabular potentials.
"""

from __future__ import annotations

from typing import Mapping, Optional, Sequence

import networkx as nx

from cliquetree.algebra.factor import TabularFactor, multiply_factors, normalize_factor
from cliquetree.core.options import EngineOptions
from cliquetree.engine import JtreeEngine
from cliquetree.topology.structure import ModelStructure, build_structure, graph_from_adjacency


class TabularModel:
    """
    A discrete model given by tabular factors.

    When no graph is supplied the graph is inferred from the factor scopes.
    A directed graph (or adjacency matrix with directed=True) is moralized.

    Attributes:
        cards: Variable cardinalities
        factors: Tabular factors
        structure: ModelStructure over the variables
    """

    def __init__(
        self,
        cards: Sequence[int],
        factors: Sequence[TabularFactor],
        graph=None,
        directed: bool = False,
    ):
        self.cards = tuple(int(c) for c in cards)
        self.factors = tuple(factors)
        if graph is not None and not isinstance(graph, nx.Graph):
            graph = graph_from_adjacency(graph, directed=directed)
        self.graph: Optional[nx.Graph] = graph
        self.structure: ModelStructure = build_structure(
            self.cards, (f.domain for f in self.factors), graph
        )

    @property
    def num_vars(self) -> int:
        return len(self.cards)

    def joint(self) -> TabularFactor:
        """Product of all factors over every variable, axes in variable order."""
        domain = tuple(range(self.num_vars))
        unit = TabularFactor.unit(domain, self.cards)
        return multiply_factors([unit] + list(self.factors)).reorder(domain)

    def markov_blanket_factor(self, v: int) -> TabularFactor:
        """Product of all factors whose scope contains v."""
        touching = [self.factors[f] for f in self.structure.factors_containing(v)]
        unit = TabularFactor.unit((v,), (self.cards[v],))
        return multiply_factors([unit] + touching)

    def full_conditional(self, v: int, assignment: Mapping[int, int]) -> TabularFactor:
        """
        P(x_v | x_rest) from the factors touching v.

        Args:
            v: Variable to condition
            assignment: Values for (at least) the other variables in v's factors

        Returns:
            Normalized factor over (v,)
        """
        blanket = self.markov_blanket_factor(v)
        others = [u for u in blanket.domain if u != v]
        missing = [u for u in others if u not in assignment]
        if missing:
            raise ValueError(f"full_conditional of {v} needs values for variables {missing}")
        sliced = blanket.slice(others, [assignment[u] for u in others])
        return normalize_factor(sliced)[0]

    def infer_engine(self, options: Optional[EngineOptions] = None) -> JtreeEngine:
        """A junction-tree engine over this model (not yet calibrated)."""
        return JtreeEngine(self.cards, self.factors, graph=self.graph, options=options)

    def __repr__(self) -> str:
        return f"TabularModel(vars={self.num_vars}, factors={len(self.factors)})"
