"""
cliquetree/inference.py

Named-variable entry points for junction-tree inference.

Models are given as
    var_domains: {variable name: number of states}
    factors:     {factor name: (scope names, table)}
and translated to integer ids through a VariableRegistry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import networkx as nx
import numpy as np

from cliquetree.algebra.factor import TabularFactor
from cliquetree.core.options import EngineOptions
from cliquetree.core.registry import VariableRegistry
from cliquetree.engine import JtreeEngine

NamedFactors = Mapping[str, Tuple[Sequence[str], np.ndarray]]


@dataclass
class InferenceResult:
    """Result from running junction-tree inference."""
    log_Z: float
    engine: JtreeEngine
    registry: VariableRegistry

    @property
    def Z(self) -> float:
        return float(np.exp(self.log_Z))

    def marginal(self, variables: Sequence[str]) -> np.ndarray:
        """Normalized joint marginal over named variables, axes in the given order."""
        return self.engine.marginal(self.registry.var_ids(variables)).data

    def sample(self, n: int, seed: Optional[int] = None) -> List[Dict[str, int]]:
        draws = self.engine.sample(n, seed=seed)
        names = self.registry.id_to_var_name
        return [{names[v]: int(row[v]) for v in range(len(names))} for row in draws]


def build_engine(
    var_domains: Mapping[str, int],
    factors: NamedFactors,
    *,
    edges: Optional[Iterable[Tuple[str, str]]] = None,
    directed: bool = False,
    options: Optional[EngineOptions] = None,
) -> Tuple[JtreeEngine, VariableRegistry]:
    """
    Translate a named model into an (unbuilt) engine.

    Args:
        var_domains: Map from variable name to domain size
        factors: Map from factor name to (scope, table)
        edges: Optional structural edges between variable names
        directed: Treat edges as parent -> child (moralized)
        options: Engine options

    Returns:
        (engine, registry)
    """
    reg = VariableRegistry.build(var_domains, factors.keys())
    tabular = []
    for name in reg.id_to_fac_name:
        scope, table = factors[name]
        try:
            ids = reg.var_ids(tuple(scope))
        except KeyError as e:
            raise ValueError(f"factor {name!r}: {e.args[0]}") from None
        arr = np.asarray(table, dtype=np.float64)
        expected = tuple(reg.cards[v] for v in ids)
        if arr.shape != expected:
            raise ValueError(f"factor {name!r}: table shape {arr.shape} != scope shape {expected}")
        if np.any(arr < 0) or not np.all(np.isfinite(arr)):
            raise ValueError(f"factor {name!r}: values must be finite and non-negative")
        tabular.append(TabularFactor(ids, arr))

    graph = None
    if edges:
        graph = nx.DiGraph() if directed else nx.Graph()
        graph.add_nodes_from(range(len(reg.cards)))
        graph.add_edges_from((reg.var_id(a), reg.var_id(b)) for a, b in edges)

    return JtreeEngine(reg.cards, tabular, graph=graph, options=options), reg


def jtree_solve(
    var_domains: Mapping[str, int],
    factors: NamedFactors,
    *,
    evidence: Optional[Mapping[str, int]] = None,
    edges: Optional[Iterable[Tuple[str, str]]] = None,
    directed: bool = False,
    options: Optional[EngineOptions] = None,
) -> InferenceResult:
    """
    Build, condition and calibrate a clique tree for a named model.

    Example:
        >>> var_domains = {"A": 2, "B": 2}
        >>> factors = {
        ...     "f1": (("A",), np.array([0.3, 0.7])),
        ...     "f2": (("A", "B"), np.array([[0.9, 0.1], [0.2, 0.8]])),
        ... }
        >>> result = jtree_solve(var_domains, factors)
        >>> print(f"Z = {result.Z}")
    """
    engine, reg = build_engine(var_domains, factors, edges=edges, directed=directed, options=options)
    engine.condition(reg.evidence_ids(evidence or {}))
    return InferenceResult(log_Z=engine.lognormconst(), engine=engine, registry=reg)


def compute_log_partition(var_domains: Mapping[str, int], factors: NamedFactors, **kwargs) -> float:
    """
    Compute log Z of a named model.

    Args:
        var_domains: Map from variable name to domain size
        factors: Map from factor name to (scope, table)
        **kwargs: Additional arguments passed to jtree_solve
    """
    return jtree_solve(var_domains, factors, **kwargs).log_Z


def compute_partition_function(var_domains: Mapping[str, int], factors: NamedFactors, **kwargs) -> float:
    return jtree_solve(var_domains, factors, **kwargs).Z


def compute_marginals(
    var_domains: Mapping[str, int],
    factors: NamedFactors,
    variables: Optional[Iterable[str]] = None,
    **kwargs,
) -> Dict[str, np.ndarray]:
    """
    Single-variable marginals.

    Args:
        var_domains: Map from variable name to domain size
        factors: Map from factor name to (scope, table)
        variables: Variable names (default: all unobserved variables)
        **kwargs: Additional arguments passed to jtree_solve

    Returns:
        Map from variable name to marginal distribution
    """
    result = jtree_solve(var_domains, factors, **kwargs)
    observed = set((kwargs.get("evidence") or {}).keys())
    if variables is None:
        variables = [n for n in result.registry.id_to_var_name if n not in observed]
    return {name: result.marginal([name]) for name in variables}


def sample_joint(
    var_domains: Mapping[str, int],
    factors: NamedFactors,
    n: int,
    seed: Optional[int] = None,
    **kwargs,
) -> List[Dict[str, int]]:
    """Exact joint samples as name -> value dicts."""
    return jtree_solve(var_domains, factors, **kwargs).sample(n, seed=seed)
