"""
cliquetree/compiler/assign.py

Factor-to-clique assignment and separator construction.

Membership tables are boolean CSR matrices:
  - clique_lookup[v, c] = True iff variable v is in clique c
  - factor_lookup[f, c] = True iff factor f was multiplied into clique c
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, List, Mapping, Sequence, Tuple

import numpy as np
import scipy.sparse as sp

from cliquetree.algebra.factor import TabularFactor, multiply_factors
from cliquetree.compiler.backbone import CliqueTree
from cliquetree.core.errors import StructureError

logger = logging.getLogger(__name__)

Sepsets = Mapping[Tuple[int, int], Tuple[int, ...]]


def build_clique_lookup(scopes: Sequence[Tuple[int, ...]], num_vars: int) -> sp.csr_matrix:
    """Boolean (num_vars x num_cliques) membership matrix."""
    rows: List[int] = []
    cols: List[int] = []
    for c, scope in enumerate(scopes):
        rows.extend(scope)
        cols.extend([c] * len(scope))
    data = np.ones(len(rows), dtype=bool)
    return sp.csr_matrix((data, (rows, cols)), shape=(num_vars, len(scopes)), dtype=bool)


def covering_cliques(clique_lookup: sp.csr_matrix, variables: Sequence[int]) -> np.ndarray:
    """Ids of the cliques whose scope contains every variable in `variables`."""
    n_cliques = clique_lookup.shape[1]
    if not len(variables):
        return np.arange(n_cliques)
    counts = np.asarray(clique_lookup[list(variables), :].sum(axis=0)).ravel()
    return np.flatnonzero(counts == len(set(variables)))


def assign_factors(
    scopes: Sequence[Tuple[int, ...]],
    factor_domains: Sequence[Tuple[int, ...]],
    num_vars: int,
) -> Tuple[List[int], sp.csr_matrix]:
    """
    Place every factor in the smallest clique covering its domain.

    Ties are broken by the lowest clique id.

    Returns:
        (assignment, factor_lookup) with assignment[f] = clique id
    """
    lookup = build_clique_lookup(scopes, num_vars)
    sizes = np.array([len(s) for s in scopes])

    assignment: List[int] = []
    for f, dom in enumerate(factor_domains):
        candidates = covering_cliques(lookup, dom)
        if candidates.size == 0:
            raise StructureError(f"no clique covers the domain {tuple(dom)} of factor {f}")
        best = candidates[np.argmin(sizes[candidates])]
        assignment.append(int(best))

    data = np.ones(len(assignment), dtype=bool)
    factor_lookup = sp.csr_matrix(
        (data, (np.arange(len(assignment)), assignment)),
        shape=(len(assignment), len(scopes)),
        dtype=bool,
    )
    return assignment, factor_lookup


def initial_potentials(
    scopes: Sequence[Tuple[int, ...]],
    factors: Sequence[TabularFactor],
    assignment: Sequence[int],
    cards: Sequence[int],
) -> List[TabularFactor]:
    """
    Clique potentials before calibration.

    Each potential is the all-ones factor over the clique scope times the
    factors assigned to the clique, in clique-scope axis order.
    """
    by_clique: Dict[int, List[TabularFactor]] = {c: [] for c in range(len(scopes))}
    for f, c in enumerate(assignment):
        by_clique[c].append(factors[f])

    potentials = []
    for c, scope in enumerate(scopes):
        unit = TabularFactor.unit(scope, [cards[v] for v in scope])
        potentials.append(multiply_factors([unit] + by_clique[c]).reorder(scope))
    return potentials


def build_sepsets(tree: CliqueTree) -> Sepsets:
    """
    sepset(i, j) = sepset(j, i) = scope(i) ∩ scope(j) for every tree edge.
    """
    sepsets: Dict[Tuple[int, int], Tuple[int, ...]] = {}
    for i, j in tree.edges():
        inter = tuple(sorted(set(tree.scopes[i]).intersection(tree.scopes[j])))
        sepsets[(i, j)] = inter
        sepsets[(j, i)] = inter
    return MappingProxyType(sepsets)
