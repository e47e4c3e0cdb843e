"""
cliquetree/api/query.py

Marginal queries against a calibrated clique tree.

In-clique queries marginalize the smallest covering belief. Queries spanning
several cliques run variable elimination over the minimal subtree connecting
a greedy cover of the query, dividing each non-root clique of that subtree by
its belief on the sepset toward the subtree root so shared information is
counted once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import scipy.sparse as sp

from cliquetree.algebra.factor import (
    TabularFactor,
    divide_by,
    multiply_factors,
    normalize_factor,
    sample_factor,
)
from cliquetree.compiler.assign import Sepsets, covering_cliques
from cliquetree.compiler.backbone import CliqueTree, minimal_subtree
from cliquetree.core.errors import QueryError
from cliquetree.runtime.evidence import fill_observed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryContext:
    """
    Read-only view of a calibrated tree handed to the query functions.

    Attributes:
        tree: Clique tree (scopes exclude observed variables)
        sepsets: Separator per directed tree edge
        beliefs: Calibrated clique potentials
        parent: Calibration orientation (None for the root)
        order_down: Clique visitation order of the downward pass
        clique_lookup: Boolean CSR (variables x cliques) membership
        cards: Variable cardinalities
        evidence: Observed variable -> value
        division_tol: Denominators with magnitude <= tol count as zero
    """
    tree: CliqueTree
    sepsets: Sepsets
    beliefs: Tuple[TabularFactor, ...]
    parent: Mapping[int, Optional[int]]
    order_down: Tuple[int, ...]
    clique_lookup: sp.csr_matrix
    cards: Tuple[int, ...]
    evidence: Mapping[int, int]
    division_tol: float = 0.0


def _check_query(ctx: QueryContext, query: Sequence[int]) -> Tuple[int, ...]:
    q = tuple(int(v) for v in query)
    if not q:
        raise QueryError("query must name at least one variable")
    if len(set(q)) != len(q):
        raise QueryError(f"query has duplicate variables: {q}")
    for v in q:
        if not 0 <= v < len(ctx.cards):
            raise QueryError(f"unknown query variable {v}")
        if v in ctx.evidence:
            raise QueryError(f"variable {v} is observed (value {ctx.evidence[v]}); query the hidden variables")
    return q


def find_clique(ctx: QueryContext, query: Sequence[int]) -> Optional[int]:
    """Smallest clique whose scope covers the query (lowest id on ties), or None."""
    candidates = covering_cliques(ctx.clique_lookup, list(query))
    if candidates.size == 0:
        return None
    sizes = np.array([len(ctx.tree.scopes[c]) for c in candidates])
    return int(candidates[np.argmin(sizes)])


def greedy_cover(ctx: QueryContext, query: Sequence[int]) -> List[int]:
    """
    Cliques covering the query, picked greedily by number of uncovered variables.
    """
    remaining = list(dict.fromkeys(query))
    chosen: List[int] = []
    while remaining:
        counts = np.asarray(ctx.clique_lookup[remaining, :].sum(axis=0)).ravel()
        best = int(np.argmax(counts))
        if counts[best] == 0:
            raise QueryError(f"variables {remaining} are not covered by any clique")
        chosen.append(best)
        scope = set(ctx.tree.scopes[best])
        remaining = [v for v in remaining if v not in scope]
    return chosen


def in_clique_marginal(ctx: QueryContext, clique: int, query: Sequence[int]) -> TabularFactor:
    belief = ctx.beliefs[clique]
    marg = belief.marginalize(query).reorder(tuple(query))
    return normalize_factor(marg)[0]


def out_of_clique_marginal(ctx: QueryContext, query: Sequence[int]) -> TabularFactor:
    """
    Variable elimination over the minimal subtree spanning a cover of the query.
    """
    cover = greedy_cover(ctx, query)
    subtree = minimal_subtree(ctx.tree.graph, cover)
    position = {c: i for i, c in enumerate(ctx.order_down)}
    # outermost first; the last clique is the subtree root
    ordered = sorted(subtree, key=lambda c: position[c], reverse=True)
    members = set(ordered)

    factors: List[TabularFactor] = []
    for c in ordered[:-1]:
        toward_root = ctx.parent[c]
        if toward_root not in members:
            raise QueryError(f"clique {c} has no neighbour toward the root inside the query subtree")
        mu = ctx.beliefs[c].marginalize(ctx.sepsets[(c, toward_root)])
        factors.append(divide_by(ctx.beliefs[c], mu, tol=ctx.division_tol))
    factors.append(ctx.beliefs[ordered[-1]])

    logger.debug("out-of-clique query %s over subtree %s (cover %s)", tuple(query), ordered, cover)
    joint = multiply_factors(factors)
    marg = joint.marginalize(query).reorder(tuple(query))
    return normalize_factor(marg)[0]


def marginal(ctx: QueryContext, query: Sequence[int]) -> TabularFactor:
    """
    Normalized marginal over `query`, axes in the order given.
    """
    q = _check_query(ctx, query)
    clique = find_clique(ctx, q)
    if clique is None:
        return out_of_clique_marginal(ctx, q)
    return in_clique_marginal(ctx, clique, q)


def log_partition(ctx: QueryContext) -> float:
    """
    Log normalizing constant from a calibrated belief.

    Every calibrated clique sums to the same Z (including evidence, where Z is
    the unnormalized probability of the evidence).
    """
    z = ctx.beliefs[ctx.order_down[0]].total()
    if z <= 0.0:
        return float("-inf")
    return float(np.log(z))


def joint_factor(factors: Sequence[TabularFactor], cards: Sequence[int], hidden: Sequence[int]) -> TabularFactor:
    """Product of all factors embedded over the hidden variables, axes in `hidden` order."""
    unit = TabularFactor.unit(tuple(hidden), [cards[v] for v in hidden])
    return multiply_factors([unit] + list(factors)).reorder(tuple(hidden))


def joint_log_partition(factors: Sequence[TabularFactor], cards: Sequence[int], hidden: Sequence[int]) -> float:
    """Log normalizing constant computed by brute force from the joint table."""
    joint = joint_factor(factors, cards, hidden)
    z = joint.total()
    if z <= 0.0:
        return float("-inf")
    return float(np.log(z))


def sample(
    factors: Sequence[TabularFactor],
    cards: Sequence[int],
    evidence: Mapping[int, int],
    n: int,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Exact joint samples from the product of all factors.

    The cost is exponential in the number of hidden variables.

    Returns:
        (n, num_vars) int array; observed variables carry their evidence value.
    """
    if n < 0:
        raise ValueError(f"number of samples must be non-negative, got {n}")
    hidden = [v for v in range(len(cards)) if v not in evidence]
    joint = joint_factor(factors, cards, hidden)
    draws = sample_factor(joint, n, rng=rng)
    return fill_observed(draws, hidden, evidence, len(cards))
