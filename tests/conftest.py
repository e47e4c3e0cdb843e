"""
Shared fixtures: small models and a brute-force joint that does not use the
library's factor algebra.
"""

import itertools

import numpy as np
import pytest

from cliquetree.algebra.factor import TabularFactor


def _brute_joint(cards, factors):
    """Dense joint over all variables, axes in variable order."""
    joint = np.zeros(tuple(cards))
    for x in itertools.product(*(range(c) for c in cards)):
        w = 1.0
        for f in factors:
            w *= f.data[tuple(x[v] for v in f.domain)]
        joint[x] = w
    return joint


def _brute_marginal(cards, factors, query, evidence=None):
    """Normalized P(query | evidence), axes in query order."""
    joint = _brute_joint(cards, factors)
    if evidence:
        mask = np.zeros_like(joint, dtype=bool)
        idx = [slice(None)] * len(cards)
        for v, x in evidence.items():
            idx[v] = x
        mask[tuple(idx)] = True
        joint = np.where(mask, joint, 0.0)
    others = tuple(v for v in range(len(cards)) if v not in query)
    marg = joint.sum(axis=others)
    # marg axes follow sorted(query); reorder to query order
    order = sorted(query)
    marg = np.transpose(marg, [order.index(v) for v in query])
    return marg / marg.sum()


@pytest.fixture
def brute_joint():
    return _brute_joint


@pytest.fixture
def brute_marginal():
    return _brute_marginal


@pytest.fixture
def chain_model():
    """Binary chain A(0) -- B(1) -- C(2)."""
    cards = [2, 2, 2]
    phi_AB = TabularFactor((0, 1), np.array([[0.9, 0.1], [0.2, 0.8]]))
    phi_BC = TabularFactor((1, 2), np.array([[0.3, 0.7], [0.5, 0.5]]))
    return cards, [phi_AB, phi_BC]


@pytest.fixture
def cycle_model():
    """Binary 4-cycle 0-1-3-2-0 with Ising couplings."""
    J = 0.5
    psi = np.array([[np.exp(J), np.exp(-J)], [np.exp(-J), np.exp(J)]])
    cards = [2, 2, 2, 2]
    factors = [
        TabularFactor((0, 1), psi),
        TabularFactor((0, 2), psi),
        TabularFactor((1, 3), psi),
        TabularFactor((2, 3), psi * np.array([[1.0, 2.0], [0.5, 1.5]])),
    ]
    return cards, factors


@pytest.fixture
def random_model():
    """Six variables with mixed cardinalities, loops and a unary factor."""
    rng = np.random.default_rng(7)
    cards = [2, 3, 2, 2, 3, 2]
    scopes = [(0, 1), (1, 2), (2, 3), (3, 0), (3, 4), (4, 5, 1), (5,)]
    factors = [
        TabularFactor(s, rng.uniform(0.1, 1.0, size=tuple(cards[v] for v in s)))
        for s in scopes
    ]
    return cards, factors
