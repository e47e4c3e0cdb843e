"""
Tests for marginal and log-partition queries on a calibrated tree.
"""

import itertools
import warnings

import numpy as np
import pytest

from cliquetree.algebra.factor import TabularFactor
from cliquetree.api.query import (
    find_clique,
    greedy_cover,
    in_clique_marginal,
    joint_log_partition,
    log_partition,
    marginal,
    out_of_clique_marginal,
)
from cliquetree.core.errors import QueryError
from cliquetree.engine import JtreeEngine


class TestMarginals:
    @pytest.fixture
    def engine(self, random_model):
        cards, factors = random_model
        return JtreeEngine(cards, factors).calibrate()

    def test_single_variable_marginals(self, engine, random_model, brute_marginal):
        cards, factors = random_model
        for v in range(len(cards)):
            m = engine.marginal([v])
            assert m.domain == (v,)
            assert np.allclose(m.data, brute_marginal(cards, factors, (v,)))

    def test_every_pair_matches_brute_force(self, engine, random_model, brute_marginal):
        cards, factors = random_model
        for q in itertools.permutations(range(len(cards)), 2):
            m = engine.marginal(q)
            assert m.domain == q
            assert np.allclose(m.data, brute_marginal(cards, factors, q)), q

    def test_triples_spanning_several_cliques(self, engine, random_model, brute_marginal):
        cards, factors = random_model
        ctx = engine.context()
        spanning = [q for q in itertools.combinations(range(len(cards)), 3) if find_clique(ctx, q) is None]
        assert spanning

        for q in spanning:
            assert np.allclose(engine.marginal(q).data, brute_marginal(cards, factors, q)), q

    def test_in_and_out_of_clique_paths_agree(self, engine):
        ctx = engine.context()
        for c, scope in enumerate(ctx.tree.scopes):
            if len(scope) < 2:
                continue
            q = scope[:2]
            direct = in_clique_marginal(ctx, c, q)
            via_subtree = out_of_clique_marginal(ctx, q)
            assert np.allclose(direct.data, via_subtree.data)

    def test_marginals_normalized(self, engine):
        for q in [(0,), (2, 5), (0, 4, 5)]:
            assert engine.marginal(q).total() == pytest.approx(1.0)

    def test_with_evidence(self, random_model, brute_marginal):
        cards, factors = random_model
        evidence = {1: 2, 3: 0}
        eng = JtreeEngine(cards, factors).condition(evidence)

        for q in [(0,), (4,), (0, 5), (5, 2, 4)]:
            assert np.allclose(eng.marginal(q).data, brute_marginal(cards, factors, q, evidence)), q


class TestCover:
    def test_greedy_cover_covers_query(self, random_model):
        cards, factors = random_model
        ctx = JtreeEngine(cards, factors).context()
        q = (0, 4, 5)
        cover = greedy_cover(ctx, q)

        covered = {v for c in cover for v in ctx.tree.scopes[c]}
        assert set(q) <= covered
        assert len(cover) == len(set(cover))

    def test_find_clique_picks_smallest(self):
        cards = [2, 2, 2, 2]
        factors = [TabularFactor((0, 1, 2), np.ones((2, 2, 2))), TabularFactor((2, 3), np.ones((2, 2)))]
        ctx = JtreeEngine(cards, factors).context()

        assert ctx.tree.scopes[find_clique(ctx, (2,))] == (2, 3)
        assert ctx.tree.scopes[find_clique(ctx, (1, 0))] == (0, 1, 2)
        assert find_clique(ctx, (0, 3)) is None


class TestZeroSepsets:
    def test_zero_over_zero_stays_finite(self, brute_marginal):
        rng = np.random.default_rng(11)
        cards = [2, 2, 2, 2]
        factors = [
            TabularFactor((0, 1), rng.uniform(0.1, 1.0, (2, 2))),
            TabularFactor((1, 2), rng.uniform(0.1, 1.0, (2, 2))),
            TabularFactor((2, 3), rng.uniform(0.1, 1.0, (2, 2))),
            # state 1 of variable 1 is impossible
            TabularFactor((1,), np.array([1.0, 0.0])),
        ]
        eng = JtreeEngine(cards, factors).calibrate()

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            m = eng.marginal((0, 3))
        assert np.all(np.isfinite(m.data))
        assert np.allclose(m.data, brute_marginal(cards, factors, (0, 3)))


class TestQueryErrors:
    @pytest.fixture
    def ctx(self, chain_model):
        cards, factors = chain_model
        return JtreeEngine(cards, factors).condition({0: 1}).context()

    def test_empty_query(self, ctx):
        with pytest.raises(QueryError):
            marginal(ctx, ())

    def test_duplicate_variables(self, ctx):
        with pytest.raises(QueryError):
            marginal(ctx, (1, 1))

    def test_unknown_variable(self, ctx):
        with pytest.raises(QueryError):
            marginal(ctx, (7,))

    def test_observed_variable(self, ctx):
        with pytest.raises(QueryError):
            marginal(ctx, (0,))

    def test_query_error_is_value_error(self, ctx):
        with pytest.raises(ValueError):
            marginal(ctx, (7,))


class TestLogPartition:
    def test_matches_joint(self, random_model, brute_joint):
        cards, factors = random_model
        ctx = JtreeEngine(cards, factors).context()

        expected = np.log(brute_joint(cards, factors).sum())
        assert log_partition(ctx) == pytest.approx(expected)
        assert joint_log_partition(factors, cards, list(range(len(cards)))) == pytest.approx(expected)

    def test_zero_mass_is_minus_infinity(self):
        factors = [TabularFactor((0, 1), np.zeros((2, 2)))]
        ctx = JtreeEngine([2, 2], factors).context()
        assert log_partition(ctx) == float("-inf")
