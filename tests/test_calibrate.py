"""
Tests for two-pass calibration.
"""

import numpy as np
import pytest

from cliquetree.algebra.factor import TabularFactor
from cliquetree.compiler.assign import assign_factors, build_sepsets, initial_potentials
from cliquetree.compiler.backbone import build_clique_tree
from cliquetree.core.errors import CalibrationError, JtreeError, StructureError
from cliquetree.core.options import EngineOptions
from cliquetree.engine import JtreeEngine
from cliquetree.runtime.calibrate import (
    CalibrationState,
    Calibrator,
    check_calibration,
    sepset_discrepancy,
)


def _calibrator(cards, factors, cliques, root=0):
    jt = build_clique_tree(cliques)
    sepsets = build_sepsets(jt)
    assignment, _ = assign_factors(jt.scopes, [f.domain for f in factors], len(cards))
    pots = initial_potentials(jt.scopes, factors, assignment, cards)
    return Calibrator(jt, sepsets, pots, root=root)


class TestCalibrator:
    @pytest.fixture
    def star(self, random_model):
        cards, _ = random_model
        rng = np.random.default_rng(3)
        cliques = [(0, 1, 2), (1, 2, 3), (2, 4), (1, 5)]
        factors = [
            TabularFactor(c, rng.uniform(0.1, 1.0, size=tuple(cards[v] for v in c)))
            for c in cliques
        ]
        return cards, factors, cliques

    def test_state_transitions(self, star):
        cal = _calibrator(*star)
        assert cal.state is CalibrationState.UNCALIBRATED

        cal.upward()
        assert cal.state is CalibrationState.UPWARD
        cal.downward()
        assert cal.state is CalibrationState.DOWNWARD
        cal.finalize()
        assert cal.state is CalibrationState.CALIBRATED

    def test_adjacent_beliefs_agree_on_sepsets(self, star):
        cal = _calibrator(*star)
        beliefs = cal.run()

        for (i, j), s in cal.sepsets.items():
            a = beliefs[i].marginalize(s).reorder(s).data
            b = beliefs[j].marginalize(s).reorder(s).data
            assert np.allclose(a, b)
        assert sepset_discrepancy(cal.tree, cal.sepsets, beliefs) < 1e-12

    def test_every_belief_has_same_mass(self, star):
        beliefs = _calibrator(*star).run()
        totals = [b.total() for b in beliefs]
        assert np.allclose(totals, totals[0])

    def test_belief_is_unnormalized_clique_marginal(self, star, brute_joint):
        cards, factors, cliques = star
        beliefs = _calibrator(cards, factors, cliques).run()
        joint = brute_joint(cards, factors)

        for b in beliefs:
            others = tuple(v for v in range(len(cards)) if v not in b.domain)
            expected = joint.sum(axis=others)
            assert np.allclose(b.reorder(tuple(sorted(b.domain))).data, expected)

    def test_calibration_is_idempotent(self, star):
        cal = _calibrator(*star)
        first = [b.data.copy() for b in cal.run()]
        second = cal.run()

        for a, b in zip(first, second):
            assert np.array_equal(a, b.data)

    def test_potentials_not_mutated(self, star):
        cal = _calibrator(*star)
        before = [p.data.copy() for p in cal.potentials]
        cal.run()
        for a, p in zip(before, cal.potentials):
            assert np.array_equal(a, p.data)

    def test_order_down_starts_at_root(self, star):
        cal = _calibrator(*star, root=2)
        cal.run()

        assert cal.root == 2
        assert cal.order_down[0] == 2
        assert sorted(cal.order_down) == [0, 1, 2, 3]
        assert cal.order_up[-1] == 2
        # every clique is visited after its parent on the way down
        pos = {c: i for i, c in enumerate(cal.order_down)}
        for c, p in cal.parent.items():
            if p is not None:
                assert pos[p] < pos[c]

    def test_two_messages_per_edge(self, star):
        cal = _calibrator(*star)
        cal.run()
        assert len(cal.messages) == 2 * len(cal.tree.edges())

    def test_root_choice_does_not_change_beliefs(self, star):
        a = _calibrator(*star, root=0).run()
        b = _calibrator(*star, root=3).run()
        for x, y in zip(a, b):
            assert np.allclose(x.data, y.data)

    def test_potential_count_mismatch_raises(self, star):
        cards, factors, cliques = star
        jt = build_clique_tree(cliques)
        with pytest.raises(StructureError):
            Calibrator(jt, build_sepsets(jt), [], root=0)


class TestScheduleWaves:
    def test_chain_waves(self):
        cards = [2, 2, 2, 2]
        factors = [TabularFactor((v, v + 1), np.ones((2, 2))) for v in range(3)]
        cal = _calibrator(cards, factors, [(0, 1), (1, 2), (2, 3)], root=0)

        assert cal.schedule_waves() == [[2], [1], [0]]

    def test_waves_cover_every_clique_once(self):
        cards = [2] * 6
        cliques = [(0, 1), (1, 2), (1, 3), (3, 4), (3, 5)]
        factors = [TabularFactor(c, np.ones((2, 2))) for c in cliques]
        cal = _calibrator(cards, factors, cliques, root=0)
        waves = cal.schedule_waves()

        flat = [c for w in waves for c in w]
        assert sorted(flat) == list(range(len(cliques)))
        assert waves[-1] == [cal.root]
        # a parent always sits in a later wave than its children
        level = {c: k for k, w in enumerate(waves) for c in w}
        for c, p in cal.parent.items():
            if p is not None:
                assert level[p] > level[c]


class TestCheckCalibration:
    def test_uncalibrated_beliefs_fail(self, chain_model):
        cards, factors = chain_model
        eng = JtreeEngine(cards, factors).build()
        potentials = eng._calibrator.potentials

        with pytest.raises(CalibrationError):
            check_calibration(eng.tree, eng.sepsets, potentials, rtol=1e-9)

    def test_engine_check_passes(self, cycle_model):
        cards, factors = cycle_model
        eng = JtreeEngine(cards, factors, options=EngineOptions(check_calibration=True))
        eng.calibrate()

        assert eng.is_calibrated
        assert check_calibration(eng.tree, eng.sepsets, eng.cliques) <= 1e-9

    def test_failure_is_a_jtree_error(self, chain_model):
        cards, factors = chain_model
        eng = JtreeEngine(cards, factors).build()

        with pytest.raises(JtreeError):
            check_calibration(eng.tree, eng.sepsets, eng._calibrator.potentials)
