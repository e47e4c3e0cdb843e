"""
cliquetree/engine.py

Junction-tree inference engine for discrete tabular models.

Pipeline:
    build:     interaction graph -> triangulation -> clique tree
    assign:    factors -> smallest covering clique, sepsets
    calibrate: upward / downward sum-product passes
    query:     marginal, log partition, sample

Conditioning on evidence re-enters the pipeline at the assignment step with
sliced factors and recalibrates from scratch.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import networkx as nx
import numpy as np
import scipy.sparse as sp

from cliquetree.algebra.factor import TabularFactor
from cliquetree.api.query import (
    QueryContext,
    joint_log_partition,
    log_partition,
    marginal,
    sample,
)
from cliquetree.compiler.assign import (
    Sepsets,
    assign_factors,
    build_clique_lookup,
    build_sepsets,
    initial_potentials,
)
from cliquetree.compiler.backbone import CliqueTree, build_clique_tree, check_clique_tree
from cliquetree.core.errors import StructureError, UnsupportedOperationError
from cliquetree.core.options import EngineOptions
from cliquetree.runtime.calibrate import CalibrationState, Calibrator, check_calibration
from cliquetree.runtime.evidence import condition_factors, validate_evidence
from cliquetree.topology.structure import build_structure
from cliquetree.topology.triangulate import Triangulation, triangulate

logger = logging.getLogger(__name__)


class JtreeEngine:
    """
    Exact inference by calibration of a clique tree.

    Args:
        cards: Cardinality of each variable 0..d-1
        factors: Input potentials (kept read-only)
        graph: Optional structural graph over the variables; directed graphs
            are moralized
        options: Engine options

    Example:
        >>> phi_ab = TabularFactor((0, 1), np.array([[0.9, 0.1], [0.2, 0.8]]))
        >>> phi_bc = TabularFactor((1, 2), np.array([[0.3, 0.7], [0.5, 0.5]]))
        >>> eng = JtreeEngine([2, 2, 2], [phi_ab, phi_bc])
        >>> eng.marginal([2]).data
    """

    def __init__(
        self,
        cards: Sequence[int],
        factors: Sequence[TabularFactor],
        graph: Optional[nx.Graph] = None,
        options: Optional[EngineOptions] = None,
    ):
        self.options = options or EngineOptions()
        self.cards: Tuple[int, ...] = tuple(int(c) for c in cards)
        self.factors: Tuple[TabularFactor, ...] = tuple(factors)
        self._check_factors()
        self.graph = graph

        self.evidence: Dict[int, int] = {}
        self.triangulation: Optional[Triangulation] = None
        self._full_tree: Optional[CliqueTree] = None
        self.tree: Optional[CliqueTree] = None
        self.sepsets: Optional[Sepsets] = None
        self.clique_lookup: Optional[sp.csr_matrix] = None
        self.factor_lookup: Optional[sp.csr_matrix] = None
        self.assignment: List[int] = []
        self._active_factors: List[TabularFactor] = list(self.factors)
        self._calibrator: Optional[Calibrator] = None

    def _check_factors(self) -> None:
        for i, f in enumerate(self.factors):
            for v in f.domain:
                if not 0 <= v < len(self.cards):
                    raise StructureError(f"factor {i} mentions unknown variable {v}")
                if f.card_of(v) != self.cards[v]:
                    raise StructureError(
                        f"factor {i}: variable {v} has {f.card_of(v)} states, expected {self.cards[v]}"
                    )
            if not np.all(np.isfinite(f.data)) or np.any(f.data < 0):
                raise StructureError(f"factor {i} over {f.domain}: values must be finite and non-negative")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @property
    def is_built(self) -> bool:
        return self._full_tree is not None

    def build(self) -> "JtreeEngine":
        """
        Triangulate the model graph and form the clique tree.

        Evidence already set by condition() stays in force: observed variables
        are dropped from the clique scopes and the factors are re-sliced.
        """
        struct = build_structure(self.cards, (f.domain for f in self.factors), self.graph)
        self.triangulation = triangulate(struct.interaction_graph(), heuristic=self.options.heuristic)
        self._full_tree = build_clique_tree(self.triangulation.cliques)
        logger.info(
            "built clique tree: %d variables, %d factors, %d cliques (max size %d)",
            len(self.cards), len(self.factors), self._full_tree.num_cliques,
            max(len(s) for s in self._full_tree.scopes),
        )
        self._assign(
            self._full_tree.restrict(self.evidence.keys()),
            condition_factors(self.factors, self.evidence),
        )
        return self

    def _assign(self, tree: CliqueTree, factors: List[TabularFactor]) -> None:
        check_clique_tree(tree)
        self.tree = tree
        self._active_factors = factors
        self.assignment, self.factor_lookup = assign_factors(
            tree.scopes, [f.domain for f in factors], len(self.cards)
        )
        self.clique_lookup = build_clique_lookup(tree.scopes, len(self.cards))
        self.sepsets = build_sepsets(tree)
        potentials = initial_potentials(tree.scopes, factors, self.assignment, self.cards)
        if self.options.root >= tree.num_cliques:
            raise StructureError(
                f"root clique {self.options.root} out of range for {tree.num_cliques} cliques"
            )
        self._calibrator = Calibrator(tree, self.sepsets, potentials, root=self.options.root)

    # ------------------------------------------------------------------
    # Calibration and evidence
    # ------------------------------------------------------------------

    @property
    def state(self) -> CalibrationState:
        if self._calibrator is None:
            return CalibrationState.UNCALIBRATED
        return self._calibrator.state

    @property
    def is_calibrated(self) -> bool:
        return self.state is CalibrationState.CALIBRATED

    def calibrate(self) -> "JtreeEngine":
        """Run both passes from the assigned potentials."""
        if not self.is_built:
            self.build()
        beliefs = self._calibrator.run()
        if self.options.check_calibration:
            worst = check_calibration(self.tree, self.sepsets, beliefs, rtol=self.options.consistency_rtol)
            logger.debug("sepset consistency check passed (max relative discrepancy %.3e)", worst)
        return self

    def condition(self, evidence: Optional[Mapping[int, int]] = None) -> "JtreeEngine":
        """
        Condition on evidence and recalibrate from scratch.

        The original factors are re-sliced, observed variables are dropped from
        the clique scopes, factors are re-assigned and the tree is calibrated
        again. Passing no evidence clears any previous evidence.
        """
        evidence = validate_evidence(evidence or {}, self.cards)
        if self.is_calibrated and evidence == self.evidence:
            return self
        if not self.is_built:
            self.build()

        self.evidence = evidence
        logger.debug("conditioning on evidence %s", evidence)
        sliced = condition_factors(self.factors, evidence)
        self._assign(self._full_tree.restrict(evidence.keys()), sliced)
        return self.calibrate()

    def recalibrate(self, evidence: Mapping[int, int]) -> "JtreeEngine":
        """Incremental recalibration reusing previous messages."""
        raise UnsupportedOperationError(
            "recalibration of an already calibrated tree based on new evidence is not "
            "supported; call condition() to rebuild and recalibrate from scratch"
        )

    def _ensure_calibrated(self) -> None:
        if not self.is_calibrated:
            self.calibrate()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def context(self) -> QueryContext:
        """Snapshot of the calibrated state for the query functions."""
        self._ensure_calibrated()
        cal = self._calibrator
        return QueryContext(
            tree=self.tree,
            sepsets=self.sepsets,
            beliefs=tuple(cal.beliefs),
            parent=dict(cal.parent),
            order_down=tuple(cal.order_down),
            clique_lookup=self.clique_lookup,
            cards=self.cards,
            evidence=dict(self.evidence),
            division_tol=self.options.division_tol,
        )

    def marginal(self, query: Sequence[int]) -> TabularFactor:
        """Normalized marginal over the query variables (given evidence)."""
        return marginal(self.context(), query)

    def lognormconst(self) -> float:
        """Log partition function (log of Z times the probability of the evidence)."""
        return log_partition(self.context())

    log_partition = lognormconst

    def joint_log_partition(self) -> float:
        """Log partition computed by brute force from the joint table."""
        hidden = [v for v in range(len(self.cards)) if v not in self.evidence]
        return joint_log_partition(condition_factors(self.factors, self.evidence), self.cards, hidden)

    def sample(self, n: int, seed: Optional[int] = None) -> np.ndarray:
        """
        Exact joint samples over all variables, shape (n, d).
        """
        if seed is None:
            seed = self.options.seed
        rng = np.random.default_rng(seed)
        return sample(condition_factors(self.factors, self.evidence), self.cards, self.evidence, n, rng=rng)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def cliques(self) -> List[TabularFactor]:
        """Current clique potentials (calibrated beliefs once calibrated)."""
        if self._calibrator is None:
            return []
        return list(self._calibrator.beliefs)

    @property
    def clique_scopes(self) -> Tuple[Tuple[int, ...], ...]:
        return self.tree.scopes if self.tree is not None else ()

    @property
    def messages(self) -> Dict[Tuple[int, int], TabularFactor]:
        if self._calibrator is None:
            return {}
        return dict(self._calibrator.messages)

    @property
    def order_down(self) -> Tuple[int, ...]:
        if self._calibrator is None:
            return ()
        return tuple(self._calibrator.order_down)

    @property
    def root(self) -> Optional[int]:
        return self._calibrator.root if self._calibrator is not None else None

    def schedule_waves(self) -> List[List[int]]:
        if not self.is_built:
            self.build()
        return self._calibrator.schedule_waves()

    def __repr__(self) -> str:
        return (
            f"JtreeEngine(vars={len(self.cards)}, factors={len(self.factors)}, "
            f"cliques={len(self.clique_scopes)}, state={self.state.value})"
        )
