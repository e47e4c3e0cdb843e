"""
cliquetree/runtime/calibrate.py

Two-pass sum-product calibration of a clique tree.

Upward pass (leaves to root):
    msg(c -> p) = marginalize(potential(c) * prod_{x != p} msg(x -> c), sepset(c, p))
Downward pass (root to leaves):
    msg(c -> k) = marginalize(potential(c) * prod_{x != k} msg(x -> c), sepset(c, k))
Finalization:
    belief(c) = potential(c) * prod_x msg(x -> c)

After finalization every pair of adjacent beliefs agrees on its sepset.
"""

from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from cliquetree.algebra.factor import TabularFactor, multiply_factors
from cliquetree.compiler.assign import Sepsets
from cliquetree.compiler.backbone import CliqueTree, find_root, root_tree
from cliquetree.core.errors import CalibrationError, StructureError

logger = logging.getLogger(__name__)

Edge = Tuple[int, int]


class CalibrationState(Enum):
    UNCALIBRATED = "uncalibrated"
    UPWARD = "upward-in-progress"
    DOWNWARD = "downward-in-progress"
    CALIBRATED = "calibrated"


class Calibrator:
    """
    Runs the message schedule over a fixed clique tree.

    The initial potentials are never mutated; every run starts from them, so
    calibrating twice yields the same beliefs.
    """

    def __init__(
        self,
        tree: CliqueTree,
        sepsets: Sepsets,
        potentials: Sequence[TabularFactor],
        root: int = 0,
    ):
        if len(potentials) != tree.num_cliques:
            raise StructureError(
                f"got {len(potentials)} potentials for {tree.num_cliques} cliques"
            )
        self.tree = tree
        self.sepsets = sepsets
        self.potentials: Tuple[TabularFactor, ...] = tuple(potentials)
        self.parent, self.children = root_tree(tree.graph, root)
        self.root = find_root(self.parent)

        self.state = CalibrationState.UNCALIBRATED
        self.messages: Dict[Edge, TabularFactor] = {}
        self.beliefs: List[TabularFactor] = list(self.potentials)
        self.order_up: List[int] = []
        self.order_down: List[int] = []

    def _collect(self, c: int, exclude: Optional[int]) -> TabularFactor:
        """Potential of c times the messages it holds from every neighbour except `exclude`."""
        parts = [self.potentials[c]]
        for x in self.tree.neighbors(c):
            if x != exclude and (x, c) in self.messages:
                parts.append(self.messages[(x, c)])
        return multiply_factors(parts)

    def _send(self, sender: int, receiver: int) -> None:
        psi = self._collect(sender, exclude=receiver)
        self.messages[(sender, receiver)] = psi.marginalize(self.sepsets[(sender, receiver)])

    def upward(self) -> None:
        """Leaves first; a node sends once all its children have sent to it."""
        self.state = CalibrationState.UPWARD
        pending = {c: len(ch) for c, ch in self.children.items()}
        ready = deque(sorted(c for c, n in pending.items() if n == 0))
        self.order_up = []

        while ready:
            current = ready.popleft()
            self.order_up.append(current)
            p = self.parent[current]
            if p is None:
                continue
            self._send(current, p)
            pending[p] -= 1
            if pending[p] == 0:
                ready.append(p)

        if len(self.order_up) != self.tree.num_cliques or self.order_up[-1] != self.root:
            raise StructureError("upward pass did not reach the root; clique tree orientation is invalid")

    def downward(self) -> None:
        """Root first, then outward breadth-first; records the visitation order."""
        self.state = CalibrationState.DOWNWARD
        self.order_down = []
        queue = deque([self.root])
        while queue:
            current = queue.popleft()
            self.order_down.append(current)
            for child in self.children[current]:
                self._send(current, child)
                queue.append(child)

    def finalize(self) -> None:
        self.beliefs = [self._collect(c, exclude=None) for c in range(self.tree.num_cliques)]
        self.state = CalibrationState.CALIBRATED

    def run(self) -> List[TabularFactor]:
        """Full calibration from the initial potentials."""
        self.messages = {}
        self.beliefs = list(self.potentials)
        self.upward()
        self.downward()
        self.finalize()
        logger.debug(
            "calibrated %d cliques (root %d, %d messages)",
            self.tree.num_cliques, self.root, len(self.messages),
        )
        return self.beliefs

    def schedule_waves(self) -> List[List[int]]:
        """
        Upward schedule grouped into waves of mutually independent senders.

        Wave k holds the nodes whose subtree height is k; their messages only
        depend on earlier waves.
        """
        height: Dict[int, int] = {}
        for c in reversed(_preorder(self.root, self.children)):
            height[c] = 1 + max((height[k] for k in self.children[c]), default=-1)
        waves: List[List[int]] = [[] for _ in range(max(height.values()) + 1)]
        for c in sorted(height):
            waves[height[c]].append(c)
        return waves


def _preorder(root: int, children: Dict[int, List[int]]) -> List[int]:
    out = []
    stack = [root]
    while stack:
        u = stack.pop()
        out.append(u)
        stack.extend(reversed(children[u]))
    return out


def sepset_discrepancy(
    tree: CliqueTree,
    sepsets: Sepsets,
    beliefs: Sequence[TabularFactor],
) -> float:
    """
    Largest relative disagreement between adjacent beliefs on their sepset.
    """
    worst = 0.0
    for i, j in tree.edges():
        s = sepsets[(i, j)]
        a = beliefs[i].marginalize(s).reorder(s).data
        b = beliefs[j].marginalize(s).reorder(s).data
        scale = max(float(np.max(np.abs(a), initial=0.0)), float(np.max(np.abs(b), initial=0.0)))
        if scale == 0.0:
            continue
        worst = max(worst, float(np.max(np.abs(a - b))) / scale)
    return worst


def check_calibration(
    tree: CliqueTree,
    sepsets: Sepsets,
    beliefs: Sequence[TabularFactor],
    rtol: float = 1e-9,
) -> float:
    """Raise CalibrationError if adjacent beliefs disagree beyond rtol."""
    worst = sepset_discrepancy(tree, sepsets, beliefs)
    if worst > rtol:
        raise CalibrationError(f"clique tree is not calibrated: max relative sepset discrepancy {worst:.3e}")
    return worst
