"""
Example: conditioning a chain on evidence.

Observing A slices every factor that mentions A and recalibrates the tree.
"""

import numpy as np
from cliquetree import TabularFactor, JtreeEngine, UnsupportedOperationError


def main():
    cards = [2, 2, 2]
    phi_AB = TabularFactor((0, 1), np.array([[0.9, 0.1], [0.2, 0.8]]))
    phi_BC = TabularFactor((1, 2), np.array([[0.3, 0.7], [0.5, 0.5]]))

    eng = JtreeEngine(cards, [phi_AB, phi_BC])
    eng.condition({0: 1})

    print(f"P(C | A=1) = {eng.marginal([2]).data}")
    print(f"log P(A=1) (unnormalized) = {eng.lognormconst():.6f}")

    samples = eng.sample(1000, seed=0)
    print(f"Empirical P(C=1 | A=1) from 1000 samples: {samples[:, 2].mean():.3f}")

    try:
        eng.recalibrate({2: 0})
    except UnsupportedOperationError as e:
        print(f"\nrecalibrate: {e}")


if __name__ == "__main__":
    main()
