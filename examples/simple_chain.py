"""
Example: Simple chain A--B--C.

Pairwise factors, one joint query spanning both cliques, and a brute-force
check against the full joint table.
"""

import numpy as np
from cliquetree import TabularFactor, JtreeEngine, TabularModel


def main():
    # Variables: A=0, B=1, C=2, all binary
    cards = [2, 2, 2]

    phi_AB = TabularFactor((0, 1), np.array([
        [0.9, 0.1],
        [0.2, 0.8]
    ]))
    phi_BC = TabularFactor((1, 2), np.array([
        [0.3, 0.7],
        [0.5, 0.5]
    ]))

    eng = JtreeEngine(cards, [phi_AB, phi_BC]).calibrate()

    print("Clique tree for A--B--C:")
    for c, scope in enumerate(eng.clique_scopes):
        print(f"  C{c}: {scope}")
    print(f"\nlog Z = {eng.lognormconst():.6f}")

    print("\nMarginal distributions:")
    for v, name in enumerate("ABC"):
        print(f"  P({name}) = {eng.marginal([v]).data}")

    # A and C never share a clique
    p_ac = eng.marginal([0, 2]).data
    print(f"\nP(A, C) =\n{p_ac}")

    # Verify by brute force
    print("\n--- Verification by brute force ---")
    joint = TabularModel(cards, [phi_AB, phi_BC]).joint().data
    joint = joint / joint.sum()
    brute = joint.sum(axis=1)
    print(f"P(A, C) (brute force) =\n{brute}")
    print(f"Match: {np.allclose(brute, p_ac)}")


if __name__ == "__main__":
    main()
