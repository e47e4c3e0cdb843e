"""
Compiler module: clique tree construction, factor assignment and sepsets.
"""

from cliquetree.compiler.backbone import (
    CliqueTree,
    build_clique_tree,
    check_clique_tree,
    clique_overlap_graph,
    running_intersection_violations,
    root_tree,
    find_root,
    path_in_tree,
    minimal_subtree,
)
from cliquetree.compiler.assign import (
    build_clique_lookup,
    covering_cliques,
    assign_factors,
    initial_potentials,
    build_sepsets,
)

__all__ = [
    # backbone
    "CliqueTree",
    "build_clique_tree",
    "check_clique_tree",
    "clique_overlap_graph",
    "running_intersection_violations",
    "root_tree",
    "find_root",
    "path_in_tree",
    "minimal_subtree",
    # assign
    "build_clique_lookup",
    "covering_cliques",
    "assign_factors",
    "initial_potentials",
    "build_sepsets",
]
