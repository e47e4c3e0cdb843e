"""
cliquetree/compiler/backbone.py

Clique tree construction from the maximal cliques of a chordal graph.

The tree is a maximum spanning tree of the clique-overlap graph weighted by
sepset size, which satisfies the running intersection property for the
cliques of a chordal graph. Disconnected components are joined by edges with
an empty sepset.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from itertools import combinations
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import networkx as nx

from cliquetree.core.errors import StructureError

logger = logging.getLogger(__name__)

CliqueID = int


@dataclass(frozen=True)
class CliqueTree:
    """
    Clique scopes plus the tree adjacency over clique ids.

    Attributes:
        scopes: scopes[c] = sorted variables of clique c
        graph: Undirected networkx tree over 0..len(scopes)-1
    """
    scopes: Tuple[Tuple[int, ...], ...]
    graph: nx.Graph

    @property
    def num_cliques(self) -> int:
        return len(self.scopes)

    def edges(self) -> List[Tuple[CliqueID, CliqueID]]:
        return sorted(tuple(sorted(e)) for e in self.graph.edges())

    def neighbors(self, c: CliqueID) -> List[CliqueID]:
        return sorted(self.graph.neighbors(c))

    def cliques_containing(self, v: int) -> List[CliqueID]:
        return [c for c, s in enumerate(self.scopes) if v in s]

    def restrict(self, removed: Iterable[int]) -> "CliqueTree":
        """
        Same tree with the given variables removed from every clique scope.

        Removing a variable from all cliques keeps the running intersection
        property for every remaining variable.
        """
        removed = set(removed)
        scopes = tuple(tuple(v for v in s if v not in removed) for s in self.scopes)
        return CliqueTree(scopes=scopes, graph=self.graph.copy())


def clique_overlap_graph(cliques: Sequence[Tuple[int, ...]]) -> nx.Graph:
    """Cliques as nodes; edges between overlapping cliques weighted by sepset size."""
    g = nx.Graph()
    g.add_nodes_from(range(len(cliques)))
    for a, b in combinations(range(len(cliques)), 2):
        inter = set(cliques[a]).intersection(cliques[b])
        if inter:
            g.add_edge(a, b, weight=len(inter), sepset=tuple(sorted(inter)))
    return g


def build_clique_tree(cliques: Sequence[Tuple[int, ...]]) -> CliqueTree:
    """
    Connect maximal cliques into a tree satisfying RIP.

    Args:
        cliques: Maximal cliques of a chordal graph

    Returns:
        CliqueTree over the given cliques (ids follow input order)
    """
    scopes = tuple(tuple(sorted(c)) for c in cliques)
    if not scopes:
        raise StructureError("cannot build a clique tree without cliques")

    overlap = clique_overlap_graph(scopes)
    tree = nx.maximum_spanning_tree(overlap, weight="weight")
    tree.add_nodes_from(range(len(scopes)))

    # Join components through their smallest clique ids
    components = sorted(sorted(comp) for comp in nx.connected_components(tree))
    for comp in components[1:]:
        tree.add_edge(components[0][0], comp[0], weight=0, sepset=())
    if len(components) > 1:
        logger.debug("joined %d disconnected components with empty sepsets", len(components))

    jt = CliqueTree(scopes=scopes, graph=tree)
    check_clique_tree(jt)
    logger.debug("clique tree: %d cliques, %d edges", jt.num_cliques, tree.number_of_edges())
    return jt


def check_clique_tree(jt: CliqueTree) -> None:
    """Raise StructureError unless jt is a tree satisfying RIP."""
    if not nx.is_tree(jt.graph):
        raise StructureError("clique graph is not a single connected tree")
    bad = running_intersection_violations(jt)
    if bad:
        raise StructureError(f"running intersection property violated for variables {bad}")


def running_intersection_violations(jt: CliqueTree) -> List[int]:
    """Variables whose containing cliques do not induce a connected subtree."""
    variables = sorted({v for s in jt.scopes for v in s})
    bad = []
    for v in variables:
        holders = jt.cliques_containing(v)
        if not nx.is_connected(jt.graph.subgraph(holders)):
            bad.append(v)
    return bad


def root_tree(tree: nx.Graph, root: CliqueID) -> Tuple[Dict[CliqueID, Optional[CliqueID]], Dict[CliqueID, List[CliqueID]]]:
    """
    Root a tree at a given node.

    Args:
        tree: Undirected tree graph
        root: Root node

    Returns:
        (parent, children) where:
        - parent[node] = parent node (None for root)
        - children[node] = sorted list of child nodes
    """
    if root not in tree:
        raise StructureError(f"root {root} is not a node of the clique tree")

    parent: Dict[CliqueID, Optional[CliqueID]] = {root: None}
    children: Dict[CliqueID, List[CliqueID]] = {root: []}

    stack = [root]
    while stack:
        u = stack.pop()
        for v in sorted(tree.neighbors(u)):
            if v in parent:
                continue
            parent[v] = u
            children.setdefault(u, []).append(v)
            children.setdefault(v, [])
            stack.append(v)

    if len(parent) != tree.number_of_nodes():
        raise StructureError("clique tree is disconnected; cannot orient it from a single root")
    return parent, children


def find_root(parent: Dict[CliqueID, Optional[CliqueID]]) -> CliqueID:
    """The unique node without a parent."""
    roots = [c for c, p in parent.items() if p is None]
    if len(roots) != 1:
        raise StructureError(f"expected exactly one root in the oriented tree, found {len(roots)}")
    return roots[0]


def path_in_tree(tree: nx.Graph, u: CliqueID, v: CliqueID) -> List[CliqueID]:
    """
    Get the unique simple path between two nodes in a tree.
    """
    return nx.shortest_path(tree, source=u, target=v)


def minimal_subtree(tree: nx.Graph, nodes: Sequence[CliqueID]) -> List[CliqueID]:
    """
    Nodes of the smallest connected subtree spanning the given nodes.

    Returns:
        Sorted list of node ids.
    """
    nodes = list(dict.fromkeys(nodes))
    if not nodes:
        return []
    keep = {nodes[0]}
    for n in nodes[1:]:
        keep.update(path_in_tree(tree, nodes[0], n))
    return sorted(keep)
