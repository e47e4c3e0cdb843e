"""
Tests for topology module.
"""

import networkx as nx
import numpy as np
import pytest

from cliquetree.core.errors import StructureError
from cliquetree.topology.structure import ModelStructure, moralize, graph_from_adjacency, build_structure
from cliquetree.topology.triangulate import triangulate, elimination_order, maximal_cliques


class TestModelStructure:
    def test_add_factor(self):
        struct = ModelStructure([2, 3, 2])
        fid = struct.add_factor([0, 1])

        assert fid == 0
        assert struct.scopes[0] == (0, 1)
        assert struct.factors_containing(1) == [0]

    def test_interface(self):
        struct = build_structure([2, 3, 2], [(0, 1), (1, 2)])
        assert struct.interface(0, 1) == (1,)

    def test_unknown_variable_raises(self):
        struct = ModelStructure([2, 2])
        with pytest.raises(StructureError):
            struct.add_factor([0, 5])

    def test_duplicate_scope_raises(self):
        struct = ModelStructure([2, 2])
        with pytest.raises(StructureError):
            struct.add_factor([1, 1])

    def test_zero_cardinality_raises(self):
        with pytest.raises(StructureError):
            ModelStructure([2, 0])

    def test_interaction_graph_from_scopes(self):
        struct = build_structure([2, 2, 2, 2], [(0, 1, 2), (3,)])
        g = struct.interaction_graph()

        assert set(g.nodes()) == {0, 1, 2, 3}
        assert g.number_of_edges() == 3
        assert g.degree(3) == 0

    def test_structural_edges_added(self):
        extra = nx.Graph([(0, 3)])
        struct = build_structure([2, 2, 2, 2], [(0, 1)], graph=extra)
        assert struct.interaction_graph().has_edge(0, 3)

    def test_markov_blanket(self):
        struct = build_structure([2, 2, 2], [(0, 1), (1, 2)])
        assert struct.markov_blanket(1) == (0, 2)
        assert struct.markov_blanket(0) == (1,)


class TestMoralize:
    def test_v_structure_marries_parents(self):
        dag = nx.DiGraph([(0, 2), (1, 2)])
        g = moralize(dag)

        assert not g.is_directed()
        assert g.has_edge(0, 1)
        assert g.number_of_edges() == 3

    def test_chain_unchanged(self):
        dag = nx.DiGraph([(0, 1), (1, 2)])
        g = moralize(dag)
        assert sorted(tuple(sorted(e)) for e in g.edges()) == [(0, 1), (1, 2)]

    def test_directed_graph_moralized_on_add(self):
        dag = nx.DiGraph([(0, 2), (1, 2)])
        struct = build_structure([2, 2, 2], [], graph=dag)
        assert struct.interaction_graph().has_edge(0, 1)

    def test_graph_from_adjacency(self):
        adj = np.array([[0, 1, 0], [0, 0, 1], [0, 0, 0]])
        g = graph_from_adjacency(adj, directed=True)

        assert g.is_directed()
        assert list(g.edges()) == [(0, 1), (1, 2)]

    def test_adjacency_must_be_square(self):
        with pytest.raises(StructureError):
            graph_from_adjacency(np.zeros((2, 3)))


class TestTriangulate:
    def test_chain_needs_no_fill(self):
        g = nx.path_graph(4)
        tri = triangulate(g)

        assert tri.fill_edges == ()
        assert sorted(tri.cliques) == [(0, 1), (1, 2), (2, 3)]

    def test_four_cycle_gets_one_chord(self):
        g = nx.cycle_graph(4)
        tri = triangulate(g)

        assert len(tri.fill_edges) == 1
        assert nx.is_chordal(tri.chordal_graph)
        assert [len(c) for c in tri.cliques] == [3, 3]

    def test_min_fill_ties_broken_by_smallest_id(self):
        g = nx.cycle_graph(4)
        tri = triangulate(g, heuristic="min_fill")

        assert tri.order[0] == 0
        assert tri.fill_edges == ((1, 3),)

    def test_min_degree_heuristic(self):
        g = nx.Graph([(0, 1), (0, 2), (0, 3), (1, 2)])
        order = elimination_order(g, heuristic="min_degree")
        assert order[0] == 3

    def test_grid_is_chordal_after_triangulation(self):
        g = nx.convert_node_labels_to_integers(nx.grid_2d_graph(3, 3))
        tri = triangulate(g)

        assert nx.is_chordal(tri.chordal_graph)
        assert sorted(tri.order) == list(range(9))
        # every original edge lives in some clique
        for u, v in g.edges():
            assert any(u in c and v in c for c in tri.cliques)

    def test_isolated_variables_become_singleton_cliques(self):
        g = nx.Graph()
        g.add_nodes_from([0, 1])
        tri = triangulate(g)
        assert sorted(tri.cliques) == [(0,), (1,)]

    def test_unknown_heuristic_raises(self):
        with pytest.raises(StructureError):
            triangulate(nx.path_graph(2), heuristic="random")

    def test_directed_input_rejected(self):
        with pytest.raises(StructureError):
            triangulate(nx.DiGraph([(0, 1)]))


class TestMaximalCliques:
    def test_subsets_and_duplicates_dropped(self):
        cliques = [(0, 1, 2), (1, 2), (0, 1, 2), (2, 3)]
        assert maximal_cliques(cliques) == ((0, 1, 2), (2, 3))
