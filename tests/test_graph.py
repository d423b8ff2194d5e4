from brokerchain.graph import Graph, Vertex


def test_add_edge_creates_vertices_and_both_directions():
    g = Graph()
    a, b = Vertex("a"), Vertex("b")
    g.add_edge(a, b)
    assert list(g.vertex_set) == [a, b]
    assert g.edge_set[a] == [b]
    assert g.edge_set[b] == [a]


def test_parallel_edges_are_kept():
    g = Graph()
    a, b = Vertex("a"), Vertex("b")
    g.add_edge(a, b)
    g.add_edge(a, b)
    assert g.edge_set[a] == [b, b]
    assert len(g.vertex_set) == 2


def test_add_vertex_is_idempotent():
    g = Graph()
    g.add_vertex(Vertex("x"))
    g.add_vertex(Vertex("x"))
    assert list(g.vertex_set) == [Vertex("x")]
    assert g.edge_set == {}


def test_copy_is_independent():
    g = Graph()
    a, b, c = Vertex("a"), Vertex("b"), Vertex("c")
    g.add_edge(a, b)
    clone = g.copy()
    g.add_edge(a, c)
    assert clone.edge_set[a] == [b]
    assert c not in clone.vertex_set
    assert g.edge_set[a] == [b, c]


def test_copy_of_graph_without_edges():
    g = Graph()
    g.add_vertex(Vertex("solo"))
    clone = g.copy()
    assert list(clone.vertex_set) == [Vertex("solo")]
    assert clone.edge_set == {}


def test_copy_gives_isolated_vertices_empty_lists():
    g = Graph()
    g.add_edge(Vertex("a"), Vertex("b"))
    g.add_vertex(Vertex("c"))
    clone = g.copy()
    assert clone.edge_set[Vertex("c")] == []


def test_format():
    g = Graph()
    g.add_edge(Vertex("a"), Vertex("b"))
    assert g.format() == "a edge: b\t\nb edge: a\t\n\n"