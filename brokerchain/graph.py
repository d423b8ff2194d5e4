"""Undirected transaction graph over accounts."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Vertex:
    """An account taking part in transactions."""

    addr: str


@dataclass
class Graph:
    """Vertices in insertion order and adjacency lists; every edge is stored both ways."""

    vertex_set: dict[Vertex, bool] = field(default_factory=dict)
    edge_set: dict[Vertex, list[Vertex]] = field(default_factory=dict)

    def add_vertex(self, v: Vertex) -> None:
        self.vertex_set[v] = True

    def add_edge(self, u: Vertex, v: Vertex) -> None:
        if u not in self.vertex_set:
            self.add_vertex(u)
        if v not in self.vertex_set:
            self.add_vertex(v)
        self.edge_set.setdefault(u, []).append(v)
        self.edge_set.setdefault(v, []).append(u)

    def copy(self) -> "Graph":
        vertices = dict.fromkeys(self.vertex_set, True)
        edges: dict[Vertex, list[Vertex]] = {}
        if self.edge_set:
            edges = {v: list(self.edge_set.get(v, ())) for v in self.vertex_set}
        return Graph(vertex_set=vertices, edge_set=edges)

    def format(self) -> str:
        lines = []
        for v in self.vertex_set:
            neighbours = "".join(f" {u.addr}\t" for u in self.edge_set.get(v, ()))
            lines.append(f"{v.addr} edge:{neighbours}\n")
        return "".join(lines) + "\n"