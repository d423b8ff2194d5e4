"""Constrained label propagation (CLPA) for partitioning accounts into shards."""

from __future__ import annotations

import hashlib
import json
import logging
import math
import string
import sys
from collections import Counter

from .graph import Graph, Vertex

logger = logging.getLogger(__name__)

_MAX_INT = sys.maxsize
_MAX_UPDATES_PER_VERTEX = 50
_HEX = frozenset(string.hexdigits)


def address_shard(addr: str, shard_num: int) -> int:
    """Default shard of an address: its last eight hex digits modulo the shard count."""
    tail = addr[-8:]
    if len(addr) < 8 or not tail or not set(tail) <= _HEX:
        raise ValueError(f"address has no 8-digit hex tail: {addr!r}")
    return int(tail, 16) % shard_num


def _div(a: float, b: float) -> float:
    """Floating division with IEEE results for a zero divisor."""
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a)
    return a / b


class CLPAState:
    """State of the label propagation over the account graph."""

    def __init__(self, weight_penalty: float, max_iterations: int, shard_num: int) -> None:
        self.net_graph = Graph()
        self.partition_map: dict[Vertex, int] = {}
        self.edges2shard: list[int] = []
        self.vertexs_num_in_shard: list[int] = [0] * shard_num
        self.weight_penalty = weight_penalty
        self.min_edges2shard = 0
        self.max_iterations = max_iterations
        self.cross_shard_edge_num = 0
        self.shard_num = shard_num
        self.graph_hash = b""

    def _shard_of(self, v: Vertex) -> int:
        return self.partition_map.get(v, 0)

    def add_vertex(self, v: Vertex) -> None:
        """Add a vertex, placing it in its address's default shard if it has none."""
        self.net_graph.add_vertex(v)
        if v not in self.partition_map:
            self.partition_map[v] = address_shard(v.addr, self.shard_num)
        self.vertexs_num_in_shard[self.partition_map[v]] += 1

    def add_edge(self, u: Vertex, v: Vertex) -> None:
        if u not in self.net_graph.vertex_set:
            self.add_vertex(u)
        if v not in self.net_graph.vertex_set:
            self.add_vertex(v)
        self.net_graph.add_edge(u, v)

    def copy(self) -> "CLPAState":
        clone = CLPAState(self.weight_penalty, self.max_iterations, self.shard_num)
        clone.net_graph = self.net_graph.copy()
        clone.partition_map = dict(self.partition_map)
        clone.edges2shard = (list(self.edges2shard) + [0] * self.shard_num)[: self.shard_num]
        clone.vertexs_num_in_shard = list(self.vertexs_num_in_shard)
        clone.min_edges2shard = self.min_edges2shard
        return clone

    def compute_edges2shard(self) -> None:
        """Recount, per shard, the edge weight associated with it and the cross-shard edges."""
        cross = [0] * self.shard_num
        inner = [0] * self.shard_num
        for v, neighbours in self.net_graph.edge_set.items():
            v_shard = self._shard_of(v)
            for u in neighbours:
                u_shard = self._shard_of(u)
                if v_shard != u_shard:
                    cross[u_shard] += 1
                else:
                    inner[u_shard] += 1
        self.cross_shard_edge_num = sum(cross) // 2
        self.edges2shard = [c + i // 2 for c, i in zip(cross, inner)]
        self.min_edges2shard = min(self.edges2shard, default=_MAX_INT)

    def _change_shard_recompute(self, v: Vertex, old: int) -> None:
        new = self._shard_of(v)
        for u in self.net_graph.edge_set.get(v, ()):
            neighbour = self._shard_of(u)
            if neighbour != new and neighbour != old:
                self.edges2shard[new] += 1
                self.edges2shard[old] -= 1
            elif neighbour == new:
                self.edges2shard[old] -= 1
                self.cross_shard_edge_num -= 1
            else:
                self.edges2shard[new] += 1
                self.cross_shard_edge_num += 1
        self.min_edges2shard = min(self.edges2shard, default=_MAX_INT)

    def init_partition(self) -> None:
        """Assign every vertex to its address's default shard."""
        self.vertexs_num_in_shard = [0] * self.shard_num
        self.partition_map = {}
        for v in self.net_graph.vertex_set:
            shard = address_shard(v.addr, self.shard_num)
            self.partition_map[v] = shard
            self.vertexs_num_in_shard[shard] += 1
        self.compute_edges2shard()

    def stable_init_partition(self) -> None:
        """Assign vertices round-robin so that no shard is empty."""
        if self.shard_num > len(self.net_graph.vertex_set):
            raise ValueError("too many shards, number of shards should be less than nodes.")
        self.vertexs_num_in_shard = [0] * self.shard_num
        self.partition_map = {}
        for count, v in enumerate(self.net_graph.vertex_set):
            shard = count % self.shard_num
            self.partition_map[v] = shard
            self.vertexs_num_in_shard[shard] += 1
        self.compute_edges2shard()

    def shard_score(self, v: Vertex, shard: int) -> float:
        """Score of placing vertex v into the given shard."""
        neighbours = self.net_graph.edge_set.get(v, ())
        to_shard = sum(1 for u in neighbours if self._shard_of(u) == shard)
        penalty = _div(self.weight_penalty * self.edges2shard[shard], self.min_edges2shard)
        return _div(to_shard, len(neighbours)) * (1 - penalty)

    def partition(self) -> tuple[dict[str, int], int]:
        """Run CLPA; return the moved addresses with their new shards and the cross-shard edge count."""
        self.compute_edges2shard()
        logger.info("Before running CLPA, cross-shard edge number: %d", self.cross_shard_edge_num)
        moved: dict[str, int] = {}
        updates: Counter[str] = Counter()
        for _ in range(self.max_iterations):
            for v in self.net_graph.vertex_set:
                if updates[v.addr] >= _MAX_UPDATES_PER_VERTEX:
                    continue
                scores: dict[int, float] = {}
                max_score = -9999.0
                now_shard = best_shard = self._shard_of(v)
                for u in self.net_graph.edge_set.get(v, ()):
                    u_shard = self._shard_of(u)
                    if u_shard in scores:
                        continue
                    scores[u_shard] = self.shard_score(v, u_shard)
                    if max_score < scores[u_shard]:
                        max_score = scores[u_shard]
                        best_shard = u_shard
                if now_shard != best_shard and self.vertexs_num_in_shard[now_shard] > 1:
                    self.partition_map[v] = best_shard
                    moved[v.addr] = best_shard
                    updates[v.addr] += 1
                    self.vertexs_num_in_shard[now_shard] -= 1
                    self.vertexs_num_in_shard[best_shard] += 1
                    self._change_shard_recompute(v, now_shard)
        for shard, count in enumerate(self.vertexs_num_in_shard):
            logger.info("%d has vertexs: %d", shard, count)
        self.compute_edges2shard()
        logger.info("After running CLPA, cross-shard edge number: %d", self.cross_shard_edge_num)
        return moved, self.cross_shard_edge_num

    def erase_edges(self) -> None:
        self.net_graph.edge_set = {}

    def encode(self) -> bytes:
        payload = {
            "vertices": [v.addr for v in self.net_graph.vertex_set],
            "edges": {v.addr: [u.addr for u in lst] for v, lst in self.net_graph.edge_set.items()},
            "partition": {v.addr: s for v, s in self.partition_map.items()},
            "edges2shard": self.edges2shard,
            "vertexs_num_in_shard": self.vertexs_num_in_shard,
            "weight_penalty": self.weight_penalty,
            "min_edges2shard": self.min_edges2shard,
            "max_iterations": self.max_iterations,
            "cross_shard_edge_num": self.cross_shard_edge_num,
            "shard_num": self.shard_num,
            "graph_hash": self.graph_hash.hex(),
        }
        return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")

    def hash(self) -> bytes:
        return hashlib.sha256(self.encode()).digest()

    def format(self) -> str:
        parts = [self.net_graph.format(), f"{self.min_edges2shard}\n"]
        parts.extend(f"{v.addr} {s}\t" for v, s in self.partition_map.items())
        parts.extend(f"{e} " for e in self.edges2shard)
        parts.append("\n")
        return "".join(parts)