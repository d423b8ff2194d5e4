import hashlib
import math
from collections import Counter

import pytest

from brokerchain.clpa import CLPAState, address_shard
from brokerchain.graph import Vertex


def _rows(count=60):
    """Synthetic transaction rows in the dataset's column layout."""
    rows = []
    for i in range(count):
        sender = "0x" + f"{i:040x}"
        recipient = "0x" + f"{(i * 7 + 3) % count:040x}"
        rows.append(["", "", "", sender, recipient, "", "0", "0", "1"])
        other = "0x" + f"{(i + 1) % count:040x}"
        rows.append(["", "", "", sender, other, "", "0", "0", "1"])
    rows.append(["", "", "", "0x" + "a" * 40, "0x" + "b" * 40, "", "1", "0", "1"])
    return rows


def _build(rows):
    state = CLPAState(0.5, 100, 4)
    for data in rows:
        if data[6] == "0" and data[7] == "0" and len(data[3]) > 16 and len(data[4]) > 16 and data[3] != data[4]:
            state.add_edge(Vertex(data[3][2:]), Vertex(data[4][2:]))
    return state


def _crossing_edges(state):
    arcs = sum(
        1
        for v, lst in state.net_graph.edge_set.items()
        for u in lst
        if state.partition_map[v] != state.partition_map[u]
    )
    return arcs // 2


def test_clpa_on_dataset_rows_keeps_invariants():
    state = _build(_rows())
    assert Vertex("a" * 40) not in state.net_graph.vertex_set
    assert all(n >= 1 for n in state.vertexs_num_in_shard)

    moved, cross = state.partition()

    assert cross == state.cross_shard_edge_num
    assert cross == _crossing_edges(state)
    for addr, shard in moved.items():
        assert 0 <= shard < 4
        assert state.partition_map[Vertex(addr)] == shard
    counts = Counter(state.partition_map.values())
    assert [counts[s] for s in range(4)] == state.vertexs_num_in_shard
    assert sum(state.vertexs_num_in_shard) == len(state.net_graph.vertex_set)
    assert all(n >= 1 for n in state.vertexs_num_in_shard)


def test_clpa_is_deterministic():
    first = _build(_rows()).partition()
    second = _build(_rows()).partition()
    assert first == second


def test_address_shard():
    assert address_shard("abcdef00000000ff", 4) == 3
    assert address_shard("0000000a", 4) == 2


@pytest.mark.parametrize("addr", ["zzzzzzzz", "abc", ""])
def test_address_shard_rejects_bad_addresses(addr):
    with pytest.raises(ValueError):
        address_shard(addr, 4)


def test_add_edge_places_vertices_in_default_shards():
    state = CLPAState(0.5, 10, 2)
    a, b = Vertex("00000000"), Vertex("00000001")
    state.add_edge(a, b)
    assert state.partition_map == {a: 0, b: 1}
    assert state.vertexs_num_in_shard == [1, 1]


def test_compute_edges2shard_single_cross_edge():
    state = CLPAState(0.5, 10, 2)
    state.add_edge(Vertex("00000000"), Vertex("00000001"))
    state.compute_edges2shard()
    assert state.cross_shard_edge_num == 1
    assert state.edges2shard == [1, 1]
    assert state.min_edges2shard == 1


def test_shard_score():
    state = CLPAState(0.5, 10, 2)
    a = Vertex("00000000")
    state.add_edge(a, Vertex("00000001"))
    state.compute_edges2shard()
    assert state.shard_score(a, 1) == 0.5
    assert state.shard_score(a, 0) == 0.0


def test_shard_score_zero_minimum_is_not_an_error():
    state = CLPAState(0.5, 10, 2)
    a = Vertex("00000000")
    state.add_edge(a, Vertex("00000002"))
    state.compute_edges2shard()
    assert state.min_edges2shard == 0
    assert state.shard_score(a, 0) == -math.inf


def test_partition_without_cross_edges_moves_nothing():
    state = CLPAState(0.5, 100, 2)
    state.add_edge(Vertex("00000000"), Vertex("00000002"))
    assert state.partition() == ({}, 0)


def test_stable_init_partition_round_robin():
    state = CLPAState(0.5, 10, 2)
    state.add_edge(Vertex("00000000"), Vertex("00000002"))
    state.add_edge(Vertex("00000002"), Vertex("00000004"))
    state.stable_init_partition()
    assert state.vertexs_num_in_shard == [2, 1]
    assert state.cross_shard_edge_num == _crossing_edges(state)


def test_stable_init_partition_too_many_shards():
    state = CLPAState(0.5, 10, 5)
    state.add_edge(Vertex("00000000"), Vertex("00000001"))
    with pytest.raises(ValueError):
        state.stable_init_partition()


def test_init_partition_matches_address_shards():
    state = _build(_rows())
    state.partition()
    state.init_partition()
    for v, shard in state.partition_map.items():
        assert shard == address_shard(v.addr, 4)
    assert state.cross_shard_edge_num == _crossing_edges(state)


def test_copy_is_independent():
    state = _build(_rows(12))
    state.compute_edges2shard()
    clone = state.copy()
    state.partition()
    state.add_edge(Vertex("f" * 40), Vertex("e" * 40))
    assert Vertex("f" * 40) not in clone.partition_map
    assert len(clone.edges2shard) == clone.shard_num
    assert sum(clone.vertexs_num_in_shard) == len(clone.net_graph.vertex_set)


def test_hash_tracks_state():
    state = _build(_rows(12))
    first = state.hash()
    assert first == hashlib.sha256(state.encode()).digest()
    assert len(first) == 32
    assert state.hash() == first
    state.add_edge(Vertex("f" * 40), Vertex("e" * 40))
    assert state.hash() != first


def test_erase_edges_keeps_vertices():
    state = _build(_rows(12))
    vertices = list(state.net_graph.vertex_set)
    state.erase_edges()
    assert state.net_graph.edge_set == {}
    assert list(state.net_graph.vertex_set) == vertices


def test_format_lists_minimum_and_partition():
    state = CLPAState(0.5, 10, 2)
    state.add_edge(Vertex("00000000"), Vertex("00000001"))
    state.compute_edges2shard()
    text = state.format()
    assert text.startswith(state.net_graph.format())
    assert "00000001 1\t" in text
    assert text.endswith("1 1 \n")