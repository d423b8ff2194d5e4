import json
from unittest import mock

import pytest
import websocket

from brokerchain.client import ServerConfig
from brokerchain.keys import Account
from brokerchain.params import SUPERVISOR_SHARD
from brokerchain.shardsetup import (
    DynamicConfig,
    NodeInfo,
    build_layout,
    wait_construct_shard,
)


def _node(key, ip, port, shard):
    return NodeInfo(public_key=key, ip=ip, port=port, shard_id=shard)


@pytest.fixture
def config():
    return DynamicConfig(
        old_nodeinfos=[
            _node("k0", "10.0.0.1", "9000", "0"),
            _node("k1", "10.0.0.2", "9001", "0"),
            _node("k2", "10.0.0.3", "9002", "0"),
        ],
        new_nodeinfos=[
            _node("n0", "10.0.1.1", "9100", "1"),
            _node("me", "10.0.1.2", "9101", "1"),
        ],
    )


def test_from_json_reads_node_lists():
    data = json.dumps(
        {
            "OldNodeinfos": None,
            "NewNodeinfos": [{"PublicKey": "me", "Ip": "10.0.1.2", "Port": "9101", "ShardID": "1"}],
        }
    )
    parsed = DynamicConfig.from_json(data)
    assert parsed.old_nodeinfos == []
    assert parsed.new_nodeinfos == [_node("me", "10.0.1.2", "9101", "1")]


def test_from_json_rejects_wrong_types():
    with pytest.raises(ValueError):
        DynamicConfig.from_json(json.dumps({"NewNodeinfos": [{"Port": 9101}]}))
    with pytest.raises(ValueError):
        DynamicConfig.from_json("not json")


def test_build_layout_positions(config):
    layout = build_layout(config, "me", "server.example")
    assert (layout.shard_num, layout.node_num, layout.shard_id, layout.node_id) == (2, 2, 1, 1)
    assert layout.supervisor_addr == "server.example:38800"
    assert layout.ip_map[SUPERVISOR_SHARD] == {0: "server.example:38800"}


def test_build_layout_addresses(config):
    layout = build_layout(config, "me", "server.example")
    assert layout.ip_map[0][2] == "10.0.0.3:9002"
    assert layout.ip_map[0][0] == "0:0"
    assert layout.ip_map[1] == {0: "1:0", 1: "1:1"}


def test_build_layout_unknown_address_defaults_to_first(config):
    assert build_layout(config, "stranger", "h").node_id == 0


def test_build_layout_supervisor_port(config):
    layout = build_layout(config, "me", "h", supervisor_port=4000)
    assert layout.supervisor_addr == "h:4000"


def test_build_layout_errors():
    with pytest.raises(ValueError):
        build_layout(DynamicConfig(), "me", "h")
    bad = DynamicConfig(new_nodeinfos=[_node("me", "1.2.3.4", "1", "x")])
    with pytest.raises(ValueError):
        build_layout(bad, "me", "h")


class FakeSocket:
    def __init__(self, messages):
        self.messages = list(messages)
        self.sent = []
        self.closed = False

    def send(self, text):
        self.sent.append(text)

    def recv(self):
        if not self.messages:
            raise websocket.WebSocketConnectionClosedException("closed")
        return self.messages.pop(0)

    def close(self):
        self.closed = True


@pytest.fixture
def account():
    return Account.from_private(123456789)


@pytest.fixture
def server():
    return ServerConfig(host="server.example", port=8080)


def test_wait_returns_announced_config(account, server, capsys):
    announced = {"OldNodeinfos": [], "NewNodeinfos": [{"PublicKey": "me", "Ip": "1.1.1.1", "Port": "1", "ShardID": "0"}]}
    fake = FakeSocket(["connect success", json.dumps(announced)])
    with mock.patch("websocket.create_connection", return_value=fake) as dial:
        result = wait_construct_shard(server, account)
    assert dial.call_args.args[0] == "ws://server.example:8080/ws2"
    assert result == DynamicConfig.from_json(json.dumps(announced))
    assert json.loads(fake.sent[0])["PublicKey"] == account.public_key
    assert fake.closed
    assert "Connect successfully" in capsys.readouterr().out


def test_wait_skips_malformed_messages(account, server):
    good = {"NewNodeinfos": [{"PublicKey": "me", "Ip": "1.1.1.1", "Port": "1", "ShardID": "3"}]}
    fake = FakeSocket(["ok", "garbage", json.dumps(good)])
    with mock.patch("websocket.create_connection", return_value=fake):
        result = wait_construct_shard(server, account)
    assert result.new_nodeinfos[0].shard_id == "3"


def test_wait_returns_none_when_closed(account, server):
    fake = FakeSocket(["ok"])
    with mock.patch("websocket.create_connection", return_value=fake):
        assert wait_construct_shard(server, account) is None
    assert fake.closed


def test_wait_returns_none_when_unreachable(account, server):
    with mock.patch("websocket.create_connection", side_effect=OSError("refused")):
        assert wait_construct_shard(server, account) is None