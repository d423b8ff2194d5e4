"""Waiting for shard construction and turning the announced membership into a layout."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any

import websocket

from .client import ServerConfig
from .keys import Account
from .params import SUPERVISOR_SHARD

logger = logging.getLogger(__name__)

SUPERVISOR_PORT = 38800
HEARTBEAT_INTERVAL = 2.0
HEARTBEAT_TEXT = "Hello"


@dataclass(frozen=True)
class NodeInfo:
    """A member of a shard as announced by the server."""

    public_key: str
    ip: str
    port: str
    shard_id: str

    @classmethod
    def _from_dict(cls, raw: Any) -> "NodeInfo":
        if not isinstance(raw, dict):
            raise ValueError("node info is not an object")
        values = {}
        for key, name in (("PublicKey", "public_key"), ("Ip", "ip"), ("Port", "port"), ("ShardID", "shard_id")):
            value = raw.get(key)
            if value is None:
                value = ""
            if not isinstance(value, str):
                raise ValueError(f"node field {key} must be a string")
            values[name] = value
        return cls(**values)


def _node_list(raw: Any) -> list[NodeInfo]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError("node list is not an array")
    return [NodeInfo._from_dict(item) for item in raw]


@dataclass
class DynamicConfig:
    """Membership of the existing shards and of the shard being built."""

    old_nodeinfos: list[NodeInfo] = field(default_factory=list)
    new_nodeinfos: list[NodeInfo] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: bytes | str) -> "DynamicConfig":
        raw = json.loads(data)
        if not isinstance(raw, dict):
            raise ValueError("configuration is not an object")
        return cls(
            old_nodeinfos=_node_list(raw.get("OldNodeinfos")),
            new_nodeinfos=_node_list(raw.get("NewNodeinfos")),
        )


@dataclass
class ShardLayout:
    """Where this node sits and how every node of the system is addressed."""

    shard_num: int
    node_num: int
    shard_id: int
    node_id: int
    ip_map: dict[int, dict[int, str]]
    supervisor_addr: str


def _shard_number(text: str) -> int:
    try:
        return int(text)
    except ValueError as exc:
        raise ValueError(f"shard id is not a number: {text!r}") from exc


def build_layout(
    config: DynamicConfig,
    own_address: str,
    server_host: str,
    supervisor_port: int = SUPERVISOR_PORT,
) -> ShardLayout:
    """Derive the shard layout from an announced configuration."""
    if not config.new_nodeinfos:
        raise ValueError("the configuration announces no new shard")
    max_shard = _shard_number(config.new_nodeinfos[-1].shard_id)
    shard_num = max_shard + 1
    node_num = len(config.new_nodeinfos)
    node_id = next(
        (i for i, node in enumerate(config.new_nodeinfos) if node.public_key == own_address), 0
    )

    ip_map: dict[int, dict[int, str]] = {}
    shard = 0
    index = -1
    for node in [*config.old_nodeinfos, *config.new_nodeinfos]:
        index += 1
        node_shard = _shard_number(node.shard_id)
        if node_shard != shard:
            shard = node_shard
            index = 0
        ip_map.setdefault(shard, {})[index] = f"{node.ip}:{node.port}"

    for i in range(shard_num):
        row = ip_map.setdefault(i, {})
        for j in range(node_num):
            row[j] = f"{i}:{j}"

    supervisor_addr = f"{server_host}:{supervisor_port}"
    ip_map[SUPERVISOR_SHARD] = {0: supervisor_addr}
    return ShardLayout(
        shard_num=shard_num,
        node_num=node_num,
        shard_id=max_shard,
        node_id=node_id,
        ip_map=ip_map,
        supervisor_addr=supervisor_addr,
    )


def _text(message: Any) -> str:
    if isinstance(message, (bytes, bytearray)):
        return bytes(message).decode("utf-8", errors="replace")
    return str(message)


def wait_construct_shard(server: ServerConfig, account: Account) -> DynamicConfig | None:
    """Register over the websocket and wait for the new shard's configuration.

    Returns None when the connection cannot be made or is lost.
    """
    url = f"ws://{server.host}:{server.port}/ws2"
    try:
        ws = websocket.create_connection(url)
    except (OSError, websocket.WebSocketException) as exc:
        logger.debug("Dial error: %s", exc)
        return None

    lock = threading.Lock()
    stop = threading.Event()

    def send(text: str) -> None:
        with lock:
            ws.send(text)

    def beat() -> None:
        while not stop.wait(HEARTBEAT_INTERVAL):
            try:
                send(HEARTBEAT_TEXT)
            except (OSError, websocket.WebSocketException):
                return

    try:
        send(json.dumps(account.signed_fields(), separators=(",", ":")))
        threading.Thread(target=beat, daemon=True).start()
        try:
            first = ws.recv()
        except (OSError, websocket.WebSocketException) as exc:
            print("read error:", exc)
            return None
        if "success" in _text(first):
            print("Connect successfully, waiting construct new shard...")
        while True:
            message = ws.recv()
            logger.info("Consensus gets started...")
            try:
                return DynamicConfig.from_json(_text(message))
            except ValueError as exc:
                print("Unmarshal error:", exc)
    except (OSError, websocket.WebSocketException) as exc:
        logger.debug("Websocket closed: %s", exc)
        return None
    finally:
        stop.set()
        with lock:
            ws.close()