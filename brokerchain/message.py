"""Message types, node descriptors and the fixed-width wire prefixes."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from enum import Enum

PREFIX_LEN = 30
ADDR_PREFIX_LEN = 8


class MessageType(str, Enum):
    """Kinds of messages exchanged between nodes, the supervisor and the server."""

    PRE_PREPARE = "preprepare"
    PREPARE = "prepare"
    COMMIT = "commit"
    REQUEST_OLD_REQUEST = "requestOldrequest"
    SEND_OLD_REQUEST = "sendOldrequest"
    STOP = "stop"

    RELAY = "relay"
    RELAY_WITH_PROOF = "CRelay&Proof"
    INJECT = "inject"

    BLOCK_INFO = "BlockInfo"
    SEQ_ID_INFO = "SequenceID"
    SHARD_CHANGE = "ShardChange"
    RECONFIG = "ConfigAcc"
    PING = "Ping"

    ACCOUNT_STATE_AND_TX = "AccountState&txs"
    PARTITION_MSG = "PartitionModifiedMap"
    PARTITION_READY = "ready for partition"

    BROKER_RAW_TX = "brokerRawTx"
    BROKER_CONFIRM1 = "brokerConfirm1"
    BROKER_CONFIRM2 = "brokerConfirm2"
    BROKER_TYPE1 = "brokerType1"
    BROKER_TYPE2 = "brokerType2"
    INJECT_BROKER = "InjectTx_Broker"
    BROKER_TX_MAP = "BrokerTxMap"
    ACCOUNT_TRANSFER_MSG_BROKER = "BrokerAS_transfer"
    INNER2CROSS_TX = "innerShardTx_be_crossShard"

    VIEW_CHANGE_PROPOSE = "ViewChangePropose"
    NEW_CHANGE = "NewChange"


class RequestType(str, Enum):
    """Kinds of requests carried inside consensus messages."""

    BLOCK = "Block"
    PARTITION_REQ = "PartitionReq"


@dataclass
class Node:
    """A consensus node: its id, its shard and its network address."""

    node_id: int
    shard_id: int
    ip_addr: str

    def describe(self) -> str:
        return f"[{self.node_id} {self.shard_id} {self.ip_addr}]"


@dataclass
class AccInfo:
    """An account's address, shard and balance."""

    addr: str
    shard_id: int
    balance: str

    def encode(self) -> bytes:
        return json.dumps(
            {"Addr": self.addr, "ShardId": self.shard_id, "Balance": self.balance},
            separators=(",", ":"),
        ).encode("utf-8")

    @classmethod
    def decode(cls, data: bytes) -> "AccInfo":
        try:
            raw = json.loads(data)
            return cls(addr=raw["Addr"], shard_id=int(raw["ShardId"]), balance=raw["Balance"])
        except (KeyError, TypeError) as exc:
            raise ValueError(f"malformed account info: {exc}") from exc


@dataclass
class PartitionReady:
    from_shard: int
    now_seq_id: int


@dataclass
class ViewChangeMsg:
    cur_view: int
    next_view: int
    seq_id: int
    from_node: int


@dataclass
class NewViewMsg:
    cur_view: int
    next_view: int
    new_seq_id: int
    from_node: int


def _type_bytes(msg_type: MessageType | str) -> bytes:
    name = msg_type.value if isinstance(msg_type, Enum) else msg_type
    return name.encode("utf-8")


def _strip_zeros(raw: bytes) -> str:
    return raw.replace(b"\x00", b"").decode("utf-8", errors="replace")


def merge_message(msg_type: MessageType | str, content: bytes) -> bytes:
    """Prefix content with the message type, zero-padded to 30 bytes."""
    name = _type_bytes(msg_type)
    if len(name) > PREFIX_LEN:
        raise ValueError(f"message type longer than {PREFIX_LEN} bytes: {name!r}")
    return name.ljust(PREFIX_LEN, b"\x00") + bytes(content)


def merge_message2(addr: str, content: bytes) -> bytes:
    """Prefix content with a destination address, zero-padded to 8 bytes.

    An address longer than 8 bytes yields an empty message.
    """
    raw = addr.encode("utf-8")
    if len(raw) > ADDR_PREFIX_LEN:
        return b""
    return raw.ljust(ADDR_PREFIX_LEN, b"\x00") + bytes(content)


def split_message(message: bytes) -> tuple[MessageType | str, bytes]:
    """Split a message into its type and content; all zero bytes of the prefix are dropped."""
    if len(message) < PREFIX_LEN:
        raise ValueError("message shorter than its type prefix")
    name = _strip_zeros(message[:PREFIX_LEN])
    try:
        msg_type: MessageType | str = MessageType(name)
    except ValueError:
        msg_type = name
    return msg_type, bytes(message[PREFIX_LEN:])


def split_message2(message: bytes) -> tuple[str, bytes]:
    """Read the 8-byte address prefix; the payload begins after the 30-byte type prefix."""
    if len(message) < PREFIX_LEN:
        raise ValueError("message shorter than its prefix")
    return _strip_zeros(message[:ADDR_PREFIX_LEN]), bytes(message[PREFIX_LEN:])