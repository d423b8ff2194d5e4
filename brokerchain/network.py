"""Messaging through the forwarding server, with local delivery to this node."""

from __future__ import annotations

import json
import logging
import socket
import threading
import time
from dataclasses import dataclass, replace

from .keys import Account
from .message import merge_message2

logger = logging.getLogger(__name__)

MAX_BANDWIDTH = 0x7FFFFFFF


@dataclass(frozen=True)
class NetworkSettings:
    """Simulated delay (ms), jitter range (ms) and bandwidth (bytes per second)."""

    delay: int = 0
    jitter_range: int = 0
    bandwidth: int = MAX_BANDWIDTH

    def normalized(self) -> "NetworkSettings":
        """Clamp negative delay and jitter to zero; a negative bandwidth means unlimited."""
        return replace(
            self,
            delay=max(self.delay, 0),
            jitter_range=max(self.jitter_range, 0),
            bandwidth=MAX_BANDWIDTH if self.bandwidth < 0 else self.bandwidth,
        )


def read_messages(buffer: bytearray) -> list[bytes]:
    """Remove and return the complete newline-terminated messages held in buffer."""
    *complete, rest = bytes(buffer).split(b"\n")
    buffer[:] = rest
    return complete


class ForwardLink:
    """A persistent, authenticated connection to the forwarding server."""

    def __init__(
        self,
        host: str,
        port: int | str,
        account: Account,
        *,
        my_ip: str | None = None,
        local_port: int = 0,
        retry_interval: float = 0.1,
        connect_timeout: float = 3.0,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.account = account
        self.my_ip = my_ip
        self.local_port = local_port
        self.retry_interval = retry_interval
        self.connect_timeout = connect_timeout
        self._sock: socket.socket | None = None
        self._lock = threading.RLock()

    def connect(self) -> None:
        """Dial the server until it answers, then send the signed authentication frame."""
        with self._lock:
            while True:
                try:
                    sock = socket.create_connection(
                        (self.host, self.port), timeout=self.connect_timeout
                    )
                except OSError as exc:
                    logger.info("Connect error %s", exc)
                    time.sleep(self.retry_interval)
                    continue
                sock.settimeout(None)
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
                self._close_socket()
                self._sock = sock
                payload = json.dumps(self.account.signed_fields(), separators=(",", ":"))
                try:
                    sock.sendall(merge_message2("auth", payload.encode("utf-8")) + b"\n")
                except OSError as exc:
                    logger.info("Auth write error %s", exc)
                return

    def send(self, content: bytes, addr: str) -> None:
        """Deliver content to addr: locally if it is this node, otherwise through the server."""
        with self._lock:
            if self.my_ip is not None and addr == self.my_ip:
                try:
                    with socket.create_connection(("127.0.0.1", self.local_port)) as conn:
                        conn.sendall(bytes(content) + b"\n")
                except OSError as exc:
                    logger.debug("Local delivery failed: %s", exc)
                return
            frame = merge_message2(addr, content) + b"\n"
            while True:
                if self._sock is not None:
                    try:
                        self._sock.sendall(frame)
                        return
                    except OSError:
                        self._close_socket()
                self.connect()

    def broadcast(self, sender: str, receivers: list[str], msg: bytes) -> list[threading.Thread]:
        """Send msg to every receiver except the sender, each on its own thread."""
        threads = []
        for ip in receivers:
            if ip == sender:
                continue
            thread = threading.Thread(target=self.send, args=(msg, ip), daemon=True)
            thread.start()
            threads.append(thread)
        return threads

    def _close_socket(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None

    def close(self) -> None:
        with self._lock:
            self._close_socket()