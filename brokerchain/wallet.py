"""Browser wallet: a local web page, JSON-RPC endpoint and REST API for one account."""

from __future__ import annotations

import logging
import random
import socket
import subprocess
import sys
import threading
import time
from pathlib import Path
from typing import Any

from flask import Flask, jsonify, render_template, request

from .client import ServerClient, ServerError, format_balance
from .keys import Account
from .rpc import RpcHandler

logger = logging.getLogger(__name__)

LOCAL_HOST = "127.0.0.1"
PORT_BASE = 20000
PORT_SPAN = 40001
REQUEST_LOG = "gin.log"
SAME_ADDRESS_MESSAGE = "Transfer failed. 收款账户地址不得和付款账户地址相同"
FRAME = "-----********************************************-----"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS, PUT, DELETE, UPDATE",
    "Access-Control-Allow-Headers": "*",
    "Access-Control-Expose-Headers": "*",
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Max-Age": "86400",
}


def _balance_text(balance: str, unit: str) -> str:
    try:
        return format_balance(balance, unit)
    except ValueError:
        return "0"


def _invalid_request() -> Any:
    return jsonify({"success": False, "message": "Invalid request"}), 400


def _text_field(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return ""
    return value if isinstance(value, str) else None


def create_app(client: ServerClient, account: Account, template_dir: str | Path = "html") -> Flask:
    """Build the wallet web application for the given account."""
    app = Flask(__name__, template_folder=str(Path(template_dir).resolve()))
    rpc = RpcHandler(client, account)

    @app.before_request
    def _preflight() -> Any:
        if request.method == "OPTIONS":
            return app.response_class(status=200)
        return None

    @app.after_request
    def _cors(response: Any) -> Any:
        for name, value in CORS_HEADERS.items():
            response.headers[name] = value
        return response

    @app.get("/")
    def index() -> Any:
        return render_template("index.html")

    @app.post("/")
    def rpc_endpoint() -> Any:
        body = request.get_data()
        logger.info("%s", body.decode("utf-8", errors="replace"))
        status, reply = rpc.handle_body(body)
        return jsonify(reply), status

    @app.get("/api/balance")
    def balance() -> Any:
        try:
            state = client.query_own(account)
        except ServerError as exc:
            return jsonify({"message": str(exc)}), 502
        return jsonify(
            {"balance": _balance_text(state.balance, client.config.unit), "addr": state.account}
        )

    @app.post("/api/transfer")
    def transfer() -> Any:
        payload = request.get_json(force=True, silent=True)
        if not isinstance(payload, dict):
            return _invalid_request()
        recipient = _text_field(payload, "recipientAddress")
        amount = _text_field(payload, "amount")
        fee = _text_field(payload, "fee")
        if recipient is None or amount is None or fee is None:
            return _invalid_request()
        if not recipient or not amount:
            return _invalid_request()
        try:
            state = client.query_own(account)
            if state.account == recipient:
                return jsonify({"success": True, "message": SAME_ADDRESS_MESSAGE})
            ok, text = client.send_transfer(account, recipient, amount, fee)
        except ServerError as exc:
            return jsonify({"success": False, "message": str(exc)}), 502
        message = "Transfer successful" if ok else "Transfer failed. " + text
        return jsonify({"success": True, "message": message})

    return app


def find_free_port() -> int:
    """A random port in [20000, 60000] that can currently be bound."""
    rng = random.Random()
    while True:
        port = PORT_BASE + rng.randrange(PORT_SPAN)
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            try:
                sock.bind(("", port))
            except OSError:
                continue
        return port


def write_wallet_url(address: str, port: int, directory: str | Path = ".") -> Path:
    """Record the wallet URL in a file named after the account; return its path."""
    path = Path(directory) / f"The browser wallet URL of account {address}.txt"
    path.write_text(f"http://{LOCAL_HOST}:{port}", encoding="utf-8")
    return path


def _log_requests_to(filename: str) -> None:
    server_log = logging.getLogger("werkzeug")
    target = str(Path(filename).resolve())
    if any(getattr(h, "baseFilename", None) == target for h in server_log.handlers):
        return
    server_log.addHandler(logging.FileHandler(target, mode="w", encoding="utf-8"))
    server_log.propagate = False


def serve_wallet(
    client: ServerClient, account: Account, template_dir: str | Path = "html"
) -> tuple[int, threading.Thread]:
    """Start the wallet server in the background; return its port and thread."""
    port = find_free_port()
    url = f"http://{LOCAL_HOST}:{port}"
    _log_requests_to(REQUEST_LOG)
    app = create_app(client, account, template_dir)

    print()
    print(FRAME)
    print("Your account address is:【" + account.address + "】")
    print("The browser wallet URL is:【" + url + "】")
    print(FRAME)
    print()

    thread = threading.Thread(
        target=app.run,
        kwargs={"host": "0.0.0.0", "port": port, "use_reloader": False, "threaded": True},
        daemon=True,
    )
    thread.start()

    try:
        write_wallet_url(account.address, port)
    except OSError as exc:
        print(exc)
        return port, thread

    time.sleep(0.1)
    if sys.platform == "win32":
        subprocess.Popen(["cmd", "/c", "start", url])
    return port, thread