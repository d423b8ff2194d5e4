import json
import socket
import time
import urllib.request

import pytest
import responses

from brokerchain.client import ServerClient, ServerConfig, format_balance
from brokerchain.keys import Account, verify
from brokerchain.wallet import (
    PORT_BASE,
    PORT_SPAN,
    SAME_ADDRESS_MESSAGE,
    create_app,
    find_free_port,
    serve_wallet,
    write_wallet_url,
)

BASE = "http://server.example:8080/"


@pytest.fixture
def account():
    return Account.from_private(123456789)


@pytest.fixture
def server_client():
    return ServerClient(ServerConfig(host="server.example", port=8080, unit="1000"))


@pytest.fixture
def templates(tmp_path):
    directory = tmp_path / "html"
    directory.mkdir()
    (directory / "index.html").write_text("<h1>wallet page</h1>", encoding="utf-8")
    return directory


@pytest.fixture
def web(server_client, account, templates):
    return create_app(server_client, account, templates).test_client()


def test_index_renders_template(web):
    resp = web.get("/")
    assert resp.status_code == 200
    assert "wallet page" in resp.get_data(as_text=True)


def test_preflight_has_cors_headers(web):
    resp = web.options("/api/balance")
    assert resp.status_code == 200
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    assert resp.headers["Access-Control-Max-Age"] == "86400"


def test_rpc_single_request(web):
    resp = web.post("/", data=json.dumps({"jsonrpc": "2.0", "id": 1, "method": "eth_chainId"}))
    assert resp.status_code == 200
    assert resp.get_json() == {"jsonrpc": "2.0", "id": 1, "result": "0x1"}


def test_rpc_batch_request(web, account):
    body = [
        {"jsonrpc": "2.0", "id": 1, "method": "net_version"},
        {"jsonrpc": "2.0", "id": 2, "method": "eth_accounts"},
    ]
    resp = web.post("/", data=json.dumps(body))
    data = resp.get_json()
    assert [item["id"] for item in data] == [1, 2]
    assert data[1]["result"] == [account.address]


def test_rpc_parse_error(web):
    resp = web.post("/", data=b"{not json")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == {"code": -32700, "message": "Parse error"}


def test_balance_endpoint(web, account):
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, BASE + "query-g", json={"account": "abc", "balance": "2500"})
        resp = web.get("/api/balance")
        sent = json.loads(rsps.calls[0].request.body)
    assert resp.get_json() == {"balance": format_balance("2500", "1000"), "addr": "abc"}
    assert sent["UUID"] == account.address


def test_transfer_rejects_missing_fields(web):
    resp = web.post("/api/transfer", data=json.dumps({"amount": "5"}))
    assert resp.status_code == 400
    assert resp.get_json() == {"success": False, "message": "Invalid request"}


def test_transfer_rejects_non_json(web):
    resp = web.post("/api/transfer", data=b"garbage")
    assert resp.status_code == 400


def test_transfer_to_self_fails(web, account):
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST, BASE + "query-g", json={"account": account.address, "balance": "1"}
        )
        resp = web.post(
            "/api/transfer", data=json.dumps({"recipientAddress": account.address, "amount": "5"})
        )
    assert resp.get_json()["message"] == SAME_ADDRESS_MESSAGE


def test_transfer_success_is_signed(web, account):
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, BASE + "query-g", json={"account": account.address, "balance": "1"})
        rsps.add(responses.POST, BASE + "sendtx", body="success")
        resp = web.post(
            "/api/transfer",
            data=json.dumps({"recipientAddress": "recipient", "amount": "5", "fee": "1"}),
        )
        sent = json.loads(rsps.calls[1].request.body)
    assert resp.get_json() == {"success": True, "message": "Transfer successful"}
    assert (sent["To"], sent["Value"], sent["Fee"]) == ("recipient", "5", "1")
    signed = sent["RandomStr"] + "recipient" + "5" + "1"
    assert verify(account.public_key, signed, sent["Sign1"], sent["Sign2"])


def test_transfer_failure_reports_server_text(web, account):
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, BASE + "query-g", json={"account": account.address, "balance": "1"})
        rsps.add(responses.POST, BASE + "sendtx", body="insufficient")
        resp = web.post(
            "/api/transfer", data=json.dumps({"recipientAddress": "recipient", "amount": "5"})
        )
    assert resp.get_json()["message"] == "Transfer failed. insufficient"


def test_write_wallet_url(tmp_path):
    path = write_wallet_url("abc", 12345, tmp_path)
    assert path.name == "The browser wallet URL of account abc.txt"
    assert path.read_text(encoding="utf-8") == "http://127.0.0.1:12345"


def test_find_free_port_is_bindable():
    port = find_free_port()
    assert PORT_BASE <= port < PORT_BASE + PORT_SPAN
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("", port))
        assert sock.getsockname()[1] == port


def test_serve_wallet_serves_page(tmp_path, monkeypatch, server_client, account, templates):
    monkeypatch.chdir(tmp_path)
    port, thread = serve_wallet(server_client, account, templates)
    url_file = tmp_path / f"The browser wallet URL of account {account.address}.txt"
    assert url_file.read_text(encoding="utf-8") == f"http://127.0.0.1:{port}"
    page = None
    deadline = time.monotonic() + 10
    while page is None and time.monotonic() < deadline:
        try:
            with urllib.request.urlopen(f"http://127.0.0.1:{port}/", timeout=2) as resp:
                page = resp.read().decode("utf-8")
        except OSError:
            time.sleep(0.1)
    assert thread.is_alive()
    assert page is not None and "wallet page" in page