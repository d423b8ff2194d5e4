"""JSON-RPC endpoint answering Ethereum-style wallet calls by asking the server."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Callable

from .client import AccountState, ServerClient, ServerError, _balance_to_int
from .keys import Account

logger = logging.getLogger(__name__)

CHAIN_ID = "0x1"
NET_VERSION = "1"
GAS_PRICE = "0x3b9aca00"
PARSE_ERROR = -32700
INVALID_PARAMS = -32602

_FIXED_ANSWERS: dict[str, str] = {
    "eth_chainId": CHAIN_ID,
    "net_version": NET_VERSION,
    "eth_gasPrice": GAS_PRICE,
    "eth_maxPriorityFeePerGas": GAS_PRICE,
}


class RpcError(Exception):
    """A call that cannot be answered; ``error`` is the JSON-RPC error object."""

    def __init__(self, message: str, *, code: int = INVALID_PARAMS, payload: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.payload = payload

    @property
    def error(self) -> Any:
        if self.payload is not None:
            return self.payload
        return {"code": self.code, "message": str(self)}


def parse_error_response() -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": 0, "error": {"code": PARSE_ERROR, "message": "Parse error"}}


def _validate_request(raw: Any) -> dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("request is not an object")
    for key, kind in (("method", str), ("jsonrpc", str), ("params", list)):
        value = raw.get(key)
        if value is not None and not isinstance(value, kind):
            raise ValueError(f"field {key} has the wrong type")
    return raw


def _param(params: list[Any], index: int = 0) -> Any:
    if len(params) <= index:
        raise RpcError(f"missing parameter {index}")
    return params[index]


def _str_param(params: list[Any]) -> str:
    value = _param(params)
    if not isinstance(value, str):
        raise RpcError("parameter must be a string")
    return value


def _hex_param(params: list[Any]) -> str:
    value = _str_param(params)
    if len(value) < 2:
        raise RpcError("parameter must carry a 0x prefix")
    return value[2:]


def _object_param(params: list[Any]) -> dict[str, Any]:
    value = _param(params)
    if not isinstance(value, dict):
        raise RpcError("parameter must be an object")
    return value


def _opt_str(obj: dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise RpcError(f"field {key} must be a string")
    return value


def _contract_fields(obj: dict[str, Any]) -> tuple[str, str, str]:
    """Recipient, value and call data; ``data`` wins over ``input``."""
    to = _opt_str(obj, "to")
    value = _opt_str(obj, "value")
    if obj.get("data") is not None:
        data = _opt_str(obj, "data")
    else:
        data = _opt_str(obj, "input")
    return to, value, data


def _random() -> str:
    return str(uuid.uuid4())


def _fixed_answer(method: str, params: list[Any]) -> str:
    """Answer a call whose reply does not depend on the chain."""
    answer = _FIXED_ANSWERS[method]
    logger.debug("%s(%s) -> %s", method, params, answer)
    return answer


class RpcHandler:
    """Answers wallet RPC calls for one account."""

    def __init__(self, client: ServerClient, account: Account) -> None:
        self.client = client
        self.account = account
        self._methods: dict[str, Callable[[list[Any]], Any]] = {
            "eth_getBlockByNumber": self.eth_get_block_by_number,
            "eth_chainId": self.eth_chain_id,
            "net_version": self.net_version,
            "eth_accounts": self.eth_accounts,
            "eth_getBalance": self.eth_get_balance,
            "eth_estimateGas": self.eth_estimate_gas,
            "eth_blockNumber": self.eth_block_number,
            "eth_getTransactionReceipt": self.eth_get_transaction_receipt,
            "eth_getCode": self.eth_get_code,
            "eth_getTransactionByHash": self.eth_get_transaction_by_hash,
            "eth_gasPrice": self.eth_gas_price,
            "eth_maxPriorityFeePerGas": self.eth_max_priority_fee_per_gas,
            "eth_call": self.eth_call,
            "eth_sendTransaction": self.eth_send_transaction,
        }

    def handle_body(self, body: bytes | str) -> tuple[int, Any]:
        """Answer a single request or a batch; return the HTTP status and the reply."""
        try:
            raw = json.loads(body)
            if raw is None:
                return 200, []
            if isinstance(raw, list):
                batch = [_validate_request(item) for item in raw]
                return 200, [self.dispatch(request) for request in batch]
            single = _validate_request(raw)
        except ValueError:
            return 400, parse_error_response()
        return 200, self.dispatch(single)

    def dispatch(self, request: dict[str, Any]) -> dict[str, Any]:
        response: dict[str, Any] = {"jsonrpc": "2.0", "id": request.get("id")}
        handler = self._methods.get(request.get("method") or "")
        if handler is None:
            return response
        try:
            result = handler(request.get("params") or [])
        except RpcError as exc:
            response["error"] = exc.error
            return response
        if result is not None:
            response["result"] = result
        return response

    def _fetch_response(self, path: str, payload: dict[str, Any]) -> dict[str, Any] | None:
        try:
            data = self.client.post(path, payload)
        except ServerError as exc:
            logger.error("%s failed: %s", path, exc)
            return None
        logger.debug("%s: %s", path, data.decode("utf-8", errors="replace"))
        try:
            parsed = json.loads(data)
        except ValueError as exc:
            logger.error("%s returned malformed JSON: %s", path, exc)
            return None
        return parsed if isinstance(parsed, dict) else None

    def _fetch_result(self, path: str, payload: dict[str, Any]) -> Any:
        parsed = self._fetch_response(path, payload)
        return None if parsed is None else parsed.get("result")

    def _keyed_query(self, path: str, key: str, target: str, *, key_first: bool) -> Any:
        rand = _random()
        fields = self.account.signed_fields(rand, rand + target)
        payload = {key: target, **fields} if key_first else {**fields, key: target}
        return self._fetch_result(path, payload)

    def eth_chain_id(self, params: list[Any]) -> str:
        return _fixed_answer("eth_chainId", params)

    def net_version(self, params: list[Any]) -> str:
        return _fixed_answer("net_version", params)

    def eth_accounts(self, params: list[Any]) -> list[str]:
        return [self.account.address]

    def eth_gas_price(self, params: list[Any]) -> str:
        return _fixed_answer("eth_gasPrice", params)

    def eth_max_priority_fee_per_gas(self, params: list[Any]) -> str:
        return _fixed_answer("eth_maxPriorityFeePerGas", params)

    def eth_get_balance(self, params: list[Any]) -> str:
        target = _hex_param(params)
        rand = _random()
        payload = self.account.signed_fields(rand, rand + target)
        payload["UUID"] = target
        try:
            state = AccountState.from_json(self.client.post("query-g", payload))
        except ServerError as exc:
            logger.error("balance query failed: %s", exc)
            return "0x0"
        try:
            amount = _balance_to_int(state.balance)
        except ValueError:
            amount = 0
        return "0x" + format(amount, "x")

    def eth_get_block_by_number(self, params: list[Any]) -> Any:
        tag = _str_param(params)
        if tag == "latest":
            number = "latest"
        else:
            number = _hex_param(params)
        return self._keyed_query("eth_getBlockByNumber", "UUID", number, key_first=False)

    def eth_get_code(self, params: list[Any]) -> Any:
        return self._keyed_query("eth_getCode", "uuid", _hex_param(params), key_first=True)

    def eth_get_transaction_receipt(self, params: list[Any]) -> Any:
        return self._keyed_query(
            "eth_getTransactionReceipt", "uuid", _hex_param(params), key_first=True
        )

    def eth_get_transaction_by_hash(self, params: list[Any]) -> Any:
        return self._keyed_query(
            "eth_getTransactionByHash", "UUID", _hex_param(params), key_first=False
        )

    def eth_block_number(self, params: list[Any]) -> Any:
        return self._fetch_result("eth_blockNumber", self.account.signed_fields())

    def _contract_payload(self, to: str, data: str, value: str, gas: str | None, signed: str, rand: str) -> dict[str, Any]:
        fields = self.account.signed_fields(rand, signed)
        payload: dict[str, Any] = {
            "PublicKey": fields["PublicKey"],
            "To": to,
            "data": data,
            "value": value,
            "RandomStr": rand,
        }
        if gas is not None:
            payload["Gas"] = gas
        payload["Sign1"] = fields["Sign1"]
        payload["Sign2"] = fields["Sign2"]
        return payload

    def eth_call(self, params: list[Any]) -> Any:
        to, value, data = _contract_fields(_object_param(params))
        rand = _random()
        payload = self._contract_payload(to, data, value, None, to + data + value + rand, rand)
        return self._fetch_result("eth_call", payload)

    def eth_estimate_gas(self, params: list[Any]) -> Any:
        to, value, data = _contract_fields(_object_param(params))
        rand = _random()
        payload = self._contract_payload(to, data, value, "", to + data + value + rand, rand)
        return self._fetch_result("eth_estimateGas", payload)

    def eth_send_transaction(self, params: list[Any]) -> Any:
        obj = _object_param(params)
        to, value, data = _contract_fields(obj)
        gas = _opt_str(obj, "gas")
        rand = _random()
        payload = self._contract_payload(to, data, value, gas, to + data + value + gas + rand, rand)
        parsed = self._fetch_response("eth_sendTransaction", payload)
        if parsed is None:
            return None
        if parsed.get("error") is not None:
            raise RpcError("transaction rejected", payload=parsed["error"])
        return parsed.get("result")