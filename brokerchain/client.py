"""HTTP client for the coordination server's account, transfer and join endpoints."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation, localcontext
from fractions import Fraction
from typing import Any, Mapping

import requests

from .keys import Account

logger = logging.getLogger(__name__)

PRECISION_BITS = 64
SUCCESS_MARK = "success"
DUPLICATE_KEY_MARK = "do not join system using the same private key"
LOW_BALANCE_MARK = "Your balance is less than"
PROBLEM_CREATED = "create problem success"
DEFAULT_JOIN_IP = "127.0.0.1"


class ServerError(Exception):
    """The server could not be reached or answered with something unusable.

    ``fatal`` marks refusals after which the client should stop.
    """

    def __init__(self, message: str, *, fatal: bool = False) -> None:
        super().__init__(message)
        self.fatal = fatal


@dataclass(frozen=True)
class ServerConfig:
    """Where the coordination server lives and what this client expects of it."""

    host: str
    port: str | int
    forward_port: str | int = ""
    version: str = ""
    unit: str = "1"
    timeout: float | None = None

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}/"


@dataclass(frozen=True)
class AccountState:
    """An account address and its balance in base units, as the server reports it."""

    account: str
    balance: str

    @classmethod
    def from_json(cls, data: bytes | str) -> "AccountState":
        try:
            raw = json.loads(data)
        except ValueError as exc:
            raise ServerError(f"malformed account state: {exc}") from exc
        if not isinstance(raw, dict):
            raise ServerError("malformed account state")
        account = raw.get("account", "")
        balance = raw.get("balance", "")
        if not isinstance(account, str) or not isinstance(balance, str):
            raise ServerError("malformed account state")
        return cls(account=account, balance=balance)


def _parse_number(text: str) -> Fraction:
    try:
        value = Decimal(text)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"not a number: {text!r}") from exc
    if not value.is_finite():
        raise ValueError(f"not a finite number: {text!r}")
    return Fraction(value)


def _round_bits(x: Fraction, bits: int = PRECISION_BITS) -> Fraction:
    """Round to a binary mantissa of ``bits`` bits, half to even."""
    if x == 0:
        return Fraction(0)
    sign = -1 if x < 0 else 1
    magnitude = abs(x)
    exponent = magnitude.numerator.bit_length() - magnitude.denominator.bit_length()
    if Fraction(2) ** exponent > magnitude:
        exponent -= 1
    scale = Fraction(2) ** (bits - 1 - exponent)
    return sign * Fraction(round(magnitude * scale)) / scale


def _shortest_text(x: Fraction) -> str:
    """Shortest plain decimal that rounds back to the same binary value."""
    if x == 0:
        return "0"
    candidate = Decimal(0)
    for digits in range(1, 50):
        with localcontext() as ctx:
            ctx.prec = digits
            ctx.rounding = ROUND_HALF_EVEN
            candidate = Decimal(x.numerator) / Decimal(x.denominator)
        if _round_bits(Fraction(candidate)) == x:
            break
    text = format(candidate, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _balance_to_int(balance: str) -> int:
    """Integer part of a balance after rounding to the working precision."""
    return int(_round_bits(_parse_number(balance)))


def format_balance(balance: str, unit: str) -> str:
    """Balance divided by the unit, as the shortest plain decimal."""
    amount = _round_bits(_parse_number(balance))
    divisor = _round_bits(_parse_number(unit))
    if divisor == 0:
        raise ValueError("unit must be non-zero")
    return _shortest_text(_round_bits(amount / divisor))


def _new_random() -> str:
    return str(uuid.uuid4())


def _encode(data: Mapping[str, Any]) -> bytes:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class ServerClient:
    """Signed JSON requests to the coordination server."""

    def __init__(self, config: ServerConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, data: Any) -> bytes:
        if data is None:
            body = b""
        elif isinstance(data, (bytes, bytearray)):
            body = bytes(data)
        else:
            body = _encode(data)
        try:
            response = self.session.request(
                method,
                self.config.base_url + path,
                data=body,
                headers={"Content-Type": "application/json"},
                timeout=self.config.timeout,
            )
            return response.content
        except requests.RequestException as exc:
            raise ServerError(str(exc)) from exc

    def get(self, path: str, data: Any = None) -> bytes:
        return self._request("GET", path, data)

    def post(self, path: str, data: Any = None) -> bytes:
        return self._request("POST", path, data)

    def version_is_outdated(self) -> bool:
        """True when the server announces a different 1.x.y release than this client's."""
        try:
            remote = self.get("getversion").decode("utf-8", errors="replace")
        except ServerError:
            return False
        return len(remote) == 5 and remote.startswith("1") and remote != self.config.version

    def query_address(self, address: str) -> AccountState:
        return AccountState.from_json(self.post("query-g2", {"UUID": address}))

    def query_own(self, account: Account) -> AccountState:
        rand = _new_random()
        payload = account.signed_fields(rand, rand + account.address)
        payload["UUID"] = account.address
        return AccountState.from_json(self.post("query-g", payload))

    def send_transfer(self, account: Account, to: str, value: str, fee: str = "") -> tuple[bool, str]:
        """Submit a transfer; return whether it succeeded and the server's reply."""
        rand = _new_random()
        fields = account.signed_fields(rand, rand + to + value + fee)
        payload = {
            "PublicKey": fields["PublicKey"],
            "RandomStr": rand,
            "To": to,
            "Value": value,
            "Sign1": fields["Sign1"],
            "Sign2": fields["Sign2"],
            "Fee": fee,
        }
        text = self.post("sendtx", payload).decode("utf-8", errors="replace")
        return SUCCESS_MARK in text, text

    def claim(self, account: Account) -> str:
        return self.post("claim", account.signed_fields()).decode("utf-8", errors="replace")

    @staticmethod
    def _check_refusal(text: str) -> None:
        if DUPLICATE_KEY_MARK in text:
            raise ServerError(
                "Join failed. Please do not join system using the same private key.", fatal=True
            )

    def join_pos(self, account: Account) -> bool:
        """Ask to join by stake; False means try again later."""
        try:
            text = self.post("join2", account.signed_fields()).decode("utf-8", errors="replace")
        except ServerError:
            return False
        if SUCCESS_MARK in text:
            return True
        logger.info("%s", text)
        self._check_refusal(text)
        if LOW_BALANCE_MARK in text:
            raise ServerError(
                "PoS failed. Your account balance is not enough to join BrokerChain.", fatal=True
            )
        return False

    def join(self, account: Account, answer: str, ip: str, port: int | str) -> bool:
        """Join with a solved puzzle, announcing where this node listens."""
        payload = account.signed_fields()
        payload.update({"Answer": answer, "Ip": ip, "Port": str(port)})
        try:
            text = self.post("join", payload).decode("utf-8", errors="replace")
        except ServerError as exc:
            logger.error("%s", exc)
            return False
        if SUCCESS_MARK in text:
            return True
        logger.info("%s", text)
        self._check_refusal(text)
        return False

    def get_problem(self, account: Account) -> tuple[str, str]:
        """Fetch a puzzle; return its identifier and difficulty."""
        data = self.post("getProblem", account.signed_fields())
        try:
            raw = json.loads(data)
        except ValueError as exc:
            raise ServerError(f"malformed problem: {exc}") from exc
        if not isinstance(raw, dict) or raw.get("message") != PROBLEM_CREATED:
            raise ServerError("create problem failed")
        body = raw.get("data") or {}
        if not isinstance(body, dict):
            raise ServerError("create problem failed")
        return str(body.get("UUID", "")), str(body.get("Difficulty", ""))