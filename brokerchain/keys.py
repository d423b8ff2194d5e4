"""P-256 account keys: derivation, signing, verification and addresses."""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

_CURVE = ec.SECP256R1()


def _to_int(private: int | str) -> int:
    if isinstance(private, int):
        return private
    text = str(private).strip()
    if not text.isdigit():
        raise ValueError(f"private key is not a decimal number: {text[:8]!r}")
    return int(text)


def _private_key(private: int | str) -> ec.EllipticCurvePrivateKey:
    return ec.derive_private_key(_to_int(private), _CURVE)


def _minimal_hex(value: int) -> str:
    return value.to_bytes((value.bit_length() + 7) // 8, "big").hex()


def public_key_from_private(private: int | str) -> str:
    """Compressed public point, hex encoded, for a decimal private key."""
    point = _private_key(private).public_key().public_bytes(
        Encoding.X962, PublicFormat.CompressedPoint
    )
    return point.hex()


def sign(private: int | str, data: str) -> tuple[str, str]:
    """Sign the SHA-256 of data; return r and s as minimal big-endian hex."""
    signature = _private_key(private).sign(data.encode("utf-8"), ec.ECDSA(hashes.SHA256()))
    r, s = decode_dss_signature(signature)
    return _minimal_hex(r), _minimal_hex(s)


def verify(public_key_hex: str, data: str, r_hex: str, s_hex: str) -> bool:
    """Check an (r, s) signature over data against a compressed public key."""
    public_key = ec.EllipticCurvePublicKey.from_encoded_point(_CURVE, bytes.fromhex(public_key_hex))
    signature = encode_dss_signature(int(r_hex or "0", 16), int(s_hex or "0", 16))
    try:
        public_key.verify(signature, data.encode("utf-8"), ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        return False
    return True


def address_from_public_key(public_key_hex: str) -> str:
    """Account address: the first 20 bytes of SHA-256 of the public key, hex encoded."""
    return hashlib.sha256(bytes.fromhex(public_key_hex)).digest()[:20].hex()


def generate_private_key() -> int:
    """A fresh random P-256 private scalar."""
    return ec.generate_private_key(_CURVE).private_numbers().private_value


def mask_private_key(private: int | str) -> str | None:
    """Masked form of a long decimal key for display, or None when it is too short."""
    digits = str(private).strip()
    if len(digits) < 74:
        return None
    return digits[:4] + "*" * 23 + digits[74:]


@dataclass(frozen=True)
class Account:
    """A key pair together with the address derived from it."""

    private: int = field(repr=False)
    public_key: str
    address: str

    @classmethod
    def from_private(cls, private: int | str) -> "Account":
        value = _to_int(private)
        public_key = public_key_from_private(value)
        return cls(private=value, public_key=public_key, address=address_from_public_key(public_key))

    @classmethod
    def load(cls, path: str | Path) -> "Account":
        return cls.from_private(Path(path).read_text(encoding="utf-8"))

    def save(self, path: str | Path) -> None:
        """Write the decimal private key; refuses to overwrite an existing file."""
        with open(path, "x", encoding="utf-8") as handle:
            handle.write(str(self.private))

    def sign(self, data: str) -> tuple[str, str]:
        return sign(self.private, data)

    def signed_fields(self, random_str: str | None = None, signed_data: str | None = None) -> dict[str, str]:
        """Authentication fields sent with every request.

        ``signed_data`` defaults to the random string itself.
        """
        if random_str is None:
            random_str = str(uuid.uuid4())
        r, s = self.sign(random_str if signed_data is None else signed_data)
        return {"PublicKey": self.public_key, "RandomStr": random_str, "Sign1": r, "Sign2": s}