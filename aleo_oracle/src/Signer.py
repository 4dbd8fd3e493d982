"""Signer: Binds consensus prices to the operator identity.

The canonical message is::

    ALEO_ORACLE_PRICE:{pair_id}:{pair}:{scaled_price}:{timestamp}:{source_count}:{nonce}

hashed with keccak-256. One backend is selected per deployment:

``hash``
    Deterministic Schnorr-style scheme over 128-bit scalars. ``r`` is
    derived from an HMAC of the message hash under the key and
    ``s = r + e*x mod 2^128``. Both components fit the ledger's ``u128``
    slots, so prices signed this way can use ``submit_signed_price``.
    Verification needs the same key (it is an attestation, not a
    public-key signature).

``ecdsa``
    secp256k1 signature via eth_account. The operator address is derived
    from the key and a configured address must match it. The 256-bit r/s
    do not fit ``u128``; the relayer submits such prices through the
    multi-operator transition instead.

Without a key, prices are returned with an empty signature.

.. code-block:: python

    >>> signer = OracleSigner(operator_address="aleo1operator", private_key="secret")
    >>> signed = signer.sign_price("ETH/USD", 345090000000, 1700000000000, 5)
    >>> signed.pair_id
    1
    >>> signer.verify_signature(signed)
    True
"""

from __future__ import annotations

import hashlib
import hmac
import itertools
import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from .TradingPair import get_pair_id

logger = logging.getLogger(__name__)

MESSAGE_PREFIX = "ALEO_ORACLE_PRICE"

U128_MODULUS = 2**128

# Field elements are taken from the first 31 bytes of a digest so they
# stay below the ledger's field modulus.
FIELD_BYTES = 31


class SignerConfigError(ValueError):
    """Raised when operator credentials are missing or inconsistent."""

    pass


def build_message(
    pair_id: int, pair: str, scaled_price: int, timestamp: int, source_count: int, nonce: str
) -> str:
    """Build the canonical price message."""
    return f"{MESSAGE_PREFIX}:{pair_id}:{pair}:{scaled_price}:{timestamp}:{source_count}:{nonce}"


def hash_message(message: str) -> bytes:
    """keccak-256 of a message string."""
    return bytes(Web3.keccak(text=message))


def to_field(digest: bytes) -> int:
    """Reduce a digest to a field element (first 31 bytes, big endian)."""
    return int.from_bytes(digest[:FIELD_BYTES], "big")


def nonce_hash(nonce: str) -> int:
    """Field element committing to a nonce, used for replay protection."""
    return to_field(hash_message(nonce))


@dataclass(frozen=True)
class SignedPriceData:
    """A price with its signature and message components.

    :ivar pair_id: On-chain pair id (0 if the pair is not registered).
    :ivar signature: Backend-specific signature string, empty if unsigned.
    :ivar signature_r: r component as a decimal string, empty if unsigned.
    :ivar signature_s: s component as a decimal string, empty if unsigned.
    :ivar message_hash: 0x-prefixed keccak-256 of the canonical message.
    :ivar message_field: Message hash reduced to a field element (decimal).
    :ivar nonce_hash: Nonce reduced to a field element (decimal).
    :ivar backend: Backend that produced the signature, empty if unsigned.
    """

    pair: str
    pair_id: int
    scaled_price: int
    timestamp: int
    source_count: int
    nonce: str
    message_hash: str
    message_field: str
    nonce_hash: str
    operator_address: str
    signature: str = ""
    signature_r: str = ""
    signature_s: str = ""
    backend: str = ""

    @property
    def is_signed(self) -> bool:
        return bool(self.signature)

    @property
    def is_ledger_encodable(self) -> bool:
        """Whether r and s fit the ledger's u128 signature slots."""
        if not (self.signature and self.signature_r and self.signature_s):
            return False
        try:
            r, s = int(self.signature_r), int(self.signature_s)
        except ValueError:
            return False
        return 0 <= r < U128_MODULUS and 0 <= s < U128_MODULUS

    def to_dict(self) -> dict:
        return {
            "pair": self.pair,
            "pairId": self.pair_id,
            "scaledPrice": str(self.scaled_price),
            "timestamp": self.timestamp,
            "sourceCount": self.source_count,
            "nonce": self.nonce,
            "messageHash": self.message_hash,
            "messageField": self.message_field,
            "nonceHash": self.nonce_hash,
            "operatorAddress": self.operator_address,
            "signature": self.signature,
            "signatureR": self.signature_r,
            "signatureS": self.signature_s,
            "signatureBackend": self.backend,
        }


class SignerBackend(ABC):
    """A signing scheme.

    :cvar name: Backend identifier used in configuration.
    """

    name: str = ""

    @property
    @abstractmethod
    def address(self) -> str | None:
        """Address derived from the key, or None if the scheme has none."""
        pass

    @abstractmethod
    def sign(self, digest: bytes) -> tuple[str, int, int]:
        """Sign a message digest.

        :param digest: 32-byte message hash.
        :returns: (signature string, r, s).
        """
        pass

    @abstractmethod
    def verify(self, digest: bytes, signature: str, r: int, s: int) -> bool:
        """Verify a signature produced by this backend."""
        pass


class HashSigner(SignerBackend):
    """Deterministic 128-bit Schnorr-style scheme keyed by a secret string."""

    name = "hash"

    def __init__(self, private_key: str) -> None:
        if not private_key:
            raise SignerConfigError("hash signer requires a private key")
        self._key = private_key.encode()
        secret_digest = hashlib.sha256(self._key).digest()
        self._secret_scalar = int.from_bytes(secret_digest[:16], "big")

    @property
    def address(self) -> str | None:
        return None

    @staticmethod
    def _challenge(digest: bytes) -> int:
        return int.from_bytes(digest[:16], "big")

    def sign(self, digest: bytes) -> tuple[str, int, int]:
        k = hmac.new(self._key, digest, hashlib.sha256).digest()
        r = int.from_bytes(k[:16], "big")
        s = (r + self._challenge(digest) * self._secret_scalar) % U128_MODULUS
        return f"{r:032x}{s:032x}", r, s

    def verify(self, digest: bytes, signature: str, r: int, s: int) -> bool:
        expected_r = (s - self._challenge(digest) * self._secret_scalar) % U128_MODULUS
        return r % U128_MODULUS == expected_r and signature == f"{r:032x}{s:032x}"


class EcdsaSigner(SignerBackend):
    """secp256k1 signatures over the EIP-191 encoding of the message digest."""

    name = "ecdsa"

    def __init__(self, private_key: str, expected_address: str | None = None) -> None:
        try:
            self._account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise SignerConfigError(f"Invalid ECDSA private key: {e}") from e

        if expected_address and expected_address.lower() != self._account.address.lower():
            raise SignerConfigError(
                f"Operator address {expected_address} does not match the signing key "
                f"(derived {self._account.address})"
            )

    @property
    def address(self) -> str | None:
        return self._account.address

    def sign(self, digest: bytes) -> tuple[str, int, int]:
        signed = self._account.sign_message(encode_defunct(primitive=digest))
        return "0x" + bytes(signed.signature).hex(), signed.r, signed.s

    def verify(self, digest: bytes, signature: str, r: int, s: int) -> bool:
        try:
            recovered = Account.recover_message(
                encode_defunct(primitive=digest), signature=bytes.fromhex(signature.removeprefix("0x"))
            )
        except ValueError:
            return False
        return recovered.lower() == self._account.address.lower()


SIGNER_BACKENDS: dict[str, type[SignerBackend]] = {
    HashSigner.name: HashSigner,
    EcdsaSigner.name: EcdsaSigner,
}


class OracleSigner:
    """Signs prices with the configured backend.

    :ivar operator_address: Identity attached to every signed price.
    :ivar backend_name: Selected backend ("hash" or "ecdsa").
    """

    def __init__(
        self,
        operator_address: str = "",
        private_key: str | None = None,
        backend: str = HashSigner.name,
    ) -> None:
        """Initialize the signer.

        :param operator_address: Operator identity; for ECDSA it defaults to
            the address derived from the key.
        :param private_key: Signing key. None or empty disables signing.
        :param backend: "hash" or "ecdsa".
        :raises SignerConfigError: On an unknown backend, an invalid key, a
            key/address mismatch, or a key without an operator address.
        """
        if backend not in SIGNER_BACKENDS:
            raise SignerConfigError(
                f"Unknown signer backend '{backend}'. Available: {', '.join(SIGNER_BACKENDS)}"
            )
        self.backend_name = backend
        self._backend: SignerBackend | None = None
        self._nonce_counter = itertools.count(1)

        if private_key:
            if backend == EcdsaSigner.name:
                self._backend = EcdsaSigner(private_key, expected_address=operator_address or None)
                operator_address = operator_address or self._backend.address or ""
            else:
                self._backend = HashSigner(private_key)
            if not operator_address:
                raise SignerConfigError("An operator address is required when a signing key is set")
        else:
            logger.warning("No private key configured - prices will be served unsigned")

        self.operator_address = operator_address

    def is_signing_enabled(self) -> bool:
        return self._backend is not None

    def get_operator_address(self) -> str:
        return self.operator_address

    def generate_nonce(self) -> str:
        """Unique nonce: ``{timestamp_ms}-{counter}-{128 random bits}``."""
        return f"{int(time.time() * 1000)}-{next(self._nonce_counter)}-{secrets.token_hex(16)}"

    def sign_price(
        self,
        pair: str,
        scaled_price: int,
        timestamp: int,
        source_count: int,
        nonce: str | None = None,
    ) -> SignedPriceData:
        """Sign a price.

        :param pair: Canonical pair name.
        :param scaled_price: Fixed-point price (x10^8).
        :param timestamp: Price timestamp in ms.
        :param source_count: Number of contributing sources.
        :param nonce: Optional nonce (a fresh one is generated by default).
        :returns: SignedPriceData; the signature fields are empty when signing is disabled.
        """
        pair_id = get_pair_id(pair) or 0
        nonce = nonce or self.generate_nonce()
        digest = hash_message(build_message(pair_id, pair, scaled_price, timestamp, source_count, nonce))

        signature, sig_r, sig_s = "", "", ""
        if self._backend is not None:
            signature, r, s = self._backend.sign(digest)
            sig_r, sig_s = str(r), str(s)
            logger.debug(f"Signed price for {pair}: hash=0x{digest.hex()[:16]}...")

        return SignedPriceData(
            pair=pair,
            pair_id=pair_id,
            scaled_price=scaled_price,
            timestamp=timestamp,
            source_count=source_count,
            nonce=nonce,
            message_hash="0x" + digest.hex(),
            message_field=str(to_field(digest)),
            nonce_hash=str(nonce_hash(nonce)),
            operator_address=self.operator_address,
            signature=signature,
            signature_r=sig_r,
            signature_s=sig_s,
            backend=self.backend_name if signature else "",
        )

    def verify_signature(self, data: SignedPriceData) -> bool:
        """Verify a signed price against this signer's key and identity.

        :param data: Signed price to check.
        :returns: True if the signature matches the rebuilt message and the
            operator address is ours.
        """
        if self._backend is None or not data.is_signed:
            return False
        if data.backend != self.backend_name or data.operator_address != self.operator_address:
            return False

        digest = hash_message(
            build_message(
                data.pair_id, data.pair, data.scaled_price, data.timestamp, data.source_count, data.nonce
            )
        )
        if "0x" + digest.hex() != data.message_hash:
            return False

        try:
            r, s = int(data.signature_r), int(data.signature_s)
        except ValueError:
            return False

        valid = self._backend.verify(digest, data.signature, r, s)
        if not valid:
            logger.warning(f"Signature verification failed for {data.pair}")
        return valid
