"""PriceValidator: Relayer-side checks on prices received from the node.

A price is submitted only if it is positive, at most five minutes old, at
most thirty seconds in the future, backed by enough sources, and (when
signed) carries a well-formed signature.

.. code-block:: python

    >>> result = validate_price_data(node_price, min_source_count=3)
    >>> result.valid, result.reason
    (False, 'Price too stale: 600s old')
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from .OracleClient import NodePrice

MAX_PRICE_AGE_MS = 5 * 60 * 1000
MAX_FUTURE_DRIFT_MS = 30 * 1000

# Minimum hex length of a signature without separate components.
MIN_SIGNATURE_LENGTH = 64


@dataclass
class ValidationResult:
    valid: bool
    reason: str | None = None


def check_signature(price: NodePrice) -> str | None:
    """Structural signature check.

    :returns: None if well formed (or unsigned), otherwise the problem.
    """
    if not price.signature:
        return None

    if not (price.signature_r and price.signature_s):
        if len(price.signature.removeprefix("0x")) < MIN_SIGNATURE_LENGTH:
            return "Missing or invalid signature"
        return None

    try:
        r, s = int(price.signature_r), int(price.signature_s)
    except ValueError:
        return "Invalid signature components"
    if r <= 0 or s <= 0:
        return "Invalid signature components"

    if not price.nonce:
        return "Missing nonce"

    if price.message_hash:
        try:
            int(price.message_hash.removeprefix("0x"), 16)
        except ValueError:
            return "Malformed message hash"

    return None


def validate_price_data(
    price: NodePrice, min_source_count: int, now: int | None = None
) -> ValidationResult:
    """Validate a price before it may be submitted.

    :param price: Price served by the node.
    :param min_source_count: Minimum contributing sources.
    :param now: Reference time in ms (default: current time).
    :returns: ValidationResult with the first failing reason.
    """
    now = int(time.time() * 1000) if now is None else now

    if price.price <= 0:
        return ValidationResult(False, "Price must be positive")

    age = now - price.timestamp
    if age > MAX_PRICE_AGE_MS:
        return ValidationResult(False, f"Price too stale: {round(age / 1000)}s old")

    if price.timestamp > now + MAX_FUTURE_DRIFT_MS:
        return ValidationResult(False, "Price timestamp is in the future")

    if price.source_count < min_source_count:
        return ValidationResult(
            False, f"Insufficient sources: {price.source_count} < {min_source_count}"
        )

    problem = check_signature(price)
    if problem is not None:
        return ValidationResult(False, f"Signature invalid: {problem}")

    return ValidationResult(True)
