"""OracleClient: Relayer-side client for the oracle node HTTP API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .Signer import U128_MODULUS
from .TradingPair import TradingPair

logger = logging.getLogger(__name__)


@dataclass
class NodePrice:
    """Latest price as served by ``GET /price/{pair}``.

    Signature fields are empty strings when the node serves unsigned prices.
    """

    pair: str
    price: float
    scaled_price: int
    timestamp: int
    source_count: int
    sources: list[str] = field(default_factory=list)
    signature: str = ""
    signature_r: str = ""
    signature_s: str = ""
    nonce: str = ""
    message_hash: str = ""
    message_field: str = ""
    nonce_hash: str = ""
    operator_address: str = ""

    @classmethod
    def from_dict(cls, pair: str, data: dict[str, Any]) -> NodePrice:
        """Parse an API response body.

        :raises KeyError: If price, scaledPrice or timestamp is missing.
        :raises ValueError: If a numeric field is malformed.
        """
        sources = list(data.get("sources") or [])
        return cls(
            pair=data.get("pair") or pair,
            price=float(data["price"]),
            scaled_price=int(data["scaledPrice"]),
            timestamp=int(data["timestamp"]),
            source_count=int(data.get("sourceCount") or len(sources)),
            sources=sources,
            signature=data.get("signature") or "",
            signature_r=str(data.get("signatureR") or ""),
            signature_s=str(data.get("signatureS") or ""),
            nonce=data.get("nonce") or "",
            message_hash=data.get("messageHash") or "",
            message_field=str(data.get("messageField") or ""),
            nonce_hash=str(data.get("nonceHash") or ""),
            operator_address=data.get("operatorAddress") or "",
        )

    @property
    def is_signed(self) -> bool:
        return bool(self.signature)

    @property
    def has_ledger_signature(self) -> bool:
        """Whether every ``submit_signed_price`` argument is present and fits."""
        if not (self.signature and self.nonce and self.message_field and self.nonce_hash):
            return False
        try:
            r, s = int(self.signature_r), int(self.signature_s)
            int(self.message_field), int(self.nonce_hash)
        except ValueError:
            return False
        return 0 < r < U128_MODULUS and 0 < s < U128_MODULUS


class OracleClient:
    """Async client for the oracle node.

    :ivar base_url: Node API root (e.g., "http://localhost:3000").
    """

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _get_json(self, path: str) -> Any:
        response = await self._client.get(f"{self.base_url}{path}", timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    async def get_price(self, pair: str) -> NodePrice | None:
        """Latest price for a pair.

        :param pair: Canonical pair name.
        :returns: NodePrice, or None if the node has none, is halted, or is unreachable.
        """
        slug = TradingPair.from_string(pair).slug
        try:
            data = await self._get_json(f"/price/{slug}")
            return NodePrice.from_dict(pair, data)
        except httpx.HTTPStatusError as e:
            logger.warning(f"{pair}: Oracle node answered {e.response.status_code}")
        except httpx.RequestError as e:
            logger.error(f"Failed to fetch {pair} from oracle: {e}")
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"Malformed price response for {pair}: {e}")
        return None

    async def get_twap(self, pair: str) -> dict[str, Any] | None:
        """TWAP breakdown for a pair, None if unavailable."""
        slug = TradingPair.from_string(pair).slug
        try:
            return await self._get_json(f"/price/{slug}/twap")
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"TWAP not available for {pair}: {e}")
            return None

    async def get_health(self) -> dict[str, Any]:
        """Node health document.

        :raises httpx.HTTPError: If the node is unreachable.
        """
        response = await self._client.get(f"{self.base_url}/health", timeout=self.timeout)
        return response.json()

    async def close(self) -> None:
        await self._client.aclose()
