"""
Chain Config - Static description of the target network.

A ChainConfig is immutable. The integer chain id and its wire-format hex
string are validated to encode the same value at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional


@dataclass(frozen=True)
class NativeCurrency:
    name: str
    symbol: str
    decimals: int = 18

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "symbol": self.symbol, "decimals": self.decimals}


def chain_id_to_hex(chain_id: int) -> str:
    """Encode a chain id the way wallets report it (``0x``-prefixed, lowercase, no padding)."""
    if chain_id <= 0:
        raise ValueError(f"Chain id must be positive: {chain_id}")
    return hex(chain_id)


def parse_chain_id(value: Any) -> Optional[int]:
    """
    Parse a chain id as reported by a wallet or node.

    Accepts ``0x``-prefixed hex strings, decimal strings and integers.
    Returns None if the value cannot be parsed.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip().lower()
    try:
        if text.startswith("0x"):
            return int(text, 16)
        return int(text, 10)
    except ValueError:
        return None


@dataclass(frozen=True)
class ChainConfig:
    """
    Target network description.

    Attributes:
        chain_id: Canonical integer chain id
        chain_id_hex: Wire-format hex string of chain_id
        chain_name: Human-readable network name
        rpc_urls: RPC endpoints, first is primary
        block_explorer_urls: Explorer base URLs, first is primary
        native_currency: Currency descriptor
    """
    chain_id: int
    chain_id_hex: str
    chain_name: str
    rpc_urls: tuple[str, ...]
    block_explorer_urls: tuple[str, ...]
    native_currency: NativeCurrency

    def __post_init__(self) -> None:
        if parse_chain_id(self.chain_id_hex) != self.chain_id or not self.chain_id_hex.lower().startswith("0x"):
            raise ValueError(
                f"Chain id {self.chain_id} and hex {self.chain_id_hex!r} do not encode the same value"
            )
        if not self.rpc_urls:
            raise ValueError("At least one RPC URL is required")

    @classmethod
    def from_chain_id(
        cls,
        chain_id: int,
        chain_name: str,
        rpc_urls: list[str] | tuple[str, ...],
        block_explorer_urls: list[str] | tuple[str, ...] = (),
        native_currency: Optional[NativeCurrency] = None,
    ) -> "ChainConfig":
        return cls(
            chain_id=chain_id,
            chain_id_hex=chain_id_to_hex(chain_id),
            chain_name=chain_name,
            rpc_urls=tuple(rpc_urls),
            block_explorer_urls=tuple(block_explorer_urls),
            native_currency=native_currency or NativeCurrency("Ether", "ETH", 18),
        )

    @property
    def primary_rpc_url(self) -> str:
        return self.rpc_urls[0]

    @property
    def primary_explorer_url(self) -> Optional[str]:
        return self.block_explorer_urls[0] if self.block_explorer_urls else None

    def matches(self, reported_chain_id: Any) -> bool:
        """True iff a wallet-reported chain id is this network."""
        return parse_chain_id(reported_chain_id) == self.chain_id

    def with_rpc_url(self, rpc_url: str) -> "ChainConfig":
        """Return a copy whose primary RPC URL is ``rpc_url``."""
        others = tuple(url for url in self.rpc_urls if url != rpc_url)
        return replace(self, rpc_urls=(rpc_url, *others))

    def to_add_chain_params(self) -> dict[str, Any]:
        """EIP-3085 ``wallet_addEthereumChain`` descriptor."""
        return {
            "chainId": self.chain_id_hex,
            "chainName": self.chain_name,
            "rpcUrls": list(self.rpc_urls),
            "blockExplorerUrls": list(self.block_explorer_urls),
            "nativeCurrency": self.native_currency.to_dict(),
        }

    def transaction_url(self, tx_hash: str) -> str:
        return self._explorer_link("tx", tx_hash)

    def address_url(self, address: str) -> str:
        return self._explorer_link("address", address)

    def _explorer_link(self, kind: str, value: str) -> str:
        base = self.primary_explorer_url
        if not base or not value:
            return ""
        return f"{base.rstrip('/')}/{kind}/{value}"


POLYGON_AMOY = ChainConfig(
    chain_id=80002,
    chain_id_hex="0x13882",
    chain_name="Polygon Amoy Testnet",
    rpc_urls=("https://rpc-amoy.polygon.technology",),
    block_explorer_urls=("https://amoy.polygonscan.com/",),
    native_currency=NativeCurrency(name="MATIC", symbol="MATIC", decimals=18),
)
