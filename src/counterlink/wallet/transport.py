"""
Wallet transport contract.

A WalletTransport is the Python rendition of an injected browser wallet
(EIP-1193): a single ``request(method, params)`` entry point plus
``accountsChanged`` / ``chainChanged`` notifications. ReadOnlyTransport is
the RPC-only fallback used when no wallet is present.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from ..chain.rpc import RpcClient, RpcError
from ..errors import UNSUPPORTED_METHOD

logger = logging.getLogger(__name__)

ACCOUNTS_CHANGED = "accountsChanged"
CHAIN_CHANGED = "chainChanged"

Handler = Callable[[Any], Union[None, Awaitable[None]]]


class WalletTransport:
    """Base class: request dispatch is left to subclasses, events live here."""

    wallet_kind: str = "unknown"

    def __init__(self) -> None:
        self._listeners: dict[str, list[Handler]] = {}

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        raise NotImplementedError

    # ============ Typed requests ============

    async def request_accounts(self) -> list[str]:
        """Prompting account access request."""
        return list(await self.request("eth_requestAccounts") or [])

    async def get_accounts(self) -> list[str]:
        """Already-authorized accounts, never prompts."""
        return list(await self.request("eth_accounts") or [])

    async def get_chain_id(self) -> str:
        return await self.request("eth_chainId")

    async def switch_chain(self, chain_id_hex: str) -> None:
        await self.request("wallet_switchEthereumChain", [{"chainId": chain_id_hex}])

    async def add_chain(self, descriptor: dict[str, Any]) -> None:
        await self.request("wallet_addEthereumChain", [descriptor])

    # ============ Events ============

    def on(self, event: str, handler: Handler) -> None:
        """Subscribe ``handler``; subscribing the same handler twice is a no-op."""
        handlers = self._listeners.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)

    def remove_listener(self, event: str, handler: Handler) -> None:
        handlers = self._listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    async def emit(self, event: str, payload: Any) -> None:
        """Deliver ``payload`` to every handler of ``event``, in subscription order."""
        for handler in list(self._listeners.get(event, [])):
            result = handler(payload)
            if inspect.isawaitable(result):
                await result

    async def aclose(self) -> None:
        self._listeners.clear()


class ReadOnlyTransport(WalletTransport):
    """RPC endpoint without accounts; every write request fails."""

    wallet_kind = "rpc"

    _WRITE_METHODS = frozenset({
        "eth_sendTransaction",
        "eth_sign",
        "personal_sign",
        "eth_signTypedData_v4",
        "wallet_switchEthereumChain",
        "wallet_addEthereumChain",
    })

    def __init__(
        self,
        rpc_url: str,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__()
        self._rpc = RpcClient(rpc_url, transport=http_transport)

    @property
    def rpc_url(self) -> str:
        return self._rpc.url

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        if method in ("eth_accounts", "eth_requestAccounts"):
            return []
        if method in self._WRITE_METHODS:
            raise RpcError(
                f"{method} is not supported by a read-only provider",
                code=UNSUPPORTED_METHOD,
            )
        return await self._rpc.call(method, params)

    async def aclose(self) -> None:
        await super().aclose()
        await self._rpc.aclose()
