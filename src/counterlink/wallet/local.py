"""
Local-key wallet transport.

An in-process wallet holding one eth-account key. It answers the same
requests a browser wallet extension does, asks an ``approve`` callback
wherever the extension would show a prompt, and signs transactions locally
before broadcasting them through the active chain's RPC endpoint.

Gas is paid by the key's EOA.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

import httpx
from eth_account import Account

from ..chain.config import ChainConfig, chain_id_to_hex, parse_chain_id
from ..chain.rpc import RpcClient, RpcError
from ..errors import UNAUTHORIZED, UNRECOGNIZED_CHAIN, USER_REJECTED
from ..utils import hex_to_int, same_address, to_checksum_address
from .transport import ACCOUNTS_CHANGED, CHAIN_CHANGED, WalletTransport

logger = logging.getLogger(__name__)

Approver = Callable[[str, dict], bool]


def _auto_approve(action: str, detail: dict) -> bool:
    return True


class LocalKeyWallet(WalletTransport):
    """
    EIP-1193 style wallet backed by a local private key.

    Args:
        private_key: 0x-prefixed hex private key
        networks: Known chains as ``{chain_id: rpc_url}``
        chain_id: Initially active chain (must be in ``networks``)
        approve: Prompt callback ``approve(action, detail) -> bool``;
            actions are "connect", "switch_chain", "add_chain", "send_transaction"
        http_transport: Optional httpx transport for the RPC clients
    """

    wallet_kind = "local"

    def __init__(
        self,
        private_key: str,
        networks: dict[int, str],
        chain_id: int,
        approve: Optional[Approver] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__()
        if chain_id not in networks:
            raise ValueError(f"Active chain {chain_id} has no RPC URL")
        self._account = Account.from_key(private_key)
        self._networks = dict(networks)
        self._chain_id = chain_id
        self._approve = approve or _auto_approve
        self._http_transport = http_transport
        self._clients: dict[str, RpcClient] = {}
        self._authorized = False
        self._event_tasks: set[asyncio.Task] = set()

    @classmethod
    def for_chain(
        cls,
        private_key: str,
        chain: ChainConfig,
        approve: Optional[Approver] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "LocalKeyWallet":
        """Wallet that already knows ``chain`` and starts on it."""
        return cls(
            private_key,
            {chain.chain_id: chain.primary_rpc_url},
            chain.chain_id,
            approve=approve,
            http_transport=http_transport,
        )

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def chain_id(self) -> int:
        return self._chain_id

    @property
    def authorized(self) -> bool:
        return self._authorized

    # ============ Request dispatch ============

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        params = params or []

        if method == "eth_requestAccounts":
            return await self._request_accounts()
        if method == "eth_accounts":
            return [self.address] if self._authorized else []
        if method == "eth_chainId":
            return chain_id_to_hex(self._chain_id)
        if method == "net_version":
            return str(self._chain_id)
        if method == "wallet_switchEthereumChain":
            return await self._switch_chain(params[0] if params else {})
        if method == "wallet_addEthereumChain":
            return await self._add_chain(params[0] if params else {})
        if method == "eth_sendTransaction":
            return await self._send_transaction(params[0] if params else {})

        return await self._rpc().call(method, params)

    async def _request_accounts(self) -> list[str]:
        if not self._authorized:
            self._prompt("connect", {"address": self.address})
            self._authorized = True
        return [self.address]

    async def _switch_chain(self, params: dict) -> None:
        requested = params.get("chainId")
        chain_id = parse_chain_id(requested)
        if chain_id is None or chain_id not in self._networks:
            raise RpcError(
                f'Unrecognized chain ID "{requested}". '
                "Try adding the chain using wallet_addEthereumChain first.",
                code=UNRECOGNIZED_CHAIN,
            )
        if chain_id == self._chain_id:
            return None
        self._prompt("switch_chain", {"chainId": requested})
        self._activate(chain_id)
        return None

    async def _add_chain(self, descriptor: dict) -> None:
        chain_id = parse_chain_id(descriptor.get("chainId"))
        rpc_urls = descriptor.get("rpcUrls") or []
        if chain_id is None or not rpc_urls:
            raise RpcError("Invalid chain descriptor", code=-32602)

        self._prompt("add_chain", descriptor)
        self._networks[chain_id] = rpc_urls[0]
        # the wallet switches to a freshly added chain
        if chain_id != self._chain_id:
            self._prompt("switch_chain", {"chainId": descriptor.get("chainId")})
            self._activate(chain_id)
        return None

    async def _send_transaction(self, tx: dict) -> str:
        if not self._authorized:
            raise RpcError(
                "The requested account has not been authorized by the user.",
                code=UNAUTHORIZED,
            )
        sender = tx.get("from")
        if sender is not None and not same_address(sender, self.address):
            raise RpcError(f"Unknown sender {sender}", code=UNAUTHORIZED)

        self._prompt("send_transaction", tx)

        rpc = self._rpc()
        nonce = hex_to_int(
            await rpc.call("eth_getTransactionCount", [self.address, "pending"])
        )
        if tx.get("gasPrice") is not None:
            gas_price = hex_to_int(tx["gasPrice"])
        else:
            gas_price = hex_to_int(await rpc.call("eth_gasPrice", []))

        unsigned: dict[str, Any] = {
            "data": tx.get("data", "0x"),
            "value": hex_to_int(tx.get("value", 0)),
            "nonce": nonce,
            "gas": hex_to_int(tx.get("gas", 0)) or 500_000,  # Default gas limit
            "gasPrice": gas_price,
            "chainId": self._chain_id,
        }
        if tx.get("to"):
            # eth-account requires checksummed addresses in transaction fields
            unsigned["to"] = to_checksum_address(tx["to"])

        signed = self._account.sign_transaction(unsigned)
        raw_tx = signed.raw_transaction.hex()
        if not raw_tx.startswith("0x"):
            raw_tx = "0x" + raw_tx

        tx_hash = await rpc.call("eth_sendRawTransaction", [raw_tx])
        logger.info("Broadcast transaction %s from %s", tx_hash, self.address)
        return tx_hash

    # ============ Wallet UI actions ============

    def revoke(self) -> None:
        """The user disconnects this site from inside the wallet."""
        if self._authorized:
            self._authorized = False
            self._schedule_event(ACCOUNTS_CHANGED, [])

    # ============ Helpers ============

    def _prompt(self, action: str, detail: dict) -> None:
        if not self._approve(action, detail):
            raise RpcError("User rejected the request.", code=USER_REJECTED)

    def _activate(self, chain_id: int) -> None:
        self._chain_id = chain_id
        logger.info("Wallet switched to chain %s", chain_id_to_hex(chain_id))
        self._schedule_event(CHAIN_CHANGED, chain_id_to_hex(chain_id))

    def _schedule_event(self, event: str, payload: Any) -> None:
        # delivered on the next loop iteration, after the current request returns
        task = asyncio.get_running_loop().create_task(self.emit(event, payload))
        self._event_tasks.add(task)
        task.add_done_callback(self._event_delivered)

    def _event_delivered(self, task: asyncio.Task) -> None:
        self._event_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Wallet event handler failed", exc_info=task.exception())

    def _rpc(self) -> RpcClient:
        url = self._networks[self._chain_id]
        client = self._clients.get(url)
        if client is None:
            client = RpcClient(url, transport=self._http_transport)
            self._clients[url] = client
        return client

    async def drain_events(self) -> None:
        """Wait until every scheduled event notification has been delivered."""
        while self._event_tasks:
            await asyncio.gather(*list(self._event_tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._event_tasks):
            task.cancel()
        await super().aclose()
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()
