"""
Shared fixtures: a scripted in-memory wallet and receipt builders.

FakeWallet answers the wallet transport contract from plain attributes so
tests can script accounts, chain id, node answers and failures, and inspect
every request that reached the "extension".
"""

from __future__ import annotations

from typing import Any, Optional

import pytest
from eth_abi import encode

from counterlink.chain.abi import COUNTER_ABI, event_topic, function_selector
from counterlink.chain.config import POLYGON_AMOY
from counterlink.chain.rpc import RpcError
from counterlink.context import DappContext
from counterlink.errors import UNRECOGNIZED_CHAIN, UNSUPPORTED_METHOD
from counterlink.wallet.transport import WalletTransport


ACCOUNT = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa1111"
OTHER_ACCOUNT = "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb2222"
CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
TX_HASH = "0x" + "ab" * 32

GET_COUNT_SELECTOR = function_selector(COUNTER_ABI, "getCount")
INCREMENT_SELECTOR = function_selector(COUNTER_ABI, "increment")


def uint256_hex(value: int) -> str:
    return "0x" + encode(["uint256"], [value]).hex()


def make_receipt(
    tx_hash: str = TX_HASH,
    status: int = 1,
    gas_used: int = 52_000,
    new_count: Optional[int] = None,
    sender: str = ACCOUNT,
    contract: str = CONTRACT,
) -> dict[str, Any]:
    """Receipt dict as a node returns it, optionally carrying CounterIncremented."""
    logs = []
    if new_count is not None:
        logs.append({
            "address": contract.lower(),
            "topics": [
                event_topic(COUNTER_ABI, "CounterIncremented"),
                "0x" + "00" * 12 + sender[2:].lower(),
            ],
            "data": uint256_hex(new_count),
        })
    return {
        "transactionHash": tx_hash,
        "status": hex(status),
        "gasUsed": hex(gas_used),
        "blockNumber": hex(1234),
        "logs": logs,
    }


class FakeWallet(WalletTransport):
    """Scriptable wallet extension."""

    wallet_kind = "local"

    def __init__(
        self,
        accounts: Optional[list[str]] = None,
        chain_id: str = "0x13882",
        authorized: bool = False,
    ) -> None:
        super().__init__()
        self.accounts = list(accounts) if accounts is not None else [ACCOUNT]
        self.chain_id = chain_id
        self.authorized = authorized
        self.known_chains = {chain_id, POLYGON_AMOY.chain_id_hex}
        self.counter = 5
        self.gas_estimate = 50_000
        self.gas_price = 30 * 10**9
        # raw eth_call answer overriding the encoded counter
        self.call_result: Optional[str] = None
        self.receipts: dict[str, Optional[dict[str, Any]]] = {}
        self.sent: list[dict[str, Any]] = []
        self.errors: dict[str, RpcError] = {}
        self.requests: list[tuple[str, list]] = []

    def methods(self) -> list[str]:
        return [method for method, _ in self.requests]

    def params_of(self, method: str) -> list[list]:
        return [params for name, params in self.requests if name == method]

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        params = params or []
        self.requests.append((method, params))
        if method in self.errors:
            raise self.errors[method]

        if method == "eth_requestAccounts":
            self.authorized = True
            return list(self.accounts)
        if method == "eth_accounts":
            return list(self.accounts) if self.authorized else []
        if method == "eth_chainId":
            return self.chain_id
        if method == "wallet_switchEthereumChain":
            requested = params[0]["chainId"]
            if requested not in self.known_chains:
                raise RpcError(f'Unrecognized chain ID "{requested}"', code=UNRECOGNIZED_CHAIN)
            self.chain_id = requested
            return None
        if method == "wallet_addEthereumChain":
            self.known_chains.add(params[0]["chainId"])
            self.chain_id = params[0]["chainId"]
            return None
        if method == "eth_getCode":
            return "0x6080604052"
        if method == "eth_call":
            data = params[0].get("data", "")
            if data.startswith(GET_COUNT_SELECTOR):
                if self.call_result is not None:
                    return self.call_result
                return uint256_hex(self.counter)
            return "0x"
        if method == "eth_estimateGas":
            return hex(self.gas_estimate)
        if method == "eth_gasPrice":
            return hex(self.gas_price)
        if method == "eth_sendTransaction":
            self.sent.append(params[0])
            return TX_HASH
        if method == "eth_getTransactionReceipt":
            return self.receipts.get(params[0])
        if method == "eth_getBalance":
            return hex(2 * 10**18)
        raise RpcError(f"{method} not supported", code=UNSUPPORTED_METHOD)


@pytest.fixture()
def wallet() -> FakeWallet:
    return FakeWallet()


@pytest.fixture()
def make_context():
    """Factory for contexts whose background poll never fires on its own."""

    def _make(wallet: Optional[WalletTransport] = None, **kwargs: Any) -> DappContext:
        kwargs.setdefault("contract_address", CONTRACT)
        kwargs.setdefault("poll_interval", 3600)
        kwargs.setdefault("receipt_poll_interval", 0)
        return DappContext(POLYGON_AMOY, wallet=wallet, **kwargs)

    return _make
