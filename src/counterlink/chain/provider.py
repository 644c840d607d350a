"""
Provider Client - typed operations over the wallet / RPC transport.

Owns the live transport and the counter contract binding. Contains no
business policy: callers decide what to do with fallbacks and failures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

import httpx
from eth_abi.exceptions import DecodingError

from ..errors import (
    ContractNotFoundError,
    ContractNotInitializedError,
    ContractReadError,
    GasEstimationError,
    InitializationError,
    SimulationFailedError,
    SubmissionError,
)
from ..utils import hex_to_int, is_valid_address, wei_to_ether
from ..wallet.transport import ReadOnlyTransport, WalletTransport
from .abi import (
    COUNTER_ABI,
    decode_event_log,
    decode_function_result,
    decode_revert_reason,
    encode_function_call,
    has_function,
)
from .config import ChainConfig
from .rpc import RpcError

logger = logging.getLogger(__name__)

FALLBACK_GAS_LIMIT = 100_000
FALLBACK_GAS_PRICE = 20 * 10**9  # 20 gwei

COUNT_FUNCTION = "getCount"
INCREMENT_FUNCTION = "increment"
INCREMENT_EVENT = "CounterIncremented"


def gas_limit_for(estimate: int) -> int:
    """Gas limit sent with a transaction: 150% of the estimate, rounded down."""
    return estimate * 3 // 2


@dataclass(frozen=True)
class SubmissionResult:
    tx_hash: str
    from_address: str
    gas_limit: int
    gas_price: int


@dataclass(frozen=True)
class Receipt:
    """
    A mined transaction receipt.

    Attributes:
        tx_hash: Transaction hash
        success: True if the receipt status is 1
        gas_used: Gas actually consumed
        block_number: Block the transaction was included in
        new_count: Count carried by the CounterIncremented event, if emitted
        raw: The receipt as returned by the node
    """
    tx_hash: str
    success: bool
    gas_used: int
    block_number: Optional[int] = None
    new_count: Optional[int] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


class ProviderClient:
    """
    Typed wallet / contract operations.

    Args:
        chain: Target network
        contract_address: Counter contract address (None leaves it unbound)
        abi: Contract interface (defaults to the built-in counter ABI)
        wallet: Wallet transport present in the environment, if any
        expected_wallet_kind: ``wallet_kind`` a usable wallet must report
        http_transport: Optional httpx transport for the read-only fallback
    """

    def __init__(
        self,
        chain: ChainConfig,
        contract_address: Optional[str] = None,
        abi: Optional[list[dict[str, Any]]] = None,
        wallet: Optional[WalletTransport] = None,
        expected_wallet_kind: str = "local",
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.chain = chain
        self.contract_address = contract_address
        self.abi = abi if abi is not None else COUNTER_ABI
        self.wallet = wallet
        self.expected_wallet_kind = expected_wallet_kind
        self._http_transport = http_transport
        self._transport: Optional[WalletTransport] = None
        self._contract_bound = False
        # None until verified; False when the address holds no code
        self.contract_deployed: Optional[bool] = None

    # ============ Lifecycle ============

    async def initialize(self) -> None:
        """
        Bind the transport and the counter contract.

        Uses the wallet when one is present, otherwise the primary RPC URL
        in read-only mode. Contract code verification is best-effort.

        Raises:
            InitializationError: If the transport cannot be constructed or
                the contract address is malformed
        """
        if self.wallet is not None:
            self._transport = self.wallet
        else:
            try:
                self._transport = ReadOnlyTransport(
                    self.chain.primary_rpc_url, http_transport=self._http_transport
                )
            except ValueError as exc:
                raise InitializationError(f"Failed to initialize provider: {exc}") from exc
            logger.info("No wallet present, using read-only RPC %s", self.chain.primary_rpc_url)

        if not self.contract_address:
            logger.warning("No counter contract address configured; contract not bound")
            return
        if not is_valid_address(self.contract_address):
            raise InitializationError(f"Invalid contract address: {self.contract_address}")
        if not has_function(self.abi, COUNT_FUNCTION) or not has_function(self.abi, INCREMENT_FUNCTION):
            raise InitializationError(
                f"Contract ABI must define {COUNT_FUNCTION}() and {INCREMENT_FUNCTION}()"
            )

        self._contract_bound = True
        await self._verify_contract()

    async def _verify_contract(self) -> None:
        try:
            code = await self._transport.request(
                "eth_getCode", [self.contract_address, "latest"]
            )
        except RpcError as exc:
            logger.error("Contract verification failed: %s", exc)
            return

        if not code or code in ("0x", "0x0"):
            logger.error("No contract found at address: %s", self.contract_address)
            self.contract_deployed = False
        else:
            logger.info("Contract verified at address: %s", self.contract_address)
            self.contract_deployed = True

    async def aclose(self) -> None:
        """Release the transport bound by initialize()."""
        if self._transport is not None and self._transport is not self.wallet:
            await self._transport.aclose()
        self._transport = None
        self._contract_bound = False

    @property
    def initialized(self) -> bool:
        return self._transport is not None

    @property
    def read_only(self) -> bool:
        return self._transport is not None and self._transport is not self.wallet

    @property
    def transport(self) -> WalletTransport:
        if self._transport is None:
            raise ContractNotInitializedError("Provider not initialized")
        return self._transport

    def is_wallet_available(self) -> bool:
        return (
            self.wallet is not None
            and getattr(self.wallet, "wallet_kind", None) == self.expected_wallet_kind
        )

    # ============ Reads ============

    async def get_chain_id(self) -> str:
        return await self.transport.request("eth_chainId")

    async def read_counter(self) -> int:
        """
        Read the current count.

        Raises:
            ContractNotInitializedError: Before initialize() or without a contract
            ContractNotFoundError: If the bound address holds no code
            ContractReadError: For any other read failure
        """
        self._require_contract()
        calldata = encode_function_call(self.abi, COUNT_FUNCTION)
        try:
            result = await self._transport.request(
                "eth_call", [{"to": self.contract_address, "data": calldata}, "latest"]
            )
        except RpcError as exc:
            raise self._read_error(exc) from exc

        if result is None or result == "0x":
            raise self._read_error(None)

        try:
            value = decode_function_result(self.abi, COUNT_FUNCTION, result)
        except (DecodingError, ValueError) as exc:
            raise self._read_error(exc) from exc
        return int(value)

    def _read_error(self, exc: Optional[Exception]) -> ContractReadError:
        if self.contract_deployed is False:
            return ContractNotFoundError(self.contract_address)
        detail = f": {exc}" if exc is not None else ""
        return ContractReadError(f"Failed to read counter value from contract{detail}")

    async def get_balance(self, address: str) -> Decimal:
        """Balance of ``address`` in the native currency's display unit."""
        result = await self.transport.request("eth_getBalance", [address, "latest"])
        return wei_to_ether(hex_to_int(result), self.chain.native_currency.decimals)

    async def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        """Single receipt poll; None while the transaction is not mined."""
        raw = await self.transport.request("eth_getTransactionReceipt", [tx_hash])
        if raw is None:
            return None

        new_count = None
        for log in raw.get("logs") or []:
            if self.contract_address and str(log.get("address", "")).lower() != self.contract_address.lower():
                continue
            if not self._has_event():
                continue
            try:
                event = decode_event_log(self.abi, INCREMENT_EVENT, log)
            except (DecodingError, ValueError) as exc:
                logger.warning("Ignoring undecodable %s log in %s: %s", INCREMENT_EVENT, tx_hash, exc)
                continue
            if event is not None:
                new_count = int(event["newCount"])

        block = raw.get("blockNumber")
        return Receipt(
            tx_hash=raw.get("transactionHash", tx_hash),
            success=hex_to_int(raw.get("status", "0x0")) == 1,
            gas_used=hex_to_int(raw.get("gasUsed", "0x0")),
            block_number=hex_to_int(block) if block is not None else None,
            new_count=new_count,
            raw=raw,
        )

    def _has_event(self) -> bool:
        return any(
            entry.get("type") == "event" and entry.get("name") == INCREMENT_EVENT
            for entry in self.abi
        )

    # ============ Write path ============

    async def estimate_increment_gas(self, from_address: str) -> int:
        """
        Dry-run increment() from ``from_address``, then estimate its gas.

        Raises:
            SimulationFailedError: If the dry run reverts
            GasEstimationError: If only the estimate itself failed
        """
        self._require_contract()
        tx = self._increment_call(from_address)

        try:
            await self._transport.request("eth_call", [tx, "latest"])
        except RpcError as exc:
            reason = decode_revert_reason(exc.data) or exc.message
            logger.error("Contract call simulation failed: %s", reason)
            raise SimulationFailedError(reason) from exc
        logger.debug("Contract call simulation successful")

        try:
            estimate = hex_to_int(await self._transport.request("eth_estimateGas", [tx]))
        except RpcError as exc:
            raise GasEstimationError(f"Gas estimation failed: {exc}") from exc
        logger.debug("Gas estimate: %s", estimate)
        return estimate

    async def get_gas_price(self) -> int:
        """Current gas price in wei; FALLBACK_GAS_PRICE if the node cannot say."""
        try:
            return hex_to_int(await self.transport.request("eth_gasPrice", []))
        except RpcError as exc:
            logger.warning("Failed to get gas price, using %s wei: %s", FALLBACK_GAS_PRICE, exc)
            return FALLBACK_GAS_PRICE

    async def send_increment(self, from_address: str, gas_limit: int, gas_price: int) -> SubmissionResult:
        """
        Submit increment() with explicit gas settings.

        Raises:
            SubmissionError: Carrying the underlying cause text and code
        """
        self._require_contract()
        tx = self._increment_call(from_address)
        tx["gas"] = hex(gas_limit)
        tx["gasPrice"] = hex(gas_price)

        try:
            tx_hash = await self._transport.request("eth_sendTransaction", [tx])
        except RpcError as exc:
            raise SubmissionError(exc.message, code=exc.code) from exc

        logger.info("Transaction submitted: %s", tx_hash)
        return SubmissionResult(
            tx_hash=tx_hash,
            from_address=from_address,
            gas_limit=gas_limit,
            gas_price=gas_price,
        )

    def _increment_call(self, from_address: str) -> dict[str, Any]:
        return {
            "from": from_address,
            "to": self.contract_address,
            "data": encode_function_call(self.abi, INCREMENT_FUNCTION),
        }

    def _require_contract(self) -> None:
        if self._transport is None or not self._contract_bound:
            raise ContractNotInitializedError()
